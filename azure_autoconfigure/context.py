"""
Application context for autoconfigured components.

The context is a registry of named singleton objects, populated when
Django loads a request handler and builds the autoconfiguring middleware.
Middleware and views look components up by type at request time, so a
component that was never registered is simply absent from the request
pipeline.
"""

import logging
from collections import OrderedDict, namedtuple


logger = logging.getLogger(__name__)

ConditionOutcome = namedtuple('ConditionOutcome', ['match', 'message'])

_MISSING = object()


class BeanAlreadyRegistered(Exception):
    """Raised when a second component is registered under an existing name."""


class NoSuchBean(Exception):
    """Raised when no component of the requested type is registered."""


class ApplicationContext:
    """
    Registry of singleton components and of the conditions evaluated
    while deciding whether to register them.
    """

    def __init__(self):
        self._beans = OrderedDict()
        self._conditions = OrderedDict()

    def register_singleton(self, name, instance):
        """
        Register a singleton component.

        Args:
            name: Unique component name
            instance: The component object

        Raises:
            BeanAlreadyRegistered: If the name is already taken
        """
        if name in self._beans:
            raise BeanAlreadyRegistered(f"Component '{name}' is already registered")

        self._beans[name] = instance
        logger.debug(f"Registered component '{name}' ({type(instance).__name__})")
        return instance

    def beans_of_type(self, bean_type):
        """Return a name -> instance mapping of components of the given type."""
        return OrderedDict(
            (name, bean) for name, bean in self._beans.items()
            if isinstance(bean, bean_type)
        )

    def contains_bean_of_type(self, bean_type):
        return bool(self.beans_of_type(bean_type))

    def get_bean(self, bean_type, default=_MISSING):
        """
        Return the single registered component of a type.

        Args:
            bean_type: Class the component must be an instance of
            default: Returned instead of raising when nothing matches

        Returns:
            The registered component, or ``default``

        Raises:
            NoSuchBean: If nothing matches and no default was given
        """
        beans = self.beans_of_type(bean_type)

        if not beans:
            if default is not _MISSING:
                return default
            raise NoSuchBean(f"No component of type {bean_type.__name__} is registered")

        if len(beans) > 1:
            logger.warning(
                f"{len(beans)} components of type {bean_type.__name__} registered, "
                f"using '{next(iter(beans))}'"
            )
        return next(iter(beans.values()))

    def record_condition(self, config_name, condition, outcome):
        """Record the latest outcome of one condition for the evaluation report."""
        self._conditions.setdefault(config_name, OrderedDict())[condition] = outcome

    def condition_report(self):
        """Return ``{config_name: [(condition, ConditionOutcome), ...]}``."""
        return OrderedDict(
            (name, list(outcomes.items())) for name, outcomes in self._conditions.items()
        )

    def clear(self):
        self._beans.clear()
        self._conditions.clear()

    def __contains__(self, name):
        return name in self._beans

    def __len__(self):
        return len(self._beans)


application_context = ApplicationContext()
