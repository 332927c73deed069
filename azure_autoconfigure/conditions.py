"""
Conditions deciding whether an autoconfigured component is registered.

Each condition returns a ``ConditionOutcome`` so the caller can both act on
it and record it in the application context's evaluation report.
"""

from django.conf import settings

from .context import ConditionOutcome


def property_to_setting(prefix, name):
    """
    Map a dotted property name to its Django setting name.

    ``azure.activedirectory`` + ``client-id`` -> ``AZURE_ACTIVEDIRECTORY_CLIENT_ID``
    """
    full_name = f'{prefix}.{name}' if prefix else name
    return full_name.replace('.', '_').replace('-', '_').upper()


def get_property(prefix, name, default=None):
    return getattr(settings, property_to_setting(prefix, name), default)


def on_web_application():
    """Match when Django's request handling stack is configured."""
    urlconf = getattr(settings, 'ROOT_URLCONF', None)
    handler = (
        getattr(settings, 'WSGI_APPLICATION', None) or
        getattr(settings, 'ASGI_APPLICATION', None)
    )

    if not urlconf:
        return ConditionOutcome(False, 'ROOT_URLCONF is not set')
    if not handler:
        return ConditionOutcome(False, 'neither WSGI_APPLICATION nor ASGI_APPLICATION is set')
    return ConditionOutcome(True, f'found web application {handler}')


def on_property(prefix, names):
    """
    Match when every named property is present and not "false".

    Empty values count as missing.
    """
    missing = []
    disabled = []

    for name in names:
        value = get_property(prefix, name)
        if value is None or str(value).strip() == '':
            missing.append(name)
        elif str(value).strip().lower() == 'false':
            disabled.append(name)

    if missing:
        return ConditionOutcome(
            False, f"did not find property {', '.join(missing)} under '{prefix}'"
        )
    if disabled:
        return ConditionOutcome(
            False, f"property {', '.join(disabled)} under '{prefix}' is 'false'"
        )
    return ConditionOutcome(True, f"found properties {', '.join(names)} under '{prefix}'")


def on_missing_bean(context, bean_type):
    """Match when no component of ``bean_type`` is registered."""
    existing = list(context.beans_of_type(bean_type))
    if existing:
        return ConditionOutcome(
            False, f"found {bean_type.__name__} component(s) {', '.join(existing)}"
        )
    return ConditionOutcome(True, f'did not find any {bean_type.__name__} component')
