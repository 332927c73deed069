"""
Conditional registration of the Azure AD authentication filter.

The filter is registered in the application context only when Django is
serving web requests and both ``AZURE_ACTIVEDIRECTORY_CLIENT_ID`` and
``AZURE_ACTIVEDIRECTORY_CLIENT_SECRET`` are configured. A filter that is
already registered is left in place. Every registration is reported as
one usage telemetry event.
"""

import logging

from ..conditions import on_missing_bean, on_property, on_web_application
from ..context import application_context
from ..telemetry import TelemetryData, TelemetryProxy
from .filter import AADAuthenticationFilter
from .properties import (
    AADAuthenticationProperties,
    PROPERTY_PREFIX,
    ServiceEndpointsProperties,
)


logger = logging.getLogger(__name__)

FILTER_BEAN_NAME = 'azureADJwtTokenFilter'
REQUIRED_PROPERTIES = ('client-id', 'client-secret')


class AADAuthenticationFilterAutoConfiguration:
    """
    Builds the ``AADAuthenticationFilter`` singleton.

    Args:
        aad_properties: ``AADAuthenticationProperties``
        endpoints_properties: ``ServiceEndpointsProperties``
    """

    def __init__(self, aad_properties, endpoints_properties):
        self.aad_properties = aad_properties
        self.endpoints_properties = endpoints_properties
        self.telemetry_proxy = TelemetryProxy(aad_properties.allow_telemetry)

    def azure_ad_jwt_token_filter(self):
        """Create the filter, logging and tracking its creation."""
        endpoints = self.endpoints_properties.get_service_endpoints(self.aad_properties.environment)
        logger.info("AADAuthenticationFilter initialized.")
        self._track_custom_event()
        return AADAuthenticationFilter(self.aad_properties, endpoints)

    def _track_custom_event(self):
        custom_properties = {}
        package_names = __package__.split('.')

        if len(package_names) > 1:
            custom_properties[TelemetryData.SERVICE_NAME] = package_names[-1]

        self.telemetry_proxy.track_event(type(self).__name__, custom_properties)


def evaluate_conditions(context=application_context):
    """
    Evaluate the class-level conditions and record them in the report.

    Returns:
        True if all of them match
    """
    config_name = AADAuthenticationFilterAutoConfiguration.__name__
    outcomes = (
        ('on_web_application', on_web_application()),
        ('on_property', on_property(PROPERTY_PREFIX, REQUIRED_PROPERTIES)),
    )

    matched = True
    for condition, outcome in outcomes:
        context.record_condition(config_name, condition, outcome)
        if not outcome.match:
            logger.debug(f"{config_name} skipped: {outcome.message}")
            matched = False
    return matched


def autoconfigure(context=application_context):
    """
    Register the Azure AD authentication filter if its conditions match.

    Args:
        context: ``ApplicationContext`` to register into

    Returns:
        The registered filter, or None if nothing was registered
    """
    if not evaluate_conditions(context):
        return None

    outcome = on_missing_bean(context, AADAuthenticationFilter)
    context.record_condition(FILTER_BEAN_NAME, 'on_missing_bean', outcome)
    if not outcome.match:
        logger.debug(f"{FILTER_BEAN_NAME} skipped: {outcome.message}")
        return None

    configuration = AADAuthenticationFilterAutoConfiguration(
        AADAuthenticationProperties.from_settings(),
        ServiceEndpointsProperties.from_settings(),
    )
    return context.register_singleton(FILTER_BEAN_NAME, configuration.azure_ad_jwt_token_filter())
