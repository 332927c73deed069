"""
Configuration bundles for Azure AD authentication.

Properties live under the ``azure.activedirectory`` prefix and are read
from Django settings named ``AZURE_ACTIVEDIRECTORY_<NAME>``, e.g.
``AZURE_ACTIVEDIRECTORY_CLIENT_ID``.
"""

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from ..conditions import get_property, property_to_setting


PROPERTY_PREFIX = 'azure.activedirectory'


def _as_bool(value, default):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _as_number(prop, name, cast, default):
    value = prop(name, default)
    try:
        return cast(value)
    except (TypeError, ValueError):
        setting = property_to_setting(PROPERTY_PREFIX, name)
        raise ImproperlyConfigured(f'{setting} must be a number, got {value!r}')


def _as_list(value):
    if not value:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(',') if item.strip()]
    return list(value)


class ServiceEndpoints:
    """Azure AD and Graph endpoints of one cloud environment."""

    def __init__(self, aad_signin_uri, aad_graph_api_uri,
                 aad_key_discovery_uri, aad_membership_rest_uri):
        self.aad_signin_uri = aad_signin_uri
        self.aad_graph_api_uri = aad_graph_api_uri
        self.aad_key_discovery_uri = aad_key_discovery_uri
        self.aad_membership_rest_uri = aad_membership_rest_uri

    @property
    def graph_scope(self):
        return f'{self.aad_graph_api_uri.rstrip("/")}/.default'

    def __eq__(self, other):
        return isinstance(other, ServiceEndpoints) and vars(self) == vars(other)

    def __repr__(self):
        return f'ServiceEndpoints(aad_signin_uri={self.aad_signin_uri!r})'


DEFAULT_SERVICE_ENDPOINTS = {
    'global': {
        'aad_signin_uri': 'https://login.microsoftonline.com/',
        'aad_graph_api_uri': 'https://graph.microsoft.com/',
        'aad_key_discovery_uri': 'https://login.microsoftonline.com/common/discovery/v2.0/keys',
        'aad_membership_rest_uri': 'https://graph.microsoft.com/v1.0/me/memberOf',
    },
    'global-v1-graph': {
        'aad_signin_uri': 'https://login.microsoftonline.com/',
        'aad_graph_api_uri': 'https://graph.windows.net/',
        'aad_key_discovery_uri': 'https://login.microsoftonline.com/common/discovery/keys',
        'aad_membership_rest_uri': 'https://graph.windows.net/me/memberOf?api-version=1.6',
    },
    'cn': {
        'aad_signin_uri': 'https://login.partner.microsoftonline.cn/',
        'aad_graph_api_uri': 'https://microsoftgraph.chinacloudapi.cn/',
        'aad_key_discovery_uri': 'https://login.partner.microsoftonline.cn/common/discovery/v2.0/keys',
        'aad_membership_rest_uri': 'https://microsoftgraph.chinacloudapi.cn/v1.0/me/memberOf',
    },
    'us-gov': {
        'aad_signin_uri': 'https://login.microsoftonline.us/',
        'aad_graph_api_uri': 'https://graph.microsoft.us/',
        'aad_key_discovery_uri': 'https://login.microsoftonline.us/common/discovery/v2.0/keys',
        'aad_membership_rest_uri': 'https://graph.microsoft.us/v1.0/me/memberOf',
    },
}


class ServiceEndpointsProperties:
    """
    Endpoints for every supported cloud environment.

    The built-in table can be extended or overridden with the
    ``AZURE_SERVICE_ENDPOINTS`` setting, a mapping of environment name to
    endpoint keyword arguments.
    """

    def __init__(self, endpoints=None):
        self.endpoints = {}
        for environment, values in (endpoints or DEFAULT_SERVICE_ENDPOINTS).items():
            self.endpoints[environment] = ServiceEndpoints(**values)

    @classmethod
    def from_settings(cls):
        table = {name: dict(values) for name, values in DEFAULT_SERVICE_ENDPOINTS.items()}
        for environment, values in getattr(settings, 'AZURE_SERVICE_ENDPOINTS', {}).items():
            table.setdefault(environment, {}).update(values)

        try:
            return cls(table)
        except TypeError as e:
            raise ImproperlyConfigured(f'Invalid AZURE_SERVICE_ENDPOINTS: {str(e)}')

    def get_service_endpoints(self, environment):
        """
        Return the endpoints of an environment.

        Raises:
            ImproperlyConfigured: If the environment is unknown
        """
        try:
            return self.endpoints[environment]
        except KeyError:
            raise ImproperlyConfigured(
                f"Unknown Azure environment '{environment}', "
                f"expected one of: {', '.join(sorted(self.endpoints))}"
            )


class AADAuthenticationProperties:
    """Settings of the Azure AD authentication filter."""

    def __init__(self, client_id=None, client_secret=None, tenant_id=None,
                 app_id_uri=None, active_directory_groups=None, environment='global',
                 session_stateless=False, allow_telemetry=True,
                 jwt_connect_timeout=0.5, jwt_read_timeout=0.5, jwt_size_limit=51200):
        self.client_id = client_id
        self.client_secret = client_secret
        self.tenant_id = tenant_id
        self.app_id_uri = app_id_uri
        self.active_directory_groups = _as_list(active_directory_groups)
        self.environment = environment or 'global'
        self.session_stateless = session_stateless
        self.allow_telemetry = allow_telemetry
        self.jwt_connect_timeout = jwt_connect_timeout
        self.jwt_read_timeout = jwt_read_timeout
        self.jwt_size_limit = jwt_size_limit

    @classmethod
    def from_settings(cls):
        """Bind the ``azure.activedirectory`` properties from Django settings."""
        def prop(name, default=None):
            return get_property(PROPERTY_PREFIX, name, default)

        properties = cls(
            client_id=prop('client-id'),
            client_secret=prop('client-secret'),
            tenant_id=prop('tenant-id'),
            app_id_uri=prop('app-id-uri'),
            active_directory_groups=prop('active-directory-groups'),
            environment=prop('environment', 'global'),
            session_stateless=_as_bool(prop('session-stateless'), False),
            allow_telemetry=_as_bool(prop('allow-telemetry'), True),
            jwt_connect_timeout=_as_number(prop, 'jwt-connect-timeout', float, 0.5),
            jwt_read_timeout=_as_number(prop, 'jwt-read-timeout', float, 0.5),
            jwt_size_limit=_as_number(prop, 'jwt-size-limit', int, 51200),
        )
        properties.validate()
        return properties

    def validate(self):
        if self.jwt_size_limit <= 0:
            raise ImproperlyConfigured('AZURE_ACTIVEDIRECTORY_JWT_SIZE_LIMIT must be positive')
        if self.jwt_connect_timeout <= 0 or self.jwt_read_timeout <= 0:
            raise ImproperlyConfigured('Azure AD JWT timeouts must be positive')

    @property
    def allowed_audiences(self):
        return [aud for aud in (self.client_id, self.app_id_uri) if aud]

    @property
    def jwt_timeout(self):
        return (self.jwt_connect_timeout, self.jwt_read_timeout)
