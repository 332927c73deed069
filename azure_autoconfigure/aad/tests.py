"""
Tests for the Azure AD authentication filter and its autoconfiguration.

Tokens are signed with a throwaway RSA key whose public half is served
from a mocked key discovery endpoint.
"""

import base64
import io
import time
from unittest.mock import Mock, patch

import jwt
import requests
from cryptography.hazmat.primitives.asymmetric import rsa
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured
from django.core.management import call_command
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from rest_framework import exceptions, status
from rest_framework.test import APITestCase

from ..context import application_context
from .autoconfig import (
    AADAuthenticationFilterAutoConfiguration, FILTER_BEAN_NAME, autoconfigure
)
from .exceptions import ServiceUnavailable
from .filter import AADAuthenticationFilter, CURRENT_USER_PRINCIPAL
from .graph import AzureADGraphClient
from .permissions import HasAADRole, aad_role_required
from .principal import UserGroup, UserPrincipal, UserPrincipalManager
from .properties import (
    AADAuthenticationProperties, DEFAULT_SERVICE_ENDPOINTS, ServiceEndpointsProperties
)


User = get_user_model()

CLIENT_ID = 'a1b2c3d4-client'
TENANT_ID = 'f0e1d2c3-tenant'
KID = 'test-key-1'
KEY_URI = DEFAULT_SERVICE_ENDPOINTS['global']['aad_key_discovery_uri']
MEMBERSHIP_URI = DEFAULT_SERVICE_ENDPOINTS['global']['aad_membership_rest_uri']

PRIVATE_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _b64_int(value):
    raw = value.to_bytes((value.bit_length() + 7) // 8, 'big')
    return base64.urlsafe_b64encode(raw).rstrip(b'=').decode('ascii')


PUBLIC_NUMBERS = PRIVATE_KEY.public_key().public_numbers()
JWKS = {
    'keys': [{
        'kty': 'RSA',
        'kid': KID,
        'use': 'sig',
        'n': _b64_int(PUBLIC_NUMBERS.n),
        'e': _b64_int(PUBLIC_NUMBERS.e),
    }]
}

AAD_SETTINGS = {
    'AZURE_ACTIVEDIRECTORY_CLIENT_ID': CLIENT_ID,
    'AZURE_ACTIVEDIRECTORY_CLIENT_SECRET': 'client-secret',
    'AZURE_ACTIVEDIRECTORY_ALLOW_TELEMETRY': 'true',
    'AZURE_TELEMETRY_INSTRUMENTATION_KEY': '11111111-2222-3333-4444-555555555555',
    'ROOT_URLCONF': 'sample_backend.urls',
    'WSGI_APPLICATION': 'sample_backend.wsgi.application',
}


def make_token(kid=KID, **overrides):
    claims = {
        'aud': CLIENT_ID,
        'iss': f'https://sts.windows.net/{TENANT_ID}/',
        'tid': TENANT_ID,
        'oid': 'object-id-1',
        'sub': 'subject-1',
        'upn': 'jane.doe@example.com',
        'email': 'jane.doe@example.com',
        'name': 'Jane Doe',
        'iat': int(time.time()),
        'exp': int(time.time()) + 3600,
    }
    claims.update(overrides)
    return jwt.encode(claims, PRIVATE_KEY, algorithm='RS256', headers={'kid': kid})


def make_properties(**overrides):
    values = {'client_id': CLIENT_ID, 'client_secret': 'client-secret', 'allow_telemetry': False}
    values.update(overrides)
    return AADAuthenticationProperties(**values)


def json_response(payload, status_code=200):
    response = Mock(status_code=status_code)
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f'{status_code} error')
    return response


def fake_get(groups=None):
    """Serve the JWKS and a one-page membership listing."""
    def get(url, **kwargs):
        if url == KEY_URI:
            return json_response(JWKS)
        if url == MEMBERSHIP_URI:
            return json_response({'value': groups or []})
        raise AssertionError(f'Unexpected GET {url}')
    return get


class AutoconfigTestMixin:

    def setUp(self):
        super().setUp()
        application_context.clear()
        cache.clear()

    def tearDown(self):
        application_context.clear()
        super().tearDown()


@patch('azure_autoconfigure.telemetry.requests.post')
class AutoconfigureTest(AutoconfigTestMixin, SimpleTestCase):
    """Test cases for the conditional registration of the filter."""

    @override_settings(**AAD_SETTINGS)
    def test_registers_filter_when_configured(self, mock_post):
        token_filter = autoconfigure(application_context)

        self.assertIsInstance(token_filter, AADAuthenticationFilter)
        self.assertIs(application_context.get_bean(AADAuthenticationFilter), token_filter)
        self.assertIn(FILTER_BEAN_NAME, application_context)
        self.assertEqual(token_filter.aad_properties.client_id, CLIENT_ID)
        self.assertEqual(token_filter.endpoints.aad_key_discovery_uri, KEY_URI)

    @override_settings(**AAD_SETTINGS)
    def test_logs_initialization(self, mock_post):
        with self.assertLogs('azure_autoconfigure.aad.autoconfig', level='INFO') as logs:
            autoconfigure(application_context)

        self.assertIn('AADAuthenticationFilter initialized.', logs.output[0])

    @override_settings(**AAD_SETTINGS)
    def test_emits_one_telemetry_event(self, mock_post):
        autoconfigure(application_context)

        mock_post.assert_called_once()
        base_data = mock_post.call_args[1]['json']['data']['baseData']
        self.assertEqual(base_data['name'], 'AADAuthenticationFilterAutoConfiguration')
        self.assertEqual(base_data['properties']['serviceName'], 'aad')

    @override_settings(**dict(AAD_SETTINGS, AZURE_ACTIVEDIRECTORY_ALLOW_TELEMETRY='false'))
    def test_no_telemetry_when_disabled(self, mock_post):
        token_filter = autoconfigure(application_context)

        self.assertIsNotNone(token_filter)
        mock_post.assert_not_called()

    @override_settings(**dict(AAD_SETTINGS, AZURE_ACTIVEDIRECTORY_CLIENT_SECRET=''))
    def test_skipped_without_client_secret(self, mock_post):
        self.assertIsNone(autoconfigure(application_context))
        self.assertEqual(len(application_context), 0)
        mock_post.assert_not_called()

    @override_settings(**dict(AAD_SETTINGS, AZURE_ACTIVEDIRECTORY_CLIENT_ID=''))
    def test_skipped_without_client_id(self, mock_post):
        self.assertIsNone(autoconfigure(application_context))
        self.assertEqual(len(application_context), 0)
        mock_post.assert_not_called()

    @override_settings(**dict(AAD_SETTINGS, WSGI_APPLICATION=None, ASGI_APPLICATION=None))
    def test_skipped_outside_web_application(self, mock_post):
        self.assertIsNone(autoconfigure(application_context))
        self.assertEqual(len(application_context), 0)
        mock_post.assert_not_called()

    @override_settings(**AAD_SETTINGS)
    def test_singleton_across_runs(self, mock_post):
        first = autoconfigure(application_context)
        second = autoconfigure(application_context)

        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.assertEqual(len(application_context.beans_of_type(AADAuthenticationFilter)), 1)
        mock_post.assert_called_once()

    @override_settings(**AAD_SETTINGS)
    def test_existing_filter_wins(self, mock_post):
        custom = AADAuthenticationFilter(make_properties(), ServiceEndpointsProperties().get_service_endpoints('global'))
        application_context.register_singleton('customFilter', custom)

        self.assertIsNone(autoconfigure(application_context))
        self.assertIs(application_context.get_bean(AADAuthenticationFilter), custom)
        mock_post.assert_not_called()

    @override_settings(**dict(AAD_SETTINGS, AZURE_ACTIVEDIRECTORY_CLIENT_ID=''))
    def test_condition_report(self, mock_post):
        autoconfigure(application_context)

        report = dict(application_context.condition_report()['AADAuthenticationFilterAutoConfiguration'])
        self.assertTrue(report['on_web_application'].match)
        self.assertFalse(report['on_property'].match)

    @override_settings(**dict(AAD_SETTINGS, AZURE_ACTIVEDIRECTORY_ENVIRONMENT='mars'))
    def test_unknown_environment_is_improperly_configured(self, mock_post):
        with self.assertRaises(ImproperlyConfigured):
            autoconfigure(application_context)

    def test_service_name_is_last_package_segment(self, mock_post):
        configuration = AADAuthenticationFilterAutoConfiguration(
            make_properties(allow_telemetry=True), ServiceEndpointsProperties()
        )
        with patch.object(configuration.telemetry_proxy, 'track_event') as track_event:
            configuration.azure_ad_jwt_token_filter()

        track_event.assert_called_once_with(
            'AADAuthenticationFilterAutoConfiguration', {'serviceName': 'aad'}
        )


class PropertiesTest(SimpleTestCase):
    """Test cases for binding the configuration bundles."""

    @override_settings(
        AZURE_ACTIVEDIRECTORY_CLIENT_ID=CLIENT_ID,
        AZURE_ACTIVEDIRECTORY_ACTIVE_DIRECTORY_GROUPS='Admins, Readers',
        AZURE_ACTIVEDIRECTORY_SESSION_STATELESS='true',
        AZURE_ACTIVEDIRECTORY_ALLOW_TELEMETRY='false',
        AZURE_ACTIVEDIRECTORY_ENVIRONMENT='cn',
    )
    def test_from_settings(self):
        properties = AADAuthenticationProperties.from_settings()

        self.assertEqual(properties.client_id, CLIENT_ID)
        self.assertEqual(properties.active_directory_groups, ['Admins', 'Readers'])
        self.assertTrue(properties.session_stateless)
        self.assertFalse(properties.allow_telemetry)
        self.assertEqual(properties.environment, 'cn')

    def test_defaults(self):
        properties = AADAuthenticationProperties()

        self.assertEqual(properties.environment, 'global')
        self.assertTrue(properties.allow_telemetry)
        self.assertFalse(properties.session_stateless)
        self.assertEqual(properties.jwt_size_limit, 51200)
        self.assertEqual(properties.active_directory_groups, [])

    def test_invalid_size_limit(self):
        with self.assertRaises(ImproperlyConfigured):
            AADAuthenticationProperties(jwt_size_limit=0).validate()

    @override_settings(AZURE_ACTIVEDIRECTORY_JWT_READ_TIMEOUT='')
    def test_malformed_timeout(self):
        with self.assertRaisesMessage(ImproperlyConfigured, 'AZURE_ACTIVEDIRECTORY_JWT_READ_TIMEOUT must be a number'):
            AADAuthenticationProperties.from_settings()

    @override_settings(AZURE_ACTIVEDIRECTORY_JWT_SIZE_LIMIT='50kb')
    def test_malformed_size_limit(self):
        with self.assertRaisesMessage(ImproperlyConfigured, 'AZURE_ACTIVEDIRECTORY_JWT_SIZE_LIMIT must be a number'):
            AADAuthenticationProperties.from_settings()

    @override_settings(AZURE_ACTIVEDIRECTORY_JWT_CONNECT_TIMEOUT='2', AZURE_ACTIVEDIRECTORY_JWT_SIZE_LIMIT='1024')
    def test_numeric_strings(self):
        properties = AADAuthenticationProperties.from_settings()

        self.assertEqual(properties.jwt_connect_timeout, 2.0)
        self.assertEqual(properties.jwt_size_limit, 1024)

    def test_environment_endpoints(self):
        endpoints = ServiceEndpointsProperties().get_service_endpoints('cn')

        self.assertEqual(endpoints.aad_signin_uri, 'https://login.partner.microsoftonline.cn/')
        self.assertEqual(endpoints.graph_scope, 'https://microsoftgraph.chinacloudapi.cn/.default')

    @override_settings(AZURE_SERVICE_ENDPOINTS={
        'global': {'aad_key_discovery_uri': 'https://keys.example.com/'},
    })
    def test_endpoint_overrides(self):
        endpoints = ServiceEndpointsProperties.from_settings().get_service_endpoints('global')

        self.assertEqual(endpoints.aad_key_discovery_uri, 'https://keys.example.com/')
        self.assertEqual(endpoints.aad_signin_uri, 'https://login.microsoftonline.com/')

    def test_unknown_environment(self):
        with self.assertRaises(ImproperlyConfigured):
            ServiceEndpointsProperties().get_service_endpoints('mars')


@patch('azure_autoconfigure.aad.principal.requests.get', side_effect=fake_get())
class UserPrincipalManagerTest(AutoconfigTestMixin, SimpleTestCase):
    """Test cases for token validation."""

    def setUp(self):
        super().setUp()
        endpoints = ServiceEndpointsProperties().get_service_endpoints('global')
        self.manager = UserPrincipalManager(endpoints, make_properties())

    def test_valid_token(self, mock_get):
        principal = self.manager.build_user_principal(make_token())

        self.assertEqual(principal.kid, KID)
        self.assertEqual(principal.object_id, 'object-id-1')
        self.assertEqual(principal.tenant_id, TENANT_ID)
        self.assertEqual(principal.upn, 'jane.doe@example.com')

    def test_jwks_is_cached(self, mock_get):
        self.manager.build_user_principal(make_token())
        self.manager.build_user_principal(make_token())

        self.assertEqual(mock_get.call_count, 1)

    def test_expired_token(self, mock_get):
        with self.assertRaisesMessage(exceptions.AuthenticationFailed, 'Token has expired'):
            self.manager.build_user_principal(make_token(exp=int(time.time()) - 60))

    def test_wrong_audience(self, mock_get):
        with self.assertRaisesMessage(exceptions.AuthenticationFailed, 'Invalid token audience'):
            self.manager.build_user_principal(make_token(aud='someone-else'))

    def test_app_id_uri_audience(self, mock_get):
        endpoints = ServiceEndpointsProperties().get_service_endpoints('global')
        manager = UserPrincipalManager(endpoints, make_properties(app_id_uri='api://sample'))

        principal = manager.build_user_principal(make_token(aud='api://sample'))
        self.assertEqual(principal.object_id, 'object-id-1')

    def test_untrusted_issuer(self, mock_get):
        with self.assertRaisesMessage(exceptions.AuthenticationFailed, 'Invalid token issuer'):
            self.manager.build_user_principal(make_token(iss='https://evil.example.com/'))

    def test_other_tenant(self, mock_get):
        endpoints = ServiceEndpointsProperties().get_service_endpoints('global')
        manager = UserPrincipalManager(endpoints, make_properties(tenant_id='another-tenant'))

        with self.assertRaisesMessage(exceptions.AuthenticationFailed, 'Invalid token issuer'):
            manager.build_user_principal(make_token())

    def test_unknown_key(self, mock_get):
        with self.assertRaisesMessage(exceptions.AuthenticationFailed, 'key not found'):
            self.manager.build_user_principal(make_token(kid='rotated-away'))
        # cached keys are dropped and refetched once
        self.assertEqual(mock_get.call_count, 2)

    def test_unknown_keys_refetch_at_most_once_per_interval(self, mock_get):
        for _ in range(10):
            with self.assertRaisesMessage(exceptions.AuthenticationFailed, 'key not found'):
                self.manager.build_user_principal(make_token(kid='forged-kid'))

        self.assertEqual(mock_get.call_count, 2)

        # a known key still validates from the cached keys
        self.manager.build_user_principal(make_token())
        self.assertEqual(mock_get.call_count, 2)

    def test_token_too_large(self, mock_get):
        endpoints = ServiceEndpointsProperties().get_service_endpoints('global')
        manager = UserPrincipalManager(endpoints, make_properties(jwt_size_limit=100))

        with self.assertRaisesMessage(exceptions.AuthenticationFailed, 'too large'):
            manager.build_user_principal(make_token())
        mock_get.assert_not_called()

    def test_malformed_token(self, mock_get):
        with self.assertRaises(exceptions.AuthenticationFailed):
            self.manager.build_user_principal('not-a-jwt')

    def test_key_discovery_unavailable(self, mock_get):
        mock_get.side_effect = requests.ConnectionError('unreachable')

        with self.assertRaises(ServiceUnavailable):
            self.manager.build_user_principal(make_token())


class UserPrincipalTest(SimpleTestCase):

    def test_roles_from_allowed_groups(self):
        principal = UserPrincipal(KID, {}, [UserGroup('1', 'Admins'), UserGroup('2', 'Other')])

        self.assertTrue(principal.is_member_of('Admins'))
        self.assertEqual(principal.roles(['Admins', 'Readers']), ['ROLE_Admins'])
        self.assertEqual(principal.roles(['Readers']), ['ROLE_USER'])

    def test_session_round_trip(self):
        principal = UserPrincipal(KID, {'oid': 'x'}, [UserGroup('1', 'Admins')])
        restored = UserPrincipal.from_dict(principal.to_dict())

        self.assertEqual(restored.claims, {'oid': 'x'})
        self.assertEqual(restored.groups, [UserGroup('1', 'Admins')])


class AzureADGraphClientTest(SimpleTestCase):
    """Test cases for the group membership client."""

    def setUp(self):
        endpoints = ServiceEndpointsProperties().get_service_endpoints('global')
        self.client = AzureADGraphClient(make_properties(), endpoints)

    @patch('azure_autoconfigure.aad.graph.requests.post')
    def test_acquire_token_on_behalf_of(self, mock_post):
        mock_post.return_value = json_response({'access_token': 'graph-token'})

        self.assertEqual(self.client.acquire_token_for_graph_api('user-token', TENANT_ID), 'graph-token')

        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], f'https://login.microsoftonline.com/{TENANT_ID}/oauth2/v2.0/token')
        self.assertEqual(kwargs['data']['assertion'], 'user-token')
        self.assertEqual(kwargs['data']['requested_token_use'], 'on_behalf_of')
        self.assertEqual(kwargs['data']['scope'], 'https://graph.microsoft.com/.default')

    @patch('azure_autoconfigure.aad.graph.requests.post')
    def test_token_exchange_refused(self, mock_post):
        mock_post.return_value = json_response({'error': 'invalid_grant'}, status_code=400)

        with self.assertRaises(ServiceUnavailable):
            self.client.acquire_token_for_graph_api('user-token', TENANT_ID)

    @patch('azure_autoconfigure.aad.graph.requests.get')
    def test_get_groups_follows_pages(self, mock_get):
        mock_get.side_effect = [
            json_response({
                'value': [
                    {'@odata.type': '#microsoft.graph.group', 'id': 'g1', 'displayName': 'Admins'},
                    {'@odata.type': '#microsoft.graph.directoryRole', 'id': 'r1', 'displayName': 'Role'},
                ],
                '@odata.nextLink': 'https://graph.microsoft.com/v1.0/me/memberOf?$skiptoken=abc',
            }),
            json_response({
                'value': [{'@odata.type': '#microsoft.graph.group', 'id': 'g2', 'displayName': 'Readers'}],
            }),
        ]

        groups = self.client.get_groups('graph-token')

        self.assertEqual(groups, [UserGroup('g1', 'Admins'), UserGroup('g2', 'Readers')])
        self.assertEqual(mock_get.call_count, 2)
        self.assertEqual(mock_get.call_args[1]['headers']['Authorization'], 'Bearer graph-token')

    @patch('azure_autoconfigure.aad.graph.requests.get')
    def test_get_groups_unavailable(self, mock_get):
        mock_get.return_value = json_response({}, status_code=503)

        with self.assertRaises(ServiceUnavailable):
            self.client.get_groups('graph-token')


@patch('azure_autoconfigure.aad.graph.requests.post', return_value=json_response({'access_token': 'graph-token'}))
@patch('azure_autoconfigure.aad.principal.requests.get', side_effect=fake_get(groups=[
    {'@odata.type': '#microsoft.graph.group', 'id': 'g1', 'displayName': 'Admins'},
]))
class AADAuthenticationFilterTest(AutoconfigTestMixin, TestCase):
    """Test cases for per-request authentication."""

    def setUp(self):
        super().setUp()
        self.factory = RequestFactory()
        self.endpoints = ServiceEndpointsProperties().get_service_endpoints('global')
        self.filter = AADAuthenticationFilter(make_properties(active_directory_groups=['Admins']), self.endpoints)

    def _request(self, token=None, session=None):
        extra = {'HTTP_AUTHORIZATION': f'Bearer {token}'} if token else {}
        request = self.factory.get('/api/aad/me/', **extra)
        request.session = {} if session is None else session
        return request

    def test_request_without_token_passes(self, mock_get, mock_post):
        request = self._request()

        self.assertIsNone(self.filter.do_filter(request))
        self.assertFalse(hasattr(request, 'aad_principal'))
        mock_get.assert_not_called()

    def test_authenticates_and_creates_user(self, mock_get, mock_post):
        request = self._request(make_token())

        principal = self.filter.do_filter(request)

        self.assertEqual(principal.groups, [UserGroup('g1', 'Admins')])
        self.assertIs(request.aad_principal, principal)
        self.assertEqual(request.aad_roles, ['ROLE_Admins'])
        self.assertEqual(request.user.username, 'object-id-1')
        self.assertEqual(request.user.email, 'jane.doe@example.com')
        self.assertEqual(request.user.first_name, 'Jane')
        self.assertEqual(request.user.last_name, 'Doe')
        self.assertIsNotNone(request.user.last_login)

    def test_updates_existing_user(self, mock_get, mock_post):
        User.objects.create_user(username='object-id-1', email='old@example.com')

        self.filter.do_filter(self._request(make_token()))

        self.assertEqual(User.objects.get(username='object-id-1').email, 'jane.doe@example.com')
        self.assertEqual(User.objects.filter(username='object-id-1').count(), 1)

    def test_principal_cached_in_session(self, mock_get, mock_post):
        token = make_token()
        session = {}

        self.filter.do_filter(self._request(token, session))
        self.assertIn(CURRENT_USER_PRINCIPAL, session)

        request = self._request(token, session)
        principal = self.filter.do_filter(request)

        self.assertEqual(principal.groups, [UserGroup('g1', 'Admins')])
        # second request used the session: no new token exchange
        mock_post.assert_called_once()

    def test_stateless_session_not_used(self, mock_get, mock_post):
        token_filter = AADAuthenticationFilter(
            make_properties(active_directory_groups=['Admins'], session_stateless=True), self.endpoints
        )
        session = {}

        token_filter.do_filter(self._request(make_token(), session))
        token_filter.do_filter(self._request(make_token(), session))

        self.assertEqual(session, {})
        self.assertEqual(mock_post.call_count, 2)

    def test_no_graph_lookup_without_allowed_groups(self, mock_get, mock_post):
        token_filter = AADAuthenticationFilter(make_properties(), self.endpoints)
        request = self._request(make_token())

        token_filter.do_filter(request)

        mock_post.assert_not_called()
        self.assertEqual(request.aad_roles, ['ROLE_USER'])

    def test_missing_object_id(self, mock_get, mock_post):
        with self.assertRaisesMessage(exceptions.AuthenticationFailed, 'missing user ID'):
            self.filter.do_filter(self._request(make_token(oid=None)))

    def test_token_with_spaces(self, mock_get, mock_post):
        request = self.factory.get('/', HTTP_AUTHORIZATION='Bearer abc def')

        with self.assertRaises(exceptions.AuthenticationFailed):
            self.filter.do_filter(request)


@patch('azure_autoconfigure.aad.principal.requests.get', side_effect=fake_get())
class AADAuthenticationMiddlewareTest(AutoconfigTestMixin, APITestCase):
    """Test cases for the filter in the request pipeline."""

    def _register_filter(self):
        endpoints = ServiceEndpointsProperties().get_service_endpoints('global')
        token_filter = AADAuthenticationFilter(make_properties(), endpoints)
        application_context.register_singleton(FILTER_BEAN_NAME, token_filter)
        return token_filter

    def test_current_principal(self, mock_get):
        self._register_filter()

        response = self.client.get('/api/aad/me/', HTTP_AUTHORIZATION=f'Bearer {make_token()}')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['upn'], 'jane.doe@example.com')
        self.assertEqual(response.data['subject'], 'subject-1')
        self.assertEqual(response.data['object_id'], 'object-id-1')
        self.assertEqual(response.data['tenant_id'], TENANT_ID)
        self.assertEqual(response.data['roles'], ['ROLE_USER'])

    def test_handler_load_registers_filter_once(self, mock_get):
        with override_settings(**AAD_SETTINGS), patch('azure_autoconfigure.telemetry.requests.post') as mock_post:
            for _ in range(3):
                response = self.client.get('/api/aad/health/')
                self.assertTrue(response.data['filter_registered'])

            response = self.client.get('/api/aad/me/', HTTP_AUTHORIZATION=f'Bearer {make_token()}')
            self.assertEqual(response.status_code, status.HTTP_200_OK)

            # a second handler reuses the registered filter
            self.client_class().get('/api/aad/health/')

        self.assertEqual(len(application_context.beans_of_type(AADAuthenticationFilter)), 1)
        mock_post.assert_called_once()

    def test_invalid_token_rejected(self, mock_get):
        self._register_filter()

        response = self.client.get('/api/aad/me/', HTTP_AUTHORIZATION='Bearer not-a-jwt')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertIn('Bearer', response['WWW-Authenticate'])
        self.assertEqual(response.json()['detail'], 'Invalid token')

    def test_key_discovery_unavailable(self, mock_get):
        self._register_filter()
        mock_get.side_effect = requests.ConnectionError('unreachable')

        response = self.client.get('/api/aad/me/', HTTP_AUTHORIZATION=f'Bearer {make_token()}')

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

    def test_unauthenticated_request(self, mock_get):
        self._register_filter()

        response = self.client.get('/api/aad/me/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_pass_through_without_filter(self, mock_get):
        response = self.client.get('/api/aad/me/', HTTP_AUTHORIZATION=f'Bearer {make_token()}')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        mock_get.assert_not_called()

    def test_health(self, mock_get):
        response = self.client.get('/api/aad/health/')
        self.assertFalse(response.data['filter_registered'])

        self._register_filter()
        response = self.client.get('/api/aad/health/')
        self.assertTrue(response.data['filter_registered'])
        self.assertEqual(response.data['environment'], 'global')


class ConditionsCommandTest(SimpleTestCase):

    @override_settings(**dict(AAD_SETTINGS, AZURE_ACTIVEDIRECTORY_CLIENT_SECRET=''))
    def test_report_without_secret(self):
        out = io.StringIO()
        call_command('aad_conditions', stdout=out)

        output = out.getvalue()
        self.assertIn('AADAuthenticationFilterAutoConfiguration', output)
        self.assertIn('on_property: did not match', output)
        self.assertIn('will not be registered', output)
        self.assertEqual(len(application_context), 0)

    @override_settings(**AAD_SETTINGS)
    def test_report_when_configured(self):
        out = io.StringIO()
        call_command('aad_conditions', stdout=out)

        self.assertIn('will be registered', out.getvalue())


class PermissionsTest(SimpleTestCase):
    """Test cases for Azure AD role permissions."""

    def _request(self, roles=None):
        request = RequestFactory().get('/')
        if roles is not None:
            request.aad_roles = roles
        return request

    def test_has_aad_role(self):
        view = Mock(required_aad_roles=['ROLE_Admins'])

        self.assertTrue(HasAADRole().has_permission(self._request(['ROLE_Admins']), view))
        self.assertFalse(HasAADRole().has_permission(self._request(['ROLE_USER']), view))
        self.assertFalse(HasAADRole().has_permission(self._request(), view))

    def test_has_aad_role_without_requirements(self):
        view = Mock(required_aad_roles=[])
        self.assertTrue(HasAADRole().has_permission(self._request(['ROLE_USER']), view))

    def test_aad_role_required(self):
        permission = aad_role_required('ROLE_Admins', 'ROLE_Readers')()

        self.assertTrue(permission.has_permission(self._request(['ROLE_Readers']), None))
        self.assertFalse(permission.has_permission(self._request(['ROLE_USER']), None))
        self.assertFalse(permission.has_permission(self._request(), None))


class LegacyGraphPagingTest(SimpleTestCase):

    @patch('azure_autoconfigure.aad.graph.requests.get')
    def test_relative_next_link_stops_paging(self, mock_get):
        endpoints = ServiceEndpointsProperties().get_service_endpoints('global-v1-graph')
        client = AzureADGraphClient(make_properties(environment='global-v1-graph'), endpoints)
        mock_get.return_value = json_response({
            'value': [{'objectType': 'Group', 'objectId': 'g1', 'displayName': 'Admins'}],
            'odata.nextLink': 'directoryObjects/$/Microsoft.DirectoryServices.User/x/memberOf?$skiptoken=1',
        })

        with self.assertLogs('azure_autoconfigure.aad.graph', level='WARNING'):
            groups = client.get_groups('graph-token')

        self.assertEqual(groups, [UserGroup('g1', 'Admins')])
        mock_get.assert_called_once()
