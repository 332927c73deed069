"""
Tests for the application context, registration conditions and telemetry.
"""

from unittest.mock import Mock, patch

import requests
from django.test import SimpleTestCase, override_settings

from .conditions import on_missing_bean, on_property, on_web_application, property_to_setting
from .context import (
    ApplicationContext, BeanAlreadyRegistered, ConditionOutcome, NoSuchBean
)
from .telemetry import TelemetryData, TelemetryProxy


class Widget:
    pass


class SpecialWidget(Widget):
    pass


class ApplicationContextTest(SimpleTestCase):
    """Test cases for the singleton registry."""

    def setUp(self):
        self.context = ApplicationContext()

    def test_register_and_get_bean(self):
        widget = Widget()
        self.context.register_singleton('widget', widget)

        self.assertIs(self.context.get_bean(Widget), widget)
        self.assertIn('widget', self.context)
        self.assertEqual(len(self.context), 1)

    def test_get_bean_matches_subclasses(self):
        widget = SpecialWidget()
        self.context.register_singleton('special', widget)

        self.assertIs(self.context.get_bean(Widget), widget)
        self.assertTrue(self.context.contains_bean_of_type(Widget))

    def test_duplicate_name_rejected(self):
        self.context.register_singleton('widget', Widget())

        with self.assertRaises(BeanAlreadyRegistered):
            self.context.register_singleton('widget', Widget())

    def test_missing_bean(self):
        with self.assertRaises(NoSuchBean):
            self.context.get_bean(Widget)
        self.assertIsNone(self.context.get_bean(Widget, default=None))

    def test_condition_report_keeps_latest_outcome(self):
        self.context.record_condition('Config', 'on_property', ConditionOutcome(False, 'missing'))
        self.context.record_condition('Config', 'on_property', ConditionOutcome(True, 'found'))

        report = self.context.condition_report()
        self.assertEqual(report['Config'], [('on_property', ConditionOutcome(True, 'found'))])

    def test_clear(self):
        self.context.register_singleton('widget', Widget())
        self.context.record_condition('Config', 'on_property', ConditionOutcome(True, 'found'))
        self.context.clear()

        self.assertEqual(len(self.context), 0)
        self.assertEqual(self.context.condition_report(), {})


class ConditionsTest(SimpleTestCase):
    """Test cases for registration conditions."""

    def test_property_to_setting(self):
        self.assertEqual(
            property_to_setting('azure.activedirectory', 'client-id'),
            'AZURE_ACTIVEDIRECTORY_CLIENT_ID'
        )

    @override_settings(AZURE_ACTIVEDIRECTORY_CLIENT_ID='id', AZURE_ACTIVEDIRECTORY_CLIENT_SECRET='secret')
    def test_on_property_matches_when_all_present(self):
        outcome = on_property('azure.activedirectory', ['client-id', 'client-secret'])
        self.assertTrue(outcome.match)

    @override_settings(AZURE_ACTIVEDIRECTORY_CLIENT_ID='id', AZURE_ACTIVEDIRECTORY_CLIENT_SECRET='')
    def test_on_property_treats_empty_as_missing(self):
        outcome = on_property('azure.activedirectory', ['client-id', 'client-secret'])
        self.assertFalse(outcome.match)
        self.assertIn('client-secret', outcome.message)

    @override_settings(AZURE_ACTIVEDIRECTORY_CLIENT_ID='False', AZURE_ACTIVEDIRECTORY_CLIENT_SECRET='secret')
    def test_on_property_rejects_false(self):
        outcome = on_property('azure.activedirectory', ['client-id', 'client-secret'])
        self.assertFalse(outcome.match)

    @override_settings(ROOT_URLCONF='sample_backend.urls', WSGI_APPLICATION='sample_backend.wsgi.application')
    def test_on_web_application(self):
        self.assertTrue(on_web_application().match)

    @override_settings(WSGI_APPLICATION=None, ASGI_APPLICATION=None)
    def test_on_web_application_without_handler(self):
        self.assertFalse(on_web_application().match)

    def test_on_missing_bean(self):
        context = ApplicationContext()
        self.assertTrue(on_missing_bean(context, Widget).match)

        context.register_singleton('widget', Widget())
        outcome = on_missing_bean(context, Widget)
        self.assertFalse(outcome.match)
        self.assertIn('widget', outcome.message)


@override_settings(
    AZURE_TELEMETRY_ENDPOINT='https://telemetry.example.com/v2/track',
    AZURE_TELEMETRY_INSTRUMENTATION_KEY='11111111-2222-3333-4444-555555555555',
)
class TelemetryProxyTest(SimpleTestCase):
    """Test cases for usage telemetry."""

    @patch('azure_autoconfigure.telemetry.requests.post')
    def test_track_event_posts_envelope(self, mock_post):
        mock_post.return_value = Mock(status_code=200)

        sent = TelemetryProxy(True).track_event('SomeEvent', {TelemetryData.SERVICE_NAME: 'aad'})

        self.assertTrue(sent)
        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], 'https://telemetry.example.com/v2/track')

        envelope = kwargs['json']
        self.assertEqual(envelope['iKey'], '11111111-2222-3333-4444-555555555555')
        self.assertEqual(envelope['data']['baseType'], 'EventData')
        base_data = envelope['data']['baseData']
        self.assertEqual(base_data['name'], 'SomeEvent')
        self.assertEqual(base_data['properties'][TelemetryData.SERVICE_NAME], 'aad')
        self.assertIn(TelemetryData.INSTALLATION_ID, base_data['properties'])
        self.assertIn(TelemetryData.PROJECT_VERSION, base_data['properties'])

    @patch('azure_autoconfigure.telemetry.requests.post')
    def test_disabled_proxy_sends_nothing(self, mock_post):
        sent = TelemetryProxy(False).track_event('SomeEvent', {})

        self.assertFalse(sent)
        mock_post.assert_not_called()

    @patch('azure_autoconfigure.telemetry.requests.post')
    def test_network_failure_is_not_raised(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('unreachable')

        with self.assertLogs('azure_autoconfigure.telemetry', level='WARNING'):
            sent = TelemetryProxy(True).track_event('SomeEvent')

        self.assertFalse(sent)

    @override_settings(AZURE_TELEMETRY_INSTRUMENTATION_KEY='')
    @patch('azure_autoconfigure.telemetry.requests.post')
    def test_no_instrumentation_key_sends_nothing(self, mock_post):
        with self.assertLogs('azure_autoconfigure.telemetry', level='DEBUG') as logs:
            sent = TelemetryProxy(True).track_event('SomeEvent')

        self.assertFalse(sent)
        mock_post.assert_not_called()
        self.assertIn('No instrumentation key configured', logs.output[0])

    @override_settings(AZURE_TELEMETRY_INSTRUMENTATION_KEY='00000000-0000-0000-0000-000000000000')
    @patch('azure_autoconfigure.telemetry.requests.post')
    def test_placeholder_instrumentation_key_sends_nothing(self, mock_post):
        self.assertFalse(TelemetryProxy(True).track_event('SomeEvent'))
        mock_post.assert_not_called()

    def test_installation_id_is_hashed(self):
        installation_id = TelemetryData.get_installation_id()
        self.assertEqual(len(installation_id), 64)
        self.assertEqual(installation_id, TelemetryData.get_installation_id())
