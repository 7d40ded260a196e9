"""
Tests for environment loading, structured logging and API error mapping.
"""

import os
import tempfile
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import DatabaseError, InterfaceError
from django.test import RequestFactory, SimpleTestCase, TestCase

from discussions.exceptions import AuthenticationRequired, NotFound
from .decorators.error_handling import api_error_handler
from .env_loader import EnvLoader, get_bool_env, get_int_env, get_list_env
from .structured_logging import StructuredLogger

User = get_user_model()


class EnvLoaderTestCase(SimpleTestCase):

    def test_env_file_does_not_override_environment(self):
        with tempfile.TemporaryDirectory() as tmp:
            env_file = os.path.join(tmp, '.env')
            with open(env_file, 'w') as handle:
                handle.write('PORTAL_TEST_FROM_FILE=file\nPORTAL_TEST_BOTH=file\n')

            with mock.patch.dict(os.environ, {'PORTAL_TEST_BOTH': 'environment'}):
                loader = EnvLoader(env_file)
                self.assertEqual(loader.get('PORTAL_TEST_FROM_FILE'), 'file')
                self.assertEqual(loader.get('PORTAL_TEST_BOTH'), 'environment')

    def test_typed_getters(self):
        with mock.patch.dict(os.environ, {
            'PORTAL_TEST_BOOL': 'Yes',
            'PORTAL_TEST_INT': '42',
            'PORTAL_TEST_BAD_INT': 'many',
            'PORTAL_TEST_LIST': 'a, b,,c ',
        }):
            self.assertTrue(get_bool_env('PORTAL_TEST_BOOL'))
            self.assertTrue(get_bool_env('PORTAL_TEST_MISSING', True))
            self.assertEqual(get_int_env('PORTAL_TEST_INT'), 42)
            self.assertEqual(get_int_env('PORTAL_TEST_BAD_INT', 7), 7)
            self.assertEqual(get_list_env('PORTAL_TEST_LIST'), ['a', 'b', 'c'])
            self.assertEqual(get_list_env('PORTAL_TEST_MISSING', default=['x']), ['x'])


class StructuredLoggerTestCase(TestCase):

    def test_context_includes_user_request_and_extra(self):
        user = User.objects.create_user(username='alice', password='testpass123')
        request = RequestFactory().post('/discussions/comments/add/', HTTP_X_FORWARDED_FOR='10.0.0.1, 10.0.0.2')
        logger = StructuredLogger('discussions.activity')

        with self.assertLogs('discussions.activity', level='INFO') as logs:
            logger.info('Reply added', user=user, request=request, extra_data={'node_id': 3})

        line = logs.output[0]
        self.assertIn('Reply added', line)
        self.assertIn('"username": "alice"', line)
        self.assertIn('"request_ip": "10.0.0.1"', line)
        self.assertIn('"node_id": 3', line)


class ApiErrorHandlerTestCase(SimpleTestCase):

    def setUp(self):
        self.request = RequestFactory().get('/')

    def call_with(self, error):
        @api_error_handler
        def view(request):
            raise error
        return view(self.request)

    def test_thread_errors_keep_their_status(self):
        response = self.call_with(NotFound())
        self.assertEqual(response.status_code, 404)

        response = self.call_with(AuthenticationRequired())
        self.assertEqual(response.status_code, 401)

    def test_django_errors(self):
        self.assertEqual(self.call_with(ValidationError('bad')).status_code, 400)
        self.assertEqual(self.call_with(PermissionDenied()).status_code, 403)
        self.assertEqual(self.call_with(DatabaseError('boom')).status_code, 500)

    def test_transient_error_is_retryable(self):
        response = self.call_with(InterfaceError('closed'))
        self.assertEqual(response.status_code, 503)
        self.assertIn(b'"retryable": true', response.content)

    def test_unexpected_error(self):
        response = self.call_with(RuntimeError('boom'))
        self.assertEqual(response.status_code, 500)
        self.assertIn(b'server_error', response.content)
