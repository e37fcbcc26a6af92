# ===============================================================================
# SHARED INFRASTRUCTURE TESTS (Result type, request ID logging)
# ===============================================================================

import logging

from django.http import HttpResponse
from django.test import RequestFactory, SimpleTestCase

from apps.common.logging import RequestIDFilter, clear_request_id, get_request_id, set_request_id
from apps.common.middleware import RequestIDMiddleware
from apps.common.types import Err, Ok
from apps.promotions.conf import get_setting


class ResultTypeTestCase(SimpleTestCase):
    def test_ok(self):
        result = Ok(5)
        self.assertTrue(result.is_ok())
        self.assertEqual(result.unwrap(), 5)
        self.assertEqual(result.unwrap_or(0), 5)

    def test_err(self):
        result = Err('CODE_NOT_FOUND')
        self.assertTrue(result.is_err())
        self.assertEqual(result.unwrap_or(None), None)
        self.assertEqual(result.unwrap_err(), 'CODE_NOT_FOUND')
        with self.assertRaises(ValueError):
            result.unwrap()


class RequestIDTestCase(SimpleTestCase):
    def tearDown(self):
        clear_request_id()

    def test_filter_stamps_current_request_id(self):
        set_request_id('req-42')
        record = logging.LogRecord('test', logging.INFO, __file__, 1, 'message', None, None)
        self.assertTrue(RequestIDFilter().filter(record))
        self.assertEqual(record.request_id, 'req-42')

    def test_filter_outside_request(self):
        record = logging.LogRecord('test', logging.INFO, __file__, 1, 'message', None, None)
        RequestIDFilter().filter(record)
        self.assertEqual(record.request_id, '-')

    def test_middleware_reuses_upstream_id(self):
        seen = {}

        def view(request):
            seen['request_id'] = get_request_id()
            return HttpResponse('ok')

        request = RequestFactory().get('/', HTTP_X_REQUEST_ID='upstream-1')
        response = RequestIDMiddleware(view)(request)

        self.assertEqual(seen['request_id'], 'upstream-1')
        self.assertEqual(response['X-Request-ID'], 'upstream-1')
        self.assertIsNone(get_request_id())

    def test_middleware_generates_id(self):
        response = RequestIDMiddleware(lambda request: HttpResponse('ok'))(RequestFactory().get('/'))
        self.assertEqual(len(response['X-Request-ID']), 36)


class PromotionSettingsTestCase(SimpleTestCase):
    def test_defaults_apply_for_missing_keys(self):
        with self.settings(PROMOTIONS={}):
            self.assertEqual(get_setting('REDEMPTION_VALIDITY_DAYS'), 30)

    def test_unknown_setting(self):
        with self.assertRaises(KeyError):
            get_setting('NOT_A_SETTING')
