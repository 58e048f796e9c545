"""
Tests for the API client and the error taxonomy.
"""
from unittest.mock import MagicMock, patch

import requests
from django.test import SimpleTestCase

from core.client import ApiSession, InventoryClient
from core.exceptions import (
    ClinicError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    error_response,
)


def fake_response(status_code=200, body=None, reason='OK'):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.content = b'{}' if body is not None else b''
    if body is None:
        response.json.side_effect = ValueError('No JSON')
    else:
        response.json.return_value = body
    return response


class ErrorTaxonomyTestCase(SimpleTestCase):

    def test_validation_error_collects_fields(self):
        error = ValidationError(errors={'purchase_quantity': ['Too small.'], 'batch_number': ['Required.']})

        self.assertEqual(error.status_code, 400)
        self.assertIn('purchase_quantity: Too small.', error.detail)
        self.assertEqual(error.as_dict()['errors']['batch_number'], ['Required.'])

    def test_error_response(self):
        response = error_response(ConflictError('Restock 4 is already approved'), restock_id=4)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['error'], 'Conflict')
        self.assertEqual(response.data['restock_id'], 4)

    def test_persistence_error_is_generic(self):
        self.assertEqual(PersistenceError().status_code, 500)
        self.assertIn('try again', str(PersistenceError()))


class ApiSessionTestCase(SimpleTestCase):

    def setUp(self):
        self.session = ApiSession('http://clinic.local/')
        self.http = patch.object(self.session.http, 'request').start()
        self.addCleanup(patch.stopall)

    def test_login_sets_token_header(self):
        self.http.return_value = fake_response(body={'token': 'abc123'})

        self.session.login('pharmacist', 'secret')

        self.assertTrue(self.session.is_authenticated)
        self.assertEqual(self.session.http.headers['Authorization'], 'Token abc123')
        method, url = self.http.call_args[0]
        self.assertEqual((method, url), ('POST', 'http://clinic.local/api/auth/token/'))

    def test_logout_clears_token(self):
        session = ApiSession('http://clinic.local', token='abc123')

        session.logout()

        self.assertFalse(session.is_authenticated)
        self.assertNotIn('Authorization', session.http.headers)

    def test_sessions_do_not_share_tokens(self):
        other = ApiSession('http://clinic.local', token='other')
        self.assertNotIn('Authorization', self.session.http.headers)
        self.assertEqual(other.http.headers['Authorization'], 'Token other')

    def test_status_codes_map_to_errors(self):
        cases = [
            (400, {'error': 'Validation Error', 'detail': 'bad', 'errors': {'batch_number': ['Required.']}},
             ValidationError),
            (404, {'detail': 'Not found.'}, NotFoundError),
            (409, {'error': 'Conflict', 'detail': 'already approved'}, ConflictError),
        ]
        for status_code, body, error_class in cases:
            with self.subTest(status_code=status_code):
                self.http.return_value = fake_response(status_code, body, reason='Error')
                with self.assertRaises(error_class):
                    self.session.get('/api/inventory/drugs/1/')

    def test_drf_field_errors_become_validation_errors(self):
        self.http.return_value = fake_response(400, {'units_per_purchase': ['Too small.']})

        with self.assertRaises(ValidationError) as ctx:
            self.session.post('/api/inventory/pricing/preview/', {})

        self.assertEqual(ctx.exception.errors, {'units_per_purchase': ['Too small.']})

    def test_other_errors_keep_status(self):
        self.http.return_value = fake_response(429, {'error': 'Rate limit exceeded'}, reason='Too Many Requests')

        with self.assertRaises(ClinicError) as ctx:
            self.session.get('/api/inventory/drugs/search/', params={'q': 'pa'})

        self.assertEqual(ctx.exception.status_code, 429)

    def test_connection_failure(self):
        self.http.side_effect = requests.exceptions.ConnectionError('refused')

        with self.assertRaises(PersistenceError):
            self.session.get('/api/inventory/stats/')

    def test_no_content(self):
        self.http.return_value = fake_response(204)
        self.assertIsNone(self.session.delete('/api/inventory/forms/3/'))


class InventoryClientTestCase(SimpleTestCase):

    def setUp(self):
        self.session = MagicMock(spec=ApiSession)
        self.client = InventoryClient(self.session)

    def test_create_drug_sends_both_steps(self):
        self.client.create_drug({'name': 'Amoxicillin'}, {'units_per_purchase': 100})

        self.session.post.assert_called_once_with(
            '/api/inventory/drugs/',
            {'basic': {'name': 'Amoxicillin'}, 'pricing': {'units_per_purchase': 100}}
        )

    def test_restock_payload(self):
        self.client.restock(12, 5, 'B-2291', '2027-03-31', vendor_id=2)

        path, payload = self.session.post.call_args[0]
        self.assertEqual(path, '/api/inventory/drugs/12/restock/')
        self.assertEqual(payload['purchase_quantity'], 5)
        self.assertEqual(payload['vendor_id'], 2)
        self.assertNotIn('sale_quantity', payload)

    def test_decide_restock(self):
        self.client.decide_restock(9, approve=False, reason='Damaged')

        self.session.post.assert_called_once_with(
            '/api/inventory/restock/9/approve/', {'status': 'rejected', 'reason': 'Damaged'}
        )

    def test_expiring_window(self):
        self.client.expiring(days=30)
        self.session.get.assert_called_once_with('/api/inventory/drugs/expiring/', params={'days': 30})
