"""
Tests for audit recording.
"""
import datetime
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.db import DatabaseError
from django.test import RequestFactory, TestCase

from audit.models import AuditLog
from audit.services import record_audit, record_request_audit


class RecordAuditTestCase(TestCase):

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='auditor', password='secret')

    def test_record_with_decimal_and_date_details(self):
        entry = record_audit(
            AuditLog.ActionType.UPDATE,
            AuditLog.EntityType.DRUG,
            42,
            details={'unit_cost': Decimal('1.2500000000'), 'expiry_date': datetime.date(2027, 1, 1)},
            actor=self.user,
            ip_address='192.168.1.20',
        )

        entry.refresh_from_db()
        self.assertEqual(entry.entity_id, '42')
        self.assertEqual(entry.actor, self.user)
        self.assertEqual(entry.details['unit_cost'], '1.2500000000')
        self.assertEqual(entry.details['expiry_date'], '2027-01-01')

    def test_bad_ip_and_anonymous_actor_are_dropped(self):
        entry = record_audit(
            AuditLog.ActionType.DELETE,
            AuditLog.EntityType.CATEGORY,
            7,
            actor=AnonymousUser(),
            ip_address='unknown',
        )

        self.assertIsNone(entry.actor)
        self.assertIsNone(entry.ip_address)

    def test_failure_is_logged_not_raised(self):
        """
        Test: A failed audit write never reaches the caller.

        Then: None is returned and an error is logged
        """
        with patch.object(AuditLog.objects, 'create', side_effect=DatabaseError('table locked')):
            with self.assertLogs('audit.services', level='ERROR') as logs:
                entry = record_audit(AuditLog.ActionType.CREATE, AuditLog.EntityType.DRUG, 1)

        self.assertIsNone(entry)
        self.assertIn('table locked', logs.output[0])
        self.assertFalse(AuditLog.objects.exists())

    def test_request_audit_uses_forwarded_ip(self):
        request = RequestFactory().post('/', HTTP_X_FORWARDED_FOR='10.1.2.3, 172.16.0.1')
        request.user = self.user

        entry = record_request_audit(request, AuditLog.ActionType.CREATE, AuditLog.EntityType.VENDOR, 3)

        self.assertEqual(entry.ip_address, '10.1.2.3')
        self.assertEqual(entry.actor, self.user)
