"""
Tests for the restock workflow.

Test Cases:
1. Immediate restock increments stock and records an APPROVED event
2. Invalid requests report every field error and change nothing
3. Client-sent sale_quantity is ignored
4. Atomic rollback when the event cannot be written
5. Approval gate: pending, approve, reject, double decision
6. Notifications for staff and requesters
7. Concurrent restocks of one drug are all applied
8. Quantities that would overflow the stock column are refused
"""
import datetime
import threading
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError, connection
from django.test import TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from audit.models import AuditLog
from core.exceptions import NotFoundError, PersistenceError, ValidationError
from inventory import stock
from inventory.models import Drug, DrugCategory, DrugForm, Vendor
from restocks.models import Notification, RestockEvent
from restocks.services import approve_restock, reject_restock, submit_restock

User = get_user_model()


def create_catalogue(units_per_purchase=100, stock=0):
    category = DrugCategory.objects.create(name='Antibiotics')
    box = DrugForm.objects.create(name='Box')
    tablet = DrugForm.objects.create(name='Tablet')
    return Drug.objects.create(
        name='Amoxicillin',
        category=category,
        strength='500',
        purchase_form=box,
        sale_form=tablet,
        purchase_price=Decimal('100.00'),
        units_per_purchase=units_per_purchase,
        stock=stock,
        min_stock=50,
        expiry_date=datetime.date(2027, 12, 31),
    )


def restock_payload(**overrides):
    data = {
        'purchase_quantity': 5,
        'batch_number': 'B-2291',
        'expiry_date': '2027-03-31',
        'notes': 'Quarterly order',
    }
    data.update(overrides)
    return data


class ImmediateRestockTestCase(TestCase):
    """Restocks applied as soon as they are submitted (no approval gate)."""

    def setUp(self):
        self.drug = create_catalogue(units_per_purchase=100)
        self.vendor = Vendor.objects.create(name='MedSupply Ltd')
        self.user = User.objects.create_user(username='pharmacist', password='secret')
        self.client = APIClient()
        self.client.force_authenticate(self.user)
        self.url = f'/api/inventory/drugs/{self.drug.id}/restock/'

    def test_restock_increments_stock(self):
        """
        Test: Restocking 5 boxes of 100 onto empty stock.

        Given: Drug with 0 stock and 100 tablets per box
        When: Restocking 5 boxes
        Then: Stock is 500, the event records sale quantity 500 as APPROVED
        """
        response = self.client.post(self.url, restock_payload(vendor_id=self.vendor.id), format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['restock']['sale_quantity'], 500)
        self.assertEqual(response.data['restock']['status'], RestockEvent.Status.APPROVED)
        self.assertEqual(response.data['restock']['vendor_name'], 'MedSupply Ltd')
        self.assertEqual(response.data['drug']['stock'], 500)

        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 500)

        event = RestockEvent.objects.get()
        self.assertEqual(event.purchase_quantity, 5)
        self.assertEqual(event.units_per_purchase, 100)
        self.assertEqual(event.batch_number, 'B-2291')
        self.assertEqual(event.expiry_date, datetime.date(2027, 3, 31))
        self.assertEqual(event.created_by, self.user)
        self.assertEqual(event.approved_by, self.user)
        self.assertIsNotNone(event.approved_at)

    def test_restock_is_audited(self):
        self.client.post(self.url, restock_payload(), format='json')

        event = RestockEvent.objects.get()
        entry = AuditLog.objects.get(entity_type=AuditLog.EntityType.RESTOCK)
        self.assertEqual(entry.action_type, AuditLog.ActionType.CREATE)
        self.assertEqual(entry.entity_id, str(event.id))
        self.assertEqual(entry.details['sale_quantity'], 500)
        self.assertEqual(entry.actor, self.user)

    def test_restock_does_not_touch_drug_expiry(self):
        self.client.post(self.url, restock_payload(expiry_date='2026-11-30'), format='json')

        self.drug.refresh_from_db()
        self.assertEqual(self.drug.expiry_date, datetime.date(2027, 12, 31))

    def test_missing_fields_reported_together(self):
        """
        Test: Every failing field is reported at once.

        Then: 400 listing purchase_quantity, batch_number and expiry_date;
              no stock change, no event
        """
        response = self.client.post(self.url, {'purchase_quantity': 0}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(
            set(response.data['errors']),
            {'purchase_quantity', 'batch_number', 'expiry_date'}
        )
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 0)
        self.assertFalse(RestockEvent.objects.exists())

    def test_invalid_expiry_date(self):
        response = self.client.post(self.url, restock_payload(expiry_date='31/03/2027'), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('expiry_date', response.data['errors'])

    def test_inactive_vendor_rejected(self):
        self.vendor.is_active = False
        self.vendor.save()

        response = self.client.post(self.url, restock_payload(vendor_id=self.vendor.id), format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('vendor_id', response.data['errors'])

    def test_unknown_drug(self):
        response = self.client.post('/api/inventory/drugs/999999/restock/', restock_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(RestockEvent.objects.exists())

    def test_oversized_quantity_rejected(self):
        """
        Test: A purchase quantity too large for the stock column.

        Given: Drug with 0 stock and 100 tablets per box
        When: Restocking 10**19 boxes, or enough boxes to pass the column limit
        Then: 400 naming purchase_quantity, stock and events untouched
        """
        for quantity in (10 ** 19, stock.MAX_STOCK // 100 + 1):
            with self.subTest(quantity=quantity):
                response = self.client.post(self.url, restock_payload(purchase_quantity=quantity), format='json')

                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertIn('purchase_quantity', response.data['errors'])

        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 0)
        self.assertFalse(RestockEvent.objects.exists())

    def test_non_object_body_rejected(self):
        for body in ([restock_payload()], 5):
            with self.subTest(body=body):
                response = self.client.post(self.url, body, format='json')

                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertIn('non_field_errors', response.data['errors'])

        self.assertFalse(RestockEvent.objects.exists())

    def test_client_sale_quantity_is_ignored(self):
        """
        Test: sale_quantity sent by the client does not reach stock.

        Then: the derived 500 is used and a warning is logged
        """
        with self.assertLogs('restocks.services', level='WARNING') as logs:
            response = self.client.post(self.url, restock_payload(sale_quantity=9999), format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['restock']['sale_quantity'], 500)
        self.assertIn('9999', logs.output[0])
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 500)

    def test_string_quantity_accepted(self):
        response = self.client.post(self.url, restock_payload(purchase_quantity='3'), format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 300)

    def test_rollback_when_event_insert_fails(self):
        """
        Test: Stock increment is rolled back if the event cannot be written.

        Given: RestockEvent insert raises a database error
        Then: PersistenceError, stock unchanged, no event
        """
        with patch.object(RestockEvent.objects, 'create', side_effect=DatabaseError('disk full')):
            with self.assertRaises(PersistenceError):
                submit_restock(self.drug.id, restock_payload(), user=self.user)

        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 0)
        self.assertFalse(RestockEvent.objects.exists())

    def test_service_validation_error(self):
        with self.assertRaises(ValidationError) as ctx:
            submit_restock(self.drug.id, restock_payload(purchase_quantity=-1), user=self.user)

        self.assertIn('purchase_quantity', ctx.exception.errors)

    def test_history(self):
        self.client.post(self.url, restock_payload(), format='json')
        self.client.post(self.url, restock_payload(purchase_quantity=1, batch_number='B-2300'), format='json')

        response = self.client.get(f'/api/inventory/restock/history/?drug_id={self.drug.id}')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['batch_number'] for row in response.data], ['B-2300', 'B-2291'])


@override_settings(RESTOCK_REQUIRES_APPROVAL=True)
class ApprovalWorkflowTestCase(TestCase):
    """Restocks by non-staff users wait for a staff decision."""

    def setUp(self):
        self.drug = create_catalogue(units_per_purchase=10, stock=20)
        self.requester = User.objects.create_user(username='assistant', password='secret')
        self.approver = User.objects.create_user(username='chief', password='secret', is_staff=True)

        self.client = APIClient()
        self.client.force_authenticate(self.requester)
        self.staff_client = APIClient()
        self.staff_client.force_authenticate(self.approver)
        self.url = f'/api/inventory/drugs/{self.drug.id}/restock/'

    def submit(self, **overrides):
        response = self.client.post(self.url, restock_payload(**overrides), format='json')
        self.assertEqual(response.status_code, status.HTTP_202_ACCEPTED)
        return RestockEvent.objects.get(pk=response.data['restock']['id'])

    def decide(self, event, **body):
        return self.staff_client.post(f'/api/inventory/restock/{event.id}/approve/', body, format='json')

    def test_submission_is_pending(self):
        """
        Test: A non-staff restock is held for approval.

        Then: 202, PENDING event, stock unchanged, staff notified
        """
        event = self.submit()

        self.assertEqual(event.status, RestockEvent.Status.PENDING)
        self.assertEqual(event.sale_quantity, 50)
        self.assertIsNone(event.approved_by)
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 20)

        notification = Notification.objects.get(user=self.approver)
        self.assertEqual(notification.type, Notification.Type.RESTOCK_PENDING)
        self.assertEqual(notification.restock_id, event.id)
        self.assertFalse(Notification.objects.filter(user=self.requester).exists())

    def test_staff_restock_is_immediate(self):
        response = self.staff_client.post(self.url, restock_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 70)

    def test_pending_list_is_staff_only(self):
        event = self.submit()

        response = self.staff_client.get('/api/inventory/restock/pending/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data], [event.id])
        self.assertEqual(response.data[0]['created_by'], 'assistant')

        response = self.client.get('/api/inventory/restock/pending/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_approve_applies_stock(self):
        """
        Test: Approving a pending restock increments stock.

        Then: APPROVED with approver recorded, stock 20 + 5 x 10, requester notified
        """
        event = self.submit()

        response = self.decide(event, status='approved')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], RestockEvent.Status.APPROVED)
        self.assertEqual(response.data['approver_name'], 'chief')
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 70)

        notification = Notification.objects.get(user=self.requester)
        self.assertEqual(notification.type, Notification.Type.RESTOCK_APPROVED)
        self.assertTrue(AuditLog.objects.filter(
            action_type=AuditLog.ActionType.APPROVE, entity_id=str(event.id)
        ).exists())

    def test_approval_uses_current_conversion(self):
        event = self.submit()
        self.drug.units_per_purchase = 12
        self.drug.save()

        approved = approve_restock(event.id, self.approver)

        self.assertEqual(approved.units_per_purchase, 12)
        self.assertEqual(approved.sale_quantity, 60)
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 80)

    def test_reject_leaves_stock(self):
        event = self.submit()

        response = self.decide(event, status='rejected', reason='Wrong batch')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], RestockEvent.Status.REJECTED)
        self.assertEqual(response.data['rejection_reason'], 'Wrong batch')
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 20)

        notification = Notification.objects.get(user=self.requester)
        self.assertEqual(notification.type, Notification.Type.RESTOCK_REJECTED)
        self.assertIn('Wrong batch', notification.message)

    def test_second_decision_is_conflict(self):
        event = self.submit()
        self.decide(event, status='approved')

        response = self.decide(event, status='rejected')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 70)

    def test_decision_requires_staff(self):
        event = self.submit()

        response = self.client.post(
            f'/api/inventory/restock/{event.id}/approve/', {'status': 'approved'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_decision_validates_status(self):
        event = self.submit()
        response = self.decide(event, status='maybe')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_restock(self):
        with self.assertRaises(NotFoundError):
            reject_restock(999999, self.approver)

    def test_oversized_pending_restock_rejected(self):
        """
        Test: A held restock whose sale quantity cannot fit the stock column.

        Given: 10 tablets per box
        When: Requesting the largest allowed box count
        Then: 400 naming purchase_quantity and no pending event
        """
        response = self.client.post(
            self.url, restock_payload(purchase_quantity=stock.MAX_STOCK), format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('purchase_quantity', response.data['errors'])
        self.assertFalse(RestockEvent.objects.exists())
        self.assertFalse(Notification.objects.exists())

    def test_history_excludes_pending(self):
        self.submit()
        response = self.client.get('/api/inventory/restock/history/')
        self.assertEqual(response.data, [])

    def test_notification_feed_and_read(self):
        event = self.submit()
        self.decide(event, status='approved')

        response = self.client.get('/api/notifications/')
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['type'], Notification.Type.RESTOCK_APPROVED)
        self.assertEqual(response.data[0]['restock_id'], event.id)

        staff_feed = self.staff_client.get('/api/notifications/')
        self.assertEqual([row['type'] for row in staff_feed.data], [Notification.Type.RESTOCK_PENDING])

        notification_id = response.data[0]['id']
        response = self.client.post(f'/api/notifications/{notification_id}/read/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(Notification.objects.get(pk=notification_id).is_read)

        # Someone else's notification
        response = self.staff_client.post(f'/api/notifications/{notification_id}/read/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ConcurrentRestockTestCase(TransactionTestCase):
    """
    Concurrent restocks of one drug, each in its own connection.
    Uses TransactionTestCase so the threads see committed rows.
    """

    def setUp(self):
        self.drug = create_catalogue(units_per_purchase=10, stock=0)
        self.user = User.objects.create_user(username='pharmacist', password='secret')

    @skipUnlessDBFeature('has_select_for_update')
    def test_concurrent_restocks_are_all_applied(self):
        """
        Test: Two simultaneous restocks of 1 box of 10.

        Given: 0 stock
        When: Both restocks run concurrently
        Then: Stock is 20 and two events exist
        """
        barrier = threading.Barrier(2)
        errors = []

        def restock(batch):
            try:
                barrier.wait()
                submit_restock(
                    self.drug.id,
                    restock_payload(purchase_quantity=1, batch_number=batch),
                    user=self.user
                )
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=restock, args=(f'B-{n}',)) for n in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 20)
        self.assertEqual(RestockEvent.objects.filter(drug=self.drug).count(), 2)


class InterleavedRestockTestCase(TestCase):
    """
    A second restock lands between the ledger's locked read and its UPDATE.
    Runs on every backend, including SQLite where FOR UPDATE is a no-op.
    """

    def setUp(self):
        self.drug = create_catalogue(units_per_purchase=10, stock=0)

    def test_interleaved_restocks_are_both_applied(self):
        """
        Test: Two restocks of 1 box of 10, the second applied mid-way through the first.

        Given: 0 stock
        When: Restock B completes after restock A has read stock 0 but before A writes
        Then: Stock is 20, and A reports 10 -> 20
        """
        real_now = timezone.now
        interleaved = []

        def now_with_competing_restock():
            if not interleaved:
                interleaved.append(stock.restock(self.drug.id, 1))
            return real_now()

        with patch('inventory.stock.timezone.now', side_effect=now_with_competing_restock):
            change = stock.restock(self.drug.id, 1)

        self.assertEqual(interleaved[0].new_stock, 10)
        self.assertEqual(change.previous_stock, 10)
        self.assertEqual(change.new_stock, 20)
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock, 20)
