"""
Tests for the drug catalogue, pricing calculator and stock ledger.

Test Cases:
1. Pricing: unit cost and markups, zero divisor, display rounding
2. Expiry classification boundaries and low-stock predicate
3. Ledger restock: conversion to sale units, invalid quantity, unknown drug
4. Drug creation builder and API (two-step payload)
5. Drug edits: prices recomputed, stock not writable
6. Monitors: low-stock and expiring endpoints, stats
7. Reference data: delete refused while in use, vendor toggling
"""
import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from audit.models import AuditLog
from core.exceptions import NotFoundError, ValidationError
from inventory import stock
from inventory.models import Drug, DrugCategory, DrugForm, Vendor
from inventory.pricing import calculate_pricing, calculate_unit_cost, round_for_display, to_decimal
from inventory.services import DrugCreateCommandBuilder, create_drug
from inventory.stock import ExpiryStatus
from inventory.tasks import generate_daily_stock_report


def make_drug(category, purchase_form, sale_form, **overrides):
    values = {
        'name': 'Paracetamol',
        'category': category,
        'strength': '500',
        'unit': Drug.Unit.MG,
        'purchase_form': purchase_form,
        'sale_form': sale_form,
        'purchase_price': Decimal('100.00'),
        'units_per_purchase': 100,
        'pos_markup': Decimal('0.20'),
        'prescription_markup': Decimal('0.10'),
        'min_stock': 10,
        'expiry_date': timezone.localdate() + datetime.timedelta(days=365),
    }
    values.update(overrides)
    return Drug.objects.create(**values)


class CatalogueFixtureMixin:
    """Category, forms and a logged-in pharmacist shared by the API tests."""

    def setUp(self):
        self.category = DrugCategory.objects.create(name='Analgesics')
        self.box = DrugForm.objects.create(name='Box')
        self.tablet = DrugForm.objects.create(name='Tablet')
        self.user = get_user_model().objects.create_user(username='pharmacist', password='secret')
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def drug(self, **overrides):
        return make_drug(self.category, self.box, self.tablet, **overrides)


class PricingCalculatorTestCase(TestCase):
    """Pure pricing functions; no database access."""

    def test_box_of_hundred_scenario(self):
        """
        Test: 100.00 for a box of 100 with 20% POS and 10% prescription markup.

        Then: unit cost 1.00, POS price 1.20, prescription price 1.10
        """
        pricing = calculate_pricing(Decimal('100'), 100, Decimal('0.20'), Decimal('0.10'))

        self.assertEqual(pricing.unit_cost, Decimal('1.00'))
        self.assertEqual(pricing.pos_price, Decimal('1.20'))
        self.assertEqual(pricing.prescription_price, Decimal('1.10'))

    def test_unit_cost_times_units_gives_purchase_price(self):
        samples = [
            ('100', 3), ('0', 1), ('12.34', 7), ('99999.99', 1000), ('1', 1), ('0.01', 13),
        ]
        for price, units in samples:
            with self.subTest(price=price, units=units):
                unit_cost = calculate_unit_cost(Decimal(price), units)
                self.assertLess(abs(unit_cost * units - Decimal(price)), Decimal('1e-9'))

    def test_markups_apply_to_unit_cost(self):
        samples = [
            ('250', 10, '0', '0'), ('80', 30, '0.35', '0.15'), ('7.50', 1, '1.5', '0.0001'),
        ]
        for price, units, pos, rx in samples:
            with self.subTest(price=price, units=units, pos=pos, rx=rx):
                pricing = calculate_pricing(price, units, pos, rx)
                self.assertEqual(pricing.pos_price, pricing.unit_cost * (1 + Decimal(pos)))
                self.assertEqual(pricing.prescription_price, pricing.unit_cost * (1 + Decimal(rx)))

    def test_zero_or_missing_units_yields_zero(self):
        """Test: A zero or missing divisor yields 0 instead of raising."""
        for units in (0, None, '', 'abc'):
            with self.subTest(units=units):
                pricing = calculate_pricing(Decimal('50'), units, Decimal('0.2'), Decimal('0.1'))
                self.assertEqual(pricing.unit_cost, Decimal('0'))
                self.assertEqual(pricing.pos_price, Decimal('0'))
                self.assertEqual(pricing.prescription_price, Decimal('0'))

    def test_missing_markups_count_as_zero(self):
        pricing = calculate_pricing('30', 3)
        self.assertEqual(pricing.unit_cost, Decimal('10'))
        self.assertEqual(pricing.pos_price, Decimal('10'))
        self.assertEqual(pricing.prescription_price, Decimal('10'))

    def test_display_rounds_half_up(self):
        self.assertEqual(round_for_display(Decimal('1.005')), Decimal('1.01'))
        self.assertEqual(round_for_display(Decimal('33.333333')), Decimal('33.33'))

        display = calculate_pricing('100', 3, '0.2', '0.1').display()
        self.assertEqual(display['unit_cost'], Decimal('33.33'))
        self.assertEqual(display['pos_price'], Decimal('40.00'))
        self.assertEqual(display['prescription_price'], Decimal('36.67'))

    def test_to_decimal_avoids_float_noise(self):
        self.assertEqual(to_decimal(0.1), Decimal('0.1'))
        self.assertEqual(to_decimal('nan'), Decimal('0'))
        self.assertEqual(to_decimal(None), Decimal('0'))


class DrugPricingSnapshotTestCase(CatalogueFixtureMixin, TestCase):

    def test_prices_computed_on_save(self):
        drug = self.drug()
        drug.refresh_from_db()

        self.assertEqual(drug.unit_cost, Decimal('1.0000000000'))
        self.assertEqual(drug.pos_price, Decimal('1.2000000000'))
        self.assertEqual(drug.prescription_price, Decimal('1.1000000000'))

    def test_persisted_price_keeps_ten_places(self):
        drug = self.drug(purchase_price=Decimal('100.00'), units_per_purchase=3)
        drug.refresh_from_db()

        self.assertEqual(drug.unit_cost, Decimal('33.3333333333'))
        self.assertEqual(drug.pricing.display()['unit_cost'], Decimal('33.33'))

    def test_prices_follow_update_fields(self):
        drug = self.drug()
        drug.units_per_purchase = 50
        drug.save(update_fields=['units_per_purchase'])
        drug.refresh_from_db()

        self.assertEqual(drug.unit_cost, Decimal('2'))


class ExpiryAndLowStockTestCase(TestCase):
    """Predicates over unsaved Drug instances."""

    def setUp(self):
        self.today = datetime.date(2026, 1, 15)

    def _status(self, days):
        drug = Drug(expiry_date=self.today + datetime.timedelta(days=days))
        return stock.expiry_status(drug, self.today)

    def test_expiry_boundaries(self):
        """
        Test: Classification edges.

        Then: -1 Expired, 0 and 30 Critical, 31 and 90 Warning, 91 Good
        """
        expected = {
            -1: ExpiryStatus.EXPIRED,
            0: ExpiryStatus.CRITICAL,
            30: ExpiryStatus.CRITICAL,
            31: ExpiryStatus.WARNING,
            90: ExpiryStatus.WARNING,
            91: ExpiryStatus.GOOD,
        }
        for days, status_ in expected.items():
            with self.subTest(days=days):
                self.assertEqual(self._status(days), status_)

    def test_expiry_status_is_idempotent(self):
        drug = Drug(expiry_date=self.today + datetime.timedelta(days=45))
        first = stock.expiry_status(drug, self.today)
        self.assertEqual(stock.expiry_status(drug, self.today), first)

    @override_settings(EXPIRY_CRITICAL_DAYS=7, EXPIRY_WARNING_DAYS=14)
    def test_thresholds_come_from_settings(self):
        self.assertEqual(self._status(7), ExpiryStatus.CRITICAL)
        self.assertEqual(self._status(8), ExpiryStatus.WARNING)
        self.assertEqual(self._status(15), ExpiryStatus.GOOD)

    def test_is_expired(self):
        drug = Drug(expiry_date=self.today - datetime.timedelta(days=1))
        self.assertTrue(stock.is_expired(drug, self.today))
        self.assertEqual(stock.days_until_expiry(drug, self.today), -1)

    def test_stock_equal_to_minimum_is_low(self):
        """Test: stock 50 with minimum 50 counts as low stock."""
        self.assertTrue(Drug(stock=50, min_stock=50).is_low_stock)
        self.assertTrue(Drug(stock=0, min_stock=0).is_low_stock)
        self.assertFalse(Drug(stock=51, min_stock=50).is_low_stock)


class StockLedgerTestCase(CatalogueFixtureMixin, TestCase):

    def test_restock_converts_purchase_units(self):
        """
        Test: Restocking 5 boxes of 100 tablets onto empty stock.

        Then: stock is 500 sale units
        """
        drug = self.drug(units_per_purchase=100)

        change = stock.restock(drug.id, 5)

        drug.refresh_from_db()
        self.assertEqual(drug.stock, 500)
        self.assertEqual(change.previous_stock, 0)
        self.assertEqual(change.new_stock, 500)
        self.assertEqual(change.sale_quantity, 500)
        self.assertEqual(change.units_per_purchase, 100)

    def test_restock_adds_to_existing_stock(self):
        drug = self.drug(units_per_purchase=30, stock=15)

        stock.restock(drug.id, 2)

        drug.refresh_from_db()
        self.assertEqual(drug.stock, 75)

    def test_restock_uses_current_units_per_purchase(self):
        drug = self.drug(units_per_purchase=100)
        Drug.objects.filter(pk=drug.pk).update(units_per_purchase=10)

        change = stock.restock(drug.id, 3)

        self.assertEqual(change.sale_quantity, 30)

    def test_zero_quantity_rejected_stock_unchanged(self):
        """
        Test: Purchase quantity 0 is a validation error.

        Then: ValidationError on purchase_quantity, stock untouched
        """
        drug = self.drug(stock=40)

        for quantity in (0, -3, 1.5, '2', True):
            with self.subTest(quantity=quantity):
                with self.assertRaises(ValidationError) as ctx:
                    stock.restock(drug.id, quantity)
                self.assertIn('purchase_quantity', ctx.exception.errors)

        drug.refresh_from_db()
        self.assertEqual(drug.stock, 40)

    def test_unknown_drug(self):
        with self.assertRaises(NotFoundError):
            stock.restock(999999, 1)

    def test_stale_save_keeps_restocked_stock(self):
        """
        Test: Saving an instance loaded before a restock keeps the restock.

        Given: A drug instance read while stock was 0
        When: The drug is restocked, then the stale instance is edited and saved
        Then: Stock stays at 10 and the edit is stored
        """
        drug = self.drug(units_per_purchase=10)
        stale = Drug.objects.get(pk=drug.pk)

        stock.restock(drug.id, 1)
        stale.min_stock = 5
        stale.save()

        drug.refresh_from_db()
        self.assertEqual(drug.stock, 10)
        self.assertEqual(drug.min_stock, 5)

    def test_insert_keeps_initial_stock(self):
        drug = self.drug(stock=120)
        drug.refresh_from_db()
        self.assertEqual(drug.stock, 120)

    def test_restock_past_column_limit_rejected(self):
        """
        Test: A restock that cannot fit the stock column is a validation error.

        Then: ValidationError on purchase_quantity, stock unchanged
        """
        drug = self.drug(units_per_purchase=10, stock=stock.MAX_STOCK - 5)

        for quantity in (1, 10 ** 19):
            with self.subTest(quantity=quantity):
                with self.assertRaises(ValidationError) as ctx:
                    stock.restock(drug.id, quantity)
                self.assertIn('purchase_quantity', ctx.exception.errors)

        drug.refresh_from_db()
        self.assertEqual(drug.stock, stock.MAX_STOCK - 5)

    def test_expiring_query_skips_empty_and_inactive(self):
        today = timezone.localdate()
        soon = today + datetime.timedelta(days=10)
        self.drug(name='Soon', stock=5, expiry_date=soon)
        self.drug(name='Empty', stock=0, expiry_date=soon)
        self.drug(name='Inactive', stock=5, expiry_date=soon, is_active=False)
        self.drug(name='Later', stock=5, expiry_date=today + datetime.timedelta(days=200))
        self.drug(name='Gone', stock=5, expiry_date=today - datetime.timedelta(days=2))

        names = [d.name for d in stock.expiring_drugs()]

        self.assertEqual(names, ['Gone', 'Soon'])
        self.assertEqual([d.name for d in stock.expiring_drugs(within_days=365)], ['Gone', 'Soon', 'Later'])

    def test_daily_report_counts(self):
        today = timezone.localdate()
        self.drug(name='Low', stock=2, min_stock=10)
        self.drug(name='Expired', stock=50, expiry_date=today - datetime.timedelta(days=1))

        result = generate_daily_stock_report()

        self.assertEqual(result['low_stock'], 1)
        self.assertEqual(result['expiring'], 1)
        self.assertEqual(result['expired'], 1)


class DrugCreationTestCase(CatalogueFixtureMixin, TestCase):

    def basic_payload(self, **overrides):
        data = {
            'name': 'Amoxicillin',
            'category_id': self.category.id,
            'strength': '500',
            'unit': 'mg',
            'min_stock': 20,
            'expiry_date': '2027-06-30',
        }
        data.update(overrides)
        return data

    def pricing_payload(self, **overrides):
        data = {
            'purchase_form_id': self.box.id,
            'purchase_price': '100.00',
            'sale_form_id': self.tablet.id,
            'units_per_purchase': 100,
            'pos_markup': '0.20',
            'prescription_markup': '0.10',
        }
        data.update(overrides)
        return data

    def test_builder_requires_both_steps(self):
        with self.assertRaises(ValidationError) as ctx:
            DrugCreateCommandBuilder().with_basic_details({
                'name': 'X', 'category': self.category, 'expiry_date': datetime.date(2027, 1, 1)
            }).build()
        self.assertIn('pricing', ctx.exception.errors)

    def test_create_drug_service(self):
        command = (
            DrugCreateCommandBuilder()
            .with_basic_details({
                'name': 'Ibuprofen', 'category': self.category,
                'expiry_date': datetime.date(2027, 1, 1), 'strength': '400',
            })
            .with_pricing_details({
                'purchase_form': self.box, 'sale_form': self.tablet,
                'purchase_price': Decimal('60.00'), 'units_per_purchase': 30,
                'pos_markup': Decimal('0.25'),
            })
            .build()
        )

        drug = create_drug(command, user=self.user, ip_address='10.0.0.5')

        self.assertEqual(drug.stock, 0)
        self.assertEqual(drug.unit_cost, Decimal('2'))
        self.assertEqual(drug.pos_price, Decimal('2.5'))
        self.assertEqual(drug.prescription_price, Decimal('2'))
        entry = AuditLog.objects.get(entity_type=AuditLog.EntityType.DRUG, entity_id=str(drug.id))
        self.assertEqual(entry.action_type, AuditLog.ActionType.CREATE)
        self.assertEqual(entry.actor, self.user)
        self.assertEqual(entry.ip_address, '10.0.0.5')

    def test_create_via_api(self):
        response = self.client.post(
            '/api/inventory/drugs/',
            {'basic': self.basic_payload(), 'pricing': self.pricing_payload()},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['stock'], 0)
        self.assertEqual(response.data['display_prices'], {
            'unit_cost': '1.00', 'pos_price': '1.20', 'prescription_price': '1.10'
        })
        self.assertEqual(response.data['category']['name'], 'Analgesics')

    def test_create_ignores_client_prices_and_stock(self):
        pricing = self.pricing_payload(unit_cost='999', pos_price='999')
        basic = self.basic_payload(stock=1000)

        response = self.client.post(
            '/api/inventory/drugs/', {'basic': basic, 'pricing': pricing}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        drug = Drug.objects.get(pk=response.data['id'])
        self.assertEqual(drug.stock, 0)
        self.assertEqual(drug.unit_cost, Decimal('1'))

    def test_create_accepts_flat_body(self):
        body = {**self.basic_payload(), **self.pricing_payload()}

        response = self.client.post('/api/inventory/drugs/', body, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_create_reports_errors_per_step(self):
        response = self.client.post(
            '/api/inventory/drugs/',
            {
                'basic': self.basic_payload(category_id=999999),
                'pricing': self.pricing_payload(units_per_purchase=0, purchase_price='-1'),
            },
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('category_id', response.data['basic'])
        self.assertIn('units_per_purchase', response.data['pricing'])
        self.assertIn('purchase_price', response.data['pricing'])
        self.assertFalse(Drug.objects.exists())

    def test_create_rejects_non_object_body(self):
        for body in ([self.basic_payload()], 42):
            with self.subTest(body=body):
                response = self.client.post('/api/inventory/drugs/', body, format='json')

                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertIn('non_field_errors', response.data['errors'])
        self.assertFalse(Drug.objects.exists())

    def test_requires_authentication(self):
        response = APIClient().get('/api/inventory/drugs/')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))


class DrugUpdateTestCase(CatalogueFixtureMixin, TestCase):

    def test_patch_recomputes_prices(self):
        drug = self.drug()

        response = self.client.patch(
            f'/api/inventory/drugs/{drug.id}/',
            {'units_per_purchase': 50, 'pos_markup': '0.50'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        drug.refresh_from_db()
        self.assertEqual(drug.unit_cost, Decimal('2'))
        self.assertEqual(drug.pos_price, Decimal('3'))
        self.assertEqual(response.data['display_prices']['pos_price'], '3.00')
        self.assertTrue(AuditLog.objects.filter(
            action_type=AuditLog.ActionType.UPDATE, entity_id=str(drug.id)
        ).exists())

    def test_stock_is_not_editable(self):
        drug = self.drug(stock=25)

        response = self.client.patch(f'/api/inventory/drugs/{drug.id}/', {'stock': 500}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('stock', response.data['errors'])
        drug.refresh_from_db()
        self.assertEqual(drug.stock, 25)

    def test_update_rejects_non_object_body(self):
        drug = self.drug()

        response = self.client.patch(f'/api/inventory/drugs/{drug.id}/', ['stock'], format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('non_field_errors', response.data['errors'])

    def test_deactivate(self):
        drug = self.drug()

        response = self.client.patch(f'/api/inventory/drugs/{drug.id}/', {'is_active': False}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_active'])

    def test_unknown_drug(self):
        response = self.client.patch('/api/inventory/drugs/999999/', {'name': 'X'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class MonitorEndpointsTestCase(CatalogueFixtureMixin, TestCase):

    def setUp(self):
        super().setUp()
        today = timezone.localdate()
        self.low = self.drug(name='Cetirizine', stock=5, min_stock=10)
        self.edge = self.drug(name='Loratadine', stock=50, min_stock=50)
        self.ok = self.drug(
            name='Metformin', stock=500, min_stock=50,
            expiry_date=today + datetime.timedelta(days=20)
        )

    def test_low_stock_lists_lowest_first(self):
        response = self.client.get('/api/inventory/drugs/low-stock/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [row['id'] for row in response.data]
        self.assertEqual(ids, [self.low.id, self.edge.id])

    def test_expiring_endpoint(self):
        response = self.client.get('/api/inventory/drugs/expiring/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data], [self.ok.id])
        self.assertEqual(response.data[0]['expiry_status'], 'Critical')

        response = self.client.get('/api/inventory/drugs/expiring/?days=10')
        self.assertEqual(response.data, [])

    def test_search_prefix_first(self):
        self.drug(name='Chlorphenamine')

        response = self.client.get('/api/inventory/drugs/search/?q=ce')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['name'], 'Cetirizine')

    def test_search_needs_two_characters(self):
        response = self.client.get('/api/inventory/drugs/search/?q=c')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stats(self):
        response = self.client.get('/api/inventory/stats/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_drugs'], 3)
        self.assertEqual(response.data['low_stock'], 2)
        self.assertEqual(response.data['expiring'], 1)
        self.assertEqual(response.data['pending_restocks'], 0)
        # 5 + 50 + 500 tablets at 1.00 each
        self.assertEqual(Decimal(response.data['stock_value']), Decimal('555'))

    def test_pricing_preview(self):
        response = self.client.post('/api/inventory/pricing/preview/', {
            'purchase_price': '100', 'units_per_purchase': 100,
            'pos_markup': '0.2', 'prescription_markup': '0.1',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['display'], {
            'unit_cost': '1.00', 'pos_price': '1.20', 'prescription_price': '1.10'
        })

    def test_pricing_preview_with_no_units(self):
        response = self.client.post('/api/inventory/pricing/preview/', {
            'purchase_price': '100', 'units_per_purchase': 0,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['unit_cost']), Decimal('0'))


class ReferenceDataTestCase(CatalogueFixtureMixin, TestCase):

    def test_create_and_filter_categories(self):
        response = self.client.post('/api/inventory/categories/', {'name': 'Antibiotics'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get('/api/inventory/categories/?q=anti')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['name'], 'Antibiotics')

    def test_delete_unused_form(self):
        syrup = DrugForm.objects.create(name='Syrup')

        response = self.client.delete(f'/api/inventory/forms/{syrup.id}/')

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(DrugForm.objects.filter(pk=syrup.id).exists())

    def test_delete_in_use_is_conflict(self):
        self.drug()

        response = self.client.delete(f'/api/inventory/categories/{self.category.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.delete(f'/api/inventory/forms/{self.tablet.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(DrugCategory.objects.filter(pk=self.category.id).exists())

    def test_delete_unknown(self):
        response = self.client.delete('/api/inventory/categories/999999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_vendor_toggle(self):
        vendor = Vendor.objects.create(name='MedSupply Ltd')

        response = self.client.patch(f'/api/inventory/vendors/{vendor.id}/toggle-active/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_active'])
        response = self.client.get('/api/inventory/vendors/?active=true')
        self.assertEqual(response.data, [])
