"""
Stock Ledger - authoritative sale-unit stock per drug.

Restocking is the only mutation exposed here. It converts purchase units to
sale units with the drug's *current* units_per_purchase and applies the
increment under a row lock with an F() expression, so concurrent restocks of
the same drug are all reflected.

The expiry and low-stock predicates are pure reads over a Drug instance;
low_stock_drugs() and expiring_drugs() express the same rules as querysets.
"""
import datetime
import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.db import models, transaction
from django.db.models import F
from django.utils import timezone

from core.exceptions import NotFoundError, ValidationError
from .models import Drug

logger = logging.getLogger(__name__)

# PositiveIntegerField ceiling shared by Drug.stock and RestockEvent.sale_quantity
MAX_STOCK = 2147483647


def check_capacity(current_stock: int, sale_quantity: int) -> None:
    """Raise ValidationError if adding sale_quantity would overflow the stock column."""
    if sale_quantity > MAX_STOCK or current_stock + sale_quantity > MAX_STOCK:
        raise ValidationError(errors={
            'purchase_quantity': [f'Restock would take stock above {MAX_STOCK} units.']
        })


class ExpiryStatus(models.TextChoices):
    EXPIRED = 'Expired', 'Expired'
    CRITICAL = 'Critical', 'Critical'
    WARNING = 'Warning', 'Warning'
    GOOD = 'Good', 'Good'


@dataclass(frozen=True)
class StockChange:
    drug_id: int
    previous_stock: int
    new_stock: int
    sale_quantity: int
    units_per_purchase: int


def _critical_days() -> int:
    return getattr(settings, 'EXPIRY_CRITICAL_DAYS', 30)


def _warning_days() -> int:
    return getattr(settings, 'EXPIRY_WARNING_DAYS', 90)


def is_low_stock(drug: Drug) -> bool:
    return drug.stock <= drug.min_stock


def days_until_expiry(drug: Drug, today: Optional[datetime.date] = None) -> Optional[int]:
    if drug.expiry_date is None:
        return None
    today = today or timezone.localdate()
    return (drug.expiry_date - today).days


def is_expired(drug: Drug, today: Optional[datetime.date] = None) -> bool:
    days = days_until_expiry(drug, today)
    return days is not None and days < 0


def expiry_status(drug: Drug, today: Optional[datetime.date] = None) -> ExpiryStatus:
    """
    Classify a drug by days left before its expiry date.

    Expired below 0 days, Critical up to and including 30, Warning up to and
    including 90, Good beyond. A drug without an expiry date counts as Good.
    """
    days = days_until_expiry(drug, today)
    if days is None:
        return ExpiryStatus.GOOD
    if days < 0:
        return ExpiryStatus.EXPIRED
    if days <= _critical_days():
        return ExpiryStatus.CRITICAL
    if days <= _warning_days():
        return ExpiryStatus.WARNING
    return ExpiryStatus.GOOD


def low_stock_drugs():
    return Drug.objects.select_related('category', 'sale_form').filter(
        is_active=True,
        stock__lte=F('min_stock')
    ).order_by('stock', 'name')


def expiring_drugs(within_days: Optional[int] = None, today: Optional[datetime.date] = None):
    """Active, in-stock drugs expiring within the window (already expired included)."""
    today = today or timezone.localdate()
    horizon = today + datetime.timedelta(days=within_days if within_days is not None else _warning_days())
    return Drug.objects.select_related('category', 'sale_form').filter(
        is_active=True,
        stock__gt=0,
        expiry_date__lte=horizon
    ).order_by('expiry_date', 'name')


def restock(drug_id: int, purchase_quantity: int) -> StockChange:
    """
    Add purchase_quantity purchase units of a drug to stock.

    The sale-unit increment is derived from the drug's units_per_purchase as
    read under the row lock. Call inside an outer transaction.atomic() to make
    the increment part of a larger unit of work.

    Raises:
        ValidationError: purchase_quantity is not an integer >= 1, or the
            resulting stock would not fit the stock column
        NotFoundError: no drug with this id
    """
    if isinstance(purchase_quantity, bool) or not isinstance(purchase_quantity, int) or purchase_quantity < 1:
        raise ValidationError(errors={'purchase_quantity': ['Must be a whole number of at least 1.']})
    if purchase_quantity > MAX_STOCK:
        raise ValidationError(errors={
            'purchase_quantity': [f'Ensure this value is less than or equal to {MAX_STOCK}.']
        })

    with transaction.atomic():
        try:
            drug = Drug.objects.select_for_update().only(
                'id', 'stock', 'units_per_purchase'
            ).get(pk=drug_id)
        except Drug.DoesNotExist:
            raise NotFoundError(f"Drug {drug_id} not found")

        units_per_purchase = drug.units_per_purchase
        sale_quantity = purchase_quantity * units_per_purchase
        check_capacity(drug.stock, sale_quantity)

        # Single UPDATE ... SET stock = stock + n; safe even where FOR UPDATE is a no-op
        Drug.objects.filter(pk=drug.pk).update(
            stock=F('stock') + sale_quantity,
            updated_at=timezone.now()
        )
        new_stock = Drug.objects.filter(pk=drug.pk).values_list('stock', flat=True).get()

    logger.info(
        f"Drug #{drug_id}: +{sale_quantity} sale units "
        f"({purchase_quantity} x {units_per_purchase}), stock now {new_stock}"
    )
    return StockChange(
        drug_id=drug.pk,
        previous_stock=new_stock - sale_quantity,
        new_stock=new_stock,
        sale_quantity=sale_quantity,
        units_per_purchase=units_per_purchase,
    )
