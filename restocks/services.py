"""
Restock Service Layer - turns a submitted restock request into stock.

Immediate path (default, and always for staff users):
1. Validate the request, collecting every field error
2. In one transaction: increment stock through the ledger, then insert the
   APPROVED RestockEvent carrying the ledger's sale quantity
3. After commit: write the audit record

Approval path (RESTOCK_REQUIRES_APPROVAL on, non-staff requester):
1. Validate, insert a PENDING RestockEvent, leave stock untouched
2. Notify staff; a staff member later approves (ledger increment) or rejects
"""
import datetime
import logging
from typing import Dict, Optional, Tuple

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_date

from audit.models import AuditLog
from audit.services import record_audit
from core.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from inventory import stock
from inventory.models import Drug, Vendor
from .models import RestockEvent

logger = logging.getLogger(__name__)


def _parse_positive_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 1 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed >= 1 else None
    return None


def _parse_expiry(value) -> Optional[datetime.date]:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        try:
            return parse_date(value.strip()[:10])
        except ValueError:
            return None
    return None


def validate_restock_request(data: Dict) -> Dict:
    """
    Validate a restock request body.

    Returns the cleaned fields. Raises ValidationError with every failing
    field at once; no mutation has happened when it does.
    """
    if not isinstance(data, dict):
        raise ValidationError(errors={'non_field_errors': ['Expected a JSON object.']})

    errors = {}
    cleaned = {}

    purchase_quantity = _parse_positive_int(data.get('purchase_quantity'))
    if purchase_quantity is None:
        errors['purchase_quantity'] = ['Must be a whole number of at least 1.']
    elif purchase_quantity > stock.MAX_STOCK:
        errors['purchase_quantity'] = [f'Ensure this value is less than or equal to {stock.MAX_STOCK}.']
    cleaned['purchase_quantity'] = purchase_quantity

    batch_number = str(data.get('batch_number') or '').strip()
    if not batch_number:
        errors['batch_number'] = ['This field is required.']
    elif len(batch_number) > 100:
        errors['batch_number'] = ['Ensure this field has no more than 100 characters.']
    cleaned['batch_number'] = batch_number

    raw_expiry = data.get('expiry_date')
    expiry_date = _parse_expiry(raw_expiry)
    if not raw_expiry:
        errors['expiry_date'] = ['This field is required.']
    elif expiry_date is None:
        errors['expiry_date'] = ['Enter a valid date in YYYY-MM-DD format.']
    cleaned['expiry_date'] = expiry_date

    cleaned['notes'] = str(data.get('notes') or '').strip()

    vendor_id = data.get('vendor_id')
    cleaned['vendor'] = None
    if vendor_id not in (None, ''):
        try:
            cleaned['vendor'] = Vendor.objects.get(pk=vendor_id, is_active=True)
        except (Vendor.DoesNotExist, ValueError, TypeError):
            errors['vendor_id'] = [f'Vendor {vendor_id} not found or inactive.']

    if errors:
        raise ValidationError(errors=errors)

    claimed = data.get('sale_quantity')
    if claimed not in (None, ''):
        cleaned['claimed_sale_quantity'] = claimed
    return cleaned


def requires_approval(user) -> bool:
    """Whether a restock by this user waits for a staff decision."""
    if not getattr(settings, 'RESTOCK_REQUIRES_APPROVAL', False):
        return False
    return not (user is not None and getattr(user, 'is_staff', False))


def _restock_audit_details(event: RestockEvent) -> Dict:
    return {
        'drug_id': event.drug_id,
        'vendor_id': event.vendor_id,
        'purchase_quantity': event.purchase_quantity,
        'units_per_purchase': event.units_per_purchase,
        'sale_quantity': event.sale_quantity,
        'batch_number': event.batch_number,
        'expiry_date': event.expiry_date,
        'notes': event.notes,
        'status': event.status,
    }


def _queue(task, restock_id: int) -> None:
    try:
        task.delay(restock_id)
        logger.info(f"Queued {task.name} for restock #{restock_id}")
    except Exception as e:
        # Don't fail the restock if the broker is down
        logger.error(f"Failed to queue {task.name} for restock #{restock_id}: {e}")


def _user_or_none(user):
    return user if user is not None and getattr(user, 'is_authenticated', False) else None


def submit_restock(
    drug_id: int,
    data: Dict,
    user=None,
    ip_address: Optional[str] = None,
) -> Tuple[RestockEvent, Drug]:
    """
    Submit one restock request for a drug.

    Returns (event, drug) with the drug re-read after the change. The event is
    APPROVED when stock was incremented, PENDING when it awaits approval.

    Raises:
        ValidationError: invalid request, nothing written
        NotFoundError: unknown drug
        PersistenceError: storage failure, nothing written
    """
    cleaned = validate_restock_request(data)
    claimed = cleaned.pop('claimed_sale_quantity', None)
    requester = _user_or_none(user)
    pending = requires_approval(requester)

    try:
        with transaction.atomic():
            if pending:
                try:
                    drug = Drug.objects.only('id', 'units_per_purchase').get(pk=drug_id)
                except Drug.DoesNotExist:
                    raise NotFoundError(f"Drug {drug_id} not found")
                units = drug.units_per_purchase
                sale_quantity = cleaned['purchase_quantity'] * units
                stock.check_capacity(0, sale_quantity)
                event = RestockEvent.objects.create(
                    drug_id=drug.pk,
                    units_per_purchase=units,
                    sale_quantity=sale_quantity,
                    status=RestockEvent.Status.PENDING,
                    created_by=requester,
                    **cleaned
                )
            else:
                change = stock.restock(drug_id, cleaned['purchase_quantity'])
                event = RestockEvent.objects.create(
                    drug_id=change.drug_id,
                    units_per_purchase=change.units_per_purchase,
                    sale_quantity=change.sale_quantity,
                    status=RestockEvent.Status.APPROVED,
                    created_by=requester,
                    approved_by=requester,
                    approved_at=timezone.now(),
                    **cleaned
                )
    except DatabaseError as e:
        logger.exception(f"Restock of drug #{drug_id} failed: {e}")
        raise PersistenceError()

    if claimed is not None and str(claimed) != str(event.sale_quantity):
        logger.warning(
            f"Restock #{event.id}: client sale_quantity {claimed} ignored, "
            f"derived {event.sale_quantity}"
        )

    logger.info(
        f"Restock #{event.id} for drug #{event.drug_id}: {event.purchase_quantity} x "
        f"{event.units_per_purchase} = {event.sale_quantity} ({event.status})"
    )
    record_audit(
        AuditLog.ActionType.CREATE,
        AuditLog.EntityType.RESTOCK,
        event.id,
        details=_restock_audit_details(event),
        actor=requester,
        ip_address=ip_address,
    )

    if pending:
        from .tasks import notify_restock_pending
        _queue(notify_restock_pending, event.id)

    drug = Drug.objects.select_related('category', 'purchase_form', 'sale_form').get(pk=event.drug_id)
    return event, drug


def _decide(restock_id: int, approver, approve: bool, reason: str = '') -> RestockEvent:
    try:
        with transaction.atomic():
            try:
                event = RestockEvent.objects.select_for_update().get(pk=restock_id)
            except RestockEvent.DoesNotExist:
                raise NotFoundError(f"Restock {restock_id} not found")

            if not event.is_pending:
                raise ConflictError(f"Restock {restock_id} is already {event.status.lower()}")

            if approve:
                change = stock.restock(event.drug_id, event.purchase_quantity)
                event.units_per_purchase = change.units_per_purchase
                event.sale_quantity = change.sale_quantity
                event.status = RestockEvent.Status.APPROVED
            else:
                event.status = RestockEvent.Status.REJECTED
                event.rejection_reason = reason

            event.approved_by = _user_or_none(approver)
            event.approved_at = timezone.now()
            event.save(update_fields=[
                'units_per_purchase', 'sale_quantity', 'status',
                'rejection_reason', 'approved_by', 'approved_at'
            ])
    except DatabaseError as e:
        logger.exception(f"Decision on restock #{restock_id} failed: {e}")
        raise PersistenceError()

    logger.info(f"Restock #{event.id} {event.status.lower()} by {approver}")
    return event


def approve_restock(restock_id: int, approver, ip_address: Optional[str] = None) -> RestockEvent:
    """
    Apply a pending restock to stock.

    The sale quantity is recomputed from the drug's units_per_purchase at
    approval time, since that is when the stock actually moves.

    Raises:
        NotFoundError: unknown restock or drug
        ConflictError: restock is not pending
    """
    event = _decide(restock_id, approver, approve=True)
    record_audit(
        AuditLog.ActionType.APPROVE,
        AuditLog.EntityType.RESTOCK,
        event.id,
        details=_restock_audit_details(event),
        actor=approver,
        ip_address=ip_address,
    )
    from .tasks import notify_restock_decision
    _queue(notify_restock_decision, event.id)
    return event


def reject_restock(restock_id: int, approver, reason: str = '', ip_address: Optional[str] = None) -> RestockEvent:
    event = _decide(restock_id, approver, approve=False, reason=reason)
    record_audit(
        AuditLog.ActionType.REJECT,
        AuditLog.EntityType.RESTOCK,
        event.id,
        details={**_restock_audit_details(event), 'reason': reason},
        actor=approver,
        ip_address=ip_address,
    )
    from .tasks import notify_restock_decision
    _queue(notify_restock_decision, event.id)
    return event
