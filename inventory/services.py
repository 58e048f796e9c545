"""
Inventory Service Layer - drug catalogue mutations.

Drug creation arrives as two separately validated payloads (basic details and
pricing details). DrugCreateCommandBuilder merges them into one
DrugCreateCommand, which create_drug() commits in a single transaction.
"""
import logging
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Dict, Optional

from django.db import DatabaseError, transaction

from audit.models import AuditLog
from audit.services import record_audit
from core.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from .models import Drug, DrugCategory, DrugForm, Vendor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrugBasicDetails:
    name: str
    category: DrugCategory
    expiry_date: object
    strength: str = ''
    unit: str = Drug.Unit.MG
    min_stock: int = 0


@dataclass(frozen=True)
class DrugPricingDetails:
    purchase_form: DrugForm
    sale_form: DrugForm
    purchase_price: Decimal
    units_per_purchase: int
    pos_markup: Decimal = Decimal('0')
    prescription_markup: Decimal = Decimal('0')


@dataclass(frozen=True)
class DrugCreateCommand:
    basic: DrugBasicDetails
    pricing: DrugPricingDetails

    def model_fields(self) -> Dict:
        # shallow copy; dataclasses.asdict() would deep-copy model instances
        values = {f.name: getattr(self.basic, f.name) for f in fields(self.basic)}
        values.update({f.name: getattr(self.pricing, f.name) for f in fields(self.pricing)})
        return values


class DrugCreateCommandBuilder:
    """
    Collects the two creation steps and produces a DrugCreateCommand.

    Usage:
        command = (
            DrugCreateCommandBuilder()
            .with_basic_details(basic_serializer.validated_data)
            .with_pricing_details(pricing_serializer.validated_data)
            .build()
        )
    """

    def __init__(self):
        self._basic: Optional[DrugBasicDetails] = None
        self._pricing: Optional[DrugPricingDetails] = None

    def with_basic_details(self, data: Dict) -> 'DrugCreateCommandBuilder':
        self._basic = DrugBasicDetails(**data)
        return self

    def with_pricing_details(self, data: Dict) -> 'DrugCreateCommandBuilder':
        self._pricing = DrugPricingDetails(**data)
        return self

    def build(self) -> DrugCreateCommand:
        errors = {}
        if self._basic is None:
            errors['basic'] = ['Basic details are required.']
        if self._pricing is None:
            errors['pricing'] = ['Pricing details are required.']
        if errors:
            raise ValidationError(errors=errors)
        return DrugCreateCommand(basic=self._basic, pricing=self._pricing)


def _drug_audit_details(drug: Drug) -> Dict:
    return {
        'name': drug.name,
        'category_id': drug.category_id,
        'purchase_form_id': drug.purchase_form_id,
        'sale_form_id': drug.sale_form_id,
        'purchase_price': drug.purchase_price,
        'units_per_purchase': drug.units_per_purchase,
        'pos_markup': drug.pos_markup,
        'prescription_markup': drug.prescription_markup,
        'unit_cost': drug.unit_cost,
        'pos_price': drug.pos_price,
        'prescription_price': drug.prescription_price,
        'min_stock': drug.min_stock,
        'expiry_date': drug.expiry_date,
        'is_active': drug.is_active,
    }


def create_drug(command: DrugCreateCommand, user=None, ip_address: Optional[str] = None) -> Drug:
    """
    Create a drug with zero stock. Pricing snapshot is computed on save.

    Raises:
        PersistenceError: the insert failed
    """
    try:
        with transaction.atomic():
            drug = Drug(stock=0, **command.model_fields())
            drug.save()
    except DatabaseError as e:
        logger.exception(f"Failed to create drug {command.basic.name!r}: {e}")
        raise PersistenceError()

    logger.info(f"Created drug #{drug.id} {drug.name} (unit cost {drug.unit_cost})")
    record_audit(
        AuditLog.ActionType.CREATE,
        AuditLog.EntityType.DRUG,
        drug.id,
        details=_drug_audit_details(drug),
        actor=user,
        ip_address=ip_address,
    )
    return drug


def update_drug(drug_id: int, changes: Dict, user=None, ip_address: Optional[str] = None) -> Drug:
    """
    Apply validated field changes to a drug and recompute its prices.

    Stock is not editable here; restocks are its only mutator.
    """
    if 'stock' in changes:
        raise ValidationError(errors={'stock': ['Stock can only change through a restock.']})

    try:
        with transaction.atomic():
            try:
                drug = Drug.objects.select_for_update().get(pk=drug_id)
            except Drug.DoesNotExist:
                raise NotFoundError(f"Drug {drug_id} not found")
            for field, value in changes.items():
                setattr(drug, field, value)
            drug.save()
    except DatabaseError as e:
        logger.exception(f"Failed to update drug #{drug_id}: {e}")
        raise PersistenceError()

    logger.info(f"Updated drug #{drug.id}: {sorted(changes)}")
    record_audit(
        AuditLog.ActionType.UPDATE,
        AuditLog.EntityType.DRUG,
        drug.id,
        details={'changed': sorted(changes), **_drug_audit_details(drug)},
        actor=user,
        ip_address=ip_address,
    )
    return drug


REFERENCE_ENTITY_TYPES = {
    DrugCategory: AuditLog.EntityType.CATEGORY,
    DrugForm: AuditLog.EntityType.FORM,
}


def delete_reference(model, pk: int, user=None, ip_address: Optional[str] = None) -> None:
    """
    Delete a category or form that no drug references.

    Raises:
        NotFoundError: unknown id
        ConflictError: still referenced by a drug
    """
    label = model._meta.verbose_name
    with transaction.atomic():
        try:
            instance = model.objects.select_for_update().get(pk=pk)
        except model.DoesNotExist:
            raise NotFoundError(f"{label} {pk} not found")
        if instance.in_use:
            raise ConflictError(f"Cannot delete {label.lower()} '{instance.name}' while drugs use it")
        name = instance.name
        instance.delete()

    logger.info(f"Deleted {label.lower()} #{pk} {name}")
    record_audit(
        AuditLog.ActionType.DELETE,
        REFERENCE_ENTITY_TYPES[model],
        pk,
        details={'name': name},
        actor=user,
        ip_address=ip_address,
    )


def toggle_vendor_active(vendor_id: int, user=None, ip_address: Optional[str] = None) -> Vendor:
    with transaction.atomic():
        try:
            vendor = Vendor.objects.select_for_update().get(pk=vendor_id)
        except Vendor.DoesNotExist:
            raise NotFoundError(f"Vendor {vendor_id} not found")
        vendor.is_active = not vendor.is_active
        vendor.save(update_fields=['is_active', 'updated_at'])

    record_audit(
        AuditLog.ActionType.UPDATE,
        AuditLog.EntityType.VENDOR,
        vendor.id,
        details={'is_active': vendor.is_active},
        actor=user,
        ip_address=ip_address,
    )
    return vendor
