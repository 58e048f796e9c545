"""
Inventory Models - Drug catalogue and reference data for the clinic pharmacy.

Models:
    - DrugCategory: Therapeutic grouping of drugs
    - DrugForm: Physical form a drug is bought or sold in (Box, Tablet, Bottle)
    - Vendor: Supplier a restock is purchased from
    - Drug: A sellable medication with purchase/sale unit conversion and pricing
"""
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from .pricing import calculate_pricing

PRICE_QUANTUM = Decimal('0.0000000001')
PRICE_FIELDS = {'unit_cost', 'pos_price', 'prescription_price'}


class ReferenceData(models.Model):
    """Name + description lookup row."""
    name = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
    )
    description = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ['name']

    def __str__(self):
        return self.name


class DrugCategory(ReferenceData):

    class Meta(ReferenceData.Meta):
        verbose_name = 'Drug Category'
        verbose_name_plural = 'Drug Categories'

    @property
    def in_use(self) -> bool:
        return self.drugs.exists()


class DrugForm(ReferenceData):

    class Meta(ReferenceData.Meta):
        verbose_name = 'Drug Form'
        verbose_name_plural = 'Drug Forms'

    @property
    def in_use(self) -> bool:
        return self.purchase_drugs.exists() or self.sale_drugs.exists()


class Vendor(models.Model):
    name = models.CharField(max_length=200, db_index=True)
    contact_person = models.CharField(max_length=200, blank=True, default='')
    phone = models.CharField(max_length=50, blank=True, default='')
    email = models.EmailField(blank=True, default='')
    address = models.TextField(blank=True, default='')
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Vendor'
        verbose_name_plural = 'Vendors'
        ordering = ['name']

    def __str__(self):
        return self.name


class Drug(models.Model):
    """
    A medication bought in purchase units and sold in sale units.

    One purchase unit (e.g. a Box) yields `units_per_purchase` sale units
    (e.g. 100 Tablets). `stock` is always counted in sale units.

    unit_cost, pos_price and prescription_price are a snapshot of the pricing
    calculator's output and are recomputed on every save.
    """

    class Unit(models.TextChoices):
        MG = 'mg', 'mg'
        ML = 'ml', 'ml'
        G = 'g', 'g'
        MCG = 'mcg', 'mcg'
        IU = 'iu', 'IU'

    name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Drug name as shown at the dispensary"
    )
    category = models.ForeignKey(
        DrugCategory,
        on_delete=models.PROTECT,
        related_name='drugs',
    )
    strength = models.CharField(max_length=50, blank=True, default='')
    unit = models.CharField(max_length=10, choices=Unit.choices, default=Unit.MG)

    # Purchase side
    purchase_form = models.ForeignKey(
        DrugForm,
        on_delete=models.PROTECT,
        related_name='purchase_drugs',
        help_text="Form the drug is bought in, e.g. Box"
    )
    purchase_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0'))],
        help_text="Cost of one purchase unit"
    )
    units_per_purchase = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
        help_text="Sale units contained in one purchase unit"
    )

    # Sale side
    sale_form = models.ForeignKey(
        DrugForm,
        on_delete=models.PROTECT,
        related_name='sale_drugs',
        help_text="Form the drug is dispensed in, e.g. Tablet"
    )
    pos_markup = models.DecimalField(
        max_digits=8,
        decimal_places=4,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))],
        help_text="Point-of-sale markup ratio (0.20 = 20%)"
    )
    prescription_markup = models.DecimalField(
        max_digits=8,
        decimal_places=4,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))],
        help_text="Prescription markup ratio (0.10 = 10%)"
    )

    # Derived pricing snapshot
    unit_cost = models.DecimalField(max_digits=24, decimal_places=10, default=Decimal('0'), editable=False)
    pos_price = models.DecimalField(max_digits=24, decimal_places=10, default=Decimal('0'), editable=False)
    prescription_price = models.DecimalField(max_digits=24, decimal_places=10, default=Decimal('0'), editable=False)

    # Stock state, in sale units
    stock = models.PositiveIntegerField(default=0, editable=False)
    min_stock = models.PositiveIntegerField(default=0, help_text="Reorder threshold")
    expiry_date = models.DateField(db_index=True)

    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Drug'
        verbose_name_plural = 'Drugs'
        ordering = ['name']
        indexes = [
            models.Index(fields=['name', 'is_active'], name='drug_name_active_idx'),
            models.Index(fields=['category', 'is_active'], name='drug_category_active_idx'),
            models.Index(fields=['is_active', 'expiry_date'], name='drug_active_expiry_idx'),
        ]

    def __str__(self):
        label = f"{self.name} {self.strength}{self.unit}" if self.strength else self.name
        return f"{label} ({self.stock} in stock)"

    def refresh_pricing(self):
        """Recompute the derived price snapshot from the purchase/sale inputs."""
        pricing = calculate_pricing(
            self.purchase_price,
            self.units_per_purchase,
            self.pos_markup,
            self.prescription_markup,
        )
        self.unit_cost = pricing.unit_cost.quantize(PRICE_QUANTUM)
        self.pos_price = pricing.pos_price.quantize(PRICE_QUANTUM)
        self.prescription_price = pricing.prescription_price.quantize(PRICE_QUANTUM)
        return pricing

    def save(self, *args, **kwargs):
        """
        Recompute prices and save.

        stock is written on insert only. Afterwards the ledger's F() update is
        its sole writer, so saving a stale instance cannot undo a restock.
        """
        self.refresh_pricing()
        update_fields = kwargs.get('update_fields')
        if not self._state.adding and not kwargs.get('force_insert'):
            if update_fields is None:
                update_fields = [f.name for f in self._meta.concrete_fields if not f.primary_key]
            kwargs['update_fields'] = (set(update_fields) - {'stock'}) | PRICE_FIELDS
        elif update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | PRICE_FIELDS
        super().save(*args, **kwargs)

    @property
    def pricing(self):
        return calculate_pricing(
            self.purchase_price,
            self.units_per_purchase,
            self.pos_markup,
            self.prescription_markup,
        )

    @property
    def is_low_stock(self) -> bool:
        from .stock import is_low_stock
        return is_low_stock(self)

    @property
    def is_expired(self) -> bool:
        from .stock import is_expired
        return is_expired(self)

    @property
    def expiry_status(self) -> str:
        from .stock import expiry_status
        return expiry_status(self)

    @property
    def days_until_expiry(self):
        from .stock import days_until_expiry
        return days_until_expiry(self)
