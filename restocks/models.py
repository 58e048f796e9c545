"""
Restock Models - replenishment events and the notifications they raise.

Restock Status Flow:
    APPROVED                   (immediate restock, stock incremented on submit)
    PENDING -> APPROVED        (approval path, stock incremented on approval)
    PENDING -> REJECTED        (approval path, stock untouched)
"""
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from inventory.models import Drug, Vendor


class RestockEvent(models.Model):
    """
    One replenishment of a drug.

    sale_quantity is always purchase_quantity * units_per_purchase, where
    units_per_purchase is the drug's value when the stock was incremented
    (or, for a pending request, when it was submitted).
    """

    class Status(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        APPROVED = 'APPROVED', 'Approved'
        REJECTED = 'REJECTED', 'Rejected'

    drug = models.ForeignKey(
        Drug,
        on_delete=models.PROTECT,
        related_name='restocks',
    )
    vendor = models.ForeignKey(
        Vendor,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='restocks',
    )
    purchase_quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Quantity in purchase units (e.g. boxes)"
    )
    units_per_purchase = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Conversion factor applied to this restock"
    )
    sale_quantity = models.PositiveIntegerField(
        help_text="Quantity in sale units added to stock"
    )
    batch_number = models.CharField(max_length=100)
    expiry_date = models.DateField()
    notes = models.TextField(blank=True, default='')
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    rejection_reason = models.TextField(blank=True, default='')
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='restock_requests',
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='restock_decisions',
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = 'Restock'
        verbose_name_plural = 'Restocks'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['drug', 'status'], name='restock_drug_status_idx'),
            models.Index(fields=['status', 'created_at'], name='restock_status_created_idx'),
        ]

    def __str__(self):
        return f"Restock #{self.id} - {self.drug.name} x{self.purchase_quantity} ({self.status})"

    @property
    def is_pending(self) -> bool:
        return self.status == self.Status.PENDING

    @property
    def is_approved(self) -> bool:
        return self.status == self.Status.APPROVED

    @property
    def is_rejected(self) -> bool:
        return self.status == self.Status.REJECTED


class Notification(models.Model):

    class Type(models.TextChoices):
        RESTOCK_PENDING = 'restock_pending', 'Restock pending'
        RESTOCK_APPROVED = 'restock_approved', 'Restock approved'
        RESTOCK_REJECTED = 'restock_rejected', 'Restock rejected'

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
    )
    type = models.CharField(max_length=30, choices=Type.choices, db_index=True)
    message = models.TextField()
    restock = models.ForeignKey(
        RestockEvent,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications',
    )
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'is_read'], name='notification_user_read_idx'),
        ]

    def __str__(self):
        return f"{self.type} for {self.user}"
