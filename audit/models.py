"""
Audit trail of inventory mutations.
"""
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class AuditLog(models.Model):
    """
    One audit record per create/update/delete/decision on an inventory entity.

    Rows are written after the primary mutation commits and are never edited.
    """

    class ActionType(models.TextChoices):
        CREATE = 'create', 'Create'
        UPDATE = 'update', 'Update'
        DELETE = 'delete', 'Delete'
        APPROVE = 'approve', 'Approve'
        REJECT = 'reject', 'Reject'

    class EntityType(models.TextChoices):
        DRUG = 'drug', 'Drug'
        RESTOCK = 'restock', 'Restock'
        CATEGORY = 'category', 'Category'
        FORM = 'form', 'Form'
        VENDOR = 'vendor', 'Vendor'

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
    )
    action_type = models.CharField(max_length=20, choices=ActionType.choices, db_index=True)
    entity_type = models.CharField(max_length=20, choices=EntityType.choices, db_index=True)
    entity_id = models.CharField(max_length=64, blank=True, default='')
    details = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = 'Audit Log Entry'
        verbose_name_plural = 'Audit Log'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id'], name='audit_entity_idx'),
        ]

    def __str__(self):
        return f"{self.action_type} {self.entity_type} #{self.entity_id}"
