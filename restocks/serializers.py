"""
Serializers for restock events and notifications.
"""
from rest_framework import serializers

from inventory.serializers import DrugSerializer
from .models import Notification, RestockEvent


class RestockEventSerializer(serializers.ModelSerializer):
    """Restock with the names the pending/history tables display."""
    drug_id = serializers.IntegerField(read_only=True)
    vendor_id = serializers.IntegerField(read_only=True, allow_null=True)
    drug_name = serializers.CharField(source='drug.name', read_only=True)
    purchase_form = serializers.CharField(source='drug.purchase_form.name', read_only=True)
    sale_form = serializers.CharField(source='drug.sale_form.name', read_only=True)
    vendor_name = serializers.CharField(source='vendor.name', read_only=True, default=None)
    created_by = serializers.CharField(source='created_by.get_username', read_only=True, default=None)
    approver_name = serializers.CharField(source='approved_by.get_username', read_only=True, default=None)

    class Meta:
        model = RestockEvent
        fields = [
            'id', 'drug_id', 'drug_name', 'vendor_id', 'vendor_name',
            'purchase_quantity', 'units_per_purchase', 'sale_quantity',
            'purchase_form', 'sale_form',
            'batch_number', 'expiry_date', 'notes',
            'status', 'rejection_reason',
            'created_by', 'approver_name', 'approved_at', 'created_at'
        ]
        read_only_fields = fields


class RestockResponseSerializer(serializers.Serializer):
    """Response to a restock submission: the event plus the refreshed drug."""
    restock = RestockEventSerializer(read_only=True)
    drug = DrugSerializer(read_only=True)


class RestockDecisionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['approved', 'rejected'])
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class NotificationSerializer(serializers.ModelSerializer):
    restock_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Notification
        fields = ['id', 'type', 'message', 'restock_id', 'is_read', 'created_at']
        read_only_fields = fields
