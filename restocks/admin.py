"""
Django Admin configuration for restocks and notifications.
"""
from django.contrib import admin
from .models import Notification, RestockEvent


@admin.register(RestockEvent)
class RestockEventAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'drug', 'purchase_quantity', 'sale_quantity', 'batch_number',
        'expiry_date', 'status', 'created_by', 'created_at'
    ]
    list_filter = ['status', 'created_at']
    search_fields = ['drug__name', 'batch_number']
    ordering = ['-created_at']
    raw_id_fields = ['drug', 'vendor']
    # Stock moves only through the restock services
    readonly_fields = [
        'drug', 'vendor', 'purchase_quantity', 'units_per_purchase', 'sale_quantity',
        'batch_number', 'expiry_date', 'status', 'rejection_reason',
        'created_by', 'approved_by', 'approved_at', 'created_at'
    ]

    def has_add_permission(self, request):
        return False


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'type', 'is_read', 'created_at']
    list_filter = ['type', 'is_read']
    search_fields = ['user__username', 'message']
    ordering = ['-created_at']
    raw_id_fields = ['user', 'restock']
