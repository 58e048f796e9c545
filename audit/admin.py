"""
Django Admin configuration for the audit log (read-only).
"""
from django.contrib import admin
from .models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['id', 'action_type', 'entity_type', 'entity_id', 'actor', 'ip_address', 'created_at']
    list_filter = ['action_type', 'entity_type', 'created_at']
    search_fields = ['entity_id', 'actor__username']
    ordering = ['-created_at']
    readonly_fields = ['actor', 'action_type', 'entity_type', 'entity_id', 'details', 'ip_address', 'created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
