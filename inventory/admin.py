"""
Django Admin configuration for inventory models.
"""
from django.contrib import admin
from .models import Drug, DrugCategory, DrugForm, Vendor


@admin.register(DrugCategory)
class DrugCategoryAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'drug_count', 'created_at']
    search_fields = ['name']
    ordering = ['name']

    def drug_count(self, obj):
        return obj.drugs.count()
    drug_count.short_description = 'Drugs'


@admin.register(DrugForm)
class DrugFormAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'description', 'created_at']
    search_fields = ['name']
    ordering = ['name']


@admin.register(Vendor)
class VendorAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'contact_person', 'phone', 'email', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'contact_person', 'email']
    ordering = ['name']


@admin.register(Drug)
class DrugAdmin(admin.ModelAdmin):
    list_display = [
        'id', 'name', 'strength', 'unit', 'category', 'stock', 'min_stock',
        'pos_price', 'prescription_price', 'expiry_date', 'is_low_stock', 'is_active'
    ]
    list_filter = ['category', 'is_active', 'unit']
    search_fields = ['name']
    ordering = ['name']
    raw_id_fields = ['category', 'purchase_form', 'sale_form']
    readonly_fields = ['stock', 'unit_cost', 'pos_price', 'prescription_price', 'created_at', 'updated_at']

    def is_low_stock(self, obj):
        return obj.is_low_stock
    is_low_stock.boolean = True
    is_low_stock.short_description = 'Low Stock'
