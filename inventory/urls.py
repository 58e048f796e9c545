"""
URL routing for inventory API endpoints.
"""
from django.urls import path
from . import views

app_name = 'inventory'

urlpatterns = [
    # Drugs
    path('inventory/drugs/', views.DrugListCreateView.as_view(), name='drug-list'),
    path('inventory/drugs/search/', views.DrugSearchView.as_view(), name='drug-search'),
    path('inventory/drugs/low-stock/', views.LowStockView.as_view(), name='drug-low-stock'),
    path('inventory/drugs/expiring/', views.ExpiringDrugsView.as_view(), name='drug-expiring'),
    path('inventory/drugs/<int:pk>/', views.DrugDetailView.as_view(), name='drug-detail'),
    path('inventory/low-stock/', views.LowStockView.as_view(), name='low-stock'),

    # Dashboard and pricing
    path('inventory/stats/', views.InventoryStatsView.as_view(), name='inventory-stats'),
    path('inventory/pricing/preview/', views.PricingPreviewView.as_view(), name='pricing-preview'),

    # Reference data
    path('inventory/categories/', views.CategoryListCreateView.as_view(), name='category-list'),
    path('inventory/categories/<int:pk>/', views.CategoryDeleteView.as_view(), name='category-detail'),
    path('inventory/forms/', views.FormListCreateView.as_view(), name='form-list'),
    path('inventory/forms/<int:pk>/', views.FormDeleteView.as_view(), name='form-detail'),

    # Vendors
    path('inventory/vendors/', views.VendorListCreateView.as_view(), name='vendor-list'),
    path('inventory/vendors/<int:pk>/', views.VendorDetailView.as_view(), name='vendor-detail'),
    path('inventory/vendors/<int:pk>/toggle-active/', views.VendorToggleActiveView.as_view(), name='vendor-toggle-active'),
]
