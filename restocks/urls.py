"""
URL routing for restock and notification endpoints.
"""
from django.urls import path
from . import views

app_name = 'restocks'

urlpatterns = [
    path('inventory/drugs/<int:pk>/restock/', views.RestockDrugView.as_view(), name='drug-restock'),
    path('inventory/restock/pending/', views.PendingRestockListView.as_view(), name='restock-pending'),
    path('inventory/restock/history/', views.RestockHistoryView.as_view(), name='restock-history'),
    path('inventory/restock/<int:pk>/approve/', views.RestockDecisionView.as_view(), name='restock-decision'),

    path('notifications/', views.NotificationListView.as_view(), name='notification-list'),
    path('notifications/<int:pk>/read/', views.NotificationReadView.as_view(), name='notification-read'),
]
