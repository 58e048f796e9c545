"""
URL configuration for the clinic pharmacy inventory API.
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse
from rest_framework.authtoken.views import obtain_auth_token


def health_check(request):
    """Health check endpoint for container orchestration."""
    return JsonResponse({'status': 'healthy', 'service': 'clinic-inventory-api'})


urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health-check'),
    path('api/auth/token/', obtain_auth_token, name='api-token'),
    path('api/', include('inventory.urls')),
    path('api/', include('restocks.urls')),
]
