from django.apps import AppConfig


class RestocksConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'restocks'
    verbose_name = 'Restocks'
