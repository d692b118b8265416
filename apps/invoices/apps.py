from django.apps import AppConfig


class InvoicesConfig(AppConfig):
    name = 'apps.invoices'
    default_auto_field = 'django.db.models.BigAutoField'
