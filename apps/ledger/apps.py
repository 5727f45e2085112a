from django.apps import AppConfig


class LedgerConfig(AppConfig):
    name = 'apps.ledger'
    verbose_name = 'Main Account Ledger'
    default_auto_field = 'django.db.models.BigAutoField'
