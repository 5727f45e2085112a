from django.apps import AppConfig


class PrescriptionsConfig(AppConfig):
    name = 'apps.prescriptions'
    verbose_name = 'Vision Tests & Prescriptions'
    default_auto_field = 'django.db.models.BigAutoField'
