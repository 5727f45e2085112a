from django.apps import AppConfig


class VisitsConfig(AppConfig):
    name = 'apps.visits'
    verbose_name = 'Visits'

    def ready(self):
        """Import and connect signals when app is ready"""
        import apps.visits.signals  # noqa: F401
