from django.apps import AppConfig


class VendorsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.vendors'
    label = 'vendors'
    verbose_name = 'Vendor Onboarding'

    def ready(self):
        from . import signals  # noqa: F401
