from django.apps import AppConfig


class InvoicesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "invoices"

    def ready(self):
        """Register the built-in invoice layouts when the app is ready"""
        from invoices.parser import register_builtin_layouts
        register_builtin_layouts()
