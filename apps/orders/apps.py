from django.apps import AppConfig


class OrdersConfig(AppConfig):
    name = "apps.orders"
    default_auto_field = "django.db.models.BigAutoField"
    gateway = None

    def ready(self):
        from .payments import PaymentGateway

        self.gateway = PaymentGateway.from_settings()
