from django.apps import AppConfig


class CanteensConfig(AppConfig):
    name = "apps.canteens"
    default_auto_field = "django.db.models.BigAutoField"
