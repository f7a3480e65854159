"""Django AppConfig for the common app."""

from django.apps import AppConfig


class CommonConfig(AppConfig):
    """Configuration for the common app (base models, utilities, webhook channel)."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "common"
