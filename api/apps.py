"""Django AppConfig for the api app."""

from django.apps import AppConfig


class ApiConfig(AppConfig):
    """JSON endpoints for uploads, progress polling, slug lookup and cron."""

    name = "api"
    verbose_name = "API"
