"""
Common app configuration.
"""

from django.apps import AppConfig


class CommonConfig(AppConfig):
    """Shared utilities: result types, request logging, middleware."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.common"
    verbose_name = "Common"
