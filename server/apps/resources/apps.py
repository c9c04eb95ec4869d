"""Django app configuration for resources app."""

from django.apps import AppConfig


class ResourcesConfig(AppConfig):
    """Configuration for resources app."""

    name = 'server.apps.resources'
    verbose_name = 'Resources'
