# test_requests/apps.py

from django.apps import AppConfig


class TestRequestsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "test_requests"
    verbose_name = "Test requests"

    def ready(self):
        from . import signals  # noqa
