# hms_api/celery.py
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "hms_api.settings")

app = Celery("hms_api")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
