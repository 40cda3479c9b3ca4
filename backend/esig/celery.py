"""
backend/esig/celery.py

Celery application for background work (request mails, signed-result archival).
Task settings are read from Django settings using the CELERY_ prefix.
"""

import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'esig.settings')

app = Celery('esig')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
