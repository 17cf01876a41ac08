# core/celery_app.py

from celery import Celery
import os
from django.conf import settings

# Set the default Django settings module for Celery
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'core.settings')

app = Celery('core')

# CELERY_* settings (broker, result backend, beat schedule, eager mode)
app.config_from_object('django.conf:settings', namespace='CELERY')

# Auto-discover tasks from the Django apps (disputes.tasks)
app.autodiscover_tasks(lambda: settings.INSTALLED_APPS)

app.conf.task_serializer = 'json'
app.conf.result_serializer = 'json'
app.conf.accept_content = ['json']
