"""
Celery configuration for riskguard project.

The beat schedule lives in settings as CELERY_BEAT_SCHEDULE.
"""

import os
from celery import Celery

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'riskguard.settings.production')

app = Celery('riskguard')

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()
