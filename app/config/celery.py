"""
Celery configuration for the Django application.

Celery runs the payments background work:
- Replaying failed webhook deliveries (payments.tasks.sweep_webhook_retries)
- Purging old dead letters (payments.tasks.purge_dead_letter_webhooks)
- Receipts, notifications and invoices queued after a payment commits

Periodic tasks are stored in the database by django-celery-beat. Redis is
both the message broker and the result backend. Tasks are auto-discovered
from all installed Django apps.

Usage:
    # Run a worker and the beat scheduler:
    celery -A config worker -l info
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
