"""
Celery configuration for the Chamby payments backend.

Celery runs two kinds of work:
- Event-driven tasks: Stripe webhook processing and escrow release
- Scheduled sweeps (celery beat): auto-completion of jobs, visit
  confirmation timeouts, reschedule expiry and webhook event retention

Redis is both the message broker and the result backend. Tasks are
auto-discovered from every installed app's tasks.py; the sweeps that live in
payments.workers are imported by payments.tasks.

Usage:
    # Worker
    celery -A config worker -l info

    # Scheduler (reads CELERY_BEAT_SCHEDULE from settings)
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
