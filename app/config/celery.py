"""
Celery configuration for the ERP backend.

Background work in this project is small:
- Delivering "obligation paid" notifications after the unit of work commits
- The overdue sweep, triggered by an external scheduler (beat or cron)

Audits and apply-fix passes are never scheduled; they run only when an
operator invokes them.

Usage:
    from financial.tasks import notify_obligation_paid

    notify_obligation_paid.delay("boleto", str(boleto.id))

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
