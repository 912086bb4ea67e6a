# =============================================================================
# Django Project Configuration Package
# =============================================================================
# Settings, root URLconf, WSGI application and the Celery app.
#
# The Celery app is imported here so the reconciliation sweeps and webhook
# tasks are registered whenever Django starts.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
