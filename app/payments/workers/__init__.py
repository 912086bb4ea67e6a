"""
Workers for periodic payment reconciliation.

This module contains the Celery beat sweeps of the payment lifecycle:
- auto_complete_jobs: Completes jobs the client never confirmed and
  releases escrow
- check_visit_confirmations: Escalates expired visit confirmations

Both run under a non-blocking single-flight lock and write every
transition as a conditional update, so overlapping runs cannot process
a job twice.

Usage:
    from payments.workers import auto_complete_jobs, check_visit_confirmations

    auto_complete_jobs.delay()
"""

from payments.workers.auto_complete import auto_complete_jobs
from payments.workers.visit_confirmation import check_visit_confirmations

__all__ = [
    "auto_complete_jobs",
    "check_visit_confirmations",
]
