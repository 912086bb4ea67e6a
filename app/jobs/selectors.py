"""
Read helpers shared by the job and payment services.
"""

from __future__ import annotations

from core.exceptions import NotFoundError
from jobs.models import Job


def get_job_or_404(job_id, *, select_parties: bool = True) -> Job:
    """
    Load a job by primary key.

    Raises:
        NotFoundError: No job with this id
    """
    queryset = Job.objects.all()
    if select_parties:
        queryset = queryset.select_related("client", "provider")
    try:
        return queryset.get(pk=job_id)
    except Job.DoesNotExist:
        raise NotFoundError(
            "Trabajo no encontrado",
            error_code="JOB_NOT_FOUND",
            details={"job_id": str(job_id)},
        ) from None
