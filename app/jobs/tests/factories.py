"""
Factory Boy factories for job models.

Usage:
    from jobs.tests.factories import JobFactory, RescheduleRequestFactory

    job = JobFactory(client=client_user, provider=provider_user)
    job = JobFactory(status=JobStatus.IN_PROGRESS, provider=None)
"""

from datetime import timedelta

import factory
from django.utils import timezone

from authentication.tests.factories import UserFactory
from jobs.models import Job, JobStatus, RescheduleRequest, RescheduleStatus


class JobFactory(factory.django.DjangoModelFactory):
    """
    Factory for Job.

    Default is an assigned job with no visit fee authorization and no
    completion state.
    """

    class Meta:
        model = Job

    title = factory.Sequence(lambda n: f"Reparación de fuga #{n}")
    category = "plomería"
    description = "Fuga en el lavabo del baño"
    status = JobStatus.ASSIGNED
    client = factory.SubFactory(UserFactory)
    provider = factory.SubFactory(UserFactory)
    scheduled_at = factory.LazyFunction(lambda: timezone.now() + timedelta(days=2))


class RescheduleRequestFactory(factory.django.DjangoModelFactory):
    """
    Factory for a pending RescheduleRequest.

    The job's reschedule fields are not touched; set
    job.reschedule_response_deadline in the test.
    """

    class Meta:
        model = RescheduleRequest

    job = factory.SubFactory(JobFactory)
    requested_by = factory.LazyAttribute(lambda o: o.job.client)
    original_date = factory.LazyAttribute(lambda o: o.job.scheduled_at)
    requested_date = factory.LazyFunction(lambda: timezone.now() + timedelta(days=5))
    reason = "Tengo un compromiso ese día"
    status = RescheduleStatus.PENDING
