"""
URL configuration for the jobs app.

Routes:
    - POST {job_id}/complete/ - Completion handshake
"""

from django.urls import path

from jobs.views import CompleteJobView

app_name = "jobs"

urlpatterns = [
    path("<uuid:job_id>/complete/", CompleteJobView.as_view(), name="complete_job"),
]
