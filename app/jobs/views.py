"""
Views for the jobs API.

Endpoints:
    POST /api/v1/jobs/{job_id}/complete/ - Completion handshake
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.context import AuthContext
from jobs.serializers import CompleteJobRequestSerializer
from jobs.services import JobCompletionService


class CompleteJobView(APIView):
    """
    Provider marks the work done, or the client confirms it.

    POST /api/v1/jobs/{job_id}/complete/

    Request body:
        {"action": "provider_mark_done"} or {"action": "client_confirm"}

    Returns:
        {"success": true, "completion_status": ..., "already_completed": bool}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="complete_job",
        summary="Job completion handshake",
        request=CompleteJobRequestSerializer,
        responses={
            200: OpenApiResponse(description="Completion recorded (or already recorded)"),
            400: OpenApiResponse(description="Acción inválida"),
            403: OpenApiResponse(description="Caller is not the right party"),
            404: OpenApiResponse(description="Job not found"),
            409: OpenApiResponse(description="Job not ready for this step"),
        },
        tags=["Jobs"],
    )
    def post(self, request, job_id):
        serializer = CompleteJobRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        ctx = AuthContext.from_request(request)
        result = JobCompletionService.complete_job(
            ctx, job_id, serializer.validated_data["action"]
        )
        return Response(result.to_response())
