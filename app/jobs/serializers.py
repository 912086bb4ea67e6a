"""
Serializers for the jobs API.
"""

from __future__ import annotations

from rest_framework import serializers


class CompleteJobRequestSerializer(serializers.Serializer):
    """action is checked by JobCompletionService ("Acción inválida")."""

    action = serializers.CharField(
        max_length=50,
        help_text="provider_mark_done or client_confirm",
    )
