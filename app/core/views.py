"""
Core views providing infrastructure endpoints and error mapping.

This module contains code that is not part of the business domain:
- health_check: liveness/readiness endpoint
- application_error_response: maps BaseApplicationError to a DRF Response
"""

from __future__ import annotations

from django.db import connection
from django.http import JsonResponse
from rest_framework import status
from rest_framework.response import Response

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected"

    HTTP Status Codes:
        200: All systems operational
        503: Database unavailable
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    try:
        from django.core.cache import cache

        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception:
        # Cache failure degrades run locks only; the API keeps serving
        health_status["cache"] = "disconnected"

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)


def status_for_error(exc: BaseApplicationError) -> int:
    """
    Pick the HTTP status for a domain error.

    Subclasses may pin their own status through an ``http_status`` attribute
    (e.g. insufficient funds is a 400 even though it is not a ValidationError).
    """
    explicit = getattr(exc, "http_status", None)
    if explicit:
        return explicit
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_400_BAD_REQUEST


def application_error_response(exc: BaseApplicationError) -> Response:
    """Build the JSON error response for a domain error."""
    return Response(exc.to_dict(), status=status_for_error(exc))
