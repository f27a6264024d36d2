"""
Core views providing infrastructure endpoints.

This module contains views that are not part of the billing domain but are
essential for deployment, such as health checks, and the translation of
ServiceResult failures into HTTP responses.
"""

import logging

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)

# error_code -> HTTP status; unknown codes are server errors
ERROR_STATUS = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "PERMISSION_DENIED": status.HTTP_403_FORBIDDEN,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_STATE": status.HTTP_409_CONFLICT,
    "GATEWAY_ERROR": status.HTTP_502_BAD_GATEWAY,
}


def error_response(result) -> Response:
    """
    Build the error Response for a failed ServiceResult.

    Diagnostic details are only included when DEBUG is on.
    """
    http_status = ERROR_STATUS.get(
        result.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    return Response(
        result.to_response(include_details=settings.DEBUG),
        status=http_status,
    )


def health_check(request):
    """
    Health check endpoint for load balancers and container probes.

    The billing lock depends on Redis, so both the database and the cache
    must be reachable for the service to report healthy.

    HTTP Status Codes:
        200: All systems operational
        503: One or more systems unhealthy

    Example Response:
        {
            "status": "healthy",
            "database": "connected",
            "cache": "connected"
        }
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except DatabaseError:
        logger.warning("Health check: database unreachable", exc_info=True)
        health_status["database"] = "disconnected"

    try:
        cache.set("health_check", "ok", timeout=1)
        connected = cache.get("health_check") == "ok"
    except Exception:
        logger.warning("Health check: cache unreachable", exc_info=True)
        connected = False
    health_status["cache"] = "connected" if connected else "disconnected"

    is_healthy = (
        health_status["database"] == "connected"
        and health_status["cache"] == "connected"
    )
    if not is_healthy:
        health_status["status"] = "unhealthy"

    return JsonResponse(health_status, status=200 if is_healthy else 503)
