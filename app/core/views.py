"""
Core views providing infrastructure endpoints.
"""

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Liveness/readiness probe used by load balancers and orchestration.

    The database is required; the cache only degrades the report since
    payments fall back to the database when Redis is unavailable.

    Returns:
        200 {"status": "healthy", "database": "connected", "cache": ...}
        503 when the database cannot be reached
    """
    report = {"status": "healthy", "database": "connected", "cache": "connected"}
    status_code = 200

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError:
        logger.exception("Health check: database unreachable")
        report["database"] = "disconnected"
        report["status"] = "unhealthy"
        status_code = 503

    # django-redis is configured with IGNORE_EXCEPTIONS, so a dead Redis
    # shows up as a cache miss rather than an exception.
    cache.set("health_check", "ok", timeout=5)
    if cache.get("health_check") != "ok":
        report["cache"] = "disconnected"

    return JsonResponse(report, status=status_code)
