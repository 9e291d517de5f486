"""Standardized API error envelope.

Every error response has the shape::

    {"type": "<category>", "errors": [{"code": "...", "detail": "...", "attr": ...}]}

``standard_exception_handler`` reshapes DRF's own errors (auth, validation,
throttling); views use ``error_response`` for domain errors they translate.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = structlog.get_logger(__name__)


def error_response(
    code: str,
    detail: str,
    http_status: int,
    error_type: str = "client_error",
) -> Response:
    return Response(
        {
            "type": error_type,
            "errors": [{"code": code, "detail": detail, "attr": None}],
        },
        status=http_status,
    )


def _flatten(detail: Any, attr: Optional[str] = None) -> List[Dict[str, Any]]:
    if isinstance(detail, dict):
        errors: List[Dict[str, Any]] = []
        for key, value in detail.items():
            name = key if attr is None else f"{attr}.{key}"
            errors.extend(_flatten(value, name))
        return errors
    if isinstance(detail, list):
        errors = []
        for value in detail:
            errors.extend(_flatten(value, attr))
        return errors
    code = getattr(detail, "code", "error")
    return [{"code": code, "detail": str(detail), "attr": attr}]


def standard_exception_handler(exc: Exception, context: Dict[str, Any]):
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, exceptions.ValidationError):
        error_type = "validation_error"
    elif response.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        error_type = "server_error"
    else:
        error_type = "client_error"

    response.data = {"type": error_type, "errors": _flatten(response.data)}
    logger.info(
        "api.error",
        status_code=response.status_code,
        error_type=error_type,
    )
    return response
