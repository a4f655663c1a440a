"""
Error responses.

Maps engine error kinds to HTTP status codes and renders them in one
envelope: ``{"error_code", "message", "details"}``.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from trip_dispatch.domain.errors import DispatchError

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "not_found": 404,
    "invalid_request": 422,
    "eligibility_failed": 422,
    "invalid_transition": 409,
    "resource_conflict": 409,
    "storage_unavailable": 503,
}


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": exc.kind,
            "message": exc.message,
            "details": exc.details,
        },
    )
