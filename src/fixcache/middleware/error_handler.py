import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def error_payload(
    code: str,
    message: str,
    request_id: Optional[str],
    details: Any = None,
) -> Dict[str, Any]:
    """Error envelope shared by every non-2xx webhook response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": request_id,
        }
    }


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("X-GitHub-Delivery") or "unknown"


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    request_id = _request_id(request)
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        error = dict(detail["error"])
        if error.get("request_id") in (None, "", "unknown"):
            error["request_id"] = request_id
        return JSONResponse(status_code=exc.status_code, content={"error": error})
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload("HTTP_ERROR", str(detail), request_id),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort for failures in the ingress path itself; event handlers never get here."""
    request_id = _request_id(request)
    logger.exception("Unhandled error on %s %s (%s)", request.method, request.url.path, request_id)
    return JSONResponse(
        status_code=500,
        content=error_payload(getattr(exc, "code", "INTERNAL_ERROR"), "Internal server error", request_id),
    )
