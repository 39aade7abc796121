import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags each request with the GitHub delivery id, or a generated one."""

    async def dispatch(self, request: Request, call_next):
        request_id = (
            request.headers.get("X-GitHub-Delivery")
            or request.headers.get("X-Request-ID")
            or f"req_{uuid.uuid4().hex[:12]}"
        )
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
