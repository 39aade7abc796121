from .error_handler import error_payload, http_exception_handler, unhandled_exception_handler
from .request_id import RequestIDMiddleware

__all__ = [
    "RequestIDMiddleware",
    "error_payload",
    "http_exception_handler",
    "unhandled_exception_handler",
]
