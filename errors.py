"""
Domain errors raised by the service modules.

Each error carries the HTTP status it maps to; ``main.py`` renders them as
``{"detail": message}`` so clients see the same body shape as FastAPI's
``HTTPException``.
"""

from typing import Optional


class ServiceError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(ServiceError):
    status_code = 400
    default_message = "Bad request"


class Unauthorized(ServiceError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class QuotaExceeded(ServiceError):
    status_code = 429
    default_message = "Daily message limit reached. Upgrade your plan for more messages."


class UpstreamError(ServiceError):
    status_code = 502
    default_message = "Upstream service error"
