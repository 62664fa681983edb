"""Error taxonomy raised by the services and rendered by FastAPI as {"detail": ...}."""

from typing import Dict, Optional

from fastapi import HTTPException


class ServiceError(HTTPException):
    status_code = 500
    default_detail = "Internal server error"
    headers: Optional[Dict[str, str]] = None

    def __init__(self, detail: Optional[str] = None):
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
            headers=dict(type(self).headers) if type(self).headers else None,
        )


class InvalidInput(ServiceError):
    status_code = 400
    default_detail = "Invalid request"


class Unauthenticated(ServiceError):
    status_code = 401
    default_detail = "You are not authenticated!"
    headers = {"WWW-Authenticate": "Bearer"}


class Forbidden(ServiceError):
    status_code = 403
    default_detail = "Forbidden"


class NotFound(ServiceError):
    status_code = 404
    default_detail = "Not found"


class Conflict(ServiceError):
    status_code = 409
    default_detail = "Conflict"


class Internal(ServiceError):
    pass
