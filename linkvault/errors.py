from fastapi import Request, status
from fastapi.responses import JSONResponse


class ServiceError(Exception):
    """Base class for failures that carry a machine-readable code.

    Routers let these propagate; the handler registered in ``main`` turns them
    into ``{"detail": code}`` responses with the matching status.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    code = "BAD_REQUEST"

    def __init__(self, code: str | None = None, status_code: int | None = None):
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.code)


class ValidationFailed(ServiceError):
    pass


class ExpiredOrInvalid(ServiceError):
    # missing, expired and exhausted all look the same to the caller
    status_code = status.HTTP_403_FORBIDDEN
    code = "EXPIRED_OR_INVALID"


class InvalidPassword(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "INVALID_PASSWORD"


class NotAFile(ServiceError):
    code = "NOT_A_FILE"


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class AuthError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.code}, headers=headers)
