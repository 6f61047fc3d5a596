"""
core/errors.py -- HTTP error taxonomy shared by auth/ and the API routes.

Each class is an HTTPException carrying the structured detail dict that the
api/main.py handler renders as {"error": {"code": ..., "message": ...}}.
Raising the named class instead of a bare HTTPException(status_code=...)
keeps status codes and error codes consistent across routes.

  Unauthenticated  401  no principal, invalid token, or stale session
  Forbidden        403  authenticated but lacking the required role
  Conflict         409  self-targeting on a destructive user operation
  NotFound         404  target record absent

Layer rule: core/ is the kernel. No imports from api/, auth/ or catalog/.
"""

from __future__ import annotations

from fastapi import HTTPException


class ApiError(HTTPException):
    status_code_default = 500
    code_default = "internal_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        self.code = code or self.code_default
        self.message = message
        super().__init__(
            status_code=self.status_code_default,
            detail={"code": self.code, "message": message},
        )


class Unauthenticated(ApiError):
    """No valid principal on the request.

    expire_session=True asks the exception handler to expire the session
    cookie on the 401 response. Used when a cryptographically valid token
    names a user who no longer exists, so the client stops sending it.
    """

    status_code_default = 401
    code_default = "unauthorized"

    def __init__(self, message: str, code: str | None = None, expire_session: bool = False) -> None:
        super().__init__(message, code)
        self.expire_session = expire_session


class Forbidden(ApiError):
    status_code_default = 403
    code_default = "forbidden"


class Conflict(ApiError):
    status_code_default = 409
    code_default = "conflict"


class NotFound(ApiError):
    status_code_default = 404
    code_default = "not_found"
