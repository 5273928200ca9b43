"""
shared/exceptions.py
Domain errors, classified by their effect on the caller.
All of them are HTTPExceptions so FastAPI renders them as {"detail": ...}.
"""

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Missing or malformed input. Nothing is written."""

    def __init__(self, detail: str = "Invalid input"):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class AuthError(HTTPException):
    """Bad credentials or token. No session is established."""

    def __init__(self, detail: str = "Invalid email or password"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(HTTPException):
    """Authenticated, but the role or approval status does not allow the action."""

    def __init__(self, detail: str = "Not authorized"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(HTTPException):
    """Illegal state transition or a concurrent write got there first."""

    def __init__(self, detail: str = "Conflicting update"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class RemoteError(HTTPException):
    """Persistence layer failure. The message is deliberately generic."""

    def __init__(self, detail: str = "Service temporarily unavailable. Please try again later."):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
