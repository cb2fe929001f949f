"""
Domain error taxonomy shared by the managers, the persistence layer and the routers
"""
from fastapi import HTTPException, status
from typing import Optional


class MarketplaceError(Exception):
    """Base class for every error the marketplace core raises on purpose"""

    code = "marketplace_error"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, detail: str, retryable: Optional[bool] = None):
        super().__init__(detail)
        self.detail = detail
        if retryable is not None:
            self.retryable = retryable

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.detail)


class NotFoundError(MarketplaceError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class AlreadyMemberError(MarketplaceError):
    code = "already_member"
    status_code = status.HTTP_409_CONFLICT


class GroupFullError(MarketplaceError):
    code = "group_full"
    status_code = status.HTTP_409_CONFLICT


class InsufficientQuantityError(MarketplaceError):
    code = "insufficient_quantity"
    status_code = status.HTTP_409_CONFLICT


class InvalidTransitionError(MarketplaceError):
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class ConflictError(MarketplaceError):
    """Optimistic concurrency miss or duplicate identifier"""

    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    retryable = True


class PersistenceError(MarketplaceError):
    code = "persistence_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


class ValidationError(MarketplaceError):
    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PermissionDeniedError(MarketplaceError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN
