from typing import Any, List, Optional
from uuid import UUID

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    kind = "error"

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def detail(self) -> Any:
        return self.message


class NotFoundError(ServiceError):
    """Class, structure, version or student is absent or soft-deleted."""

    kind = "not_found"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(ServiceError):
    """A live fee structure already exists for (class, academic year), or a concurrent write won."""

    kind = "conflict"

    def __init__(self, message: str, conflicting_class_ids: Optional[List[UUID]] = None) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)
        self.conflicting_class_ids = list(conflicting_class_ids or [])

    @property
    def detail(self) -> Any:
        if not self.conflicting_class_ids:
            return self.message
        return {
            "message": self.message,
            "conflicting_class_ids": [str(c) for c in self.conflicting_class_ids],
        }


class ValidationError(ServiceError):
    """Request is well-formed but cannot be acted on (no target class, missing date range)."""

    kind = "validation"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)
