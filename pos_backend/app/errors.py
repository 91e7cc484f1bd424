"""Error kinds raised by the service layer and mapped to HTTP at the routes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class ServiceError(Exception):
    """Base class for actionable failures surfaced to API callers."""

    message: str
    detail: Optional[Mapping[str, Any]] = None

    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class InputInvalid(ServiceError):
    code = "input_invalid"
    status_code = status.HTTP_400_BAD_REQUEST


class NotAuthorized(ServiceError):
    code = "not_authorized"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ServiceError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class CapExceeded(ServiceError):
    code = "cap_exceeded"
    status_code = status.HTTP_403_FORBIDDEN


class AcceptInvalid(ServiceError):
    code = "accept_invalid"
    status_code = status.HTTP_400_BAD_REQUEST


class Conflict(ServiceError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class InternalError(ServiceError):
    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


__all__ = [
    "AcceptInvalid",
    "CapExceeded",
    "Conflict",
    "InputInvalid",
    "InternalError",
    "NotAuthorized",
    "NotFound",
    "ServiceError",
]
