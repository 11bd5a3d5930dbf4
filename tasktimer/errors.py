"""Error taxonomy shared by the tasktimer core and its boundary layer."""
from __future__ import annotations

from typing import Dict, List, Optional


class TrackerError(Exception):
    """Base class for failures reported to the caller with a stable message."""

    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TrackerError):
    """Missing or invalid input; carries a list of ``{field, message}`` errors."""

    status = 400

    def __init__(self, errors: List[Dict[str, str]]) -> None:
        super().__init__("; ".join(err["message"] for err in errors))
        self.errors = errors

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}])


class NotFound(TrackerError):
    """The entity does not exist or belongs to somebody else."""

    status = 404


class Conflict(TrackerError):
    """The requested timer transition is not allowed in the current state."""

    status = 400


class ServerError(TrackerError):
    status = 500

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or "Server error")
