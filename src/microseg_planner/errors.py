"""Error taxonomy shared by the planner, client and outer surfaces."""

from __future__ import annotations

from typing import Any


class MicrosegError(Exception):
    """Base class for all planner errors."""


class ValidationError(MicrosegError):
    """A local pre-flight check failed. Never reaches the backend."""


class TransportError(MicrosegError):
    """Calling the firewall backend failed. Safe to retry."""

    def __init__(
        self,
        operation: str,
        target: str,
        message: str = "",
        status_code: int | None = None,
    ):
        self.operation = operation
        self.target = target
        self.message = message
        self.status_code = status_code
        detail = f"{operation} failed for {target}"
        if status_code is not None:
            detail += f" (HTTP {status_code})"
        if message:
            detail += f": {message}"
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "transport_error",
            "operation": self.operation,
            "target": self.target,
            "status_code": self.status_code,
            "message": self.message,
        }


class PartialApplyError(MicrosegError):
    """
    Generation finished with per-item errors.

    Items created before the failures stand; re-analyze to see the
    resulting state.
    """

    def __init__(self, connection_id: str, result: Any):
        self.connection_id = connection_id
        self.result = result
        super().__init__(
            f"generate-base partially applied on {connection_id}: "
            f"{len(result.errors)} error(s)"
        )
