from __future__ import annotations

from typing import Any


class ApiError(RuntimeError):
    """Raised when the upstream workforce API cannot be reached or answers with an error."""

    def __init__(self, message: str, *, endpoint: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code

    def payload(self) -> dict[str, Any]:
        return {
            "error": "Upstream API request failed",
            "detail": str(self),
            "endpoint": self.endpoint,
            "status": self.status_code,
            "hint": "Check API_BASE_URL and that the attendance API is reachable",
        }


class ExportError(RuntimeError):
    """Raised when a spreadsheet or PDF document could not be produced."""
