"""Error taxonomy shared by the cache, fetcher, loader and API client."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    CONTENT_NOT_FOUND = "CONTENT_NOT_FOUND"
    COUNTRY_NOT_FOUND = "COUNTRY_NOT_FOUND"
    NETWORK_ERROR = "NETWORK_ERROR"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    CONTENT_LOAD_FAILED = "CONTENT_LOAD_FAILED"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_INPUT = "INVALID_INPUT"
    REQUEST_FAILED = "REQUEST_FAILED"


class TravelGuideError(Exception):
    """Structured error raised across component boundaries.

    ``recoverable`` tells the caller whether a user-initiated retry can
    succeed. Nothing in the package retries automatically.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str = "",
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }

    def __repr__(self) -> str:
        return f"TravelGuideError(code={self.code.value!r}, message={self.message!r})"
