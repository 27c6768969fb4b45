"""Admin session lifecycle.

A session exists only after the backend accepted a login. It is invalidated
on logout or as soon as a privileged call comes back 401, and every
privileged call is still checked by the server: holding a session object is
never treated as proof of admin rights on its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from travelguide.errors import ErrorCode, TravelGuideError

log = structlog.get_logger()


@dataclass
class AdminSession:
    token: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    invalidated_at: datetime | None = None
    invalidation_reason: str | None = None

    @property
    def active(self) -> bool:
        return self.invalidated_at is None

    def authorization_header(self) -> dict[str, str]:
        """Bearer header for a privileged request; raises once invalidated."""
        if not self.active:
            raise TravelGuideError(
                code=ErrorCode.UNAUTHORIZED,
                message="Admin session is no longer valid",
                suggestion="Log in again.",
                recoverable=False,
            )
        return {"Authorization": f"Bearer {self.token}"}

    def invalidate(self, reason: str) -> None:
        if not self.active:
            return
        self.invalidated_at = datetime.now(UTC)
        self.invalidation_reason = reason
        log.info("admin_session_invalidated", reason=reason)

    def __repr__(self) -> str:
        # Keep the secret out of logs and tracebacks
        return f"AdminSession(active={self.active}, created_at={self.created_at.isoformat()})"
