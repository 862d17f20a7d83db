"""Email allowlist for dashboard principals."""

from __future__ import annotations

import logging
from typing import Iterable

logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """Raised when a principal is not on the allowlist."""


class EmailAllowlist:
    """Case-insensitive email allowlist. An empty list disables the check.

    Usage::

        allowlist = EmailAllowlist(settings.allowed_emails)
        allowlist.require(principal)  # raises PermissionDeniedError
    """

    def __init__(self, emails: Iterable[str] = ()) -> None:
        self._emails = frozenset(
            e.strip().lower() for e in emails if e and e.strip()
        )

    @property
    def enabled(self) -> bool:
        return bool(self._emails)

    def is_allowed(self, principal: str | None) -> bool:
        if not self.enabled:
            return True
        if not principal:
            return False
        return principal.strip().lower() in self._emails

    def require(self, principal: str | None) -> None:
        if not self.is_allowed(principal):
            logger.warning("Rejected principal not on the allowlist")
            raise PermissionDeniedError("Principal is not allowed to use this dashboard")

    def __len__(self) -> int:
        return len(self._emails)
