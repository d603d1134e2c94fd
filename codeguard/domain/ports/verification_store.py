from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol


class VerificationStorePort(Protocol):
    """
    Key-value backend for verification state.

    Every method touches exactly one key. Failures surface as
    codeguard.domain.errors.StoreUnavailable; missing keys are not errors.
    """

    async def ping(self) -> bool:
        """True if the backend answers."""

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store/replace a scalar that expires after ttl_seconds."""

    async def get(self, key: str) -> Optional[str]:
        """Scalar value, or None if absent or expired."""

    async def delete_if_equals(self, key: str, expected: str) -> bool:
        """True if the key held `expected` (and was then deleted), else False."""

    async def ttl_remaining(self, key: str) -> int:
        """Remaining lifetime in seconds; 0 if absent, expired or without expiry."""

    async def increment(self, key: str) -> int:
        """Atomically add 1 to an integer counter (absent counts as 0)."""

    async def expire_at(self, key: str, when: datetime) -> None:
        """Make the key expire at an absolute point in time."""

    async def set_add(self, key: str, member: str) -> None:
        """Add a member to a set."""

    async def set_remove(self, key: str, member: str) -> None:
        """Remove a member from a set."""

    async def set_cardinality(self, key: str) -> int:
        """Number of members in a set; 0 if absent."""
