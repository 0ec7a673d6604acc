"""Lockable resource identifiers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class ResourceIdentifier:
    """
    Identifies a single lockable resource.

    Examples:
        >>> ResourceIdentifier("Authenticator", "user-1:totp")
        >>> ResourceIdentifier("Authenticator", "user-1:sms", lock_mode="read")
    """

    resource_type: str
    resource_id: str  # Always a string so identifiers sort consistently
    lock_mode: Literal["read", "write"] = "write"

    def __lt__(self, other: ResourceIdentifier) -> bool:
        """Sort by (resource_type, resource_id) for deterministic acquisition."""
        return (self.resource_type, self.resource_id) < (
            other.resource_type,
            other.resource_id,
        )

    def __hash__(self) -> int:
        return hash((self.resource_type, self.resource_id, self.lock_mode))

    def __str__(self) -> str:
        mode = f":{self.lock_mode}" if self.lock_mode != "write" else ""
        return f"{self.resource_type}:{self.resource_id}{mode}"
