"""Caller identity and role capabilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# editors may publish but are not admins
PUBLISHER_ROLES = frozenset({"owner", "admin", "developer", "editor"})


def is_publisher_role(role: Optional[str]) -> bool:
    return bool(role) and role in PUBLISHER_ROLES


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller as resolved from the request."""

    user_id: str
    role: Optional[str] = None

    @property
    def is_publisher(self) -> bool:
        return is_publisher_role(self.role)
