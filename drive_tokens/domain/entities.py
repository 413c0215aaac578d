"""Value types shared by the token store layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

ACCESS_TOKEN_SUFFIX = "access_token"
REFRESH_TOKEN_SUFFIX = "refresh_token"


def token_keys(prefix: str) -> Tuple[str, str]:
    """Return the ``(access, refresh)`` keys for a namespace prefix."""
    return f"{prefix}{ACCESS_TOKEN_SUFFIX}", f"{prefix}{REFRESH_TOKEN_SUFFIX}"


@dataclass(frozen=True)
class TokenRecord:
    """One persisted row. ``expires_at`` is ``None`` for records that never expire."""

    key: str
    value: str
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class TokenPair:
    """Current token values; either side is ``None`` when absent or expired."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.access_token is None and self.refresh_token is None


@dataclass(frozen=True)
class TokenGrant:
    """Token material handed back by the identity provider after a sign-in or refresh."""

    access_token: str
    expires_in: int
    refresh_token: str


__all__ = [
    "ACCESS_TOKEN_SUFFIX",
    "REFRESH_TOKEN_SUFFIX",
    "TokenGrant",
    "TokenPair",
    "TokenRecord",
    "token_keys",
]
