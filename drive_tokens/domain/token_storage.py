"""Domain-level protocol for persisting OAuth tokens."""

from __future__ import annotations

from typing import Optional, Protocol

from drive_tokens.domain.entities import TokenPair


class TokenRepository(Protocol):
    """Abstraction for persisting the access/refresh token pair."""

    def get(self, *, timeout: Optional[float] = None) -> TokenPair:
        """Return the live tokens; absent or expired values come back as ``None``."""

    def store(
        self,
        access_token: str,
        access_token_expiry: int,
        refresh_token: str,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        """Persist both tokens atomically; the access token expires after ``access_token_expiry`` seconds."""


__all__ = ["TokenRepository"]
