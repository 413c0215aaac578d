"""Read-through access token flow for callers of the remote drive API."""

from __future__ import annotations

from typing import Callable, Optional

from drive_tokens.application.exceptions import AuthorizationRequiredError
from drive_tokens.domain.entities import TokenGrant, TokenPair
from drive_tokens.domain.token_storage import TokenRepository
from drive_tokens.infrastructure import log_utils

Refresher = Callable[[str], TokenGrant]


class TokenService:
    """Hands out a usable access token, refreshing through ``refresher`` when needed.

    The refresher talks to the identity provider; this service only decides
    when to call it and persists what it returns.
    """

    def __init__(self, repository: TokenRepository, refresher: Optional[Refresher] = None) -> None:
        self._repository = repository
        self._refresher = refresher

    def current(self) -> TokenPair:
        return self._repository.get()

    def save_grant(self, grant: TokenGrant) -> None:
        self._repository.store(grant.access_token, grant.expires_in, grant.refresh_token)

    def access_token(self) -> str:
        tokens = self._repository.get()
        if tokens.access_token:
            return tokens.access_token

        if not tokens.refresh_token:
            raise AuthorizationRequiredError("No stored tokens; sign in again.")
        if self._refresher is None:
            raise AuthorizationRequiredError("Access token expired and no refresher is configured.")

        log_utils.info("Access token missing or expired; refreshing.")
        grant = self._refresher(tokens.refresh_token)
        self.save_grant(grant)
        return grant.access_token


__all__ = ["Refresher", "TokenService"]
