"""Custom exception hierarchy for the token store."""

from __future__ import annotations


class TokenStoreError(Exception):
    """Base exception for token persistence failures."""


class ConfigurationError(TokenStoreError):
    """Raised when the backing store location is missing or the pool is misconfigured."""


class StoreConnectionError(TokenStoreError, ConnectionError):
    """Raised when no connection can be obtained or a statement times out."""


class SchemaError(TokenStoreError):
    """Raised when the token table cannot be created."""


class InvalidArgumentError(TokenStoreError, ValueError):
    """Raised when ``store()`` receives malformed input."""


class DataAccessError(TokenStoreError):
    """Raised when a backing store call fails for any other reason."""


class AuthorizationRequiredError(TokenStoreError):
    """Raised when no usable tokens remain and a fresh sign-in is needed."""


__all__ = [
    "TokenStoreError",
    "ConfigurationError",
    "StoreConnectionError",
    "SchemaError",
    "InvalidArgumentError",
    "DataAccessError",
    "AuthorizationRequiredError",
]
