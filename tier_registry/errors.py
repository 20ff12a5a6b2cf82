"""Exceptions raised by the risk tier registry."""

from __future__ import annotations


class TierRegistryError(Exception):
    """Base class for registry failures."""


class ValidationError(TierRegistryError, ValueError):
    """Raised when a score or tier argument is outside its domain."""


class AccessDeniedError(TierRegistryError, PermissionError):
    """Raised when a chosen tier change violates the risk gate."""


class StoreError(TierRegistryError):
    """Raised when the backing key-value store cannot be read or written."""
