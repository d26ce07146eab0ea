"""Shared exception types for the dip-accumulation engine."""

from typing import Optional


class DipBuyerError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(DipBuyerError):
    """Raised when the configuration is missing or invalid. Fatal at startup."""


class ExchangeError(DipBuyerError):
    """Raised when an exchange call fails. Transient: skip the operation this cycle."""

    def __init__(self, operation: str, original: Optional[Exception] = None):
        message = operation if original is None else f"{operation}: {original}"
        super().__init__(message)
        self.operation = operation
        self.original = original


class PositionStoreError(DipBuyerError):
    """Raised when the persistent position store cannot complete a read or write."""
