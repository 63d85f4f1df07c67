"""Workflow exceptions. Each carries the identifying context of where it was raised."""

from __future__ import annotations


class SnapdiffError(Exception):
    """Base exception for all screenshot workflow errors."""

    def __init__(self, message: str, context: dict | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if not self.context:
            return self.message
        context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} [{context_str}]"


class ConfigurationError(SnapdiffError):
    """Raised when operator input (diff base, patterns) cannot be resolved."""


class TransportError(SnapdiffError):
    """Raised when a storage, capture, download or comparison call fails mid-batch."""


class DataIntegrityError(SnapdiffError):
    """Raised when a report references pages or browsers the target manifest does not have."""
