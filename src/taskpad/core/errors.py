# src/taskpad/core/errors.py

from __future__ import annotations

"""
Gateway error taxonomy.

Gateways raise these; the session store and the reconciler catch them at their
boundary, so nothing here ever reaches the console loop as an uncaught failure.
"""


class GatewayError(Exception):
    """Base class for failures reported by a Gateway implementation."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"{self.message} (HTTP {self.status})"


class AuthError(GatewayError):
    """Bad credentials, expired session or transport failure during auth."""


class DataError(GatewayError):
    """Failed list/create/update/delete against the task collection."""
