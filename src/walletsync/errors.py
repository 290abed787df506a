"""
Error taxonomy for engine access and reconciliation.
"""

from __future__ import annotations


class WalletSyncError(Exception):
    """Base class for all walletsync errors."""


class EngineCallFailure(WalletSyncError):
    """The engine gateway call itself raised."""

    def __init__(self, command: str, message: str):
        self.command = command
        self.message = message
        super().__init__(f"Engine command '{command}' failed: {message}")


class MalformedResponse(WalletSyncError):
    """A response expected to be well-formed failed JSON parsing or schema validation."""

    def __init__(self, command: str, message: str):
        self.command = command
        self.message = message
        super().__init__(f"Malformed response to '{command}': {message}")


class ReconciliationError(WalletSyncError):
    """Engine data is internally inconsistent (e.g. a note references an unknown address)."""


class SendFailed(WalletSyncError):
    """The engine reported a send failure. The message is the engine's, verbatim."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
