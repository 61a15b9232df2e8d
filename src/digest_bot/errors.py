from __future__ import annotations


class SummarizerError(RuntimeError):
    """Raised when a provider call cannot produce summary text."""


class DeliveryError(RuntimeError):
    def __init__(self, recipient: str, message: str) -> None:
        super().__init__(message)
        self.recipient = recipient


class ChannelUnauthorizedError(RuntimeError):
    """The messaging channel rejected our credentials."""


class ChannelConflictError(RuntimeError):
    """Another consumer is already polling updates for this bot."""
