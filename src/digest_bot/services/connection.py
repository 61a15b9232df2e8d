from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    AWAITING_PAIRING = "awaiting-pairing"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class DisconnectReason(str, Enum):
    NETWORK_ERROR = "network-error"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class ConnectionSnapshot:
    state: ConnectionState
    since: datetime
    reason: DisconnectReason | None = None
    bot_username: str | None = None
    reconnect_attempts: int = 0

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED


@dataclass(frozen=True)
class ReconnectPolicy:
    max_attempts: int = 5
    base_delay_seconds: float = 5.0
    max_delay_seconds: float = 300.0
    retryable: frozenset[DisconnectReason] = frozenset(
        {DisconnectReason.NETWORK_ERROR, DisconnectReason.CONFLICT}
    )

    def should_reconnect(self, reason: DisconnectReason, attempts: int) -> bool:
        return reason in self.retryable and attempts < self.max_attempts

    def delay_for(self, attempt: int) -> float:
        """Exponential backoff for the 1-based ``attempt``."""
        return min(self.base_delay_seconds * (2 ** max(attempt - 1, 0)), self.max_delay_seconds)


class InvalidTransition(RuntimeError):
    pass


_ALLOWED: dict[ConnectionState, set[ConnectionState]] = {
    ConnectionState.AWAITING_PAIRING: {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED},
    ConnectionState.CONNECTED: {ConnectionState.DISCONNECTED},
    ConnectionState.DISCONNECTED: {ConnectionState.AWAITING_PAIRING},
}


class ConnectionManager:
    """Owns the channel connection state; everyone else reads snapshots."""

    def __init__(self, policy: ReconnectPolicy | None = None) -> None:
        self.policy = policy or ReconnectPolicy()
        self._snapshot = ConnectionSnapshot(state=ConnectionState.AWAITING_PAIRING, since=_now())
        self._ever_connected = False

    def snapshot(self) -> ConnectionSnapshot:
        return self._snapshot

    @property
    def ever_connected(self) -> bool:
        return self._ever_connected

    def _transition(self, state: ConnectionState, **changes: object) -> ConnectionSnapshot:
        current = self._snapshot
        if state not in _ALLOWED[current.state]:
            raise InvalidTransition(f"{current.state.value} -> {state.value}")
        fields = {
            "state": state,
            "since": _now(),
            "reason": None,
            "bot_username": current.bot_username,
            "reconnect_attempts": current.reconnect_attempts,
        }
        fields.update(changes)
        self._snapshot = ConnectionSnapshot(**fields)  # type: ignore[arg-type]
        logger.info("Channel connection: %s -> %s", current.state.value, state.value)
        return self._snapshot

    def mark_connected(self, bot_username: str | None = None) -> bool:
        """Returns True on the first successful connection of this process."""
        self._transition(ConnectionState.CONNECTED, bot_username=bot_username, reconnect_attempts=0)
        first = not self._ever_connected
        self._ever_connected = True
        return first

    def mark_disconnected(self, reason: DisconnectReason) -> ConnectionSnapshot:
        logger.warning("Channel disconnected: %s", reason.value)
        return self._transition(ConnectionState.DISCONNECTED, reason=reason)

    def next_reconnect_delay(self) -> float | None:
        """Delay before the next attempt, or None when the policy gives up."""
        current = self._snapshot
        if current.state is not ConnectionState.DISCONNECTED or current.reason is None:
            return None
        if not self.policy.should_reconnect(current.reason, current.reconnect_attempts):
            return None
        return self.policy.delay_for(current.reconnect_attempts + 1)

    def begin_reconnect(self) -> ConnectionSnapshot:
        attempts = self._snapshot.reconnect_attempts + 1
        return self._transition(ConnectionState.AWAITING_PAIRING, reconnect_attempts=attempts)


def _now() -> datetime:
    return datetime.now(timezone.utc)
