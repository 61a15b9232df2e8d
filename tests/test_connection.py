import dataclasses

import pytest

from digest_bot.services.connection import (
    ConnectionManager,
    ConnectionState,
    DisconnectReason,
    InvalidTransition,
    ReconnectPolicy,
)


def test_starts_awaiting_pairing_and_connects() -> None:
    manager = ConnectionManager()
    assert manager.snapshot().state is ConnectionState.AWAITING_PAIRING

    assert manager.mark_connected("digest_bot") is True
    snapshot = manager.snapshot()
    assert snapshot.connected and snapshot.bot_username == "digest_bot"


def test_snapshot_is_immutable_and_detached() -> None:
    manager = ConnectionManager()
    before = manager.snapshot()
    manager.mark_connected()

    assert before.state is ConnectionState.AWAITING_PAIRING
    with pytest.raises(dataclasses.FrozenInstanceError):
        before.state = ConnectionState.CONNECTED  # type: ignore[misc]


def test_second_connection_is_not_first() -> None:
    manager = ConnectionManager()
    manager.mark_connected()
    manager.mark_disconnected(DisconnectReason.NETWORK_ERROR)
    manager.begin_reconnect()
    assert manager.mark_connected() is False


def test_invalid_transition_is_rejected() -> None:
    manager = ConnectionManager()
    with pytest.raises(InvalidTransition):
        manager.begin_reconnect()


def test_reconnect_backoff_until_policy_gives_up() -> None:
    manager = ConnectionManager(ReconnectPolicy(max_attempts=3, base_delay_seconds=5, max_delay_seconds=12))
    manager.mark_disconnected(DisconnectReason.CONFLICT)

    delays = []
    while (delay := manager.next_reconnect_delay()) is not None:
        delays.append(delay)
        manager.begin_reconnect()
        manager.mark_disconnected(DisconnectReason.NETWORK_ERROR)

    assert delays == [5, 10, 12]
    assert manager.snapshot().reconnect_attempts == 3


def test_unauthorized_and_shutdown_are_not_retried() -> None:
    for reason in (DisconnectReason.UNAUTHORIZED, DisconnectReason.SHUTDOWN):
        manager = ConnectionManager()
        manager.mark_disconnected(reason)
        assert manager.next_reconnect_delay() is None
