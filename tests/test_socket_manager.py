"""Tests for the SocketManager lifecycle controller."""

from __future__ import annotations

import asyncio

import pytest

from bazaar_realtime.domain.enums import ConnectionState, UserRole
from bazaar_realtime.domain.errors import ConnectionTimeoutError
from bazaar_realtime.services.socket_manager import SocketCallbacks, SocketManager
from bazaar_realtime.services.teardown import LatestActivationPolicy, ReferenceCountPolicy

from tests.fakes import FakeFactory, make_credentials

DELAY = 0.01


async def _after_grace() -> None:
    await asyncio.sleep(DELAY * 5)


def _manager(factory: FakeFactory, **kw) -> SocketManager:
    return SocketManager(factory, teardown_delay=DELAY, **kw)


class _Recorder:
    def __init__(self) -> None:
        self.events: list[tuple] = []

    def callbacks(self) -> SocketCallbacks:
        return SocketCallbacks(
            on_connect=lambda: self.events.append(("connect",)),
            on_disconnect=lambda reason: self.events.append(("disconnect", reason)),
            on_error=lambda error: self.events.append(("error", error)),
        )


class TestActivate:
    @pytest.mark.asyncio
    async def test_first_activation_creates_and_opens_connection(self, factory, credentials) -> None:
        manager = _manager(factory)
        activation = manager.activate(credentials)
        assert activation.sequence == 1
        assert activation.reused is False
        assert len(factory.created) == 1
        assert factory.created[0].opened
        assert manager.get_handle() is activation.connection
        assert manager.state == ConnectionState.CONNECTING

    @pytest.mark.asyncio
    async def test_sequence_numbers_strictly_increase(self, factory, credentials) -> None:
        manager = _manager(factory)
        seqs = [manager.activate(credentials).sequence for _ in range(4)]
        assert seqs == [1, 2, 3, 4]
        assert manager.latest_sequence == 4

    @pytest.mark.asyncio
    async def test_reuses_connected_socket_and_fires_on_connect_synchronously(self, factory, credentials) -> None:
        manager = _manager(factory)
        first = manager.activate(credentials)
        first.connection.simulate_connect()

        rec = _Recorder()
        second = manager.activate(credentials, rec.callbacks())
        assert rec.events == [("connect",)]
        assert second.reused is True
        assert second.connection is first.connection
        assert len(factory.created) == 1

    @pytest.mark.asyncio
    async def test_repeated_activations_build_one_connection(self, factory, credentials) -> None:
        manager = _manager(factory)
        manager.activate(credentials).connection.simulate_connect()
        for _ in range(10):
            manager.activate(credentials)
        assert len(factory.created) == 1

    @pytest.mark.asyncio
    async def test_disconnected_socket_is_discarded_and_replaced(self, factory, credentials) -> None:
        manager = _manager(factory)
        stale = manager.activate(credentials).connection
        stale.simulate_connect()
        stale.simulate_drop()

        fresh = manager.activate(credentials).connection
        assert fresh is not stale
        assert stale.disconnect_calls == 1
        assert stale.state == ConnectionState.TERMINATED
        assert manager.get_handle() is fresh

    @pytest.mark.asyncio
    async def test_still_connecting_socket_is_replaced(self, factory, credentials) -> None:
        manager = _manager(factory)
        pending = manager.activate(credentials).connection
        fresh = manager.activate(credentials).connection
        assert fresh is not pending
        assert pending.terminated
        assert len(factory.created) == 2

    @pytest.mark.asyncio
    async def test_callbacks_are_relayed(self, factory, credentials) -> None:
        manager = _manager(factory)
        rec = _Recorder()
        conn = manager.activate(credentials, rec.callbacks()).connection
        error = ConnectionTimeoutError(20000)

        conn.simulate_error(error)
        conn.simulate_connect()
        conn.simulate_drop("transport close")

        assert rec.events == [("error", error), ("connect",), ("disconnect", "transport close")]

    @pytest.mark.asyncio
    async def test_activate_without_callbacks(self, factory, credentials) -> None:
        manager = _manager(factory)
        conn = manager.activate(credentials).connection
        conn.simulate_connect()
        conn.simulate_drop()
        assert manager.state == ConnectionState.DISCONNECTED


class TestIdentityOnReuse:
    @pytest.mark.asyncio
    async def test_different_user_replaces_connection(self, factory) -> None:
        manager = _manager(factory)
        old = manager.activate(make_credentials(user_id="cust-1")).connection
        old.simulate_connect()

        activation = manager.activate(make_credentials(user_id="cust-2", token="tok-2"))
        assert activation.reused is False
        assert old.terminated
        assert activation.connection.credentials.user_id == "cust-2"

    @pytest.mark.asyncio
    async def test_role_switch_replaces_connection(self, factory) -> None:
        manager = _manager(factory)
        manager.activate(make_credentials(role=UserRole.CUSTOMER)).connection.simulate_connect()
        activation = manager.activate(make_credentials(role=UserRole.SELLER))
        assert activation.reused is False
        assert len(factory.created) == 2

    @pytest.mark.asyncio
    async def test_token_refresh_for_same_account_reuses_connection(self, factory) -> None:
        manager = _manager(factory)
        first = manager.activate(make_credentials(token="tok-1")).connection
        first.simulate_connect()

        activation = manager.activate(make_credentials(token="tok-2"))
        assert activation.reused is True
        assert activation.connection is first
        assert not first.terminated
        assert len(factory.created) == 1

    @pytest.mark.asyncio
    async def test_silent_reuse_when_verification_disabled(self, factory) -> None:
        manager = _manager(factory, verify_identity=False)
        first = manager.activate(make_credentials(user_id="cust-1")).connection
        first.simulate_connect()

        activation = manager.activate(make_credentials(user_id="cust-2"))
        assert activation.reused is True
        assert activation.connection is first


class TestDeactivate:
    @pytest.mark.asyncio
    async def test_latest_deactivation_tears_down_after_delay(self, factory, credentials) -> None:
        manager = _manager(factory)
        activation = manager.activate(credentials)
        activation.connection.simulate_connect()

        manager.deactivate(activation.sequence)
        assert manager.get_handle() is activation.connection

        await _after_grace()
        assert manager.get_handle() is None
        assert activation.connection.terminated
        assert manager.state == ConnectionState.NO_CONNECTION

    @pytest.mark.asyncio
    async def test_stale_deactivation_keeps_connection(self, factory, credentials) -> None:
        manager = _manager(factory)
        a = manager.activate(credentials)
        a.connection.simulate_connect()
        b = manager.activate(credentials)

        manager.deactivate(a.sequence)
        await _after_grace()
        assert manager.get_handle() is a.connection
        assert not a.connection.terminated
        assert b.sequence == 2

    @pytest.mark.asyncio
    async def test_two_mounts_then_two_unmounts(self, factory, credentials) -> None:
        manager = _manager(factory)
        rec = _Recorder()
        a = manager.activate(credentials, rec.callbacks())
        a.connection.simulate_connect()
        b = manager.activate(credentials)
        assert b.connection is a.connection
        assert len(factory.created) == 1

        manager.deactivate(a.sequence)
        await _after_grace()
        assert manager.get_handle() is a.connection

        manager.deactivate(b.sequence)
        await _after_grace()
        assert manager.get_handle() is None
        assert rec.events[-1] == ("disconnect", "io client disconnect")

    @pytest.mark.asyncio
    async def test_remount_within_grace_window_keeps_connection(self, factory, credentials) -> None:
        manager = _manager(factory)
        first = manager.activate(credentials)
        first.connection.simulate_connect()

        manager.deactivate(first.sequence)
        second = manager.activate(credentials)
        await _after_grace()

        assert second.reused is True
        assert manager.get_handle() is first.connection
        assert first.connection.disconnect_calls == 0

    @pytest.mark.asyncio
    async def test_deactivate_with_nothing_held_is_harmless(self, factory, credentials) -> None:
        manager = _manager(factory)
        activation = manager.activate(credentials)
        manager.force_disconnect()
        manager.deactivate(activation.sequence)
        await _after_grace()
        assert manager.get_handle() is None

    @pytest.mark.asyncio
    async def test_reference_count_policy_waits_for_every_consumer(self, factory, credentials) -> None:
        manager = _manager(factory, policy=ReferenceCountPolicy())
        a = manager.activate(credentials)
        a.connection.simulate_connect()
        b = manager.activate(credentials)

        manager.deactivate(b.sequence)
        await _after_grace()
        assert manager.get_handle() is a.connection

        manager.deactivate(a.sequence)
        await _after_grace()
        assert manager.get_handle() is None


class TestForceDisconnect:
    @pytest.mark.asyncio
    async def test_clears_holder_and_resets_counter(self, factory, credentials) -> None:
        manager = _manager(factory)
        conn = manager.activate(credentials).connection
        conn.simulate_connect()
        manager.activate(credentials)

        manager.force_disconnect()
        assert manager.get_handle() is None
        assert conn.terminated
        assert manager.latest_sequence == 0
        assert manager.activate(credentials).sequence == 1

    @pytest.mark.asyncio
    async def test_without_connection_is_a_noop(self, factory) -> None:
        manager = _manager(factory)
        manager.force_disconnect()
        assert manager.get_handle() is None
        assert manager.state == ConnectionState.NO_CONNECTION

    @pytest.mark.asyncio
    async def test_terminates_connection_still_connecting(self, factory, credentials) -> None:
        manager = _manager(factory)
        conn = manager.activate(credentials).connection
        manager.force_disconnect()
        assert conn.state == ConnectionState.TERMINATED

    @pytest.mark.asyncio
    async def test_pending_teardown_cannot_close_later_connection(self, factory, credentials) -> None:
        manager = _manager(factory)
        old = manager.activate(credentials)
        old.connection.simulate_connect()
        manager.deactivate(old.sequence)

        manager.force_disconnect()
        new = manager.activate(credentials)
        assert new.sequence == old.sequence == 1

        await _after_grace()
        assert manager.get_handle() is new.connection
        assert not new.connection.terminated


    @pytest.mark.asyncio
    @pytest.mark.parametrize("policy_cls", [LatestActivationPolicy, ReferenceCountPolicy])
    async def test_unmount_from_before_logout_spares_new_consumer(self, factory, credentials, policy_cls) -> None:
        manager = _manager(factory, policy=policy_cls())
        old = manager.activate(credentials)
        old.connection.simulate_connect()

        manager.force_disconnect()
        new = manager.activate(credentials)
        new.connection.simulate_connect()
        assert new.sequence == old.sequence
        assert new.epoch != old.epoch

        manager.deactivate(old.sequence, old.epoch)
        await _after_grace()
        assert manager.get_handle() is new.connection
        assert not new.connection.terminated

        manager.deactivate(new.sequence, new.epoch)
        await _after_grace()
        assert manager.get_handle() is None


class TestMounted:
    @pytest.mark.asyncio
    async def test_context_manager_pairs_activate_and_deactivate(self, factory, credentials) -> None:
        manager = _manager(factory)
        async with manager.mounted(credentials) as conn:
            conn.simulate_connect()
            assert manager.get_handle() is conn
        await _after_grace()
        assert manager.get_handle() is None

    @pytest.mark.asyncio
    async def test_nested_mounts_share_one_connection(self, factory, credentials) -> None:
        manager = _manager(factory)
        async with manager.mounted(credentials) as outer:
            outer.simulate_connect()
            async with manager.mounted(credentials) as inner:
                assert inner is outer
        await _after_grace()
        assert len(factory.created) == 1


def test_negative_teardown_delay_rejected(factory) -> None:
    with pytest.raises(ValueError):
        SocketManager(factory, teardown_delay=-1)
