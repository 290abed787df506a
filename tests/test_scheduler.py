"""
Tests for the sync scheduler state machine.
"""

from __future__ import annotations

import asyncio

import pytest

from tests.conftest import FakeGateway, sequence
from walletsync.engine.client import EngineClient
from walletsync.models import WalletInfo
from walletsync.scheduler import SyncSession, SyncState, SyncWaitOutcome
from walletsync.sink import RecordingStateSink


class TestFastPolling:
    @pytest.mark.asyncio
    async def test_first_poll_fetches_everything(
        self, session: SyncSession, gateway: FakeGateway, sink: RecordingStateSink
    ):
        assert await session.update_data() is True

        assert session.last_txid == "tx5"
        assert session.last_block_height == 120
        assert session.state == SyncState.IDLE
        assert sink.info is not None
        assert sink.balance is not None
        assert sink.balance.total == 4.25
        assert len(sink.transactions) == 3
        assert sink.price == 42.5
        assert sink.settings is not None
        assert sink.settings.download_memos == "wallet"
        assert sink.settings.transaction_filter_threshold == 20
        # Fast polls never trigger an engine sync
        assert gateway.count("sync") == 0

    @pytest.mark.asyncio
    async def test_unchanged_fingerprint_does_nothing(
        self, session: SyncSession, gateway: FakeGateway
    ):
        await session.update_data()
        gateway.calls.clear()

        assert await session.update_data() is False
        assert gateway.commands() == ["list"]

    @pytest.mark.asyncio
    async def test_changed_fingerprint_refetches(
        self, session: SyncSession, gateway: FakeGateway, sample_transactions
    ):
        await session.update_data()
        gateway.responses["list"] = sample_transactions + [
            {"txid": "tx6", "amount": 1, "address": "u1alpha", "unconfirmed": True}
        ]

        assert await session.update_data() is True
        assert session.last_txid == "tx6"

    @pytest.mark.asyncio
    async def test_skipped_while_pass_in_flight(self, session: SyncSession, gateway: FakeGateway):
        async with session._update_lock:
            assert session.update_in_progress is True
            assert await session.update_data() is False
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_failed_pass_keeps_fingerprint(self, session: SyncSession, gateway: FakeGateway):
        gateway.responses["balance"] = RuntimeError("engine down")
        with pytest.raises(Exception, match="engine down"):
            await session.update_data()
        assert session.last_txid is None
        assert session.update_in_progress is False
        assert session.state == SyncState.IDLE


class TestFullRefresh:
    @pytest.mark.asyncio
    async def test_forced_refresh_syncs_and_saves(
        self, session: SyncSession, gateway: FakeGateway, sink: RecordingStateSink
    ):
        result = await session.refresh(full_refresh=True)

        assert result is not None
        assert result.outcome == SyncWaitOutcome.REACHED_TARGET
        assert result.attempts == 1
        assert session.last_block_height == 120
        commands = gateway.commands()
        assert commands.index("sync") < commands.index("balance") < commands.index("save")
        assert sink.balance is not None
        assert len(sink.transactions) == 3

    @pytest.mark.asyncio
    async def test_already_current_is_skipped(self, session: SyncSession, gateway: FakeGateway):
        session.last_block_height = 120
        assert await session.refresh() is None
        assert gateway.count("sync") == 0
        assert session.state == SyncState.IDLE

    @pytest.mark.asyncio
    async def test_new_tip_triggers_sync(self, session: SyncSession, gateway: FakeGateway):
        session.last_block_height = 100
        result = await session.refresh()
        assert result is not None
        assert gateway.count("sync") == 1
        assert session.last_block_height == 120

    @pytest.mark.asyncio
    async def test_no_recorded_height_triggers_sync(
        self, session: SyncSession, gateway: FakeGateway
    ):
        assert await session.refresh() is not None
        assert gateway.count("sync") == 1

    @pytest.mark.asyncio
    async def test_skipped_while_pass_in_flight(self, session: SyncSession, gateway: FakeGateway):
        async with session._update_lock:
            assert await session.refresh(full_refresh=True) is None
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_fast_poll_suppressed_during_sync_wait(
        self, engine_responses, sink: RecordingStateSink
    ):
        gateway = FakeGateway(engine_responses)
        gateway.responses["height"] = {"height": 10}
        session = SyncSession(
            EngineClient(gateway), sink, sync_poll_interval=0.01, max_sync_attempts=5
        )

        refresh = asyncio.create_task(session.refresh(full_refresh=True))
        for _ in range(100):
            if session.state == SyncState.AWAITING_SYNC_COMPLETION:
                break
            await asyncio.sleep(0.001)

        assert session.state == SyncState.AWAITING_SYNC_COMPLETION
        assert await session.update_data() is False

        result = await refresh
        assert result is not None
        assert result.outcome == SyncWaitOutcome.BOUNDED_WAIT_EXHAUSTED


class TestBoundedWait:
    @pytest.mark.asyncio
    async def test_exhausted_after_max_attempts(self, session: SyncSession, gateway: FakeGateway):
        gateway.responses["height"] = {"height": 50}

        result = await session.wait_for_sync(120)

        assert result.outcome == SyncWaitOutcome.BOUNDED_WAIT_EXHAUSTED
        assert result.reached is False
        assert result.attempts == 30
        assert result.wallet_height == 50
        assert gateway.count("height") == 30

    @pytest.mark.asyncio
    async def test_reached_after_catching_up(self, session: SyncSession, gateway: FakeGateway):
        gateway.responses["height"] = sequence({"height": 100}, {"height": 110}, {"height": 121})

        result = await session.wait_for_sync(120)

        assert result.reached is True
        assert result.attempts == 3
        assert result.wallet_height == 121

    @pytest.mark.asyncio
    async def test_exhausted_refresh_still_delivers_data(
        self, session: SyncSession, gateway: FakeGateway, sink: RecordingStateSink
    ):
        gateway.responses["height"] = {"height": 0}

        result = await session.refresh(full_refresh=True)

        assert result is not None
        assert result.outcome == SyncWaitOutcome.BOUNDED_WAIT_EXHAUSTED
        assert sink.balance is not None
        assert gateway.count("save") == 1
        assert session.last_block_height == 120


class TestSoftFailures:
    @pytest.mark.asyncio
    async def test_malformed_info_substitutes_default(
        self, session: SyncSession, gateway: FakeGateway, sink: RecordingStateSink
    ):
        gateway.responses["info"] = "garbage"
        assert await session.fetch_info() == 0
        assert sink.info == WalletInfo()

    @pytest.mark.asyncio
    async def test_refresh_without_chain_tip_stops_early(
        self, session: SyncSession, gateway: FakeGateway, sink: RecordingStateSink
    ):
        session.last_block_height = 100
        gateway.responses["info"] = "garbage"

        assert await session.refresh(full_refresh=True) is None

        assert sink.info == WalletInfo()
        assert sink.transactions == []
        assert sink.balance is None
        assert gateway.count("sync") == 0
        assert gateway.count("save") == 0
        assert session.last_block_height == 100
        assert session.state == SyncState.IDLE

    @pytest.mark.asyncio
    async def test_fast_poll_without_chain_tip_keeps_fingerprint(
        self, session: SyncSession, gateway: FakeGateway, sink: RecordingStateSink
    ):
        gateway.responses["info"] = "garbage"

        assert await session.update_data() is False

        assert sink.transactions == []
        assert sink.balance is None
        assert session.last_txid is None
        assert session.last_block_height == 0

        # The next poll retries once info is readable again
        gateway.responses["info"] = {"chain_name": "main", "latest_block_height": 120}
        assert await session.update_data() is True
        assert all(tx.confirmations >= 0 for tx in sink.transactions)
        assert session.last_txid == "tx5"

    @pytest.mark.asyncio
    async def test_info_snapshot(self, session: SyncSession, sink: RecordingStateSink):
        await session.fetch_info()
        assert sink.info is not None
        assert sink.info.version == "zingo/abcdef/1.2.3"
        assert sink.info.testnet is False
        assert sink.info.currency_name == "ZEC"
        assert sink.info.wallet_height == 120
        assert sink.info.price == 42.5

    @pytest.mark.asyncio
    async def test_testnet_info(
        self, session: SyncSession, gateway: FakeGateway, sink: RecordingStateSink, sample_info
    ):
        gateway.responses["info"] = {**sample_info, "chain_name": "test"}
        await session.fetch_info()
        assert sink.info is not None
        assert sink.info.testnet is True
        assert sink.info.currency_name == "TAZ"

    @pytest.mark.asyncio
    async def test_price_error_keeps_previous_price(
        self, session: SyncSession, gateway: FakeGateway, sink: RecordingStateSink
    ):
        sink.set_price(10.0)
        gateway.responses["updatecurrentprice"] = "Error: price feed unavailable"
        assert await session.fetch_price() is None
        assert sink.price == 10.0

    @pytest.mark.asyncio
    async def test_unset_filter_threshold_is_reset(
        self, session: SyncSession, gateway: FakeGateway
    ):
        def get_option(name: str) -> dict[str, str]:
            if name == "download_memos":
                return {"download_memos": "all"}
            return {"transaction_filter_threshold": "-1"}

        gateway.responses["getoption"] = get_option

        settings = await session.fetch_wallet_settings()

        assert settings.transaction_filter_threshold == 50
        assert ("setoption", "transaction_filter_threshold=50") in gateway.calls
        assert gateway.count("save") == 1

    @pytest.mark.asyncio
    async def test_unreadable_filter_threshold_defaults_to_zero(
        self, session: SyncSession, gateway: FakeGateway
    ):
        def get_option(name: str) -> object:
            if name == "download_memos":
                return {"download_memos": "none"}
            return "not json"

        gateway.responses["getoption"] = get_option

        settings = await session.fetch_wallet_settings()
        assert settings.download_memos == "none"
        assert settings.transaction_filter_threshold == 0


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_start_runs_forced_refresh(
        self, session: SyncSession, gateway: FakeGateway, sink: RecordingStateSink
    ):
        await session.start()
        await session.stop()

        assert gateway.count("sync") == 1
        assert sink.balance is not None
        assert session.running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, session: SyncSession, gateway: FakeGateway):
        await session.start()
        await session.start()
        await session.stop()
        assert gateway.count("sync") == 1

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_pass(
        self, engine_responses, sink: RecordingStateSink
    ):
        gateway = FakeGateway(engine_responses)
        gateway.responses["height"] = {"height": 0}
        session = SyncSession(
            EngineClient(gateway), sink, sync_poll_interval=0.005, max_sync_attempts=4
        )

        await session.start()
        await asyncio.sleep(0)
        await session.stop()

        # The forced refresh was allowed to finish
        assert gateway.count("save") == 1
        assert session.update_in_progress is False

    @pytest.mark.asyncio
    async def test_failed_ticks_do_not_stop_timers(
        self, engine_responses, sink: RecordingStateSink
    ):
        gateway = FakeGateway(engine_responses)
        gateway.responses["list"] = RuntimeError("boom")
        session = SyncSession(
            EngineClient(gateway),
            sink,
            update_interval=0.01,
            refresh_interval=3600.0,
            sync_poll_interval=0.0,
        )

        async with session:
            await asyncio.sleep(0.1)
            assert session.running is True

        assert gateway.count("list") >= 3

    @pytest.mark.asyncio
    async def test_sessions_do_not_share_state(self, engine_responses):
        first = SyncSession(EngineClient(FakeGateway(engine_responses)), RecordingStateSink())
        second = SyncSession(EngineClient(FakeGateway(engine_responses)), RecordingStateSink())

        await first.update_data()

        assert first.last_txid == "tx5"
        assert second.last_txid is None
        async with first._update_lock:
            assert second.update_in_progress is False

    @pytest.mark.asyncio
    async def test_request_refresh_returns_task(self, session: SyncSession, gateway: FakeGateway):
        task = session.request_refresh(full_refresh=True)
        result = await task
        assert result is not None
        assert gateway.count("sync") == 1
