"""
Sync scheduling for one wallet session.

Two independent timers drive the session:
- a fast change-detection cycle that compares the latest txid against the
  last one seen and refetches wallet data only when it changed
- a coarse full-refresh cycle that syncs the engine when the chain tip moved
  and waits (bounded) for the wallet height to catch up

Both cycles share one non-blocking pass lock, so at most one reconciliation
pass talks to the engine at a time. A tick that finds the lock taken is
skipped, never queued.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from walletsync.constants import (
    DEFAULT_FILTER_THRESHOLD,
    DEFAULT_MAX_SYNC_ATTEMPTS,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_SEND_POLL_INTERVAL,
    DEFAULT_SYNC_POLL_INTERVAL,
    DEFAULT_UPDATE_INTERVAL,
    MAINNET_CURRENCY,
    TESTNET_CHAIN_NAME,
    TESTNET_CURRENCY,
    UNSET_FILTER_THRESHOLD,
)
from walletsync.engine.client import EngineClient
from walletsync.errors import EngineCallFailure, MalformedResponse
from walletsync.models import Transaction, WalletInfo, WalletSettings
from walletsync.reconciler import ReconciledWallet, reconcile
from walletsync.send import SendCoordinator
from walletsync.sink import StateSink
from walletsync.transactions import aggregate_transactions


class SyncState(str, Enum):
    IDLE = "idle"
    FAST_POLLING = "fast_polling"
    FULL_SYNCING = "full_syncing"
    AWAITING_SYNC_COMPLETION = "awaiting_sync_completion"


class SyncWaitOutcome(str, Enum):
    REACHED_TARGET = "reached_target"
    BOUNDED_WAIT_EXHAUSTED = "bounded_wait_exhausted"


@dataclass
class SyncWaitResult:
    outcome: SyncWaitOutcome
    attempts: int
    wallet_height: int
    target_height: int

    @property
    def reached(self) -> bool:
        return self.outcome == SyncWaitOutcome.REACHED_TARGET


class SyncSession:
    """
    Scheduler state and timers for a single wallet session.

    Each session owns its own pass lock, timers and change fingerprint, so
    several sessions can coexist (e.g. in tests) without interfering.
    """

    def __init__(
        self,
        engine: EngineClient,
        sink: StateSink,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
        sync_poll_interval: float = DEFAULT_SYNC_POLL_INTERVAL,
        max_sync_attempts: int = DEFAULT_MAX_SYNC_ATTEMPTS,
        send_poll_interval: float = DEFAULT_SEND_POLL_INTERVAL,
    ):
        self.engine = engine
        self.sink = sink
        self.refresh_interval = refresh_interval
        self.update_interval = update_interval
        self.sync_poll_interval = sync_poll_interval
        self.max_sync_attempts = max_sync_attempts

        self.last_block_height = 0
        self.last_txid: str | None = None
        self.state = SyncState.IDLE
        self.running = False

        self._update_lock = asyncio.Lock()
        self._timer_tasks: list[asyncio.Task[None]] = []
        self._pass_tasks: set[asyncio.Task[Any]] = set()

        self.sender = SendCoordinator(
            engine,
            on_success=self._on_send_success,
            poll_interval=send_poll_interval,
        )

    @property
    def update_in_progress(self) -> bool:
        return self._update_lock.locked()

    async def start(self) -> None:
        """Start both timers and run one forced full refresh."""
        if self.running:
            return
        self.running = True
        logger.info(
            f"Starting sync session (update every {self.update_interval}s, "
            f"refresh every {self.refresh_interval}s)"
        )
        self._timer_tasks = [
            asyncio.create_task(self._timer_loop(self.update_interval, self.update_data, "update")),
            asyncio.create_task(
                self._timer_loop(self.refresh_interval, self.refresh, "refresh")
            ),
        ]
        self.request_refresh(full_refresh=True)

    async def stop(self) -> None:
        """Cancel both timers and let any in-flight pass finish."""
        self.running = False
        for task in self._timer_tasks:
            task.cancel()
        if self._timer_tasks:
            await asyncio.gather(*self._timer_tasks, return_exceptions=True)
        self._timer_tasks = []

        if self._pass_tasks:
            logger.debug(f"Waiting for {len(self._pass_tasks)} in-flight pass(es)")
            await asyncio.gather(*list(self._pass_tasks), return_exceptions=True)
        logger.info("Sync session stopped")

    async def __aenter__(self) -> SyncSession:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    def _on_send_success(self, txid: str) -> None:
        # One-shot sessions are never started and must not sync after a send
        if self.running:
            self.request_refresh(full_refresh=True)

    def request_refresh(self, full_refresh: bool = False) -> asyncio.Task[SyncWaitResult | None]:
        """Schedule a refresh pass from synchronous code."""
        return self._spawn(self.refresh(full_refresh), "refresh")

    async def _timer_loop(
        self, interval: float, job: Callable[[], Awaitable[Any]], name: str
    ) -> None:
        while self.running:
            await asyncio.sleep(interval)
            if not self.running:
                break
            self._spawn(job(), name)

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(self._isolated(coro, name))
        self._pass_tasks.add(task)
        task.add_done_callback(self._pass_tasks.discard)
        return task

    async def _isolated(self, coro: Coroutine[Any, Any, Any], name: str) -> Any:
        # A failed pass must not stop the next tick
        try:
            return await coro
        except Exception as e:
            logger.error(f"{name} pass failed: {type(e).__name__}: {e}")
            return None

    async def update_data(self) -> bool:
        """
        Fast change-detection pass.

        Returns:
            True if the fingerprint changed and wallet data was refetched
        """
        if self._update_lock.locked():
            logger.trace("Update in progress, skipping fast poll")
            return False

        async with self._update_lock:
            self.state = SyncState.FAST_POLLING
            try:
                latest_txid = await self.engine.last_txid()
                if latest_txid == self.last_txid:
                    return False

                logger.debug(f"Latest txid {latest_txid}, previous {self.last_txid}")
                latest_height = await self.fetch_info()
                if not latest_height:
                    logger.warning("No chain tip known, skipping fast poll")
                    return False

                await self.fetch_total_balance()
                await self.fetch_transactions(latest_height)
                await self.fetch_price()
                await self.fetch_wallet_settings()

                self.last_block_height = latest_height
                self.last_txid = latest_txid
                return True
            finally:
                self.state = SyncState.IDLE

    async def refresh(self, full_refresh: bool = False) -> SyncWaitResult | None:
        """
        Full refresh pass.

        Syncs the engine when forced, when no height was recorded yet, or when
        the chain tip moved past the recorded height, then waits for the
        wallet to catch up and refetches everything.

        Returns:
            The bounded wait result, or None if the pass was skipped
        """
        if self._update_lock.locked():
            logger.debug("Update in progress, skipping refresh")
            return None

        async with self._update_lock:
            self.state = SyncState.FULL_SYNCING
            try:
                latest_height = await self.fetch_info()

                if not latest_height:
                    logger.warning("No chain tip known, skipping refresh")
                    return None

                if not (
                    full_refresh
                    or not self.last_block_height
                    or self.last_block_height < latest_height
                ):
                    logger.debug("Already have latest block, waiting for next refresh")
                    return None

                # The engine syncs in its own context; watch the wallet height
                await self.engine.sync()
                self.state = SyncState.AWAITING_SYNC_COMPLETION
                result = await self.wait_for_sync(latest_height)

                await self.fetch_total_balance()
                await self.fetch_transactions(latest_height)
                await self.fetch_price()

                self.last_block_height = latest_height
                await self.engine.save()

                logger.info(f"Finished full refresh at {latest_height}")
                return result
            finally:
                self.state = SyncState.IDLE

    async def wait_for_sync(self, target_height: int) -> SyncWaitResult:
        """
        Poll the wallet height until it reaches ``target_height``.

        Gives up after ``max_sync_attempts`` polls; the caller then proceeds
        with whatever data the engine has.
        """
        wallet_height = 0
        for attempt in range(1, self.max_sync_attempts + 1):
            await asyncio.sleep(self.sync_poll_interval)
            wallet_height = await self.engine.wallet_height()
            if wallet_height >= target_height:
                logger.debug(f"Wallet synced to {wallet_height} after {attempt} poll(s)")
                return SyncWaitResult(
                    SyncWaitOutcome.REACHED_TARGET, attempt, wallet_height, target_height
                )

        logger.warning(
            f"Wallet height {wallet_height} did not reach {target_height} after "
            f"{self.max_sync_attempts} polls, continuing with best-effort data"
        )
        return SyncWaitResult(
            SyncWaitOutcome.BOUNDED_WAIT_EXHAUSTED,
            self.max_sync_attempts,
            wallet_height,
            target_height,
        )

    async def get_info(self) -> WalletInfo:
        """Info snapshot. A malformed response yields an empty WalletInfo."""
        try:
            raw = await self.engine.info()
            wallet_height = await self.engine.wallet_height()
        except MalformedResponse as e:
            logger.error(f"Failed to parse info: {e}")
            return WalletInfo()

        testnet = raw.chain_name == TESTNET_CHAIN_NAME
        return WalletInfo(
            chain_name=raw.chain_name,
            testnet=testnet,
            latest_block_height=raw.latest_block_height,
            wallet_height=wallet_height,
            version=f"{raw.vendor}/{raw.git_commit[:6]}/{raw.version}",
            currency_name=TESTNET_CURRENCY if testnet else MAINNET_CURRENCY,
            price=await self._current_price(),
        )

    async def fetch_info(self) -> int:
        """Push an info snapshot to the sink and return the latest block height."""
        info = await self.get_info()
        self.sink.set_info(info)
        return info.latest_block_height

    async def fetch_total_balance(self) -> ReconciledWallet:
        balance = await self.engine.balance()
        addresses = await self.engine.addresses()
        notes = await self.engine.notes()

        wallet = reconcile(balance, addresses, notes)
        self.sink.set_total_balance(wallet.balance)
        self.sink.set_addresses_with_balance(wallet.addresses_with_balance)
        self.sink.set_all_addresses(wallet.all_addresses)
        return wallet

    async def fetch_transactions(self, latest_height: int) -> list[Transaction]:
        raw_transactions = await self.engine.transactions()
        notes = await self.engine.notes()
        addresses = await self.engine.addresses()

        transactions = aggregate_transactions(raw_transactions, addresses, notes, latest_height)
        self.sink.set_transactions(transactions)
        return transactions

    async def _current_price(self) -> float | None:
        try:
            return await self.engine.current_price()
        except MalformedResponse as e:
            logger.warning(f"Ignoring unreadable price: {e}")
            return None

    async def fetch_price(self) -> float | None:
        """Push the current price. On failure the sink keeps its previous price."""
        price = await self._current_price()
        if price is not None:
            self.sink.set_price(price)
        return price

    async def fetch_wallet_settings(self) -> WalletSettings:
        memos_option = await self.engine.get_option("download_memos")
        download_memos = str(memos_option.get("download_memos", ""))

        threshold = 0
        try:
            option = await self.engine.get_option("transaction_filter_threshold")
            value = option.get("transaction_filter_threshold", option.get("spam_filter_threshold"))
            if value is not None and str(value) == UNSET_FILTER_THRESHOLD:
                await self.set_wallet_option(
                    "transaction_filter_threshold", DEFAULT_FILTER_THRESHOLD
                )
                value = DEFAULT_FILTER_THRESHOLD
            if value is not None:
                threshold = int(value)
        except (EngineCallFailure, MalformedResponse, ValueError) as e:
            logger.warning(f"Error getting transaction filter threshold: {e}")

        settings = WalletSettings(
            download_memos=download_memos, transaction_filter_threshold=threshold
        )
        self.sink.set_wallet_settings(settings)
        return settings

    async def set_wallet_option(self, name: str, value: str) -> str:
        result = await self.engine.set_option(name, value)
        await self.engine.save()
        return result
