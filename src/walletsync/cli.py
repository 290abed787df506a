"""
walletsync CLI - Run a sync session and query the wallet engine.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from collections.abc import Awaitable, Callable
from decimal import Decimal, InvalidOperation
from typing import TypeVar

import typer
from loguru import logger

from walletsync.config import get_settings
from walletsync.constants import UNITS_PER_COIN
from walletsync.engine.base import EngineGateway
from walletsync.engine.client import EngineClient
from walletsync.engine.http import DEFAULT_ENGINE_URL, HttpEngineGateway
from walletsync.errors import WalletSyncError
from walletsync.models import AddressType, SendProgress, SendRecipient
from walletsync.scheduler import SyncSession
from walletsync.sink import LoggingStateSink, RecordingStateSink, StateSink
from walletsync.wallet import WalletCommands

T = TypeVar("T")

app = typer.Typer(
    name="walletsync",
    help="Light wallet synchronization",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def create_gateway(engine_url: str, timeout: float) -> EngineGateway:
    return HttpEngineGateway(engine_url=engine_url, timeout=timeout)


def create_session(engine_url: str, sink: StateSink) -> SyncSession:
    settings = get_settings()
    engine = EngineClient(create_gateway(engine_url, settings.engine_timeout))
    return SyncSession(engine, sink, **settings.session_options())


def coins_to_units(amount: str) -> int:
    try:
        value = Decimal(amount)
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {amount}") from e
    return int((value * UNITS_PER_COIN).to_integral_value())


@app.command()
def run(
    engine_url: str = typer.Option(
        DEFAULT_ENGINE_URL, "--engine-url", "-e", envvar="ENGINE_URL", help="Engine bridge URL"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l", envvar="LOG_LEVEL"),
) -> None:
    """Keep the wallet in sync until interrupted."""
    setup_logging(log_level)
    try:
        asyncio.run(_run(engine_url))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


async def _run(engine_url: str) -> None:
    session = create_session(engine_url, LoggingStateSink())
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await session.start()
        await stop_event.wait()
        logger.info("Received shutdown signal")
    finally:
        await session.stop()
        await session.engine.close()


@app.command()
def info(
    engine_url: str = typer.Option(
        DEFAULT_ENGINE_URL, "--engine-url", "-e", envvar="ENGINE_URL", help="Engine bridge URL"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l", envvar="LOG_LEVEL"),
) -> None:
    """Show chain and wallet info."""
    setup_logging(log_level)
    sink = RecordingStateSink()
    _run_once(engine_url, sink, lambda session: session.fetch_info())

    wallet_info = sink.info
    if wallet_info is None:
        raise typer.Exit(1)
    typer.echo(f"Chain:         {wallet_info.chain_name} ({wallet_info.currency_name})")
    typer.echo(f"Latest block:  {wallet_info.latest_block_height}")
    typer.echo(f"Wallet height: {wallet_info.wallet_height}")
    typer.echo(f"Version:       {wallet_info.version}")
    if wallet_info.price is not None:
        typer.echo(f"Price:         {wallet_info.price:.2f}")


@app.command()
def balance(
    engine_url: str = typer.Option(
        DEFAULT_ENGINE_URL, "--engine-url", "-e", envvar="ENGINE_URL", help="Engine bridge URL"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l", envvar="LOG_LEVEL"),
) -> None:
    """Show wallet balances and addresses holding funds."""
    setup_logging(log_level)
    sink = RecordingStateSink()
    _run_once(engine_url, sink, lambda session: session.fetch_total_balance())

    totals = sink.balance
    if totals is None:
        raise typer.Exit(1)
    typer.echo(f"Total:       {totals.total:.8f}")
    typer.echo(f"Unified:     {totals.unified:.8f}")
    typer.echo(f"Sapling:     {totals.shielded:.8f}")
    typer.echo(f"Transparent: {totals.transparent:.8f}")
    for record in sink.addresses_with_balance:
        pending = " (pending)" if record.has_pending else ""
        typer.echo(f"  {record.pool.value:<11} {record.balance:>16.8f}  {record.address}{pending}")


@app.command()
def transactions(
    engine_url: str = typer.Option(
        DEFAULT_ENGINE_URL, "--engine-url", "-e", envvar="ENGINE_URL", help="Engine bridge URL"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l", envvar="LOG_LEVEL"),
) -> None:
    """List wallet transactions, most recent first."""
    setup_logging(log_level)
    sink = RecordingStateSink()

    async def load(session: SyncSession) -> None:
        latest_height = await session.fetch_info()
        await session.fetch_transactions(latest_height)

    _run_once(engine_url, sink, load)

    for tx in sink.transactions:
        typer.echo(
            f"{tx.txid}  {tx.direction.value:<8} {tx.amount:>16.8f}  "
            f"{tx.confirmations:>6} conf  {tx.address}"
        )
        for detail in tx.details:
            memo = f"  memo: {detail.memo}" if detail.memo else ""
            typer.echo(f"    -> {detail.address} {detail.amount}{memo}")


@app.command()
def send(
    address: str = typer.Argument(..., help="Recipient address"),
    amount: str = typer.Argument(..., help="Amount in whole coins"),
    memo: str | None = typer.Option(None, "--memo", "-m", help="Memo for shielded recipients"),
    engine_url: str = typer.Option(
        DEFAULT_ENGINE_URL, "--engine-url", "-e", envvar="ENGINE_URL", help="Engine bridge URL"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l", envvar="LOG_LEVEL"),
) -> None:
    """Send funds and wait for the engine to finish the transaction."""
    setup_logging(log_level)
    try:
        recipient = SendRecipient(address=address, amount=coins_to_units(amount), memo=memo)
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e

    def show_progress(progress: SendProgress) -> None:
        if progress.in_progress and progress.total:
            typer.echo(
                f"Progress {progress.progress}/{progress.total}, ~{progress.eta_seconds}s left"
            )

    async def dispatch(session: SyncSession) -> str:
        return await WalletCommands(session).send([recipient], show_progress)

    txid = _run_once(engine_url, RecordingStateSink(), dispatch)
    typer.echo(f"Sent: {txid}")


@app.command("new-address")
def new_address(
    pool: AddressType = typer.Option(AddressType.UNIFIED, "--pool", "-p"),
    engine_url: str = typer.Option(
        DEFAULT_ENGINE_URL, "--engine-url", "-e", envvar="ENGINE_URL", help="Engine bridge URL"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l", envvar="LOG_LEVEL"),
) -> None:
    """Create a new address in the given pool."""
    setup_logging(log_level)

    async def create(session: SyncSession) -> str:
        return await WalletCommands(session).new_address(pool)

    typer.echo(_run_once(engine_url, RecordingStateSink(), create))


def _run_once(
    engine_url: str, sink: StateSink, action: Callable[[SyncSession], Awaitable[T]]
) -> T:
    async def runner() -> T:
        session = create_session(engine_url, sink)
        try:
            return await action(session)
        finally:
            await session.stop()
            await session.engine.close()

    try:
        return asyncio.run(runner())
    except WalletSyncError as e:
        logger.error(str(e))
        raise typer.Exit(1) from e


if __name__ == "__main__":
    app()
