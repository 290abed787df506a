"""
Send coordination.

The engine's ``send`` command returns immediately and builds the transaction
in the background. Progress is tracked by polling ``sendprogress`` until the
engine reports either a txid or an error.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable

from loguru import logger

from walletsync.constants import (
    DEFAULT_SECONDS_PER_COMPUTATION,
    DEFAULT_SEND_POLL_INTERVAL,
    SEND_ERROR_PREFIX,
)
from walletsync.engine.client import EngineClient, parse_json
from walletsync.engine.responses import SendProgressResponse
from walletsync.errors import SendFailed
from walletsync.models import SendProgress, SendRecipient


def estimate_eta(
    elapsed: float,
    completed: int,
    total: int,
    default_seconds_per_unit: float = DEFAULT_SECONDS_PER_COMPUTATION,
) -> int:
    """
    Estimate the seconds left in a send.

    Args:
        elapsed: Seconds since dispatch
        completed: Units of work done so far
        total: Units of work in the send
        default_seconds_per_unit: Rate assumed before any unit completes

    Returns:
        Estimated seconds remaining, never less than 1
    """
    seconds_per_unit = default_seconds_per_unit
    if completed > 0:
        seconds_per_unit = elapsed / completed

    eta = math.floor((total - completed) * seconds_per_unit + 0.5)
    return max(eta, 1)


class SendCoordinator:
    def __init__(
        self,
        engine: EngineClient,
        on_success: Callable[[str], None] | None = None,
        poll_interval: float = DEFAULT_SEND_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.engine = engine
        self.on_success = on_success
        self.poll_interval = poll_interval
        self.clock = clock
        self._send_lock = asyncio.Lock()

    @property
    def in_progress(self) -> bool:
        return self._send_lock.locked()

    async def send(
        self,
        recipients: list[SendRecipient],
        on_progress: Callable[[SendProgress], None] | None = None,
    ) -> str:
        """
        Dispatch a send and wait for the engine to finish it.

        Args:
            recipients: Outputs to create
            on_progress: Called with every progress report, including the final one

        Returns:
            The resulting txid

        Raises:
            SendFailed: If the engine reports an error, or another send is running
            EngineCallFailure: If dispatching or polling fails at the gateway
            MalformedResponse: If the dispatch reply or progress reports cannot be parsed
        """
        if not recipients:
            raise ValueError("At least one recipient is required")
        if self._send_lock.locked():
            raise SendFailed("A send is already in progress")

        async with self._send_lock:
            prior_id = (await self.engine.send_progress()).id

            payload = [r.to_engine() for r in recipients]
            logger.info(
                f"Sending {sum(r.amount for r in recipients):,} units "
                f"to {len(recipients)} recipient(s)"
            )
            response = await self.engine.send(payload)
            _check_dispatch(response)

            started = self.clock()
            report = on_progress or (lambda _progress: None)

            while True:
                await asyncio.sleep(self.poll_interval)
                status = await self.engine.send_progress()

                if status.id == prior_id:
                    # Not picked up by the engine yet
                    report(SendProgress(in_progress=True))
                    continue

                progress = self._progress(status, started)

                if status.txid:
                    logger.info(f"Send complete: {status.txid}")
                    report(progress.model_copy(update={"in_progress": False}))
                    if self.on_success is not None:
                        self.on_success(status.txid)
                    return status.txid

                if status.error:
                    logger.error(f"Send failed: {status.error}")
                    report(progress.model_copy(update={"in_progress": False}))
                    raise SendFailed(status.error)

                logger.debug(
                    f"Send progress {progress.progress}/{progress.total}, "
                    f"eta {progress.eta_seconds}s"
                )
                report(progress)

    def _progress(self, status: SendProgressResponse, started: float) -> SendProgress:
        elapsed = self.clock() - started
        return SendProgress(
            send_id=status.id,
            progress=status.progress,
            # Change outputs can push progress past the engine's first estimate
            total=max(status.total, status.progress),
            eta_seconds=estimate_eta(elapsed, status.progress, status.total),
            in_progress=True,
            txid=status.txid,
            error=status.error,
        )


def _check_dispatch(response: str) -> None:
    # Dispatch errors may come back as a bare string instead of JSON
    if response.strip().lower().startswith(SEND_ERROR_PREFIX):
        raise SendFailed(response.strip())

    data = parse_json("send", response)
    if isinstance(data, dict) and data.get("error"):
        raise SendFailed(str(data["error"]))
