"""
Typed access to the wallet engine.

EngineClient serializes engine calls (one in flight at a time), parses JSON
responses and validates them against the models in
:mod:`walletsync.engine.responses`. Anything that does not parse or validate
is reported as MalformedResponse instead of failing deep inside reconciliation.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, TypeVar

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from walletsync.constants import PRICE_ERROR_PREFIX
from walletsync.engine.base import EngineGateway
from walletsync.engine.responses import (
    BalanceResponse,
    DefaultFeeResponse,
    ExportedKey,
    HeightResponse,
    InfoResponse,
    NotesResponse,
    RawAddress,
    RawTransaction,
    ResultResponse,
    SeedResponse,
    SendProgressResponse,
)
from walletsync.errors import EngineCallFailure, MalformedResponse

T = TypeVar("T")

_ADDRESS_LIST = TypeAdapter(list[RawAddress])
_TRANSACTION_LIST = TypeAdapter(list[RawTransaction])
_EXPORT_LIST = TypeAdapter(list[ExportedKey])
_STRING_LIST = TypeAdapter(list[str])


class EngineClient:
    def __init__(self, gateway: EngineGateway):
        self.gateway = gateway
        self._call_lock = asyncio.Lock()

    async def call(self, command: str, argument: str = "") -> str:
        """Execute a raw engine command. Gateway exceptions become EngineCallFailure."""
        async with self._call_lock:
            try:
                response = await self.gateway.execute(command, argument)
            except EngineCallFailure:
                raise
            except Exception as e:
                raise EngineCallFailure(command, f"{type(e).__name__}: {e}") from e

        if not isinstance(response, str):
            raise MalformedResponse(command, f"expected a string, got {type(response).__name__}")
        return response

    async def call_json(self, command: str, argument: str = "") -> Any:
        raw = await self.call(command, argument)
        return parse_json(command, raw)

    async def _call_typed(self, command: str, adapter: TypeAdapter[T], argument: str = "") -> T:
        data = await self.call_json(command, argument)
        try:
            return adapter.validate_python(data)
        except ValidationError as e:
            raise MalformedResponse(command, str(e)) from e

    async def info(self) -> InfoResponse:
        return await self._call_typed("info", TypeAdapter(InfoResponse))

    async def wallet_height(self) -> int:
        result = await self._call_typed("height", TypeAdapter(HeightResponse))
        return result.height

    async def sync(self) -> str:
        result = await self.call("sync")
        logger.debug(f"Sync exec result: {result}")
        return result

    async def rescan(self) -> str:
        result = await self.call("rescan")
        logger.debug(f"Rescan exec result: {result}")
        return result

    async def sync_status(self) -> str:
        return await self.call("syncstatus")

    async def save(self) -> str:
        result = await self.call("save")
        logger.debug(f"Save status: {result}")
        return result

    async def balance(self) -> BalanceResponse:
        return await self._call_typed("balance", TypeAdapter(BalanceResponse))

    async def notes(self) -> NotesResponse:
        return await self._call_typed("notes", TypeAdapter(NotesResponse))

    async def addresses(self) -> list[RawAddress]:
        return await self._call_typed("addresses", _ADDRESS_LIST)

    async def transactions(self) -> list[RawTransaction]:
        return await self._call_typed("list", _TRANSACTION_LIST)

    async def last_txid(self) -> str | None:
        """
        Change-detection fingerprint: txid of the most recent transaction.

        The engine has no dedicated command for this, so it is derived from the
        final record of the transaction list.
        """
        transactions = await self.transactions()
        if not transactions:
            return None
        return transactions[-1].txid

    async def send(self, recipients: list[dict[str, Any]]) -> str:
        return await self.call("send", json.dumps(recipients))

    async def send_progress(self) -> SendProgressResponse:
        return await self._call_typed("sendprogress", TypeAdapter(SendProgressResponse))

    async def get_option(self, name: str) -> dict[str, Any]:
        return await self._call_typed("getoption", TypeAdapter(dict[str, Any]), name)

    async def set_option(self, name: str, value: str) -> str:
        return await self.call("setoption", f"{name}={value}")

    async def current_price(self) -> float | None:
        """
        Current price, or None when the engine could not fetch one.

        Failures come back as a plain string starting with an error marker,
        which must be caught before JSON parsing.
        """
        raw = await self.call("updatecurrentprice")
        if raw.strip().lower().startswith(PRICE_ERROR_PREFIX):
            logger.warning(f"Error fetching price: {raw}")
            return None

        data = parse_json("updatecurrentprice", raw)
        if data is None:
            return None
        if isinstance(data, bool) or not isinstance(data, int | float):
            raise MalformedResponse("updatecurrentprice", f"expected a number, got {data!r}")
        return float(data)

    async def export(self, address: str) -> list[ExportedKey]:
        return await self._call_typed("export", _EXPORT_LIST, address)

    async def new_address(self, selector: str) -> list[str]:
        return await self._call_typed("new", _STRING_LIST, selector)

    async def seed(self) -> SeedResponse:
        return await self._call_typed("seed", TypeAdapter(SeedResponse))

    async def import_key(self, key: str, birthday: int) -> str:
        return await self.call("import", json.dumps({"key": key, "birthday": birthday}))

    async def encrypt(self, password: str) -> ResultResponse:
        return await self._call_typed("encrypt", TypeAdapter(ResultResponse), password)

    async def decrypt(self, password: str) -> ResultResponse:
        return await self._call_typed("decrypt", TypeAdapter(ResultResponse), password)

    async def lock(self) -> ResultResponse:
        return await self._call_typed("lock", TypeAdapter(ResultResponse))

    async def unlock(self, password: str) -> ResultResponse:
        return await self._call_typed("unlock", TypeAdapter(ResultResponse), password)

    async def default_fee(self) -> int:
        result = await self._call_typed("defaultfee", TypeAdapter(DefaultFeeResponse))
        return result.defaultfee

    async def close(self) -> None:
        await self.gateway.close()


def parse_json(command: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        snippet = raw if len(raw) <= 80 else raw[:80] + "..."
        raise MalformedResponse(command, f"invalid JSON ({e.msg}): {snippet!r}") from e
