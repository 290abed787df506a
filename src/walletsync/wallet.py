"""
Wallet operations outside the sync cycle: keys, addresses, encryption and
engine options.
"""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from walletsync.constants import UNITS_PER_COIN
from walletsync.engine.client import EngineClient
from walletsync.errors import MalformedResponse
from walletsync.models import AddressType, SendProgress, SendRecipient
from walletsync.scheduler import SyncSession

# Receiver sets requested from the engine for each pool. The engine cannot
# create a transparent-only address, so transparent requests get orchard too.
NEW_ADDRESS_SELECTORS: dict[AddressType, str] = {
    AddressType.UNIFIED: "ozt",
    AddressType.SAPLING: "oz",
    AddressType.TRANSPARENT: "ot",
}


class WalletCommands:
    def __init__(self, session: SyncSession):
        self.session = session

    @property
    def engine(self) -> EngineClient:
        return self.session.engine

    async def default_fee(self) -> float:
        return await self.engine.default_fee() / UNITS_PER_COIN

    async def sync_status(self) -> str:
        status = await self.engine.sync_status()
        logger.debug(f"syncstatus: {status}")
        return status

    async def rescan(self) -> str:
        return await self.engine.rescan()

    async def save(self) -> str:
        return await self.engine.save()

    async def export_private_key(self, address: str) -> str | None:
        keys = await self.engine.export(address)
        if not keys:
            raise MalformedResponse("export", f"no key material returned for {address}")
        return keys[0].private_key

    async def export_viewing_key(self, address: str) -> str | None:
        keys = await self.engine.export(address)
        if not keys:
            raise MalformedResponse("export", f"no key material returned for {address}")
        return keys[0].viewing_key

    async def new_address(self, pool: AddressType) -> str:
        addresses = await self.engine.new_address(NEW_ADDRESS_SELECTORS[pool])
        if not addresses:
            raise MalformedResponse("new", "engine returned no address")
        logger.info(f"Created new {pool.value} address")
        return addresses[0]

    async def seed(self) -> str:
        return (await self.engine.seed()).seed

    async def import_key(self, key: str, birthday: str) -> str:
        """
        Import a spending or viewing key.

        Returns the engine's response, or an error string when the birthday
        is not a number (the engine is not called in that case).
        """
        try:
            height = int(birthday, 10)
        except ValueError:
            return f"Error: Couldn't parse {birthday} as a number"
        return await self.engine.import_key(key, height)

    async def get_option(self, name: str) -> object:
        return (await self.engine.get_option(name)).get(name)

    async def set_option(self, name: str, value: str) -> str:
        return await self.session.set_wallet_option(name, value)

    async def encrypt(self, password: str) -> bool:
        result = await self.engine.encrypt(password)
        await self.session.fetch_info()
        await self.engine.save()
        return result.result == "success"

    async def decrypt(self, password: str) -> bool:
        result = await self.engine.decrypt(password)
        await self.session.fetch_info()
        await self.engine.save()
        return result.result == "success"

    async def lock(self) -> bool:
        result = await self.engine.lock()
        await self.session.fetch_info()
        return result.result == "success"

    async def unlock(self, password: str) -> bool:
        result = await self.engine.unlock(password)
        await self.session.fetch_info()
        return result.result == "success"

    async def send(
        self,
        recipients: list[SendRecipient],
        on_progress: Callable[[SendProgress], None] | None = None,
    ) -> str:
        return await self.session.sender.send(recipients, on_progress)
