"""
State sink: the write-only observers that receive normalized wallet state.

The sink is owned by the UI layer. It may be called from timer callbacks at
any point and offers no read-back contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from loguru import logger

from walletsync.models import (
    AddressRecord,
    Balance,
    Transaction,
    WalletInfo,
    WalletSettings,
)


class StateSink(ABC):
    @abstractmethod
    def set_info(self, info: WalletInfo) -> None:
        """Chain and wallet metadata"""

    @abstractmethod
    def set_total_balance(self, balance: Balance) -> None:
        """Wallet totals"""

    @abstractmethod
    def set_addresses_with_balance(self, addresses: list[AddressRecord]) -> None:
        """Addresses currently holding funds"""

    @abstractmethod
    def set_all_addresses(self, addresses: list[AddressRecord]) -> None:
        """Full address inventory"""

    @abstractmethod
    def set_transactions(self, transactions: list[Transaction]) -> None:
        """Complete replacement transaction list"""

    @abstractmethod
    def set_price(self, price: float | None) -> None:
        """Current price"""

    @abstractmethod
    def set_wallet_settings(self, settings: WalletSettings) -> None:
        """Engine-side wallet options"""


class LoggingStateSink(StateSink):
    """Sink that reports every update to the log. Used by the CLI."""

    def set_info(self, info: WalletInfo) -> None:
        logger.info(
            f"Info: chain={info.chain_name or '?'} latest={info.latest_block_height} "
            f"wallet={info.wallet_height} version={info.version}"
        )

    def set_total_balance(self, balance: Balance) -> None:
        logger.info(
            f"Balance: total={balance.total:.8f} unified={balance.unified:.8f} "
            f"sapling={balance.shielded:.8f} transparent={balance.transparent:.8f}"
        )

    def set_addresses_with_balance(self, addresses: list[AddressRecord]) -> None:
        for record in addresses:
            pending = " (pending)" if record.has_pending else ""
            logger.info(
                f"  {record.pool.value:<11} {record.balance:>16.8f}  {record.address}{pending}"
            )

    def set_all_addresses(self, addresses: list[AddressRecord]) -> None:
        logger.debug(f"Address inventory: {len(addresses)} addresses")

    def set_transactions(self, transactions: list[Transaction]) -> None:
        logger.info(f"Transactions: {len(transactions)}")

    def set_price(self, price: float | None) -> None:
        if price is not None:
            logger.info(f"Price: {price:.2f}")

    def set_wallet_settings(self, settings: WalletSettings) -> None:
        logger.debug(
            f"Wallet settings: download_memos={settings.download_memos} "
            f"filter_threshold={settings.transaction_filter_threshold}"
        )


@dataclass
class RecordingStateSink(StateSink):
    """Sink that keeps the latest value pushed to each callback."""

    info: WalletInfo | None = None
    balance: Balance | None = None
    addresses_with_balance: list[AddressRecord] = field(default_factory=list)
    all_addresses: list[AddressRecord] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    price: float | None = None
    settings: WalletSettings | None = None
    updates: int = 0

    def set_info(self, info: WalletInfo) -> None:
        self.info = info
        self.updates += 1

    def set_total_balance(self, balance: Balance) -> None:
        self.balance = balance
        self.updates += 1

    def set_addresses_with_balance(self, addresses: list[AddressRecord]) -> None:
        self.addresses_with_balance = addresses
        self.updates += 1

    def set_all_addresses(self, addresses: list[AddressRecord]) -> None:
        self.all_addresses = addresses
        self.updates += 1

    def set_transactions(self, transactions: list[Transaction]) -> None:
        self.transactions = transactions
        self.updates += 1

    def set_price(self, price: float | None) -> None:
        self.price = price
        self.updates += 1

    def set_wallet_settings(self, settings: WalletSettings) -> None:
        self.settings = settings
        self.updates += 1
