"""
Normalized wallet state models handed to the state sink.

Every model is a frozen value snapshot, rebuilt on each reconciliation pass.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, computed_field, field_validator

from walletsync.engine.responses import RawReceivers


class AddressType(str, Enum):
    UNIFIED = "unified"
    SAPLING = "sapling"
    TRANSPARENT = "transparent"


class TxDirection(str, Enum):
    SENT = "sent"
    RECEIVED = "received"


class WalletInfo(BaseModel):
    chain_name: str = ""
    testnet: bool = False
    latest_block_height: int = 0
    wallet_height: int = 0
    version: str = ""
    currency_name: str = ""
    encrypted: bool = False
    locked: bool = False
    price: float | None = None

    model_config = {"frozen": True}


class Balance(BaseModel):
    """Wallet totals in whole-currency units."""

    unified: float = 0.0
    shielded: float = 0.0
    transparent: float = 0.0
    verified_shielded: float = 0.0
    spendable_shielded: float = 0.0
    unverified_shielded: float = 0.0

    model_config = {"frozen": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        return self.unified + self.shielded + self.transparent


class AddressRecord(BaseModel):
    address: str
    pool: AddressType
    receivers: RawReceivers | None = None
    balance: float = 0.0
    has_pending: bool = False

    model_config = {"frozen": True}


class NoteOrUtxo(BaseModel):
    """A note or UTXO after pool tagging and receiver re-attribution."""

    address: str
    pool: AddressType
    value: int
    spendable: bool = False
    pending: bool = False
    txid: str | None = None

    model_config = {"frozen": True}


class TxDetail(BaseModel):
    address: str = ""
    amount: str = "0.00000000"
    memo: str | None = None

    model_config = {"frozen": True}


class Transaction(BaseModel):
    txid: str
    direction: TxDirection
    address: str = ""
    amount: float = 0.0
    confirmations: int = 0
    time: int | None = None
    price: float | None = None
    position: int | None = None
    details: list[TxDetail] = Field(default_factory=list)

    model_config = {"frozen": True}


class SendRecipient(BaseModel):
    address: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0, description="Amount in minor units")
    memo: str | None = None

    @field_validator("memo")
    @classmethod
    def empty_memo_is_none(cls, v: str | None) -> str | None:
        return v or None

    def to_engine(self) -> dict[str, object]:
        entry: dict[str, object] = {"address": self.address, "amount": self.amount}
        if self.memo is not None:
            entry["memo"] = self.memo
        return entry


class SendProgress(BaseModel):
    send_id: int | None = None
    progress: int = 0
    total: int = 0
    eta_seconds: int | None = None
    in_progress: bool = False
    txid: str | None = None
    error: str | None = None

    model_config = {"frozen": True}


class WalletSettings(BaseModel):
    download_memos: str = ""
    transaction_filter_threshold: int = 0

    model_config = {"frozen": True}
