"""
Typed shapes of the raw engine responses.

Fields the engine may omit default to empty values; anything that does not fit
is rejected at the boundary by EngineClient as a MalformedResponse.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator


class InfoResponse(BaseModel):
    chain_name: str = ""
    latest_block_height: int
    vendor: str = ""
    git_commit: str = ""
    version: str = ""


class HeightResponse(BaseModel):
    height: int


class BalanceResponse(BaseModel):
    """Per-pool balances in minor units."""

    orchard_balance: int = 0
    sapling_balance: int = 0
    verified_sapling_balance: int = 0
    spendable_sapling_balance: int = 0
    unverified_sapling_balance: int = 0
    transparent_balance: int = 0

    @field_validator("*", mode="before")
    @classmethod
    def null_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class RawReceivers(BaseModel):
    """
    Receiver descriptor of a unified address.

    ``sapling`` and ``transparent`` carry the encoded single-pool receiver.
    A bare ``true`` means the engine did not expose a separate encoding and the
    unified address itself stands in for that receiver.
    """

    orchard_exists: bool = Field(
        default=False, validation_alias=AliasChoices("orchard_exists", "orchard")
    )
    sapling: str | bool | None = None
    transparent: str | bool | None = None

    model_config = {"frozen": True, "populate_by_name": True}


class RawAddress(BaseModel):
    address: str
    receivers: RawReceivers = Field(default_factory=RawReceivers)

    def sapling_receiver(self) -> str | None:
        return self._resolve(self.receivers.sapling)

    def transparent_receiver(self) -> str | None:
        return self._resolve(self.receivers.transparent)

    def _resolve(self, receiver: str | bool | None) -> str | None:
        if receiver is True:
            return self.address
        if not receiver:
            return None
        return str(receiver)


class RawNote(BaseModel):
    """An orchard/sapling note or a transparent UTXO."""

    address: str
    value: int
    spendable: bool = False
    created_in_txid: str | None = None


class NotesResponse(BaseModel):
    unspent_orchard_notes: list[RawNote] = Field(default_factory=list)
    pending_orchard_notes: list[RawNote] = Field(default_factory=list)
    unspent_sapling_notes: list[RawNote] = Field(default_factory=list)
    pending_sapling_notes: list[RawNote] = Field(default_factory=list)
    utxos: list[RawNote] = Field(default_factory=list)
    pending_utxos: list[RawNote] = Field(default_factory=list)

    @field_validator("*", mode="before")
    @classmethod
    def null_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class RawOutgoingMetadata(BaseModel):
    address: str
    value: int
    memo: str | None = None


class RawTransaction(BaseModel):
    txid: str
    datetime: int | None = None
    position: int | None = None
    block_height: int | None = None
    unconfirmed: bool = False
    amount: int = 0
    zec_price: float | None = None
    address: str | None = None
    memo: str | None = None
    outgoing_metadata: list[RawOutgoingMetadata] | None = None


class SendProgressResponse(BaseModel):
    id: int
    sending: bool = False
    progress: int = 0
    total: int = 0
    txid: str | None = None
    error: str | None = None


class ExportedKey(BaseModel):
    address: str | None = None
    private_key: str | None = None
    viewing_key: str | None = None


class SeedResponse(BaseModel):
    seed: str
    birthday: int | None = None


class ResultResponse(BaseModel):
    result: str
    error: str | None = None


class DefaultFeeResponse(BaseModel):
    defaultfee: int
