"""
Reconciles the engine's native balance, address and note records into
normalized balances and address records.

The engine attributes sapling notes and UTXOs to the unified address that
produced them. Before aggregation each of those is re-attributed to the
single-pool receiver string through the address inventory, so that
per-address balances line up with the sapling and transparent records.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from walletsync.constants import UNITS_PER_COIN
from walletsync.engine.responses import BalanceResponse, NotesResponse, RawAddress, RawNote
from walletsync.errors import ReconciliationError
from walletsync.models import AddressRecord, AddressType, Balance, NoteOrUtxo


@dataclass
class ReconciledWallet:
    """Result of one reconciliation pass."""

    balance: Balance
    addresses_with_balance: list[AddressRecord]
    all_addresses: list[AddressRecord]
    notes: list[NoteOrUtxo]


def to_coins(value: int) -> float:
    """Convert engine minor units to whole-currency units."""
    return value / UNITS_PER_COIN


class AddressBook:
    """Lookup of raw addresses by the unified address string the engine reports."""

    def __init__(self, addresses: list[RawAddress]):
        self.addresses = addresses
        self._by_address = {a.address: a for a in addresses}

    def get(self, address: str) -> RawAddress | None:
        return self._by_address.get(address)

    def receiver_for(self, source_address: str, pool: AddressType) -> str:
        """
        Resolve the single-pool receiver of ``source_address``.

        Raises:
            ReconciliationError: If the address is unknown or lacks that receiver
        """
        raw = self._by_address.get(source_address)
        if raw is None:
            raise ReconciliationError(
                f"{pool.value} record references unknown address {source_address}"
            )

        if pool == AddressType.UNIFIED:
            return raw.address
        if pool == AddressType.SAPLING:
            receiver = raw.sapling_receiver()
        else:
            receiver = raw.transparent_receiver()

        if receiver is None:
            raise ReconciliationError(f"Address {source_address} has no {pool.value} receiver")
        return receiver


def attribute_notes(notes: NotesResponse, book: AddressBook) -> list[NoteOrUtxo]:
    """Pool-tag every note and UTXO and re-attribute them to their receiver."""
    collections: list[tuple[list[RawNote], AddressType, bool]] = [
        (notes.unspent_orchard_notes, AddressType.UNIFIED, False),
        (notes.pending_orchard_notes, AddressType.UNIFIED, True),
        (notes.unspent_sapling_notes, AddressType.SAPLING, False),
        (notes.pending_sapling_notes, AddressType.SAPLING, True),
        (notes.utxos, AddressType.TRANSPARENT, False),
        (notes.pending_utxos, AddressType.TRANSPARENT, True),
    ]

    result: list[NoteOrUtxo] = []
    for raw_notes, pool, pending in collections:
        for note in raw_notes:
            # Orchard notes already carry the unified address
            if pool == AddressType.UNIFIED:
                address = note.address
            else:
                address = book.receiver_for(note.address, pool)
            result.append(
                NoteOrUtxo(
                    address=address,
                    pool=pool,
                    value=note.value,
                    spendable=note.spendable,
                    pending=pending,
                    txid=note.created_in_txid,
                )
            )
    return result


def classify_addresses(addresses: list[RawAddress]) -> list[tuple[AddressType, str, RawAddress]]:
    """
    Split raw addresses into per-pool entries.

    A unified address appears once for every receiver type it bundles, and
    each entry becomes a distinct address record. Entries are ordered by
    pool: unified, then sapling, then transparent.
    """
    unified = [(AddressType.UNIFIED, a.address, a) for a in addresses if a.receivers.orchard_exists]
    sapling = [
        (AddressType.SAPLING, receiver, a)
        for a in addresses
        if (receiver := a.sapling_receiver()) is not None
    ]
    transparent = [
        (AddressType.TRANSPARENT, receiver, a)
        for a in addresses
        if (receiver := a.transparent_receiver()) is not None
    ]
    return unified + sapling + transparent


def normalize_balance(raw: BalanceResponse) -> Balance:
    return Balance(
        unified=to_coins(raw.orchard_balance),
        shielded=to_coins(raw.sapling_balance),
        transparent=to_coins(raw.transparent_balance),
        verified_shielded=to_coins(raw.verified_sapling_balance),
        spendable_shielded=to_coins(raw.spendable_sapling_balance),
        unverified_shielded=to_coins(raw.unverified_sapling_balance),
    )


def reconcile(
    balance: BalanceResponse, addresses: list[RawAddress], notes: NotesResponse
) -> ReconciledWallet:
    """
    Build the normalized wallet view from one set of engine responses.

    Args:
        balance: Raw ``balance`` response
        addresses: Raw ``addresses`` response
        notes: Raw ``notes`` response

    Returns:
        Totals, addresses holding funds, the full address inventory and the
        re-attributed notes

    Raises:
        ReconciliationError: If a note cannot be attributed to a known receiver
    """
    book = AddressBook(addresses)
    attributed = attribute_notes(notes, book)

    sums: dict[tuple[AddressType, str], int] = {}
    pending: set[tuple[AddressType, str]] = set()
    for note in attributed:
        key = (note.pool, note.address)
        sums[key] = sums.get(key, 0) + note.value
        if note.pending:
            pending.add(key)

    all_addresses: list[AddressRecord] = []
    for pool, address, raw in classify_addresses(addresses):
        key = (pool, address)
        all_addresses.append(
            AddressRecord(
                address=address,
                pool=pool,
                receivers=raw.receivers if pool == AddressType.UNIFIED else None,
                balance=to_coins(sums.get(key, 0)),
                has_pending=key in pending,
            )
        )

    with_balance = [record for record in all_addresses if record.balance != 0]

    logger.debug(
        f"Reconciled {len(all_addresses)} addresses ({len(with_balance)} with balance) "
        f"from {len(attributed)} notes"
    )

    return ReconciledWallet(
        balance=normalize_balance(balance),
        addresses_with_balance=with_balance,
        all_addresses=all_addresses,
        notes=attributed,
    )
