"""
Transaction aggregation.

The engine reports one line per output, so a single send to several
recipients, or a long memo split across several outputs, shows up as multiple
records with the same txid. This module groups those lines into canonical
transactions and reassembles multi-part memos tagged ``(<index>/<total>)``.
"""

from __future__ import annotations

import re
from decimal import Decimal

from loguru import logger

from walletsync.constants import AMOUNT_DECIMALS, UNITS_PER_COIN
from walletsync.engine.responses import NotesResponse, RawAddress, RawTransaction
from walletsync.errors import ReconciliationError
from walletsync.models import Transaction, TxDetail, TxDirection
from walletsync.reconciler import AddressBook, to_coins

MEMO_TAG_PATTERN = re.compile(r"\((\d+)/(\d+)\)(.*)", re.DOTALL)

_QUANTUM = Decimal(1).scaleb(-AMOUNT_DECIMALS)


def format_amount(value: Decimal) -> str:
    """Fixed-point amount string with 8 decimals."""
    return str(value.quantize(_QUANTUM))


def units_to_amount(value: int) -> str:
    return format_amount(Decimal(value) / UNITS_PER_COIN)


def parse_memo_tag(memo: str) -> tuple[int, str]:
    """
    Split a memo into its part index and text.

    Memos without a ``(<index>/<total>)`` tag get index 0.
    """
    match = MEMO_TAG_PATTERN.search(memo)
    if match:
        return int(match.group(1)), match.group(3)
    return 0, memo


def combine_tx_details(details: list[TxDetail]) -> list[TxDetail]:
    """
    Merge details sent to the same address within one transaction.

    Amounts are summed and memos reassembled in part order. Addresses keep
    their first-seen order.
    """
    groups: dict[str, list[TxDetail]] = {}
    for detail in details:
        groups.setdefault(detail.address, []).append(detail)

    combined: list[TxDetail] = []
    for address, group in groups.items():
        total = sum((Decimal(d.amount) for d in group), Decimal(0))

        parts = [parse_memo_tag(d.memo) for d in group if d.memo]
        parts.sort(key=lambda part: part[0])
        memo = "".join(text for _, text in parts) if parts else None

        combined.append(TxDetail(address=address, amount=format_amount(total), memo=memo))

    return combined


def confirmations_for(raw: RawTransaction, latest_height: int) -> int:
    if raw.unconfirmed or raw.block_height is None:
        return 0
    return latest_height - raw.block_height + 1


def _sapling_txids(notes: NotesResponse) -> set[str]:
    return {n.created_in_txid for n in notes.unspent_sapling_notes if n.created_in_txid}


def _record_address(raw: RawTransaction, book: AddressBook, sapling_txids: set[str]) -> str | None:
    """Swap the unified address for its sapling receiver when the tx created a sapling note."""
    if raw.address is None or raw.txid not in sapling_txids:
        return raw.address

    source = book.get(raw.address)
    if source is None:
        raise ReconciliationError(
            f"Transaction {raw.txid} references unknown address {raw.address}"
        )
    return source.sapling_receiver() or raw.address


def to_transaction(raw: RawTransaction, latest_height: int, address: str | None) -> Transaction:
    if raw.outgoing_metadata is not None:
        direction = TxDirection.SENT
        details = combine_tx_details(
            [
                TxDetail(address=o.address, amount=units_to_amount(o.value), memo=o.memo)
                for o in raw.outgoing_metadata
            ]
        )
        header_address = raw.outgoing_metadata[0].address if raw.outgoing_metadata else ""
    else:
        direction = TxDirection.RECEIVED
        details = [
            TxDetail(address=address or "", amount=units_to_amount(raw.amount), memo=raw.memo)
        ]
        header_address = address or ""

    return Transaction(
        txid=raw.txid,
        direction=direction,
        address=header_address,
        amount=to_coins(raw.amount),
        confirmations=confirmations_for(raw, latest_height),
        time=raw.datetime,
        price=raw.zec_price,
        position=raw.position,
        details=details,
    )


def is_self_send_artifact(tx: Transaction) -> bool:
    # Sends to self come back as a negative sent amount with nothing to show
    return tx.direction == TxDirection.SENT and tx.amount < 0 and not tx.details


def group_transactions(transactions: list[Transaction]) -> list[Transaction]:
    """
    Merge records sharing ``(txid, direction)`` into a single transaction.

    The merged transaction keeps the first member's header fields, its amount
    is the sum of member amounts and its details are the combined details of
    all members.
    """
    groups: dict[tuple[str, TxDirection], list[Transaction]] = {}
    for tx in transactions:
        groups.setdefault((tx.txid, tx.direction), []).append(tx)

    merged: list[Transaction] = []
    for members in groups.values():
        first = members[0]
        all_details = [d for tx in members for d in tx.details]
        update: dict[str, object] = {"details": combine_tx_details(all_details)}
        if len(members) > 1:
            update["amount"] = sum(tx.amount for tx in members)
        merged.append(first.model_copy(update=update))
    return merged


def aggregate_transactions(
    raw_transactions: list[RawTransaction],
    addresses: list[RawAddress],
    notes: NotesResponse,
    latest_height: int,
) -> list[Transaction]:
    """
    Build the canonical transaction list.

    Args:
        raw_transactions: Raw ``list`` response
        addresses: Raw ``addresses`` response, for sapling re-attribution
        notes: Raw ``notes`` response, for sapling re-attribution
        latest_height: Chain tip used to derive confirmations

    Returns:
        Grouped transactions, least confirmed first
    """
    book = AddressBook(addresses)
    sapling_txids = _sapling_txids(notes)

    transactions = [
        to_transaction(raw, latest_height, _record_address(raw, book, sapling_txids))
        for raw in raw_transactions
    ]

    filtered = [tx for tx in transactions if not is_self_send_artifact(tx)]
    if len(filtered) != len(transactions):
        logger.debug(f"Dropped {len(transactions) - len(filtered)} self-send artifact(s)")

    grouped = group_transactions(filtered)
    grouped.sort(key=lambda tx: tx.confirmations)
    return grouped
