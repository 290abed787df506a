"""
walletsync - Light wallet synchronization and reconciliation

Keeps a UI-facing view of balances, addresses and transactions in sync with
an opaque wallet engine.
"""

__version__ = "0.1.0"

from walletsync.engine import CallableGateway, EngineClient, EngineGateway, HttpEngineGateway
from walletsync.errors import (
    EngineCallFailure,
    MalformedResponse,
    ReconciliationError,
    SendFailed,
    WalletSyncError,
)
from walletsync.models import (
    AddressRecord,
    AddressType,
    Balance,
    NoteOrUtxo,
    SendProgress,
    SendRecipient,
    Transaction,
    TxDetail,
    TxDirection,
    WalletInfo,
    WalletSettings,
)
from walletsync.reconciler import ReconciledWallet, reconcile
from walletsync.scheduler import SyncSession, SyncState, SyncWaitOutcome, SyncWaitResult
from walletsync.send import SendCoordinator, estimate_eta
from walletsync.sink import LoggingStateSink, RecordingStateSink, StateSink
from walletsync.transactions import aggregate_transactions, combine_tx_details
from walletsync.wallet import WalletCommands

__all__ = [
    "AddressRecord",
    "AddressType",
    "Balance",
    "CallableGateway",
    "EngineCallFailure",
    "EngineClient",
    "EngineGateway",
    "HttpEngineGateway",
    "LoggingStateSink",
    "MalformedResponse",
    "NoteOrUtxo",
    "RecordingStateSink",
    "ReconciledWallet",
    "ReconciliationError",
    "SendCoordinator",
    "SendFailed",
    "SendProgress",
    "SendRecipient",
    "StateSink",
    "SyncSession",
    "SyncState",
    "SyncWaitOutcome",
    "SyncWaitResult",
    "Transaction",
    "TxDetail",
    "TxDirection",
    "WalletCommands",
    "WalletInfo",
    "WalletSettings",
    "WalletSyncError",
    "aggregate_transactions",
    "combine_tx_details",
    "estimate_eta",
    "reconcile",
]
