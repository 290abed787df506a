"""
Test configuration and fixtures.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest

from walletsync.engine.base import EngineGateway
from walletsync.engine.client import EngineClient
from walletsync.scheduler import SyncSession
from walletsync.sink import RecordingStateSink


class FakeGateway(EngineGateway):
    """
    Scripted engine.

    Each command maps to a response: a string is returned as-is, an exception
    is raised, a callable is called with the argument, anything else is
    JSON-encoded.
    """

    def __init__(self, responses: dict[str, Any] | None = None):
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def execute(self, command: str, argument: str) -> str:
        self.calls.append((command, argument))
        if command not in self.responses:
            raise RuntimeError(f"unexpected command {command}")

        response = self.responses[command]
        if callable(response):
            response = response(argument)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return response
        return json.dumps(response)

    async def close(self) -> None:
        self.closed = True

    def commands(self) -> list[str]:
        return [command for command, _ in self.calls]

    def count(self, command: str) -> int:
        return self.commands().count(command)


def sequence(*responses: Any) -> Callable[[str], Any]:
    """Serve responses in order, repeating the last one."""
    remaining = list(responses)

    def next_response(_argument: str) -> Any:
        if len(remaining) > 1:
            return remaining.pop(0)
        return remaining[0]

    return next_response


@pytest.fixture
def sample_info() -> dict[str, Any]:
    return {
        "chain_name": "main",
        "latest_block_height": 120,
        "vendor": "zingo",
        "git_commit": "abcdef123456",
        "version": "1.2.3",
    }


@pytest.fixture
def sample_addresses() -> list[dict[str, Any]]:
    return [
        {
            "address": "u1alpha",
            "receivers": {"orchard_exists": True, "sapling": "zs1alpha", "transparent": "t1alpha"},
        },
        {
            "address": "u1beta",
            "receivers": {"orchard_exists": True, "sapling": None, "transparent": None},
        },
        {
            "address": "u1empty",
            "receivers": {"orchard_exists": True, "sapling": "zs1empty", "transparent": None},
        },
    ]


@pytest.fixture
def sample_notes() -> dict[str, Any]:
    return {
        "unspent_orchard_notes": [
            {
                "address": "u1alpha",
                "value": 150_000_000,
                "spendable": True,
                "created_in_txid": "tx1",
            }
        ],
        "pending_orchard_notes": [
            {"address": "u1beta", "value": 25_000_000, "spendable": False, "created_in_txid": "tx4"}
        ],
        "unspent_sapling_notes": [
            {
                "address": "u1alpha",
                "value": 200_000_000,
                "spendable": True,
                "created_in_txid": "tx2",
            }
        ],
        "pending_sapling_notes": [],
        "utxos": [{"address": "u1alpha", "value": 50_000_000, "created_in_txid": "tx3"}],
        "pending_utxos": [],
    }


@pytest.fixture
def sample_balance() -> dict[str, Any]:
    return {
        "orchard_balance": 175_000_000,
        "sapling_balance": 200_000_000,
        "verified_sapling_balance": 200_000_000,
        "spendable_sapling_balance": 200_000_000,
        "unverified_sapling_balance": 0,
        "transparent_balance": 50_000_000,
    }


@pytest.fixture
def sample_transactions() -> list[dict[str, Any]]:
    return [
        {
            "txid": "tx1",
            "datetime": 1_700_000_000,
            "position": 0,
            "block_height": 100,
            "unconfirmed": False,
            "amount": 150_000_000,
            "zec_price": 30.5,
            "address": "u1alpha",
            "memo": "hello",
        },
        {
            "txid": "tx2",
            "datetime": 1_700_000_500,
            "position": 0,
            "block_height": 105,
            "unconfirmed": False,
            "amount": 200_000_000,
            "zec_price": 31.0,
            "address": "u1alpha",
            "memo": None,
        },
        {
            "txid": "tx5",
            "datetime": 1_700_001_000,
            "position": 0,
            "block_height": 118,
            "unconfirmed": False,
            "amount": -30_000_000,
            "zec_price": 32.0,
            "outgoing_metadata": [
                {"address": "zs1other", "value": 10_000_000, "memo": "(2/2)world"},
                {"address": "zs1other", "value": 10_000_000, "memo": "(1/2)hello "},
                {"address": "t1third", "value": 10_000_000, "memo": None},
            ],
        },
    ]


@pytest.fixture
def engine_responses(
    sample_info: dict[str, Any],
    sample_addresses: list[dict[str, Any]],
    sample_notes: dict[str, Any],
    sample_balance: dict[str, Any],
    sample_transactions: list[dict[str, Any]],
) -> dict[str, Any]:
    def get_option(name: str) -> dict[str, Any]:
        if name == "download_memos":
            return {"download_memos": "wallet"}
        return {"transaction_filter_threshold": "20"}

    return {
        "info": sample_info,
        "height": {"height": 120},
        "sync": '{"result": "success"}',
        "save": '{"result": "success"}',
        "balance": sample_balance,
        "addresses": sample_addresses,
        "notes": sample_notes,
        "list": sample_transactions,
        "updatecurrentprice": "42.5",
        "getoption": get_option,
        "setoption": '{"success": true}',
    }


@pytest.fixture
def gateway(engine_responses: dict[str, Any]) -> FakeGateway:
    return FakeGateway(engine_responses)


@pytest.fixture
def engine(gateway: FakeGateway) -> EngineClient:
    return EngineClient(gateway)


@pytest.fixture
def sink() -> RecordingStateSink:
    return RecordingStateSink()


@pytest.fixture
def session(engine: EngineClient, sink: RecordingStateSink) -> SyncSession:
    return SyncSession(
        engine,
        sink,
        refresh_interval=3600.0,
        update_interval=3600.0,
        sync_poll_interval=0.0,
        max_sync_attempts=30,
        send_poll_interval=0.0,
    )
