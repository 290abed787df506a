"""
Wallet engine access.

Available gateways:
- CallableGateway: in-process engine binding (blocking callable run in a thread)
- HttpEngineGateway: engine exposed through a JSON-RPC bridge

EngineClient wraps any gateway with serialized calls and typed responses.
"""

from walletsync.engine.base import CallableGateway, EngineGateway
from walletsync.engine.client import EngineClient
from walletsync.engine.http import HttpEngineGateway

__all__ = [
    "CallableGateway",
    "EngineClient",
    "EngineGateway",
    "HttpEngineGateway",
]
