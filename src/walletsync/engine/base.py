"""
Base wallet engine gateway interface.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable


class EngineGateway(ABC):
    """
    Abstract wallet engine gateway.

    The engine is an opaque command executor: it takes a command name and a
    single argument string and answers with a string, usually JSON.
    Implementations raise on engine-level failure.
    """

    @abstractmethod
    async def execute(self, command: str, argument: str) -> str:
        """Run an engine command and return its raw response"""

    async def close(self) -> None:
        """Release gateway resources"""
        pass


class CallableGateway(EngineGateway):
    """
    Gateway over a blocking ``(command, argument) -> str`` callable.

    Used for in-process engine bindings. Calls run in a worker thread so the
    event loop keeps servicing timers while the engine works.
    """

    def __init__(self, execute_fn: Callable[[str, str], str]):
        self.execute_fn = execute_fn

    async def execute(self, command: str, argument: str) -> str:
        return await asyncio.to_thread(self.execute_fn, command, argument)
