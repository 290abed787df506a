"""
Wallet engine gateway over a JSON-RPC bridge.

The bridge exposes the engine's command interface: each command is a JSON-RPC
method taking the single argument string as its only parameter, and the result
is the engine's raw response string.
"""

from __future__ import annotations

import json

import httpx
from loguru import logger

from walletsync.engine.base import EngineGateway
from walletsync.errors import EngineCallFailure

# Timeout for regular engine calls (seconds)
DEFAULT_ENGINE_TIMEOUT = 60.0

DEFAULT_ENGINE_URL = "http://127.0.0.1:9067"


class HttpEngineGateway(EngineGateway):
    def __init__(
        self,
        engine_url: str = DEFAULT_ENGINE_URL,
        timeout: float = DEFAULT_ENGINE_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.engine_url = engine_url.rstrip("/")
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def execute(self, command: str, argument: str) -> str:
        """
        Make a JSON-RPC call to the engine bridge.

        Args:
            command: Engine command name
            argument: Single opaque argument string

        Returns:
            Raw engine response. Non-string results are re-encoded as JSON.

        Raises:
            EngineCallFailure: On RPC errors and connection/timeout errors
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": command,
            "params": [argument],
        }

        try:
            response = await self.client.post(self.engine_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Engine call timed out: {command} - {e}")
            raise EngineCallFailure(command, f"timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Engine call failed: {command} - {e}")
            raise EngineCallFailure(command, str(e)) from e
        except ValueError as e:
            raise EngineCallFailure(command, f"invalid bridge response: {e}") from e

        if not isinstance(data, dict):
            raise EngineCallFailure(command, "invalid bridge response: not an object")

        if data.get("error"):
            error_info = data["error"]
            if isinstance(error_info, dict):
                error_code = error_info.get("code", "unknown")
                error_msg = error_info.get("message", str(error_info))
                raise EngineCallFailure(command, f"RPC error {error_code}: {error_msg}")
            raise EngineCallFailure(command, str(error_info))

        result = data.get("result")
        if isinstance(result, str):
            return result
        return json.dumps(result)

    async def close(self) -> None:
        await self.client.aclose()
