"""
Remote command session against the game server's RCON listener.

One session is shared by the whole daemon. Commands are sent strictly one
at a time; the blocking socket I/O of the ``rcon`` client runs in a worker
thread so the event loop stays responsive.

Reconnect policy:
    A connection reset while a command is in flight (the server restarted,
    an idle socket was dropped) discards the client, reconnects and resends
    the same command, up to ``max_reconnects`` times. Every other failure is
    reported immediately as ``ProtocolError``.

Tags:
    rcon, remote-commands, reconnect, asyncio, backuper-core
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol

from rcon.source import Client

from .errors import ProtocolError
from .logging import get_logger
from .models import RconEndpoint

logger = get_logger(__name__)

# Minecraft drops responses when commands arrive back to back
MINECRAFT_COMMAND_PAUSE = 0.003


class CommandClient(Protocol):
    """The subset of ``rcon.source.Client`` the session relies on."""

    def run(self, command: str, *args: str) -> str: ...

    def close(self) -> None: ...


ClientFactory = Callable[[RconEndpoint, str, float], CommandClient]


def connect_rcon(endpoint: RconEndpoint, password: str, timeout: float) -> CommandClient:
    """Open and authenticate a Source RCON connection."""
    client = Client(endpoint.host, endpoint.port, passwd=password, timeout=timeout)
    client.connect(login=True)
    return client


class CommandSession:
    """Lazily connected, self-healing RCON session."""

    def __init__(
        self,
        endpoint: RconEndpoint | None,
        password: str = "",
        *,
        minecraft_quirks: bool = False,
        timeout: float = 10.0,
        max_reconnects: int = 3,
        client_factory: ClientFactory | None = None,
    ):
        self.endpoint = endpoint
        self.password = password
        self.minecraft_quirks = minecraft_quirks
        self.timeout = timeout
        self.max_reconnects = max_reconnects
        self._client_factory = client_factory or connect_rcon
        self._client: CommandClient | None = None
        self._lock = asyncio.Lock()
        self.reconnects = 0

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def execute(self, command: str) -> str:
        """Send one command and return the server's response.

        Raises:
            ProtocolError: no endpoint, connect/auth failure, any non-reset
                error, or the reconnect bound was exhausted.
        """
        if self.endpoint is None:
            raise ProtocolError("rcon_address is not configured").with_context(command=command)

        async with self._lock:
            attempts = 0
            while True:
                client = await self._ensure_client()
                try:
                    response = await asyncio.to_thread(client.run, command)
                except ConnectionResetError as e:
                    self._discard()
                    if attempts >= self.max_reconnects:
                        raise ProtocolError(
                            f"connection reset {attempts + 1} times while sending {command!r}",
                            cause=e,
                        ).with_context(endpoint=str(self.endpoint), command=command) from e
                    attempts += 1
                    self.reconnects += 1
                    logger.warning(
                        "rcon_connection_reset",
                        endpoint=str(self.endpoint),
                        command=command,
                        attempt=attempts,
                    )
                    continue
                except Exception as e:
                    self._discard()
                    raise ProtocolError(f"sending {command!r}: {e}", cause=e).with_context(
                        endpoint=str(self.endpoint), command=command
                    ) from e
                break

            if self.minecraft_quirks:
                await asyncio.sleep(MINECRAFT_COMMAND_PAUSE)

        logger.debug("rcon_command_executed", command=command, response=response)
        return response

    async def close(self) -> None:
        """Drop the live connection, if any."""
        async with self._lock:
            self._discard()

    async def _ensure_client(self) -> CommandClient:
        if self._client is not None:
            return self._client
        assert self.endpoint is not None
        try:
            self._client = await asyncio.to_thread(
                self._client_factory, self.endpoint, self.password, self.timeout
            )
        except Exception as e:
            raise ProtocolError(f"connecting to {self.endpoint}: {e}", cause=e).with_context(
                endpoint=str(self.endpoint)
            ) from e
        logger.info("rcon_connected", endpoint=str(self.endpoint))
        return self._client

    def _discard(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
        except OSError as e:
            logger.debug("rcon_close_failed", error=str(e))

    def __repr__(self) -> str:
        state: dict[str, Any] = {"endpoint": str(self.endpoint), "connected": self.connected}
        return f"CommandSession({state})"


__all__ = [
    "MINECRAFT_COMMAND_PAUSE",
    "ClientFactory",
    "CommandClient",
    "CommandSession",
    "connect_rcon",
]
