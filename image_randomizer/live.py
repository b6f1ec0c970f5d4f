"""Reconnecting client for the live progress socket.

The client keeps one websocket open to ``/api/ws``, sends a heartbeat ping
every ``ping_interval`` seconds and tracks the latest upload and download
progress it was told about. Unclean disconnects are retried with exponential
backoff (``base_delay * 1.5 ** (attempt - 1)``) until ``MAX_RECONNECT_ATTEMPTS``
is exhausted, after which only an explicit :meth:`LiveProgressClient.reconnect`
starts over.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from .messages import (
    CompleteMessage,
    ConnectedMessage,
    DownloadProgressMessage,
    ErrorMessage,
    PingMessage,
    PongMessage,
    ProgressMessage,
    ReconnectedMessage,
    ReconnectMessage,
    UploadProgressMessage,
    parse_server_message,
)

logger = logging.getLogger(__name__)

MAX_RECONNECT_ATTEMPTS = 5
DEFAULT_BASE_DELAY = 2.0
DEFAULT_PING_INTERVAL = 15.0
CLEAN_CLOSE_CODES = frozenset({1000, 1001})
ABNORMAL_CLOSE_CODE = 1006


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


def _close_code(exc: ConnectionClosed) -> int:
    if exc.rcvd is not None:
        return exc.rcvd.code
    return ABNORMAL_CLOSE_CODE


class LiveProgressClient:
    def __init__(
        self,
        url: str,
        connector: Optional[Callable[[str], Awaitable[Any]]] = None,
        base_delay: float = DEFAULT_BASE_DELAY,
        ping_interval: Optional[float] = DEFAULT_PING_INTERVAL,
        reconnect_token: Optional[str] = None,
        on_message: Optional[Callable[[Any], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
    ) -> None:
        self.url = url
        self._connector = connector or websockets.connect
        self.base_delay = base_delay
        self.ping_interval = ping_interval
        self.reconnect_token = reconnect_token
        self._on_message = on_message
        self._sleep = sleep
        self.max_attempts = max_attempts

        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self.gave_up = False
        self.upload_progress: Optional[int] = None
        self.download_progress: Optional[int] = None
        self.current_job_id: Optional[str] = None
        self.download_requests: Dict[str, int] = {}

        self._connection: Any = None
        self._reconnected = False
        self._closing = False
        self._reader: Optional[asyncio.Task] = None
        self._ping_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def next_delay(self, attempt: int) -> float:
        return self.base_delay * 1.5 ** (attempt - 1)

    async def start(self) -> None:
        """Open the first connection; no token is presented."""
        self._closing = False
        await self._connect(use_token=False)

    async def reconnect(self) -> None:
        """Manual reconnect: resets the attempt budget and presents the held token."""
        logger.info("Manual reconnection requested")
        self._closing = False
        self.attempts = 0
        self.gave_up = False
        await self._drop_connection()
        await self._connect(use_token=True)

    async def close(self) -> None:
        """Close deliberately; no automatic reconnection follows."""
        self._closing = True
        self._cancel_timers()
        await self._drop_connection()
        self.state = ConnectionState.DISCONNECTED

    def reset_progress(self) -> None:
        self.upload_progress = None
        self.download_progress = None
        self.current_job_id = None
        self.download_requests.clear()

    async def send(self, message: Any) -> None:
        if self._connection is None:
            raise ConnectionError("Live progress socket is not connected")
        await self._connection.send(json.dumps(message.dump()))

    async def _connect(self, use_token: bool) -> None:
        self._reconnected = False
        self._cancel_timers()
        self.state = ConnectionState.CONNECTING
        try:
            connection = await self._connector(self.url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            logger.warning("Could not connect to %s: %s", self.url, exc)
            self._handle_close(None, ABNORMAL_CLOSE_CODE)
            return

        logger.info("Live progress connection established")
        self._connection = connection
        self.state = ConnectionState.CONNECTED
        self.attempts = 0
        if use_token and self.reconnect_token:
            try:
                await self.send(ReconnectMessage(token=self.reconnect_token))
            except ConnectionClosed as exc:
                self._handle_close(connection, _close_code(exc))
                return
        if self.ping_interval:
            self._ping_task = asyncio.create_task(self._ping_loop(connection))
        self._reader = asyncio.create_task(self._read_loop(connection))

    async def _drop_connection(self) -> None:
        connection, reader = self._connection, self._reader
        self._connection = None
        self._reader = None
        if connection is not None:
            try:
                await connection.close(code=1000)
            except (OSError, WebSocketException) as exc:
                logger.debug("Error while closing live connection: %s", exc)
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

    async def _read_loop(self, connection: Any) -> None:
        try:
            async for raw in connection:
                self._dispatch(raw)
        except ConnectionClosed as exc:
            code = _close_code(exc)
        else:
            code = getattr(connection, "close_code", None) or ABNORMAL_CLOSE_CODE
        logger.info("Live progress connection closed (%s)", code)
        self._handle_close(connection, code)

    async def _ping_loop(self, connection: Any) -> None:
        while True:
            await self._sleep(self.ping_interval)
            if connection is not self._connection:
                return
            try:
                await connection.send(json.dumps(PingMessage(timestamp=int(time.time() * 1000)).dump()))
            except ConnectionClosed:
                return

    def _handle_close(self, connection: Any, code: int) -> None:
        if connection is not None and connection is not self._connection:
            return
        self._connection = None
        self._reader = None
        self._cancel_ping()
        self.state = ConnectionState.DISCONNECTED
        if self._closing:
            return
        if code in CLEAN_CLOSE_CODES:
            logger.info("Connection closed cleanly, not reconnecting")
            return
        self._reconnected = False
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnected:
            logger.debug("Skipping reconnect, session already resumed")
            return
        if self.attempts >= self.max_attempts:
            logger.warning("Maximum reconnect attempts reached, giving up automatic reconnection")
            self.gave_up = True
            return
        self.attempts += 1
        delay = self.next_delay(self.attempts)
        logger.info("Scheduling reconnect attempt %d/%d in %.1fs", self.attempts, self.max_attempts, delay)
        self.state = ConnectionState.RECONNECTING
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        if self._reconnected or self._closing:
            return
        await self._connect(use_token=True)

    def _dispatch(self, raw: Any) -> None:
        try:
            message = parse_server_message(raw)
        except (ValidationError, ValueError) as exc:
            logger.warning("Ignoring malformed live message: %s", exc)
            return

        if isinstance(message, PongMessage):
            return
        if isinstance(message, ConnectedMessage):
            self.reconnect_token = message.reconnect_token
            self.state = ConnectionState.CONNECTED
        elif isinstance(message, ReconnectedMessage):
            self.attempts = 0
            self._reconnected = True
            self._cancel_reconnect()
        elif isinstance(message, ProgressMessage):
            self.download_progress = message.progress
            if message.job_id is not None:
                self.current_job_id = message.job_id
        elif isinstance(message, DownloadProgressMessage):
            self.download_progress = message.progress
            self.download_requests[message.request_id] = message.progress
        elif isinstance(message, UploadProgressMessage):
            self.upload_progress = message.progress
        elif isinstance(message, CompleteMessage):
            if message.kind == "upload":
                self.upload_progress = 100
            else:
                self.download_progress = 100
                if message.request_id is not None:
                    self.download_requests[message.request_id] = 100
        elif isinstance(message, ErrorMessage):
            logger.error("Server reported an error: %s", message.message)

        if self._on_message is not None:
            self._on_message(message)

    def _cancel_ping(self) -> None:
        if self._ping_task is not None and self._ping_task is not asyncio.current_task():
            self._ping_task.cancel()
        self._ping_task = None

    def _cancel_reconnect(self) -> None:
        if self._reconnect_task is not None and self._reconnect_task is not asyncio.current_task():
            self._reconnect_task.cancel()
        self._reconnect_task = None

    def _cancel_timers(self) -> None:
        self._cancel_ping()
        self._cancel_reconnect()
