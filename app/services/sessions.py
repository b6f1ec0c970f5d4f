"""Live progress socket sessions and their reconnect tokens."""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)

DEFAULT_SESSION_RETENTION = 120.0


def _mint_token() -> str:
    return secrets.token_hex(24)


@dataclass(eq=False)
class LiveSession:
    session_id: str
    token: str
    websocket: Optional[WebSocket]
    connected: bool = True
    subscriptions: Dict[str, asyncio.Task] = field(default_factory=dict)

    async def send(self, message: Any) -> bool:
        if not self.connected or self.websocket is None:
            return False
        try:
            await self.websocket.send_json(message.dump())
        except Exception as exc:
            logger.debug("Failed to send to session %s: %s", self.session_id, exc)
            return False
        return True

    def cancel_subscriptions(self) -> None:
        for task in self.subscriptions.values():
            task.cancel()
        self.subscriptions.clear()


class SessionRegistry:
    """Tracks connected sessions and keeps disconnected ones for a while.

    A disconnected session stays resumable for ``retention`` seconds; a new
    session presenting its token takes over and the old entry is dropped.
    """

    def __init__(self, retention: float = DEFAULT_SESSION_RETENTION) -> None:
        self.retention = retention
        self._sessions: Dict[str, LiveSession] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def register(self, websocket: Optional[WebSocket]) -> LiveSession:
        session = LiveSession(session_id=secrets.token_hex(8), token=_mint_token(), websocket=websocket)
        self._sessions[session.session_id] = session
        logger.info("Live session %s connected. Total sessions: %d", session.session_id, len(self._sessions))
        return session

    async def resume(self, session: LiveSession, token: str) -> bool:
        """Validate ``token`` against every other known session and retire the match."""
        for other in list(self._sessions.values()):
            if other is session or not secrets.compare_digest(other.token, token):
                continue
            logger.info("Session %s resumed using token from %s", session.session_id, other.session_id)
            self._forget(other.session_id)
            other.cancel_subscriptions()
            if other.connected and other.websocket is not None:
                other.connected = False
                try:
                    await other.websocket.close()
                except RuntimeError as exc:
                    logger.debug("Old session %s already closed: %s", other.session_id, exc)
            return True
        return False

    def disconnect(self, session: LiveSession) -> None:
        session.connected = False
        session.cancel_subscriptions()
        if session.session_id not in self._sessions:
            return
        logger.info("Live session %s disconnected", session.session_id)
        loop = asyncio.get_running_loop()
        self._timers[session.session_id] = loop.call_later(self.retention, self._forget, session.session_id)

    def _forget(self, session_id: str) -> None:
        timer = self._timers.pop(session_id, None)
        if timer:
            timer.cancel()
        if self._sessions.pop(session_id, None) is not None:
            logger.debug("Removed session %s from reconnection pool", session_id)

    def live_sessions(self) -> List[LiveSession]:
        return [session for session in self._sessions.values() if session.connected]

    async def broadcast(self, message: Any) -> None:
        for session in self.live_sessions():
            await session.send(message)

    def close(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        for session in self._sessions.values():
            session.cancel_subscriptions()
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
