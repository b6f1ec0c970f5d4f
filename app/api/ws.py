from __future__ import annotations

import asyncio
import logging
import time

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from app.dependencies import get_job_manager
from app.services.job_manager import JobManager, JobNotFoundError
from app.services.sessions import LiveSession
from image_randomizer.broadcast import Subscription
from image_randomizer.messages import (
    ConnectedMessage,
    ErrorMessage,
    PingMessage,
    PongMessage,
    ProgressMessage,
    ReconnectedMessage,
    ReconnectMessage,
    SubscribeMessage,
    job_event_message,
    parse_client_message,
)

logger = logging.getLogger(__name__)

ws_router = APIRouter(tags=["live"])


async def _forward(session: LiveSession, subscription: Subscription) -> None:
    try:
        async for event in subscription:
            await session.send(job_event_message(event))
    finally:
        subscription.close()


async def _subscribe(session: LiveSession, job_manager: JobManager, job_id: str) -> None:
    try:
        subscription = await job_manager.subscribe(job_id)
        snapshot = await job_manager.get_job_snapshot(job_id)
    except JobNotFoundError:
        await session.send(ErrorMessage(message="Job not found", job_id=job_id))
        return

    previous = session.subscriptions.pop(job_id, None)
    if previous:
        previous.cancel()
    await session.send(ProgressMessage(progress=snapshot.progress, job_id=job_id))
    if subscription is not None:
        session.subscriptions[job_id] = asyncio.create_task(_forward(session, subscription))


@ws_router.websocket("/api/ws")
async def live_progress_socket(websocket: WebSocket, job_manager: JobManager = Depends(get_job_manager)) -> None:
    """
    Duplex channel for live progress.

    On connect the server sends ``{"type": "connected", "reconnectToken": ...}``.
    Clients may send ``ping``, ``reconnect`` (with a token from an earlier
    session) and ``subscribe`` (with a ``jobId``). Progress of every job is
    also pushed to all sessions as ``downloadProgress`` messages.
    """
    sessions = job_manager.sessions
    await websocket.accept()
    session = sessions.register(websocket)
    await session.send(ConnectedMessage(reconnect_token=session.token))

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            raw = frame.get("text")
            if raw is None:
                logger.warning("Ignoring binary frame from session %s", session.session_id)
                continue
            try:
                message = parse_client_message(raw)
            except ValidationError as exc:
                logger.warning("Ignoring malformed message from session %s: %s", session.session_id, exc)
                continue

            if isinstance(message, PingMessage):
                await session.send(PongMessage(timestamp=int(time.time() * 1000)))
            elif isinstance(message, ReconnectMessage):
                if await sessions.resume(session, message.token):
                    await session.send(ReconnectedMessage())
                else:
                    await session.send(ErrorMessage(message="Invalid reconnection token"))
            elif isinstance(message, SubscribeMessage):
                await _subscribe(session, job_manager, message.job_id)
    except WebSocketDisconnect:
        logger.info("Live session %s closed by client", session.session_id)
    finally:
        sessions.disconnect(session)
