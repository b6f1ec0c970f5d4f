"""JSON messages exchanged over the live progress socket."""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from .models import EventKind, ProgressEvent


class _Message(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ConnectedMessage(_Message):
    type: Literal["connected"] = "connected"
    message: str = "Connected to image processing server"
    reconnect_token: str


class ReconnectedMessage(_Message):
    type: Literal["reconnected"] = "reconnected"
    message: str = "Successfully reconnected to server"


class ProgressMessage(_Message):
    type: Literal["progress"] = "progress"
    progress: int
    job_id: Optional[str] = None
    message: Optional[str] = None


class UploadProgressMessage(_Message):
    type: Literal["telegramUploadProgress"] = "telegramUploadProgress"
    progress: int


class DownloadProgressMessage(_Message):
    type: Literal["downloadProgress"] = "downloadProgress"
    progress: int
    request_id: str
    message: Optional[str] = None


class CompleteMessage(_Message):
    """Completion of an upload or a download; ``kind`` says which."""

    type: Literal["complete"] = "complete"
    kind: Literal["upload", "download"]
    job_id: Optional[str] = None
    request_id: Optional[str] = None
    output_path: Optional[str] = None


class ErrorMessage(_Message):
    type: Literal["error"] = "error"
    message: str
    job_id: Optional[str] = None


class PongMessage(_Message):
    type: Literal["pong"] = "pong"
    timestamp: Optional[int] = None


class PingMessage(_Message):
    type: Literal["ping"] = "ping"
    timestamp: Optional[int] = None


class ReconnectMessage(_Message):
    type: Literal["reconnect"] = "reconnect"
    token: str


class SubscribeMessage(_Message):
    type: Literal["subscribe"] = "subscribe"
    job_id: str


ServerMessage = Annotated[
    Union[
        ConnectedMessage,
        ReconnectedMessage,
        ProgressMessage,
        UploadProgressMessage,
        DownloadProgressMessage,
        CompleteMessage,
        ErrorMessage,
        PongMessage,
    ],
    Field(discriminator="type"),
]

ClientMessage = Annotated[
    Union[PingMessage, ReconnectMessage, SubscribeMessage],
    Field(discriminator="type"),
]

_server_adapter: TypeAdapter = TypeAdapter(ServerMessage)
_client_adapter: TypeAdapter = TypeAdapter(ClientMessage)


def parse_server_message(raw: Union[str, bytes, Dict[str, Any]]):
    """Parse a server-to-client message; raises ``pydantic.ValidationError``."""
    if isinstance(raw, dict):
        return _server_adapter.validate_python(raw)
    return _server_adapter.validate_json(raw)


def parse_client_message(raw: Union[str, bytes, Dict[str, Any]]):
    """Parse a client-to-server message; raises ``pydantic.ValidationError``."""
    if isinstance(raw, dict):
        return _client_adapter.validate_python(raw)
    return _client_adapter.validate_json(raw)


def job_event_message(event: ProgressEvent) -> _Message:
    """Render a job's progress event for a socket subscribed to that job."""
    if event.kind is EventKind.PROGRESS:
        return ProgressMessage(progress=event.progress or 0, job_id=event.job_id, message=event.message)
    if event.kind is EventKind.ERROR:
        return ErrorMessage(message=event.error or "Processing failed", job_id=event.job_id)
    return CompleteMessage(
        kind="download",
        job_id=event.job_id,
        output_path=str(event.output_path) if event.output_path else None,
    )


def relay_event_message(event: ProgressEvent) -> _Message:
    """Render a job's progress event for every connected session, keyed by request id."""
    if event.kind is EventKind.PROGRESS:
        return DownloadProgressMessage(progress=event.progress or 0, request_id=event.job_id, message=event.message)
    if event.kind is EventKind.ERROR:
        return ErrorMessage(message=event.error or "Processing failed", job_id=event.job_id)
    return CompleteMessage(kind="download", request_id=event.job_id)
