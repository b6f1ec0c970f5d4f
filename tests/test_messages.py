from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from image_randomizer.messages import (
    CompleteMessage,
    ConnectedMessage,
    DownloadProgressMessage,
    SubscribeMessage,
    job_event_message,
    parse_client_message,
    parse_server_message,
    relay_event_message,
)
from image_randomizer.models import ProgressEvent


def test_server_messages_use_camel_case() -> None:
    assert ConnectedMessage(reconnect_token="abc").dump() == {
        "type": "connected",
        "message": "Connected to image processing server",
        "reconnectToken": "abc",
    }


def test_complete_requires_kind() -> None:
    with pytest.raises(ValidationError):
        parse_server_message('{"type": "complete", "jobId": "job-1"}')

    message = parse_server_message({"type": "complete", "kind": "upload"})
    assert isinstance(message, CompleteMessage)
    assert message.kind == "upload"


def test_client_subscribe_parses_job_id() -> None:
    message = parse_client_message('{"type": "subscribe", "jobId": "job-3"}')

    assert isinstance(message, SubscribeMessage)
    assert message.job_id == "job-3"


def test_job_events_render_for_subscribers() -> None:
    progress = job_event_message(ProgressEvent.update("job-1", 30, "Modifying images..."))
    complete = job_event_message(ProgressEvent.completed("job-1", Path("/data/processed_job-1.zip")))
    failure = job_event_message(ProgressEvent.failure("job-1", "No source archives found"))

    assert progress.dump() == {"type": "progress", "progress": 30, "jobId": "job-1", "message": "Modifying images..."}
    assert complete.dump() == {
        "type": "complete",
        "kind": "download",
        "jobId": "job-1",
        "outputPath": "/data/processed_job-1.zip",
    }
    assert failure.dump() == {"type": "error", "message": "No source archives found", "jobId": "job-1"}


def test_relayed_progress_is_keyed_by_request_id() -> None:
    message = relay_event_message(ProgressEvent.update("job-9", 65, "Processing: 65% complete"))

    assert isinstance(message, DownloadProgressMessage)
    assert message.dump()["requestId"] == "job-9"
