from __future__ import annotations

import shutil
import struct
import zipfile
import zlib
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest
from PIL import Image

from image_randomizer.exceptions import ToolExecutionError
from image_randomizer.models import ImageStatistics, MetadataSet

NORMAL_STATS = ImageStatistics(entropy=0.5, kurtosis=-1.2, standard_deviation=0.2)


def create_sample_jpg(path: Path, name: str = "sample.jpg", size: tuple[int, int] = (10, 10)) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, (255, 0, 0))
    image_path = path / name
    image.save(image_path, format="JPEG")
    return image_path


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))


def create_oversized_png(path: Path, width: int = 20000, height: int = 20000) -> Path:
    """Write a tiny PNG whose header claims ``width x height`` pixels."""
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(
        b"\x89PNG\r\n\x1a\n" + _png_chunk(b"IHDR", header) + _png_chunk(b"IDAT", zlib.compress(b"")) + _png_chunk(b"IEND", b"")
    )
    return path


def create_source_archive(path: Path, folders: Dict[str, int], extra: Optional[Dict[str, bytes]] = None) -> Path:
    """Zip ``{folder: image_count}`` into ``path`` with Pillow-made JPEGs.

    ``extra`` maps archive member names to raw bytes added alongside.
    """
    staging = path.parent / f"{path.stem}_staging"
    for folder, count in folders.items():
        for index in range(count):
            create_sample_jpg(staging / folder, name=f"img_{index}.jpg")
    for name, payload in (extra or {}).items():
        member = staging / name
        member.parent.mkdir(parents=True, exist_ok=True)
        member.write_bytes(payload)
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        for file in sorted(staging.rglob("*")):
            if file.is_file():
                archive.write(file, arcname=file.relative_to(staging).as_posix())
    shutil.rmtree(staging)
    return path


class FakeImageTool:
    """Copies the input as the "filtered" output and reports canned statistics."""

    def __init__(
        self,
        stats: Optional[ImageStatistics] = NORMAL_STATS,
        fail_apply: bool = False,
    ) -> None:
        self.stats = stats
        self.fail_apply = fail_apply
        self.calls: List[List[str]] = []

    def apply(self, source: Path, destination: Path, arguments: Sequence[str]) -> None:
        self.calls.append(list(arguments))
        if self.fail_apply:
            raise ToolExecutionError("magick exited with 1: simulated failure")
        with Image.open(source) as image:
            image.rotate(90).save(destination, format="JPEG")

    def statistics(self, path: Path) -> ImageStatistics:
        if self.stats is None:
            raise ToolExecutionError("statistics unavailable")
        return self.stats


class FakeMetadataWriter:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.written: Dict[Path, MetadataSet] = {}

    def write(self, path: Path, metadata: MetadataSet) -> None:
        if self.fail:
            raise ToolExecutionError("exiftool is not installed")
        self.written[Path(path)] = metadata


class FakeStatistics:
    def __init__(self) -> None:
        self.processed = 0
        self.failed = 0
        self.sent = 0
        self.total_source_archives: Optional[int] = None
        self.activity: List[dict] = []

    def increment_processed(self, count: int = 1) -> None:
        self.processed += count

    def increment_failed(self) -> None:
        self.failed += 1

    def increment_sent(self) -> None:
        self.sent += 1

    def set_total_source_archives(self, count: int) -> None:
        self.total_source_archives = count

    def record_activity(self, action, details, status="completed", filename=None, filesize=None, from_user=None) -> None:
        self.activity.append(
            {"action": action, "details": details, "status": status, "filename": filename, "filesize": filesize}
        )


@pytest.fixture
def image_tool() -> FakeImageTool:
    return FakeImageTool()


@pytest.fixture
def metadata_writer() -> FakeMetadataWriter:
    return FakeMetadataWriter()


@pytest.fixture
def statistics() -> FakeStatistics:
    return FakeStatistics()
