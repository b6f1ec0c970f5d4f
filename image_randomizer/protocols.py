"""Protocol definitions for the collaborators the engine depends on."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol, Sequence

from .models import ImageStatistics, MetadataSet, TransformationConfig


class ConfigProvider(Protocol):
    """Source of the current transformation settings."""

    def get_config(self) -> TransformationConfig:
        ...

    def get_folder_count(self) -> int:
        """Default number of folders selected per job."""
        ...


class StatisticsSink(Protocol):
    """Counters and activity log; implementations must be safe under concurrent calls."""

    def increment_processed(self, count: int = 1) -> None:
        ...

    def increment_failed(self) -> None:
        ...

    def increment_sent(self) -> None:
        ...

    def set_total_source_archives(self, count: int) -> None:
        ...

    def record_activity(
        self,
        action: str,
        details: str,
        status: str = "completed",
        filename: Optional[str] = None,
        filesize: Optional[int] = None,
        from_user: Optional[str] = None,
    ) -> None:
        ...


class ImageTool(Protocol):
    """External image-filter tool."""

    def apply(self, source: Path, destination: Path, arguments: Sequence[str]) -> None:
        """Run one filter pipeline from ``source`` into ``destination``."""
        ...

    def statistics(self, path: Path) -> ImageStatistics:
        ...


class MetadataWriter(Protocol):
    """External tool stamping capture metadata onto a file in place."""

    def write(self, path: Path, metadata: MetadataSet) -> None:
        ...
