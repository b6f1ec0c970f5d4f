"""Shared data models for the image randomizer engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

DEFAULT_FILTERS = ("vintage", "warmth", "clarity", "coolness", "vibrance")


class TransformationConfig(BaseModel):
    """Ranges and flags controlling the random edits applied to each image.

    A snapshot is taken once per job; instances are immutable.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    brightness_min: int = -30
    brightness_max: int = 30
    contrast_min: int = -30
    contrast_max: int = 30
    blur_min: int = 0
    blur_max: int = 5
    noise_min: int = 0
    noise_max: int = 10

    target_width_min: int = 1200
    target_width_max: int = 2400
    target_height_min: int = 800
    target_height_max: int = 1600
    enable_fixed_aspect_ratio: bool = False
    fixed_aspect_ratio: str = "4:3"

    enable_rotation: bool = True
    rotation_min: int = -15
    rotation_max: int = 15
    enable_flip: bool = True
    enable_blur: bool = True
    enable_grayscale: bool = True
    enable_sepia: bool = True
    enable_noise: bool = True

    enable_vignette: bool = False
    vignette_intensity_min: int = 10
    vignette_intensity_max: int = 30

    enable_sharpen: bool = False
    sharpen_intensity_min: int = 1
    sharpen_intensity_max: int = 3

    enable_color_balance: bool = False
    color_balance_r_min: int = -10
    color_balance_r_max: int = 10
    color_balance_g_min: int = -10
    color_balance_g_max: int = 10
    color_balance_b_min: int = -10
    color_balance_b_max: int = 10

    enable_grain: bool = False
    grain_intensity_min: int = 5
    grain_intensity_max: int = 15

    enable_filters: bool = False
    allowed_filters: Tuple[str, ...] = DEFAULT_FILTERS

    enable_random_metadata: bool = True
    use_consistent_metadata_per_folder: bool = True
    randomize_device: bool = True
    randomize_camera: bool = True
    randomize_date_time: bool = True
    randomize_focal_length: bool = True
    randomize_gps: bool = False
    randomize_exposure: bool = True
    randomize_aperture: bool = True
    randomize_iso: bool = True

    def aspect_ratio(self) -> Optional[Tuple[int, int]]:
        """Parse ``fixed_aspect_ratio`` ("4:3") into a pair, or None if malformed."""
        try:
            width, height = (int(part) for part in self.fixed_aspect_ratio.split(":"))
        except ValueError:
            return None
        if width <= 0 or height <= 0:
            return None
        return width, height


class EffectKind(str, Enum):
    RESIZE = "resize"
    TARGET_RESIZE = "targetResize"
    ROTATE = "rotate"
    FLIP = "flip"
    BLUR = "blur"
    GRAYSCALE = "grayscale"
    SEPIA = "sepia"
    BRIGHTNESS = "brightness"
    CONTRAST = "contrast"
    NOISE = "noise"
    VIGNETTE = "vignette"
    SHARPEN = "sharpen"
    COLOR_BALANCE = "colorBalance"
    GRAIN = "grain"
    FILTER = "filter"


ModificationValue = Union[None, int, str, Tuple[int, int], Tuple[int, int, int]]


@dataclass(frozen=True, slots=True)
class Modification:
    """One planned edit: an effect kind and its parameters.

    ``value`` is an int for scalar effects, ``(width, height)`` for a target
    resize, ``(r, g, b)`` for color balance, a preset name for filters and
    None for flip/grayscale.
    """

    kind: EffectKind
    value: ModificationValue = None


@dataclass(frozen=True, slots=True)
class ModificationPlan:
    entries: Tuple[Modification, ...]

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def kinds(self) -> List[EffectKind]:
        return [entry.kind for entry in self.entries]

    def has(self, kind: EffectKind) -> bool:
        return any(entry.kind is kind for entry in self.entries)


@dataclass(frozen=True, slots=True)
class MetadataSet:
    device: str
    camera: str
    date_time: str
    focal_length: str
    exposure: str
    gps: Optional[Tuple[float, float]] = None
    aperture: Optional[str] = None
    iso: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device": self.device,
            "camera": self.camera,
            "date_time": self.date_time,
            "focal_length": self.focal_length,
            "exposure": self.exposure,
            "gps": list(self.gps) if self.gps else None,
            "aperture": self.aperture,
            "iso": self.iso,
        }


@dataclass(frozen=True, slots=True)
class ImageStatistics:
    entropy: float
    kurtosis: float
    standard_deviation: float


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProcessingJob:
    job_id: str
    created_at: datetime
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    requested_folders: Optional[int] = None
    selected_folders: int = 0
    processed_images: int = 0
    source_archives: List[Path] = field(default_factory=list)
    output_path: Optional[Path] = None
    error: Optional[str] = None
    finished_at: Optional[datetime] = None
    downloaded_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.status in {JobStatus.COMPLETED, JobStatus.FAILED}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
            "progress": self.progress,
            "requested_folders": self.requested_folders,
            "selected_folders": self.selected_folders,
            "processed_images": self.processed_images,
            "source_archives": [str(path) for path in self.source_archives],
            "output_path": str(self.output_path) if self.output_path else None,
            "error": self.error,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "downloaded_at": self.downloaded_at.isoformat() if self.downloaded_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcessingJob":
        return cls(
            job_id=data["job_id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            status=JobStatus(data.get("status", "pending")),
            progress=data.get("progress", 0),
            requested_folders=data.get("requested_folders"),
            selected_folders=data.get("selected_folders", 0),
            processed_images=data.get("processed_images", 0),
            source_archives=[Path(item) for item in data.get("source_archives", [])],
            output_path=Path(data["output_path"]) if data.get("output_path") else None,
            error=data.get("error"),
            finished_at=datetime.fromisoformat(data["finished_at"]) if data.get("finished_at") else None,
            downloaded_at=datetime.fromisoformat(data["downloaded_at"]) if data.get("downloaded_at") else None,
        )


class EventKind(str, Enum):
    PROGRESS = "progress"
    ERROR = "error"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    job_id: str
    kind: EventKind
    progress: Optional[int] = None
    message: Optional[str] = None
    error: Optional[str] = None
    output_path: Optional[Path] = None

    @classmethod
    def update(cls, job_id: str, progress: int, message: str) -> "ProgressEvent":
        return cls(job_id=job_id, kind=EventKind.PROGRESS, progress=progress, message=message)

    @classmethod
    def failure(cls, job_id: str, error: str) -> "ProgressEvent":
        return cls(job_id=job_id, kind=EventKind.ERROR, error=error)

    @classmethod
    def completed(cls, job_id: str, output_path: Path) -> "ProgressEvent":
        return cls(job_id=job_id, kind=EventKind.COMPLETE, progress=100, output_path=output_path)

    @property
    def is_terminal(self) -> bool:
        return self.kind is not EventKind.PROGRESS

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"jobId": self.job_id}
        if self.kind is EventKind.PROGRESS:
            data.update(progress=self.progress, message=self.message)
        elif self.kind is EventKind.ERROR:
            data["error"] = self.error
        else:
            data.update(complete=True, outputPath=str(self.output_path))
        return data
