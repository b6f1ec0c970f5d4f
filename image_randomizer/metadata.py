"""Synthesis of randomized capture metadata."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Optional

from .models import MetadataSet, TransformationConfig
from .utils import random_int

DEVICE_MODELS = (
    "iPhone 12 Pro",
    "iPhone 13",
    "iPhone 14 Pro Max",
    "iPhone 11",
    "Samsung Galaxy S21",
    "Samsung Galaxy S22 Ultra",
    "Google Pixel 6",
    "Sony Xperia 1 III",
    "OnePlus 9 Pro",
    "Xiaomi Mi 11",
)

CAMERA_MODELS = (
    "Apple iPhone Camera",
    "Samsung ISOCELL",
    "Sony IMX766",
    "Sony IMX586",
    "HMX Sensor",
    "OV64B",
    "GN5 Sensor",
    "IMX707",
    "OV50A",
    "JN1 Sensor",
)

APERTURES = ("f/1.8", "f/2.0", "f/2.2", "f/2.8", "f/4.0", "f/5.6", "f/8.0", "f/11", "f/16")
ISO_VALUES = (50, 100, 200, 400, 800, 1600, 3200)

DEFAULT_DEVICE = "Unknown Device"
DEFAULT_CAMERA = "Unknown Camera"
DEFAULT_FOCAL_LENGTH = "35mm"
DEFAULT_EXPOSURE = "1/125"
DEFAULT_APERTURE = "f/2.8"
DEFAULT_ISO = 100

MAX_AGE = timedelta(days=365 * 2)

# EXIF date format.
DATE_FORMAT = "%Y:%m:%d %H:%M:%S"


def synthesize_metadata(
    config: TransformationConfig,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> MetadataSet:
    """Return one metadata record, randomizing only the fields enabled in ``config``."""
    rng = rng or random.Random()
    now = now or datetime.now(timezone.utc)

    if config.randomize_date_time:
        captured = now - timedelta(seconds=rng.uniform(0, MAX_AGE.total_seconds()))
    else:
        captured = now

    gps = None
    if config.randomize_gps:
        gps = (round(rng.uniform(-90.0, 90.0), 6), round(rng.uniform(-180.0, 180.0), 6))

    return MetadataSet(
        device=rng.choice(DEVICE_MODELS) if config.randomize_device else DEFAULT_DEVICE,
        camera=rng.choice(CAMERA_MODELS) if config.randomize_camera else DEFAULT_CAMERA,
        date_time=captured.strftime(DATE_FORMAT),
        focal_length=f"{random_int(rng, 24, 200) / 10}mm" if config.randomize_focal_length else DEFAULT_FOCAL_LENGTH,
        exposure=f"1/{random_int(rng, 30, 4000)}" if config.randomize_exposure else DEFAULT_EXPOSURE,
        gps=gps,
        aperture=rng.choice(APERTURES) if config.randomize_aperture else DEFAULT_APERTURE,
        iso=rng.choice(ISO_VALUES) if config.randomize_iso else DEFAULT_ISO,
    )


class FolderMetadataCache:
    """Hands out metadata for images, shared per folder when the config asks for it.

    One instance lives for the duration of a single job.
    """

    def __init__(self, config: TransformationConfig, rng: Optional[random.Random] = None) -> None:
        self._config = config
        self._rng = rng or random.Random()
        self._by_folder: Dict[Path, MetadataSet] = {}

    def for_folder(self, folder: Path) -> Optional[MetadataSet]:
        if not self._config.enable_random_metadata:
            return None
        if not self._config.use_consistent_metadata_per_folder:
            return synthesize_metadata(self._config, self._rng)
        metadata = self._by_folder.get(folder)
        if metadata is None:
            metadata = synthesize_metadata(self._config, self._rng)
            self._by_folder[folder] = metadata
        return metadata

    def __len__(self) -> int:
        return len(self._by_folder)
