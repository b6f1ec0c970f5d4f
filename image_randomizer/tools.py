"""Subprocess wrappers for ImageMagick and ExifTool."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Sequence

from .exceptions import ToolExecutionError
from .models import ImageStatistics, MetadataSet

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120

# fx values are normalized to 0..1, unlike the raw %[standard-deviation] escape.
STATISTICS_FORMAT = "%[fx:entropy],%[fx:kurtosis],%[fx:standard_deviation]"


def _run(command: Sequence[str], timeout: float) -> str:
    try:
        result = subprocess.run(
            list(command),
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise ToolExecutionError(f"{command[0]} exited with {exc.returncode}: {stderr}") from exc
    except subprocess.TimeoutExpired as exc:
        raise ToolExecutionError(f"{command[0]} timed out after {timeout}s") from exc
    except FileNotFoundError as exc:
        raise ToolExecutionError(f"{command[0]} is not installed") from exc
    return result.stdout


def parse_statistics(output: str) -> ImageStatistics:
    """Parse ``entropy,kurtosis,stddev`` as printed by the statistics query."""
    line = output.strip().splitlines()[0] if output.strip() else ""
    parts = line.split(",")
    if len(parts) != 3:
        raise ToolExecutionError(f"Unexpected statistics output: {output!r}")
    try:
        entropy, kurtosis, deviation = (float(part) for part in parts)
    except ValueError as exc:
        raise ToolExecutionError(f"Non-numeric statistics output: {output!r}") from exc
    if any(value != value for value in (entropy, kurtosis, deviation)):
        raise ToolExecutionError(f"NaN in statistics output: {output!r}")
    return ImageStatistics(entropy=entropy, kurtosis=kurtosis, standard_deviation=deviation)


class ImageMagickTool:
    """Runs filter pipelines and statistics queries through ImageMagick."""

    def __init__(self, binary: str = "magick", timeout: float = DEFAULT_TIMEOUT) -> None:
        self.binary = binary
        self.timeout = timeout

    def apply(self, source: Path, destination: Path, arguments: Sequence[str]) -> None:
        command = [self.binary, str(source), *arguments, str(destination)]
        logger.debug("Running %s", " ".join(command))
        _run(command, self.timeout)

    def statistics(self, path: Path) -> ImageStatistics:
        # [0] restricts multi-frame files (GIF) to their first frame.
        command = [self.binary, f"{path}[0]", "-format", STATISTICS_FORMAT, "info:"]
        return parse_statistics(_run(command, self.timeout))


def exiftool_arguments(metadata: MetadataSet) -> List[str]:
    args = [
        f"-Make={metadata.device.split(' ')[0]}",
        f"-Model={metadata.device}",
        f"-LensModel={metadata.camera}",
        f"-DateTimeOriginal={metadata.date_time}",
        f"-CreateDate={metadata.date_time}",
        f"-FocalLength={metadata.focal_length}",
        f"-ExposureTime={metadata.exposure}",
    ]
    if metadata.gps:
        latitude, longitude = metadata.gps
        args += [
            f"-GPSLatitude={abs(latitude)}",
            f"-GPSLatitudeRef={'N' if latitude >= 0 else 'S'}",
            f"-GPSLongitude={abs(longitude)}",
            f"-GPSLongitudeRef={'E' if longitude >= 0 else 'W'}",
        ]
    if metadata.aperture:
        args.append(f"-FNumber={metadata.aperture.removeprefix('f/')}")
    if metadata.iso:
        args.append(f"-ISO={metadata.iso}")
    return args


class ExifToolWriter:
    """Stamps capture metadata onto a file in place with exiftool."""

    def __init__(self, binary: str = "exiftool", timeout: float = DEFAULT_TIMEOUT) -> None:
        self.binary = binary
        self.timeout = timeout

    def write(self, path: Path, metadata: MetadataSet) -> None:
        command = [self.binary, "-overwrite_original", *exiftool_arguments(metadata), str(path)]
        _run(command, self.timeout)
