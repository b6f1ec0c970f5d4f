"""Execution of modification plans against single images.

The executor never leaves a partially written or rejected file behind: the
destination ends up holding either the accepted tool output or a verbatim
copy of the source image.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .exceptions import ImageRandomizerError, ToolExecutionError
from .models import EffectKind, ImageStatistics, MetadataSet, ModificationPlan, TransformationConfig
from .planner import NOISE_CEILING
from .protocols import ImageTool, MetadataWriter

try:
    from PIL import Image, UnidentifiedImageError
    from PIL.Image import DecompressionBombError
except ImportError as exc:  # pragma: no cover - handled by raising on init
    Image = None  # type: ignore
    UnidentifiedImageError = RuntimeError  # type: ignore
    DecompressionBombError = RuntimeError  # type: ignore
    _pillow_import_error = exc
else:
    _pillow_import_error = None

logger = logging.getLogger(__name__)

MAX_ENTROPY = 0.95
MIN_STANDARD_DEVIATION = 0.01

FILTER_PRESETS: Dict[str, List[str]] = {
    "vintage": ["-sepia-tone", "20%", "-brightness-contrast", "0x10", "-modulate", "100,80,100"],
    "warmth": ["-modulate", "100,110,85"],
    "clarity": ["-sharpen", "0x1.5", "-brightness-contrast", "0x20"],
    "coolness": ["-modulate", "100,90,110"],
    "vibrance": ["-modulate", "100,120,100"],
}


class TransformOutcome(str, Enum):
    TRANSFORMED = "transformed"
    FALLBACK = "fallback"


@dataclass(frozen=True, slots=True)
class TransformResult:
    outcome: TransformOutcome
    reason: Optional[str] = None
    statistics: Optional[ImageStatistics] = None


def _color_matrix(red: int, green: int, blue: int) -> str:
    # 6x6 matrix; the last column carries normalized per-channel offsets.
    rows = [
        [1, 0, 0, 0, 0, red / 100],
        [0, 1, 0, 0, 0, green / 100],
        [0, 0, 1, 0, 0, blue / 100],
        [0, 0, 0, 1, 0, 0],
        [0, 0, 0, 0, 1, 0],
        [0, 0, 0, 0, 0, 1],
    ]
    return " ".join(f"{value:g}" for row in rows for value in row)


def build_filter_arguments(plan: ModificationPlan, config: TransformationConfig) -> List[str]:
    """Translate a plan into one ImageMagick filter pipeline."""
    args: List[str] = []
    for mod in plan:
        kind, value = mod.kind, mod.value
        if kind is EffectKind.RESIZE:
            args += ["-resize", f"{value}%"]
        elif kind is EffectKind.TARGET_RESIZE:
            width, height = value  # type: ignore[misc]
            args += ["-resize", f"{width}x{height}"]
        elif kind is EffectKind.ROTATE:
            args += ["-rotate", str(value)]
        elif kind is EffectKind.FLIP:
            args.append("-flip")
        elif kind is EffectKind.BLUR:
            args += ["-blur", f"0x{value}"]
        elif kind is EffectKind.GRAYSCALE:
            args += ["-grayscale", "Rec709Luminance"]
        elif kind is EffectKind.SEPIA:
            args += ["-sepia-tone", f"{value}%"]
        elif kind is EffectKind.BRIGHTNESS:
            args += ["-brightness-contrast", f"{value}x0"]
        elif kind is EffectKind.CONTRAST:
            args += ["-brightness-contrast", f"0x{value}"]
        elif kind is EffectKind.NOISE:
            attenuation = min(int(value or NOISE_CEILING), NOISE_CEILING)  # type: ignore[arg-type]
            args += ["-attenuate", str(attenuation), "+noise", "Random"]
        elif kind is EffectKind.VIGNETTE:
            args += ["-vignette", f"0x{value}"]
        elif kind is EffectKind.SHARPEN:
            args += ["-sharpen", f"0x{value}"]
        elif kind is EffectKind.COLOR_BALANCE:
            red, green, blue = value  # type: ignore[misc]
            args += ["-color-matrix", _color_matrix(red, green, blue)]
        elif kind is EffectKind.GRAIN:
            args += ["-attenuate", f"{int(value) / 10:g}", "+noise", "Gaussian"]  # type: ignore[arg-type]
        elif kind is EffectKind.FILTER:
            preset = FILTER_PRESETS.get(str(value))
            if preset is None:
                logger.warning("Ignoring unknown filter preset %r", value)
                continue
            args += preset

    if config.enable_fixed_aspect_ratio and not plan.has(EffectKind.TARGET_RESIZE):
        ratio = config.aspect_ratio()
        if ratio:
            args += ["-gravity", "center", "-crop", f"{ratio[0]}:{ratio[1]}", "+repage"]
    return args


def _partial_path(destination: Path) -> Path:
    return destination.with_name(f".{destination.stem}.partial{destination.suffix}")


class TransformationExecutor:
    """Applies plans through an image tool and stamps metadata on the result."""

    def __init__(
        self,
        config: TransformationConfig,
        image_tool: ImageTool,
        metadata_writer: Optional[MetadataWriter] = None,
    ) -> None:
        if Image is None:  # pragma: no cover - Pillow missing
            raise ImportError("Pillow is required for TransformationExecutor") from _pillow_import_error
        self._config = config
        self._image_tool = image_tool
        self._metadata_writer = metadata_writer

    def transform(
        self,
        source: Path,
        destination: Path,
        plan: ModificationPlan,
        metadata: Optional[MetadataSet] = None,
    ) -> TransformResult:
        source, destination = Path(source), Path(destination)
        partial = _partial_path(destination)
        try:
            if not self._is_decodable(source):
                return self._fallback(source, destination, "source image could not be decoded")

            arguments = build_filter_arguments(plan, self._config)
            self._image_tool.apply(source, partial, arguments)

            stats, rejection = self._validate(partial, plan)
            if rejection:
                return self._fallback(source, destination, rejection, stats)

            os.replace(partial, destination)
        except (ImageRandomizerError, OSError) as exc:
            logger.warning("Transformation of %s failed: %s", source, exc)
            return self._fallback(source, destination, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error transforming %s", source)
            return self._fallback(source, destination, f"Unexpected transformation error: {exc}")
        finally:
            partial.unlink(missing_ok=True)

        if metadata is not None and self._config.enable_random_metadata and self._metadata_writer:
            try:
                self._metadata_writer.write(destination, metadata)
            except (ImageRandomizerError, OSError) as exc:
                logger.warning("Failed to write metadata to %s: %s", destination, exc)

        return TransformResult(TransformOutcome.TRANSFORMED, statistics=stats)

    def _validate(self, path: Path, plan: ModificationPlan) -> tuple[Optional[ImageStatistics], Optional[str]]:
        mandatory = plan.has(EffectKind.NOISE)
        try:
            stats = self._image_tool.statistics(path)
        except ToolExecutionError as exc:
            if mandatory:
                return None, f"statistics unavailable for noisy output: {exc}"
            logger.info("Skipping validation of %s: %s", path, exc)
            return None, None

        if stats.entropy > MAX_ENTROPY:
            return stats, f"entropy {stats.entropy:.3f} above {MAX_ENTROPY}"
        if stats.standard_deviation < MIN_STANDARD_DEVIATION:
            return stats, f"standard deviation {stats.standard_deviation:.4f} below {MIN_STANDARD_DEVIATION}"
        return stats, None

    @staticmethod
    def _is_decodable(path: Path) -> bool:
        try:
            with Image.open(path) as image:
                image.verify()
        except (UnidentifiedImageError, DecompressionBombError, OSError, SyntaxError) as exc:
            logger.warning("Invalid or corrupted image %s: %s", path, exc)
            return False
        return True

    @staticmethod
    def _fallback(
        source: Path,
        destination: Path,
        reason: str,
        stats: Optional[ImageStatistics] = None,
    ) -> TransformResult:
        logger.warning("Using original for %s: %s", source.name, reason)
        shutil.copyfile(source, destination)
        return TransformResult(TransformOutcome.FALLBACK, reason=reason, statistics=stats)

