"""Utility helpers shared by the image randomizer engine and service."""

from __future__ import annotations

import random
import re
from pathlib import Path
from typing import Iterable

from .exceptions import UnsupportedFileTypeError

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})
ARCHIVE_EXTENSIONS = frozenset({".zip"})

_filename_strip_re = re.compile(r"[^A-Za-z0-9._-]+")


def is_image_file(path: str | Path) -> bool:
    return Path(path).suffix.lower() in IMAGE_EXTENSIONS


def validate_extension(path: str | Path, allowed_extensions: Iterable[str] | None = None) -> str:
    """Validate that the path has an allowed extension and return it.

    Raises
    ------
    UnsupportedFileTypeError
        If the file extension is not in the allowed set.
    """

    extensions = {ext.lower() for ext in (allowed_extensions or IMAGE_EXTENSIONS)}
    suffix = Path(path).suffix.lower()
    if suffix not in extensions:
        allowed = ", ".join(sorted(extensions))
        raise UnsupportedFileTypeError(
            f"Unsupported file extension '{suffix}'. Allowed extensions: {allowed}"
        )
    return suffix


def secure_filename(filename: str) -> str:
    """Return a filename safe for storing on disk."""
    name = Path(filename).name
    if not name:
        return "file"
    name = _filename_strip_re.sub("_", name)
    return name or "file"


def unique_name(existing: Iterable[str], desired: str) -> str:
    """Return ``desired``, or ``stem_N.suffix`` if it is already taken."""
    base = Path(desired)
    stem = base.stem
    suffix = base.suffix
    candidate = desired
    counter = 1
    existing_set = set(existing)
    while candidate in existing_set:
        candidate = f"{stem}_{counter}{suffix}"
        counter += 1
    return candidate


def random_int(rng: random.Random, low: int, high: int) -> int:
    """Uniform integer in ``[low, high]``; tolerates swapped bounds."""
    if low > high:
        low, high = high, low
    return rng.randint(low, high)
