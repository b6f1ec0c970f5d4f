"""Extraction of source archives and discovery of image-bearing folders."""

from __future__ import annotations

import logging
import shutil
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List

from .exceptions import ArchiveExtractionError
from .utils import is_image_file

logger = logging.getLogger(__name__)

DEFAULT_SCAN_DEPTH = 3

# Resource-fork folders added by macOS archivers.
_IGNORED_DIRECTORIES = frozenset({"__MACOSX"})


@dataclass
class IngestResult:
    extracted: List[Path] = field(default_factory=list)
    failures: Dict[Path, str] = field(default_factory=dict)


def _extract_one(archive: Path, target: Path) -> None:
    try:
        with zipfile.ZipFile(archive) as bundle:
            root = target.resolve()
            for member in bundle.namelist():
                destination = (target / member).resolve()
                if destination != root and root not in destination.parents:
                    raise ArchiveExtractionError(f"Archive member escapes extraction directory: {member}")
            bundle.extractall(target)
    except (zipfile.BadZipFile, OSError) as exc:
        raise ArchiveExtractionError(str(exc)) from exc


def extract_archives(archives: Iterable[Path], destination_root: Path) -> IngestResult:
    """Extract every archive into its own fresh directory under ``destination_root``.

    A bad archive is recorded in ``failures`` and does not stop the others.
    The caller owns (and must purge) the extraction directories.
    """

    destination_root.mkdir(parents=True, exist_ok=True)
    result = IngestResult()
    for archive in archives:
        archive = Path(archive)
        target = Path(tempfile.mkdtemp(prefix="extract_", dir=destination_root))
        try:
            _extract_one(archive, target)
        except ArchiveExtractionError as exc:
            logger.warning("Failed to extract archive %s: %s", archive, exc)
            result.failures[archive] = str(exc)
            shutil.rmtree(target, ignore_errors=True)
            continue
        logger.debug("Extracted %s into %s", archive, target)
        result.extracted.append(target)
    return result


def find_image_folders(root: Path, max_depth: int = DEFAULT_SCAN_DEPTH) -> List[Path]:
    """Return the shallowest directories under ``root`` holding image files.

    A directory that contains images is reported and not searched further.
    """

    folders: List[Path] = []

    def _search(directory: Path, depth: int) -> None:
        if depth > max_depth:
            return
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            logger.warning("Cannot read directory %s: %s", directory, exc)
            return
        if any(entry.is_file() and is_image_file(entry) for entry in entries):
            folders.append(directory)
            return
        for entry in entries:
            if entry.is_dir() and entry.name not in _IGNORED_DIRECTORIES:
                _search(entry, depth + 1)

    _search(Path(root), 0)
    return folders


def list_images(folder: Path) -> List[Path]:
    return sorted(entry for entry in Path(folder).iterdir() if entry.is_file() and is_image_file(entry))
