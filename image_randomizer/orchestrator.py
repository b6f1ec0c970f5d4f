"""Batch orchestration: archives in, one randomized output archive out."""

from __future__ import annotations

import asyncio
import logging
import math
import random
import shutil
import zipfile
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, TypeVar

from .broadcast import ProgressChannel
from .exceptions import BatchProcessingError
from .executor import TransformationExecutor, TransformOutcome
from .ingest import extract_archives, find_image_folders, list_images
from .metadata import FolderMetadataCache
from .models import JobStatus, ProcessingJob, ProgressEvent, TransformationConfig
from .planner import plan_modifications
from .protocols import StatisticsSink
from .utils import unique_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXTRACTION_SHARE = 20
DISCOVERY_SHARE = 10
TRANSFORM_SHARE = 70


class JobStage(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    DISCOVERING = "discovering"
    SAMPLING = "sampling"
    TRANSFORMING = "transforming"
    PACKAGING = "packaging"
    COMPLETE = "complete"
    FAILED = "failed"


def select_folders(folders: Sequence[T], count: int, rng: Optional[random.Random] = None) -> List[T]:
    """Pick up to ``count`` distinct items uniformly (Fisher-Yates shuffle and slice)."""
    if len(folders) <= count:
        return list(folders)
    rng = rng or random.Random()
    shuffled = list(folders)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled[: max(count, 0)]


class ProgressTracker:
    """Accumulates fractional progress and publishes whole, non-decreasing percentages."""

    def __init__(self, job: ProcessingJob, channel: ProgressChannel) -> None:
        self._job = job
        self._channel = channel
        self._value = 0.0

    @property
    def value(self) -> int:
        return min(100, math.floor(self._value + 1e-9))

    def advance(self, amount: float, message: Optional[str] = None) -> None:
        self._value = min(100.0, self._value + max(amount, 0.0))
        self.report(message or f"Processing: {self.value}% complete")

    def report(self, message: str) -> None:
        self._job.progress = max(self._job.progress, self.value)
        self._channel.publish(ProgressEvent.update(self._job.job_id, self._job.progress, message))


def _write_archive(source_dir: Path, archive_path: Path) -> None:
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive_path, "w", zipfile.ZIP_DEFLATED) as archive:
        for path in sorted(source_dir.rglob("*")):
            if path.is_file():
                archive.write(path, arcname=path.relative_to(source_dir).as_posix())


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to remove working directory %s: %s", path, exc)


class BatchOrchestrator:
    """Drives one job from source archives to the finished output archive.

    Blocking work (extraction, tool invocations, compression) runs in worker
    threads so the event loop keeps serving other jobs and subscribers.
    """

    def __init__(
        self,
        config: TransformationConfig,
        executor: TransformationExecutor,
        channel: ProgressChannel,
        stats: StatisticsSink,
        work_root: Path,
        output_root: Path,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = config
        self._executor = executor
        self._channel = channel
        self._stats = stats
        self._work_root = Path(work_root)
        self._output_root = Path(output_root)
        self._rng = rng or random.Random()
        self.stage = JobStage.IDLE

    async def run(self, job: ProcessingJob, archives: Sequence[Path], number_of_folders: int) -> Path:
        """Process ``job``; returns the output archive path or raises BatchProcessingError.

        Exactly one terminal event (complete or error) is published either way.
        """
        job.status = JobStatus.RUNNING
        tracker = ProgressTracker(job, self._channel)
        extraction_root = self._work_root / f"extracted_{job.job_id}"
        result_dir = self._work_root / f"result_{job.job_id}"
        try:
            output_path = await self._run_stages(job, archives, number_of_folders, tracker, extraction_root, result_dir)
        except Exception as exc:
            self.stage = JobStage.FAILED
            if isinstance(exc, BatchProcessingError):
                message = str(exc)
                logger.error("Job %s failed: %s", job.job_id, message)
            else:
                message = f"Unexpected error: {exc}"
                logger.exception("Job %s failed unexpectedly", job.job_id)
            job.status = JobStatus.FAILED
            job.error = message
            job.finished_at = datetime.now(timezone.utc)
            await asyncio.to_thread(self._cleanup, extraction_root, result_dir)
            await asyncio.to_thread(self._stats.increment_failed)
            await asyncio.to_thread(
                self._stats.record_activity, "image_processing", f"Job {job.job_id} failed: {message}", status="failed"
            )
            self._channel.publish(ProgressEvent.failure(job.job_id, message))
            if isinstance(exc, BatchProcessingError):
                raise
            raise BatchProcessingError(message) from exc

        self.stage = JobStage.COMPLETE
        job.status = JobStatus.COMPLETED
        job.progress = 100
        job.output_path = output_path
        job.finished_at = datetime.now(timezone.utc)
        self._channel.publish(ProgressEvent.completed(job.job_id, output_path))
        return output_path

    async def _run_stages(
        self,
        job: ProcessingJob,
        archives: Sequence[Path],
        number_of_folders: int,
        tracker: ProgressTracker,
        extraction_root: Path,
        result_dir: Path,
    ) -> Path:
        if not archives:
            raise BatchProcessingError("No source archives found")

        self.stage = JobStage.EXTRACTING
        await asyncio.to_thread(self._stats.set_total_source_archives, len(archives))
        tracker.report("Extracting source files...")
        ingest = await asyncio.to_thread(extract_archives, archives, extraction_root)
        if not ingest.extracted:
            raise BatchProcessingError("None of the source archives could be extracted")
        tracker.advance(EXTRACTION_SHARE, "Finding image folders...")

        self.stage = JobStage.DISCOVERING
        folders: List[Path] = []
        for directory in ingest.extracted:
            folders.extend(await asyncio.to_thread(find_image_folders, directory))
        if not folders:
            raise BatchProcessingError("No folders with images found in the source archives")

        self.stage = JobStage.SAMPLING
        selected = select_folders(folders, number_of_folders, self._rng)
        if not selected:
            raise BatchProcessingError("Number of folders to process must be at least 1")
        job.selected_folders = len(selected)
        logger.info("Job %s: selected %d of %d folders", job.job_id, len(selected), len(folders))
        tracker.advance(DISCOVERY_SHARE, "Modifying images...")

        self.stage = JobStage.TRANSFORMING
        result_dir.mkdir(parents=True, exist_ok=True)
        metadata_cache = FolderMetadataCache(self._config, self._rng)
        used_names: List[str] = []
        share = TRANSFORM_SHARE / len(selected)
        for folder in selected:
            folder_name = unique_name(used_names, folder.name)
            used_names.append(folder_name)
            output_folder = result_dir / folder_name
            output_folder.mkdir(parents=True, exist_ok=True)
            for image in await asyncio.to_thread(list_images, folder):
                await self._transform_image(job, image, output_folder / image.name, metadata_cache)
            tracker.advance(share)

        if job.processed_images:
            await asyncio.to_thread(self._stats.increment_processed, job.processed_images)

        self.stage = JobStage.PACKAGING
        output_path = self._output_root / f"processed_{job.job_id}.zip"
        try:
            await asyncio.to_thread(_write_archive, result_dir, output_path)
        except (OSError, zipfile.BadZipFile) as exc:
            output_path.unlink(missing_ok=True)
            raise BatchProcessingError(f"Failed to package output archive: {exc}") from exc
        await asyncio.to_thread(self._cleanup, extraction_root, result_dir)

        tracker.advance(100 - tracker.value, "Processing complete")
        await asyncio.to_thread(
            self._stats.record_activity,
            "image_processing",
            f"Processed {job.processed_images} images from {job.selected_folders} folders",
            filename=output_path.name,
            filesize=output_path.stat().st_size,
        )
        return output_path

    async def _transform_image(
        self,
        job: ProcessingJob,
        image: Path,
        destination: Path,
        metadata_cache: FolderMetadataCache,
    ) -> None:
        metadata = metadata_cache.for_folder(image.parent)
        plan = plan_modifications(self._config, self._rng)
        try:
            result = await asyncio.to_thread(self._executor.transform, image, destination, plan, metadata)
        except OSError as exc:
            logger.error("Skipping %s: %s", image, exc)
            return
        if result.outcome is TransformOutcome.FALLBACK:
            logger.info("Kept original for %s (%s)", image.name, result.reason)
        job.processed_images += 1

    @staticmethod
    def _cleanup(*directories: Path) -> None:
        for directory in directories:
            _remove_tree(directory)
