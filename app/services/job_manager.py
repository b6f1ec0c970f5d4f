from __future__ import annotations

import asyncio
import json
import logging
import random
import shutil
from contextlib import suppress
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from fastapi import UploadFile

from app.core import config
from app.services.sessions import SessionRegistry
from image_randomizer.broadcast import DEFAULT_RETIRE_DELAY, ChannelRegistry, Subscription
from image_randomizer.exceptions import BatchProcessingError
from image_randomizer.executor import TransformationExecutor
from image_randomizer.messages import relay_event_message
from image_randomizer.models import JobStatus, ProcessingJob, TransformationConfig
from image_randomizer.orchestrator import BatchOrchestrator
from image_randomizer.protocols import ConfigProvider, ImageTool, MetadataWriter, StatisticsSink
from image_randomizer.utils import ARCHIVE_EXTENSIONS, secure_filename, unique_name, validate_extension

logger = logging.getLogger(__name__)


class JobNotFoundError(Exception):
    pass


class JobNotReadyError(Exception):
    pass


class JobManager:
    """Creates batch jobs and runs each one as its own asyncio task.

    Every job captures the transformation settings once at creation time and
    keeps using that snapshot even if the stored settings change mid-run.
    """

    def __init__(
        self,
        jobs_root: Path,
        temp_root: Path,
        config_provider: ConfigProvider,
        statistics: StatisticsSink,
        image_tool: ImageTool,
        metadata_writer: Optional[MetadataWriter] = None,
        sessions: Optional[SessionRegistry] = None,
        source_dir: Optional[Path] = None,
        retire_delay: float = DEFAULT_RETIRE_DELAY,
        cleanup_interval: float = 60 * 30,
        temp_file_max_age: float = 60 * 60,
        job_retention: float = 60 * 60 * 12,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.jobs_root = Path(jobs_root)
        self.temp_root = Path(temp_root)
        self.source_dir = Path(source_dir) if source_dir else None
        self.config_provider = config_provider
        self.statistics = statistics
        self.sessions = sessions or SessionRegistry()
        self.channels = ChannelRegistry(retire_delay)
        self._image_tool = image_tool
        self._metadata_writer = metadata_writer
        self._cleanup_interval = cleanup_interval
        self._temp_file_max_age = temp_file_max_age
        self._job_retention = job_retention
        self._rng = rng
        self._jobs: Dict[str, ProcessingJob] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: Optional[asyncio.Task[None]] = None

    async def initialize(self) -> None:
        self.jobs_root.mkdir(parents=True, exist_ok=True)
        self.temp_root.mkdir(parents=True, exist_ok=True)
        await self._load_jobs_from_disk()
        self._cleanup_task = asyncio.create_task(self._periodic_cleanup_loop())

    async def shutdown(self) -> None:
        if self._cleanup_task:
            self._cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._cleanup_task
        for task in list(self._tasks.values()):
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self.channels.close()
        self.sessions.close()
        await self.clean_temp_dir()

    async def _load_jobs_from_disk(self) -> None:
        for job_dir in self.jobs_root.glob("*"):
            if not job_dir.is_dir():
                continue
            manifest = job_dir / config.JOB_MANIFEST_NAME
            if not manifest.exists():
                continue
            try:
                raw = await asyncio.to_thread(manifest.read_text)
                job = ProcessingJob.from_dict(json.loads(raw))
            except (OSError, ValueError, KeyError) as exc:
                logger.warning("Skipping unreadable job manifest %s: %s", manifest, exc)
                continue
            async with self._lock:
                if not job.is_finished:
                    job.status = JobStatus.FAILED
                    job.error = "Interrupted by server restart"
                    job.finished_at = datetime.now(timezone.utc)
                    await self._persist_job(job)
                self._jobs[job.job_id] = job

    async def create_job(
        self,
        files: Sequence[UploadFile] = (),
        number_of_folders: Optional[int] = None,
    ) -> ProcessingJob:
        """Store uploaded archives (or use the source directory) and start the job."""
        if number_of_folders is None:
            number_of_folders = self.config_provider.get_folder_count()
        if number_of_folders < 1:
            raise ValueError("number_of_folders must be at least 1")
        for upload in files:
            validate_extension(upload.filename or "", ARCHIVE_EXTENSIONS)

        job_id = uuid4().hex
        job_dir = self.jobs_root / job_id
        sources_dir = job_dir / "sources"
        sources_dir.mkdir(parents=True, exist_ok=True)

        archives: List[Path] = []
        stored_names: List[str] = []
        for upload in files:
            safe_name = unique_name(stored_names, secure_filename(upload.filename or "archive.zip"))
            stored_names.append(safe_name)
            destination = sources_dir / safe_name
            contents = await upload.read()
            await asyncio.to_thread(destination.write_bytes, contents)
            await upload.close()
            archives.append(destination)
        if not files:
            archives = self._configured_archives()

        settings_snapshot = self.config_provider.get_config()
        job = ProcessingJob(
            job_id=job_id,
            created_at=datetime.now(timezone.utc),
            requested_folders=number_of_folders,
            source_archives=archives,
        )
        channel = self.channels.open(job_id)
        async with self._lock:
            self._jobs[job_id] = job
            await self._persist_job(job)

        subscription = channel.subscribe()
        self._tasks[job_id] = asyncio.create_task(
            self._run_job(job, settings_snapshot, subscription),
            name=f"job-{job_id}",
        )
        logger.info("Created job %s with %d archive(s), %d folder(s) requested", job_id, len(archives), number_of_folders)
        return job

    def _configured_archives(self) -> List[Path]:
        if not self.source_dir or not self.source_dir.is_dir():
            return []
        return sorted(path for path in self.source_dir.iterdir() if path.suffix.lower() in ARCHIVE_EXTENSIONS)

    async def _run_job(self, job: ProcessingJob, settings: TransformationConfig, subscription: Subscription) -> None:
        channel = self.channels.open(job.job_id)
        relay = asyncio.create_task(self._relay(subscription))
        executor = TransformationExecutor(settings, self._image_tool, self._metadata_writer)
        orchestrator = BatchOrchestrator(
            settings,
            executor,
            channel,
            self.statistics,
            work_root=self.temp_root,
            output_root=self.jobs_root / job.job_id,
            rng=self._rng,
        )
        try:
            await orchestrator.run(job, job.source_archives, job.requested_folders or 1)
        except BatchProcessingError:
            pass
        finally:
            if not channel.closed:
                subscription.close()
            await relay
            async with self._lock:
                await self._persist_job(job)
            self.channels.schedule_retirement(job.job_id)
            self._tasks.pop(job.job_id, None)

    async def _relay(self, subscription: Subscription) -> None:
        async for event in subscription:
            await self.sessions.broadcast(relay_event_message(event))

    async def wait_for(self, job_id: str) -> ProcessingJob:
        """Wait until the job's task has finished and return a snapshot."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return await self.get_job_snapshot(job_id)

    async def get_job_snapshot(self, job_id: str) -> ProcessingJob:
        async with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                raise JobNotFoundError(job_id)
            return ProcessingJob.from_dict(job.to_dict())

    async def list_jobs(self) -> List[ProcessingJob]:
        async with self._lock:
            jobs = [ProcessingJob.from_dict(job.to_dict()) for job in self._jobs.values()]
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    async def subscribe(self, job_id: str) -> Optional[Subscription]:
        """Attach to a job's live events; ``None`` once its channel has been retired."""
        async with self._lock:
            if job_id not in self._jobs:
                raise JobNotFoundError(job_id)
        channel = self.channels.get(job_id)
        return channel.subscribe() if channel else None

    async def claim_download(self, job_id: str) -> Path:
        """Return the output archive of a completed job and count it as sent."""
        async with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                raise JobNotFoundError(job_id)
            if job.status is not JobStatus.COMPLETED or not job.output_path:
                raise JobNotReadyError(job_id)
            if not job.output_path.exists():
                raise JobNotFoundError(job_id)
            job.downloaded_at = datetime.now(timezone.utc)
            await self._persist_job(job)
            output_path = job.output_path
        await asyncio.to_thread(self.statistics.increment_sent)
        return output_path

    async def clean_temp_dir(self) -> None:
        now = datetime.now(timezone.utc)
        active = set(self._tasks)
        for item in self.temp_root.glob("*"):
            if any(item.name.endswith(job_id) for job_id in active):
                continue
            try:
                stat = item.stat()
                mtime = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
                if (now - mtime).total_seconds() > self._temp_file_max_age:
                    if item.is_dir():
                        shutil.rmtree(item, ignore_errors=True)
                    else:
                        item.unlink(missing_ok=True)
            except FileNotFoundError:
                continue

    async def cleanup_finished_jobs(self) -> None:
        threshold = datetime.now(timezone.utc) - timedelta(seconds=self._job_retention)
        jobs_to_remove: List[str] = []
        async with self._lock:
            for job_id, job in list(self._jobs.items()):
                if job.finished_at and job.finished_at < threshold:
                    jobs_to_remove.append(job_id)

        for job_id in jobs_to_remove:
            await asyncio.to_thread(shutil.rmtree, self.jobs_root / job_id, True)
            async with self._lock:
                self._jobs.pop(job_id, None)
            self.channels.retire(job_id)
            logger.info("Removed finished job %s", job_id)

    async def _persist_job(self, job: ProcessingJob) -> None:
        job_dir = self.jobs_root / job.job_id
        job_dir.mkdir(parents=True, exist_ok=True)
        manifest = job_dir / config.JOB_MANIFEST_NAME
        data = json.dumps(job.to_dict(), indent=2)
        await asyncio.to_thread(manifest.write_text, data)

    async def _periodic_cleanup_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._cleanup_interval)
                await self.clean_temp_dir()
                await self.cleanup_finished_jobs()
        except asyncio.CancelledError:
            return
