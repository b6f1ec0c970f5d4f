from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from app.models import ActivityLog, Statistics
from image_randomizer.models import ProcessingJob


class JobCreatedResponse(BaseModel):
    job_id: str
    status_url: str
    download_url: str


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str
    status: str
    created_at: datetime
    progress: int
    requested_folders: Optional[int] = None
    selected_folders: int
    processed_images: int
    source_archives: int
    error: Optional[str] = None
    finished_at: Optional[datetime] = None
    download_url: Optional[str] = None

    @classmethod
    def from_job(cls, job: ProcessingJob, download_url: Optional[str] = None) -> "JobStatusResponse":
        return cls(
            job_id=job.job_id,
            status=job.status.value,
            created_at=job.created_at,
            progress=job.progress,
            requested_folders=job.requested_folders,
            selected_folders=job.selected_folders,
            processed_images=job.processed_images,
            source_archives=len(job.source_archives),
            error=job.error,
            finished_at=job.finished_at,
            download_url=download_url,
        )


class ActivityLogResponse(BaseModel):
    log_id: int
    action: str
    details: str
    status: str
    filename: Optional[str] = None
    filesize: Optional[int] = None
    from_user: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_log(cls, log: ActivityLog) -> "ActivityLogResponse":
        return cls(**log.to_dict())


class StatisticsResponse(BaseModel):
    images_processed: int
    failed_operations: int
    files_sent: int
    total_source_files: int
    updated_at: datetime
    recent_activity: List[ActivityLogResponse] = []

    @classmethod
    def from_statistics(cls, stats: Statistics, logs: List[ActivityLog]) -> "StatisticsResponse":
        return cls(
            **stats.to_dict(),
            recent_activity=[ActivityLogResponse.from_log(log) for log in logs],
        )
