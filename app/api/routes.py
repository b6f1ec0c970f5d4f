from __future__ import annotations

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import FileResponse

from app.dependencies import get_config_provider, get_job_manager, get_statistics
from app.schemas import JobCreatedResponse, JobStatusResponse, StatisticsResponse
from app.services.job_manager import JobManager, JobNotFoundError, JobNotReadyError
from app.services.store import StoreConfigProvider, StoreStatistics
from image_randomizer.exceptions import UnsupportedFileTypeError
from image_randomizer.models import JobStatus, TransformationConfig

api_router = APIRouter(prefix="/api/v1", tags=["jobs"])

RECENT_ACTIVITY_LIMIT = 20


@api_router.post("/jobs", status_code=status.HTTP_201_CREATED, response_model=JobCreatedResponse, name="create_job")
async def create_job(
    request: Request,
    files: Optional[List[UploadFile]] = File(None),
    number_of_folders: Optional[int] = Form(None),
    job_manager: JobManager = Depends(get_job_manager),
) -> JobCreatedResponse:
    try:
        job = await job_manager.create_job(files or [], number_of_folders)
    except (UnsupportedFileTypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    status_url = str(request.url_for("get_job_status", job_id=job.job_id))
    download_url = str(request.url_for("download_job_archive", job_id=job.job_id))
    return JobCreatedResponse(job_id=job.job_id, status_url=status_url, download_url=download_url)


@api_router.get("/jobs", response_model=List[JobStatusResponse], name="list_jobs")
async def list_jobs(job_manager: JobManager = Depends(get_job_manager)) -> List[JobStatusResponse]:
    return [JobStatusResponse.from_job(job) for job in await job_manager.list_jobs()]


@api_router.get("/jobs/{job_id}", response_model=JobStatusResponse, name="get_job_status")
async def get_job_status(job_id: str, request: Request, job_manager: JobManager = Depends(get_job_manager)) -> JobStatusResponse:
    try:
        job = await job_manager.get_job_snapshot(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    download_url = None
    if job.status is JobStatus.COMPLETED:
        download_url = str(request.url_for("download_job_archive", job_id=job.job_id))
    return JobStatusResponse.from_job(job, download_url=download_url)


@api_router.get("/jobs/{job_id}/download", response_class=FileResponse, name="download_job_archive")
async def download_job_archive(job_id: str, job_manager: JobManager = Depends(get_job_manager)) -> FileResponse:
    try:
        archive_path = await job_manager.claim_download(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    except JobNotReadyError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job has not completed")

    return FileResponse(archive_path, media_type="application/zip", filename=archive_path.name)


@api_router.get("/config", response_model=TransformationConfig, name="get_config")
async def get_config(provider: StoreConfigProvider = Depends(get_config_provider)) -> TransformationConfig:
    return provider.get_config()


@api_router.put("/config", response_model=TransformationConfig, name="update_config")
async def update_config(
    settings: TransformationConfig,
    provider: StoreConfigProvider = Depends(get_config_provider),
) -> TransformationConfig:
    await asyncio.to_thread(provider.set_config, settings)
    return provider.get_config()


@api_router.get("/statistics", response_model=StatisticsResponse, name="get_statistics")
async def get_statistics_endpoint(statistics: StoreStatistics = Depends(get_statistics)) -> StatisticsResponse:
    return StatisticsResponse.from_statistics(
        statistics.snapshot(),
        statistics.recent_activity(RECENT_ACTIVITY_LIMIT),
    )
