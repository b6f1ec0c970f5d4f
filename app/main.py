from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import api_router
from app.api.ws import ws_router
from app.core.config import Settings, get_settings
from app.core.logging import configure_logging
from app.dependencies import Services, set_services
from app.services.job_manager import JobManager
from app.services.sessions import SessionRegistry
from app.services.store import JsonKeyValueStore, StoreConfigProvider, StoreStatistics
from image_randomizer.tools import ExifToolWriter, ImageMagickTool

logger = logging.getLogger(__name__)


def build_services(settings: Settings) -> Services:
    store = JsonKeyValueStore(settings.store_path)
    config_provider = StoreConfigProvider(store, default_folder_count=settings.default_folder_count)
    statistics = StoreStatistics(store)
    job_manager = JobManager(
        jobs_root=settings.jobs_root,
        temp_root=settings.temp_root,
        config_provider=config_provider,
        statistics=statistics,
        image_tool=ImageMagickTool(settings.imagemagick_binary, settings.tool_timeout),
        metadata_writer=ExifToolWriter(settings.exiftool_binary, settings.tool_timeout),
        sessions=SessionRegistry(settings.session_retention),
        source_dir=settings.source_dir,
        retire_delay=settings.channel_retire_delay,
        cleanup_interval=settings.temp_cleanup_interval,
        temp_file_max_age=settings.temp_file_max_age,
        job_retention=settings.finished_job_retention,
    )
    return Services(job_manager=job_manager, config_provider=config_provider, statistics=statistics)


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name, version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    @app.on_event("startup")
    async def on_startup() -> None:
        nonlocal services
        configure_logging(settings.log_level, settings.log_format)
        settings.ensure_directories()
        if services is None:
            services = build_services(settings)
        set_services(services)
        await services.job_manager.initialize()
        await services.job_manager.clean_temp_dir()
        logger.info("%s started", settings.app_name)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        if services is not None:
            await services.job_manager.shutdown()
        set_services(None)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(api_router)
    app.include_router(ws_router)
    return app


app = create_app()
