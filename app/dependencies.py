from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.services.job_manager import JobManager
from app.services.store import StoreConfigProvider, StoreStatistics


@dataclass
class Services:
    job_manager: JobManager
    config_provider: StoreConfigProvider
    statistics: StoreStatistics


_services: Optional[Services] = None


def set_services(services: Optional[Services]) -> None:
    global _services
    _services = services


def _require() -> Services:
    if _services is None:
        raise RuntimeError("Services not initialized")
    return _services


def get_job_manager() -> JobManager:
    return _require().job_manager


def get_config_provider() -> StoreConfigProvider:
    return _require().config_provider


def get_statistics() -> StoreStatistics:
    return _require().statistics
