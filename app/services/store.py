"""JSON-file backed storage for settings, counters and the activity log."""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from image_randomizer.models import TransformationConfig

from app.models import ActivityLog, Statistics

logger = logging.getLogger(__name__)

CONFIG_KEY = "image_edit_config"
FOLDER_COUNT_KEY = "folders_to_send"
STATISTICS_KEY = "statistics"
ACTIVITY_KEY = "activity_logs"
MAX_ACTIVITY_LOGS = 500


class JsonKeyValueStore:
    """Small key/value store persisted as one JSON document.

    Every read-modify-write goes through :meth:`update`, which holds the lock
    for the whole cycle so concurrent jobs never lose an increment.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to load store %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(self._data, handle, indent=2)
        os.replace(tmp_path, self.path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value
            self._persist()

    def update(self, key: str, func: Callable[[Any], Any], default: Any = None) -> Any:
        with self._lock:
            value = func(self._data.get(key, default))
            self._data[key] = value
            self._persist()
            return value


class StoreConfigProvider:
    def __init__(self, store: JsonKeyValueStore, default_folder_count: int = 3) -> None:
        self._store = store
        self._default_folder_count = default_folder_count

    def get_config(self) -> TransformationConfig:
        return TransformationConfig.model_validate(self._store.get(CONFIG_KEY, {}))

    def set_config(self, config: TransformationConfig) -> None:
        self._store.set(CONFIG_KEY, config.model_dump(mode="json", by_alias=True))

    def get_folder_count(self) -> int:
        return int(self._store.get(FOLDER_COUNT_KEY, self._default_folder_count))

    def set_folder_count(self, count: int) -> None:
        if count < 1:
            raise ValueError("Folder count must be at least 1")
        self._store.set(FOLDER_COUNT_KEY, count)


class StoreStatistics:
    """Counters and activity log kept in the JSON store."""

    def __init__(self, store: JsonKeyValueStore, max_logs: int = MAX_ACTIVITY_LOGS) -> None:
        self._store = store
        self._max_logs = max_logs

    def _bump(self, **changes: Callable[[int], int]) -> Statistics:
        def apply(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
            stats = Statistics.from_dict(raw or {})
            for name, change in changes.items():
                setattr(stats, name, change(getattr(stats, name)))
            stats.updated_at = datetime.now(timezone.utc)
            return stats.to_dict()

        return Statistics.from_dict(self._store.update(STATISTICS_KEY, apply))

    def increment_processed(self, count: int = 1) -> None:
        self._bump(images_processed=lambda value: value + count)

    def increment_failed(self) -> None:
        self._bump(failed_operations=lambda value: value + 1)

    def increment_sent(self) -> None:
        self._bump(files_sent=lambda value: value + 1)

    def set_total_source_archives(self, count: int) -> None:
        self._bump(total_source_files=lambda _: count)

    def record_activity(
        self,
        action: str,
        details: str,
        status: str = "completed",
        filename: Optional[str] = None,
        filesize: Optional[int] = None,
        from_user: Optional[str] = None,
    ) -> None:
        def append(raw: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
            logs = list(raw or [])
            next_id = logs[-1]["log_id"] + 1 if logs else 1
            entry = ActivityLog(
                log_id=next_id,
                action=action,
                details=details,
                status=status,
                filename=filename,
                filesize=filesize,
                from_user=from_user,
            )
            logs.append(entry.to_dict())
            return logs[-self._max_logs:]

        self._store.update(ACTIVITY_KEY, append)

    def snapshot(self) -> Statistics:
        return Statistics.from_dict(self._store.get(STATISTICS_KEY) or {})

    def recent_activity(self, limit: Optional[int] = None) -> List[ActivityLog]:
        logs = [ActivityLog.from_dict(item) for item in self._store.get(ACTIVITY_KEY, [])]
        logs.reverse()
        return logs[:limit] if limit else logs
