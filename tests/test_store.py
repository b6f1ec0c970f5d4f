from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from app.services.store import JsonKeyValueStore, StoreConfigProvider, StoreStatistics
from image_randomizer.models import TransformationConfig


def test_counters_persist_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    stats = StoreStatistics(JsonKeyValueStore(path))
    stats.increment_processed(4)
    stats.increment_failed()
    stats.increment_sent()
    stats.set_total_source_archives(2)

    reloaded = StoreStatistics(JsonKeyValueStore(path)).snapshot()

    assert reloaded.images_processed == 4
    assert reloaded.failed_operations == 1
    assert reloaded.files_sent == 1
    assert reloaded.total_source_files == 2


def test_concurrent_increments_are_not_lost(tmp_path: Path) -> None:
    stats = StoreStatistics(JsonKeyValueStore(tmp_path / "store.json"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: stats.increment_processed(), range(200)))

    assert stats.snapshot().images_processed == 200


def test_activity_log_is_capped_and_newest_first(tmp_path: Path) -> None:
    stats = StoreStatistics(JsonKeyValueStore(tmp_path / "store.json"), max_logs=5)

    for index in range(8):
        stats.record_activity("image_processing", f"run {index}", filename=f"processed_{index}.zip", filesize=index)

    logs = stats.recent_activity()
    assert [log.details for log in logs] == ["run 7", "run 6", "run 5", "run 4", "run 3"]
    assert logs[0].log_id == 8
    assert stats.recent_activity(2)[1].details == "run 6"


def test_config_provider_defaults_and_updates(tmp_path: Path) -> None:
    store = JsonKeyValueStore(tmp_path / "store.json")
    provider = StoreConfigProvider(store, default_folder_count=3)

    assert provider.get_config() == TransformationConfig()
    assert provider.get_folder_count() == 3

    provider.set_config(TransformationConfig(blur_max=2, allowed_filters=("vintage",)))
    provider.set_folder_count(5)

    saved = json.loads((tmp_path / "store.json").read_text())
    assert saved["image_edit_config"]["blurMax"] == 2
    assert provider.get_config().allowed_filters == ("vintage",)
    assert provider.get_folder_count() == 5

    with pytest.raises(ValueError):
        provider.set_folder_count(0)


def test_corrupt_store_file_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_text("{not json")

    assert JsonKeyValueStore(path).get("anything", "fallback") == "fallback"
