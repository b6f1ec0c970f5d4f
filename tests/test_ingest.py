from __future__ import annotations

import zipfile
from pathlib import Path

from conftest import create_sample_jpg, create_source_archive

from image_randomizer.ingest import extract_archives, find_image_folders, list_images


def test_bad_archive_does_not_stop_the_others(tmp_path: Path) -> None:
    good = create_source_archive(tmp_path / "good.zip", {"set_a": 2})
    bad = tmp_path / "bad.zip"
    bad.write_bytes(b"not a zip file")

    result = extract_archives([bad, good], tmp_path / "work")

    assert len(result.extracted) == 1
    assert bad in result.failures
    assert (result.extracted[0] / "set_a" / "img_0.jpg").exists()
    assert len(list((tmp_path / "work").iterdir())) == 1


def test_each_archive_gets_its_own_directory(tmp_path: Path) -> None:
    first = create_source_archive(tmp_path / "one.zip", {"set_a": 1})
    second = create_source_archive(tmp_path / "two.zip", {"set_a": 1})

    result = extract_archives([first, second], tmp_path / "work")

    assert len(result.extracted) == 2
    assert result.extracted[0] != result.extracted[1]


def test_member_outside_target_is_rejected(tmp_path: Path) -> None:
    archive = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive, "w") as bundle:
        bundle.writestr("../escape.txt", "nope")

    result = extract_archives([archive], tmp_path / "work")

    assert result.extracted == []
    assert archive in result.failures
    assert not (tmp_path / "escape.txt").exists()


def test_discovery_stops_at_shallowest_image_folder(tmp_path: Path) -> None:
    root = tmp_path / "root"
    create_sample_jpg(root / "top")
    create_sample_jpg(root / "top" / "nested")
    create_sample_jpg(root / "a" / "b" / "deep")
    (root / "empty").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "docs" / "readme.txt").write_text("hello")

    folders = find_image_folders(root)

    assert folders == [root / "a" / "b" / "deep", root / "top"]


def test_discovery_respects_depth_limit(tmp_path: Path) -> None:
    root = tmp_path / "root"
    create_sample_jpg(root / "1" / "2" / "3")
    create_sample_jpg(root / "x" / "y" / "z" / "too_deep")

    folders = find_image_folders(root, max_depth=3)

    assert folders == [root / "1" / "2" / "3"]


def test_discovery_skips_macos_resource_forks(tmp_path: Path) -> None:
    root = tmp_path / "root"
    create_sample_jpg(root / "__MACOSX" / "photos")

    assert find_image_folders(root) == []


def test_list_images_filters_by_extension(tmp_path: Path) -> None:
    create_sample_jpg(tmp_path, name="b.jpg")
    create_sample_jpg(tmp_path, name="a.JPEG")
    (tmp_path / "notes.txt").write_text("x")

    assert [path.name for path in list_images(tmp_path)] == ["a.JPEG", "b.jpg"]
