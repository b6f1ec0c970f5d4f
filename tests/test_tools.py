from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from image_randomizer import tools
from image_randomizer.exceptions import ToolExecutionError
from image_randomizer.models import MetadataSet
from image_randomizer.tools import ExifToolWriter, ImageMagickTool, exiftool_arguments, parse_statistics


def test_parse_statistics_reads_three_values() -> None:
    stats = parse_statistics("0.731,-1.25,0.184\n")

    assert stats.entropy == pytest.approx(0.731)
    assert stats.kurtosis == pytest.approx(-1.25)
    assert stats.standard_deviation == pytest.approx(0.184)


@pytest.mark.parametrize("output", ["", "0.5,0.1", "a,b,c", "nan,0,0.1"])
def test_parse_statistics_rejects_garbage(output: str) -> None:
    with pytest.raises(ToolExecutionError):
        parse_statistics(output)


def test_imagemagick_command_line(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    commands = []

    def fake_run(command, **kwargs):
        commands.append(command)
        return subprocess.CompletedProcess(command, 0, stdout="0.5,0.0,0.2", stderr="")

    monkeypatch.setattr(tools.subprocess, "run", fake_run)
    tool = ImageMagickTool(binary="magick")

    tool.apply(tmp_path / "in.jpg", tmp_path / "out.jpg", ["-flip"])
    stats = tool.statistics(tmp_path / "out.jpg")

    assert commands[0] == ["magick", str(tmp_path / "in.jpg"), "-flip", str(tmp_path / "out.jpg")]
    assert commands[1][1] == f"{tmp_path / 'out.jpg'}[0]"
    assert commands[1][-1] == "info:"
    assert stats.entropy == 0.5


def test_tool_errors_are_wrapped(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def failing_run(command, **kwargs):
        raise subprocess.CalledProcessError(1, command, stderr="no decode delegate")

    monkeypatch.setattr(tools.subprocess, "run", failing_run)

    with pytest.raises(ToolExecutionError, match="no decode delegate"):
        ImageMagickTool().apply(tmp_path / "in.jpg", tmp_path / "out.jpg", [])


def test_missing_binary_is_reported(tmp_path: Path) -> None:
    with pytest.raises(ToolExecutionError, match="not installed"):
        ExifToolWriter(binary="definitely-not-a-real-exiftool").write(
            tmp_path / "x.jpg",
            MetadataSet("iPhone 13", "Apple iPhone Camera", "2023:01:01 00:00:00", "26mm", "1/60"),
        )


def test_exiftool_arguments_include_gps_refs() -> None:
    metadata = MetadataSet(
        device="Samsung Galaxy S21",
        camera="Samsung ISOCELL",
        date_time="2023:07:14 18:30:00",
        focal_length="5.4mm",
        exposure="1/500",
        gps=(-33.86, -70.65),
        aperture="f/1.8",
        iso=200,
    )

    args = exiftool_arguments(metadata)

    assert "-Make=Samsung" in args
    assert "-Model=Samsung Galaxy S21" in args
    assert "-LensModel=Samsung ISOCELL" in args
    assert "-DateTimeOriginal=2023:07:14 18:30:00" in args
    assert "-GPSLatitude=33.86" in args
    assert "-GPSLatitudeRef=S" in args
    assert "-GPSLongitudeRef=W" in args
    assert "-FNumber=1.8" in args
    assert "-ISO=200" in args
