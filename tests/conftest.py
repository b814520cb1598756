"""
Pytest fixtures for framecast tests.

Tests that shell out to real tools are marked:
- @pytest.mark.requires_ffmpeg: ffmpeg and ffprobe on PATH
- @pytest.mark.requires_browser: a Chromium that Playwright can launch

Both are skipped automatically when the tool is missing.
Run `pytest -m "not requires_ffmpeg and not requires_browser"` for unit tests only.
"""

import os
import shutil
import subprocess
from functools import lru_cache
from pathlib import Path

import pytest

from framecast.config import Settings
from framecast.schemas.render import RenderJobParameters
from framecast.services.task_manager import RenderTaskManager


def pytest_configure(config):
    """Register custom markers for tool-dependent tests."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring ffmpeg and ffprobe on PATH",
    )
    config.addinivalue_line(
        "markers",
        "requires_browser: mark test as requiring a Playwright Chromium install",
    )


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


@lru_cache
def _browser_available() -> bool:
    if os.path.exists(Settings().chromium_executable_path):
        return True
    try:
        from playwright.sync_api import sync_playwright
    except ImportError:
        return False
    try:
        with sync_playwright() as p:
            return os.path.exists(p.chromium.executable_path)
    except Exception:
        return False


def pytest_collection_modifyitems(config, items):
    skip_ffmpeg = pytest.mark.skip(reason="ffmpeg/ffprobe not available")
    skip_browser = pytest.mark.skip(reason="Playwright Chromium not available")
    for item in items:
        if "requires_ffmpeg" in item.keywords and not _ffmpeg_available():
            item.add_marker(skip_ffmpeg)
        if "requires_browser" in item.keywords and not _browser_available():
            item.add_marker(skip_browser)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with scratch space under tmp_path and short waits."""
    return Settings(
        scratch_dir=str(tmp_path / "scratch"),
        base_url="http://testserver",
        frame_batch_pause_s=0,
        asset_wait_timeout_s=2,
        network_idle_timeout_s=2,
        network_quiet_ms=0,
        readiness_timeout_s=1,
        probe_timeout_s=10,
        download_timeout_s=5,
    )


@pytest.fixture
def manager() -> RenderTaskManager:
    """A fresh task registry per test."""
    return RenderTaskManager()


@pytest.fixture
def simple_params() -> RenderJobParameters:
    """One second of a solid red 64x48 frame at 4 fps."""
    return RenderJobParameters(
        width=64,
        height=48,
        duration=1,
        fps=4,
        render="(ctx) => `<div style=\"width:100%;height:100vh;background:#ff0000\"></div>`",
    )


@pytest.fixture
def sine_audio(tmp_path: Path) -> Path:
    """A 5 second 440Hz sine wave (WAV) generated with ffmpeg."""
    output_path = tmp_path / "sine.wav"
    subprocess.run(
        [
            "ffmpeg", "-y",
            "-f", "lavfi",
            "-i", "sine=frequency=440:duration=5",
            "-ar", "44100",
            "-ac", "2",
            str(output_path),
        ],
        capture_output=True,
        check=True,
    )
    return output_path


@pytest.fixture
def silent_video(tmp_path: Path) -> Path:
    """A 3 second 64x48 H.264 video without audio."""
    output_path = tmp_path / "video.mp4"
    subprocess.run(
        [
            "ffmpeg", "-y",
            "-f", "lavfi",
            "-i", "color=c=blue:s=64x48:r=10:d=3",
            "-c:v", "libx264",
            "-pix_fmt", "yuv420p",
            str(output_path),
        ],
        capture_output=True,
        check=True,
    )
    return output_path
