import logging
from functools import lru_cache
from pathlib import Path

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="FRAMECAST_", extra="ignore"
    )

    # Application
    app_name: str = "framecast"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    base_url: str = "http://localhost:3000"  # Public URL prefix for finished videos

    # Scratch storage (frames, downloaded audio, output videos)
    scratch_dir: str = "/tmp/framecast"

    @computed_field
    @property
    def frames_root(self) -> Path:
        return Path(self.scratch_dir) / "frames"

    @computed_field
    @property
    def audio_dir(self) -> Path:
        return Path(self.scratch_dir) / "audio"

    @computed_field
    @property
    def output_dir(self) -> Path:
        return Path(self.scratch_dir) / "videos"

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Browser (rendering surface)
    chromium_executable_path: str = "/usr/lib/chromium/chromium"  # Ignored if missing
    chromium_args: list[str] = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-gpu-sandbox",
        "--disable-software-rasterizer",
        "--disable-background-timer-throttling",
        "--disable-backgrounding-occluded-windows",
        "--disable-renderer-backgrounding",
        "--disable-features=TranslateUI,AudioServiceOutOfProcess",
        "--no-first-run",
        "--disable-extensions",
        "--disable-default-apps",
        "--disable-background-networking",
        "--disable-breakpad",
        "--disable-client-side-phishing-detection",
        "--disable-component-extensions-with-background-pages",
        "--disable-domain-reliability",
        "--disable-hang-monitor",
        "--disable-popup-blocking",
        "--disable-prompt-on-repost",
        "--disable-sync",
        "--disable-translate",
        "--disable-web-security",
        "--hide-scrollbars",
        "--mute-audio",
        "--no-default-browser-check",
        "--no-pings",
        "--password-store=basic",
        "--use-mock-keychain",
        # Low-memory host tuning
        "--enable-low-end-device-mode",
        "--aggressive-cache-discard",
        "--disable-background-media-suspend",
        "--force-device-scale-factor=1",
    ]
    page_default_timeout_ms: int = 5000

    # Frame loop memory management
    frame_batch_size: int = 2
    frame_batch_pause_s: float = 0.05

    # Per-frame waits (soft: frame is captured anyway on timeout)
    asset_wait_timeout_s: float = 15.0
    network_idle_timeout_s: float = 15.0
    network_quiet_ms: int = 500
    readiness_timeout_s: float = 25.0

    # Encoder deadline: max(floor, duration * per_second)
    encoder_timeout_floor_s: float = 30.0
    encoder_timeout_per_second_s: float = 10.0
    render_audio_bitrate: str = "192k"

    # Audio validation
    audio_validation_concurrency: int = 3
    download_timeout_s: float = 120.0
    probe_timeout_s: float = 30.0
    max_redirects: int = 10
    download_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    )

    # Task registry
    task_ttl_hours: float = 24.0


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for scripts and embedding processes."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
