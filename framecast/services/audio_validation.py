"""Audio track validation and download.

Every track of a job is fetched (or located on disk) and probed before any
frame is rendered: rendering is expensive, checking audio is cheap.
"""

import asyncio
import logging
import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urljoin, urlparse

import httpx

from framecast.config import Settings, get_settings
from framecast.exceptions import AudioDownloadError, AudioValidationError, FramecastError
from framecast.schemas.render import AudioTrackSpec
from framecast.utils.media_info import get_audio_duration

logger = logging.getLogger(__name__)

REDIRECT_STATUS_CODES = {301, 302, 303, 307, 308}
GOOGLE_DRIVE_HOSTS = ("drive.google.com", "docs.google.com")

_WINDOWS_DRIVE_RE = re.compile(r"^[A-Za-z]:\\")
_DRIVE_FILE_ID_RE = re.compile(r"/file/d/([A-Za-z0-9_-]+)")


@dataclass(frozen=True)
class ValidatedAudioTrack:
    """Audio track that was fetched and probed successfully."""

    url: str
    start: float
    end: float | None
    volume: float
    local_path: str
    duration: float  # Probed, seconds
    is_valid: bool = True
    downloaded: bool = True  # False for caller-owned local files

    @classmethod
    def from_spec(cls, spec: AudioTrackSpec, local_path: str, duration: float, downloaded: bool) -> "ValidatedAudioTrack":
        return cls(
            url=spec.url,
            start=spec.start,
            end=spec.end,
            volume=spec.volume,
            local_path=local_path,
            duration=duration,
            downloaded=downloaded,
        )


def is_local_file(url: str) -> bool:
    return url.startswith(("/", "./", "../")) or _WINDOWS_DRIVE_RE.match(url) is not None


def is_google_drive_url(url: str) -> bool:
    return (urlparse(url).hostname or "") in GOOGLE_DRIVE_HOSTS


def google_drive_download_url(url: str) -> str:
    """Rewrite a Drive sharing link to its direct-download form.

    Links without a recognizable file id are returned unchanged.
    """
    parsed = urlparse(url)
    match = _DRIVE_FILE_ID_RE.search(parsed.path)
    file_id = match.group(1) if match else parse_qs(parsed.query).get("id", [None])[0]
    if not file_id:
        return url
    return f"https://drive.google.com/uc?export=download&id={file_id}"


def file_extension(url: str) -> str:
    """Extension for the downloaded file; mp3 when the URL has none."""
    if is_google_drive_url(url):
        return "mp3"
    ext = os.path.splitext(urlparse(url).path)[1].lstrip(".")
    return ext.lower() if ext and ext.isalnum() else "mp3"


class AudioValidator:
    """Downloads and probes audio tracks with bounded concurrency."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.audio_dir = Path(self.settings.audio_dir)
        self._transport = transport

    async def validate(self, specs: list[AudioTrackSpec]) -> list[ValidatedAudioTrack]:
        """
        Validate every track, preserving input order.

        Raises:
            AudioValidationError: If any track fails; files already
                downloaded for this batch are deleted first. Cancellation
                and unexpected errors delete them too before propagating.
        """
        if not specs:
            return []

        self.audio_dir.mkdir(parents=True, exist_ok=True)
        semaphore = asyncio.Semaphore(max(1, self.settings.audio_validation_concurrency))
        created: list[str] = []  # Every download path of this batch
        logger.info(f"[AUDIO] Validating {len(specs)} audio track(s)")

        async with httpx.AsyncClient(
            follow_redirects=False,
            timeout=httpx.Timeout(self.settings.download_timeout_s),
            headers={"User-Agent": self.settings.download_user_agent},
            transport=self._transport,
        ) as client:

            async def _bounded(index: int, spec: AudioTrackSpec):
                async with semaphore:
                    try:
                        return await self._validate_track(client, spec, created), None
                    except FramecastError as e:
                        logger.error(f"[AUDIO] Validation failed: {spec.url} - {e.message}")
                        return None, f"Track {index}: {e.message}"

            try:
                # Exceptions are collected so no track is still writing when cleanup runs
                results = await asyncio.gather(
                    *(_bounded(i, spec) for i, spec in enumerate(specs)),
                    return_exceptions=True,
                )
            except BaseException:
                logger.warning(f"[AUDIO] Validation interrupted, removing {len(created)} download(s)")
                _remove_all(created)
                raise

        unexpected = [r for r in results if isinstance(r, BaseException)]
        if unexpected:
            logger.error(f"[AUDIO] Validation aborted: {unexpected[0]!r}")
            _remove_all(created)
            raise unexpected[0]

        validated = [track for track, _ in results if track is not None]
        errors = [error for _, error in results if error is not None]

        if errors:
            logger.error(f"[AUDIO] Audio validation failed with {len(errors)} error(s)")
            cleanup_audio_files(validated)
            raise AudioValidationError(errors)

        logger.info(f"[AUDIO] All {len(validated)} audio track(s) validated")
        return validated

    async def _validate_track(
        self,
        client: httpx.AsyncClient,
        spec: AudioTrackSpec,
        created: list[str],
    ) -> ValidatedAudioTrack:
        url = spec.url.strip()
        downloaded = False

        if is_local_file(url):
            local_path = url
            if not os.path.exists(local_path):
                raise AudioDownloadError(f"Local audio file not found: {local_path}")
        else:
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise AudioDownloadError(f"Invalid URL: {url}")
            local_path = str(self.audio_dir / f"audio_{uuid.uuid4().hex}.{file_extension(url)}")
            downloaded = True
            created.append(local_path)
            await self.download(client, url, local_path)

        try:
            duration = await get_audio_duration(local_path, timeout_s=self.settings.probe_timeout_s)
        except FramecastError:
            if downloaded:
                _remove_quietly(local_path)
            raise

        logger.info(f"[AUDIO] Audio validation success: {url} (duration: {duration:.2f}s)")
        return ValidatedAudioTrack.from_spec(spec, local_path, duration, downloaded)

    async def download(self, client: httpx.AsyncClient, url: str, local_path: str) -> str:
        """Stream url to local_path, following redirects by hand.

        Some hosts answer with redirect chains that must be chased one hop
        at a time (relative Location headers included).
        """
        if is_google_drive_url(url):
            url = google_drive_download_url(url)
            logger.info(f"[AUDIO] Downloading from Google Drive: {url}")

        current = url
        try:
            for _ in range(self.settings.max_redirects + 1):
                async with client.stream("GET", current) as response:
                    if response.status_code in REDIRECT_STATUS_CODES:
                        location = response.headers.get("location")
                        if not location:
                            raise AudioDownloadError(f"HTTP {response.status_code} without Location: {current}")
                        current = urljoin(current, location)
                        logger.info(f"[AUDIO] HTTP redirect {response.status_code} to: {current}")
                        continue

                    if response.status_code != 200:
                        raise AudioDownloadError(f"HTTP {response.status_code}: {response.reason_phrase}")

                    with open(local_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
                    logger.info(f"[AUDIO] HTTP download completed: {local_path}")
                    return local_path
        except httpx.TimeoutException as e:
            _remove_quietly(local_path)
            raise AudioDownloadError(f"HTTP download timeout for {url}") from e
        except httpx.HTTPError as e:
            _remove_quietly(local_path)
            raise AudioDownloadError(f"HTTP request error: {e}") from e
        except OSError as e:
            _remove_quietly(local_path)
            raise AudioDownloadError(f"File write error: {e}") from e
        except AudioDownloadError:
            _remove_quietly(local_path)
            raise

        raise AudioDownloadError(f"Too many redirects for {url}")


def cleanup_audio_files(tracks: list[ValidatedAudioTrack]) -> None:
    """Delete downloaded audio files; caller-owned local files are kept."""
    for track in tracks:
        if track.downloaded and track.local_path:
            if _remove_quietly(track.local_path):
                logger.info(f"[AUDIO] Cleaned up audio file: {track.local_path}")


def _remove_quietly(path: str) -> bool:
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"[AUDIO] Failed to remove {path}: {e}")
        return False


def _remove_all(paths: list[str]) -> None:
    for path in paths:
        if _remove_quietly(path):
            logger.info(f"[AUDIO] Cleaned up audio file: {path}")
