"""Location of finished videos and their public URLs."""

from pathlib import Path
from typing import Optional

from framecast.config import Settings, get_settings


def output_path_for(task_id: str, settings: Optional[Settings] = None) -> Path:
    settings = settings or get_settings()
    return Path(settings.output_dir) / f"video_{task_id}.mp4"


def build_video_url(path: str | Path, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    return f"{settings.base_url.rstrip('/')}/api/video/{Path(path).name}"


def resolve_video_path(filename: str, settings: Optional[Settings] = None) -> Optional[Path]:
    """Map a public video filename to its file.

    Only bare *.mp4 names are accepted (no separators, no '..');
    returns None when the name is rejected or the file does not exist.
    """
    settings = settings or get_settings()
    if not filename.endswith(".mp4"):
        return None
    if ".." in filename or "/" in filename or "\\" in filename:
        return None

    path = Path(settings.output_dir) / filename
    return path if path.is_file() else None
