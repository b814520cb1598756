"""Host diagnostics for troubleshooting stuck renders.

Lists browser/encoder processes still alive and the host memory figures, the
two things to look at first when a render hangs or the host runs out of
memory.
"""

import asyncio
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

_PROCESS_MARKERS = ("chrome", "chromium", "ffmpeg", "ffprobe")
_MEMINFO_KEYS = ("MemTotal", "MemFree", "MemAvailable")
_STARTED_AT = time.monotonic()


async def list_render_processes() -> list[str]:
    """`ps aux` lines of chromium and ffmpeg processes."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "ps", "aux",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=10)
    except (OSError, asyncio.TimeoutError) as e:
        logger.warning(f"[DIAG] ps failed: {e}")
        return []

    lines = stdout.decode("utf-8", errors="replace").splitlines()
    return [line for line in lines if any(marker in line for marker in _PROCESS_MARKERS)]


def read_meminfo(path: str = "/proc/meminfo") -> dict[str, int]:
    """MemTotal/MemFree/MemAvailable in kB; empty where /proc is unavailable."""
    info: dict[str, int] = {}
    try:
        with open(path) as f:
            for line in f:
                key, _, rest = line.partition(":")
                if key in _MEMINFO_KEYS:
                    info[key] = int(rest.split()[0])
    except (FileNotFoundError, PermissionError, ValueError, IndexError):
        pass
    return info


async def get_process_info() -> dict[str, Any]:
    """Snapshot of render-related processes and host memory."""
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "pid": os.getpid(),
        "processes": await list_render_processes(),
        "memory_kb": read_meminfo(),
        "uptime_s": round(time.monotonic() - _STARTED_AT, 1),
    }
