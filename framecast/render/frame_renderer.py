"""
Frame renderer: drives a headless Chromium page through every frame.

For each frame index, in order:
1. Build the FrameContext
2. Evaluate the render function in the sandbox
3. Inject the markup into the capture page and run its <script> blocks
4. Wait for images and network activity to settle (soft)
5. Wait for the readiness predicate, if any (soft)
6. Screenshot the viewport to frame_XXXXXX.png

Memory-safe rendering:
- Frames are processed in small batches with a GC pass and a short pause
  between batches, bounding peak memory on small hosts
- The page, every browser context and the browser are always closed
"""

import asyncio
import gc
import logging
import os
import time
from pathlib import Path
from typing import Callable, Optional

from playwright.async_api import Browser, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from framecast.config import Settings, get_settings
from framecast.exceptions import RenderFunctionError
from framecast.render.context import RenderOutput, iter_frame_contexts, total_frame_count
from framecast.render.sandbox import RenderSandbox
from framecast.schemas.render import RenderJobParameters

logger = logging.getLogger(__name__)

FRAME_FILENAME_PATTERN = "frame_%06d.png"

ProgressCallback = Callable[[int, int], None]

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <style>
      body {{ margin: 0; padding: 0; width: {width}px; height: {height}px; overflow: hidden; }}
    </style>
  </head>
  <body></body>
</html>
"""

# Replaces the body with the markup. Scripts inserted through the DOM do not
# run, so they are stripped here and returned for explicit execution.
_APPLY_MARKUP_SCRIPT = """
(html) => {
    document.body.innerHTML = '';
    document.body.removeAttribute('data-ready');
    const template = document.createElement('template');
    template.innerHTML = html;
    const scripts = [];
    template.content.querySelectorAll('script').forEach((el) => {
        scripts.push(el.textContent || '');
        el.remove();
    });
    document.body.appendChild(template.content);
    return { scripts, images: document.images.length };
}
"""

# A script whose completion value is a Promise is awaited before capture.
_RUN_SCRIPT = """
async (source) => {
    await (0, eval)(source);
}
"""

# img.complete is true once an image has either loaded or failed.
_IMAGES_SETTLED_PREDICATE = "() => Array.from(document.images).every((img) => img.complete)"


def frame_path(frames_dir: Path, frame: int) -> Path:
    return frames_dir / (FRAME_FILENAME_PATTERN % frame)


class NetworkActivityTracker:
    """Counts in-flight requests of a page from its request events."""

    def __init__(self, page: Page):
        self._inflight: set[object] = set()
        self._last_activity = time.monotonic()
        page.on("request", self._on_start)
        page.on("requestfinished", self._on_end)
        page.on("requestfailed", self._on_end)

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def _on_start(self, request: object) -> None:
        self._inflight.add(request)
        self._last_activity = time.monotonic()

    def _on_end(self, request: object) -> None:
        self._inflight.discard(request)
        self._last_activity = time.monotonic()

    async def wait_for_quiet(self, quiet_ms: int, timeout_s: float, poll_s: float = 0.05) -> bool:
        """Wait until no request has been in flight for quiet_ms.

        Returns False if the timeout elapsed first.
        """
        deadline = time.monotonic() + timeout_s
        quiet_s = quiet_ms / 1000
        while True:
            now = time.monotonic()
            if not self._inflight and now - self._last_activity >= quiet_s:
                return True
            if now >= deadline:
                return False
            await asyncio.sleep(poll_s)


class FrameRenderer:
    """Renders every frame of a job to PNG files."""

    def __init__(
        self,
        params: RenderJobParameters,
        frames_dir: str | Path,
        settings: Optional[Settings] = None,
    ):
        self.params = params
        self.frames_dir = Path(frames_dir)
        self.settings = settings or get_settings()
        self.total_frames = total_frame_count(params.duration, params.fps)
        self._progress_callback: Optional[ProgressCallback] = None

    def set_progress_callback(self, callback: ProgressCallback) -> None:
        """Set callback called with (frames_done, total_frames) after each frame."""
        self._progress_callback = callback

    def _update_progress(self, frames_done: int) -> None:
        if self._progress_callback:
            self._progress_callback(frames_done, self.total_frames)

    @property
    def frame_pattern(self) -> str:
        """printf-style path pattern consumed by the encoder."""
        return str(self.frames_dir / FRAME_FILENAME_PATTERN)

    async def render(self) -> list[Path]:
        """Launch the browser, render all frames, and always tear it down."""
        self.frames_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            f"[RENDER] {self.total_frames} frames at {self.params.fps} fps, "
            f"{self.params.width}x{self.params.height}"
        )

        async with async_playwright() as p:
            browser = await p.chromium.launch(
                executable_path=self._executable_path(),
                headless=True,
                args=self.settings.chromium_args,
            )
            page: Page | None = None
            sandbox = RenderSandbox(browser, self.params.render)
            try:
                page = await self._open_capture_page(browser)
                await sandbox.open()
                return await self.render_frames(page, sandbox)
            finally:
                await self._close(browser, page, sandbox)

    def _executable_path(self) -> str | None:
        path = self.settings.chromium_executable_path
        if path and os.path.exists(path):
            return path
        return None  # Let Playwright use its bundled Chromium

    async def _open_capture_page(self, browser: Browser) -> Page:
        context = await browser.new_context(
            viewport={"width": self.params.width, "height": self.params.height},
            device_scale_factor=1,
        )
        page = await context.new_page()
        page.set_default_timeout(self.settings.page_default_timeout_ms)
        page.set_default_navigation_timeout(self.settings.page_default_timeout_ms)
        await page.set_content(_PAGE_TEMPLATE.format(width=self.params.width, height=self.params.height))
        return page

    async def render_frames(self, page: Page, sandbox: RenderSandbox) -> list[Path]:
        """Frame loop against an already-open capture page and sandbox."""
        tracker = NetworkActivityTracker(page)
        batch_size = max(1, self.settings.frame_batch_size)
        paths: list[Path] = []

        for context in iter_frame_contexts(self.params):
            output = await sandbox.evaluate(context)
            image_count = await self._apply_markup(page, output, context.frame)

            if image_count > 0:
                await self._wait_for_assets(page, tracker, context.frame)
            if output.wait_until:
                await self._wait_for_readiness(page, output.wait_until, context.frame)

            path = frame_path(self.frames_dir, context.frame)
            await page.screenshot(path=str(path), type="png", full_page=False, omit_background=False)
            paths.append(path)
            self._update_progress(len(paths))

            if len(paths) % batch_size == 0 and len(paths) < self.total_frames:
                gc.collect()
                await asyncio.sleep(self.settings.frame_batch_pause_s)

        logger.info(f"[RENDER] Captured {len(paths)} frames into {self.frames_dir}")
        return paths

    async def _apply_markup(self, page: Page, output: RenderOutput, frame: int) -> int:
        """Replace page content with the frame markup; returns the image count."""
        applied = await page.evaluate(_APPLY_MARKUP_SCRIPT, output.html)
        for source in applied["scripts"]:
            if not source.strip():
                continue
            try:
                await page.evaluate(_RUN_SCRIPT, source)
            except PlaywrightError as e:
                raise RenderFunctionError(f"embedded script failed: {str(e).splitlines()[0]}", frame=frame) from e
        return int(applied["images"])

    async def _wait_for_assets(self, page: Page, tracker: NetworkActivityTracker, frame: int) -> None:
        timeout_ms = self.settings.asset_wait_timeout_s * 1000
        try:
            await page.wait_for_function(_IMAGES_SETTLED_PREDICATE, timeout=timeout_ms)
        except PlaywrightError as e:
            logger.warning(f"[FRAME] Frame {frame}: images did not settle: {str(e).splitlines()[0]}")

        quiet = await tracker.wait_for_quiet(
            self.settings.network_quiet_ms, self.settings.network_idle_timeout_s
        )
        if not quiet:
            logger.warning(
                f"[FRAME] Frame {frame}: network still busy ({tracker.inflight} in flight), capturing anyway"
            )

    async def _wait_for_readiness(self, page: Page, predicate: str, frame: int) -> bool:
        """Poll the readiness predicate; on timeout log and capture anyway."""
        try:
            await page.wait_for_function(predicate, timeout=self.settings.readiness_timeout_s * 1000)
            return True
        except PlaywrightError as e:
            logger.warning(
                f"[FRAME] Frame {frame}: waitUntil not satisfied within "
                f"{self.settings.readiness_timeout_s:.0f}s, continuing anyway: {str(e).splitlines()[0]}"
            )
            return False

    async def _close(self, browser: Browser, page: Page | None, sandbox: RenderSandbox) -> None:
        await sandbox.close()
        try:
            if page is not None:
                await page.close()
        except PlaywrightError as e:
            logger.warning(f"[RENDER] Failed to close page: {e}")
        try:
            for context in browser.contexts:
                await context.close()
            await browser.close()
            logger.info("[RENDER] Browser closed")
        except PlaywrightError as e:
            logger.warning(f"[RENDER] Failed to close browser: {e}")
        gc.collect()
