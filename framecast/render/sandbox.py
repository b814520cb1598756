"""Isolated evaluation of the caller's render function.

The render function is untrusted JavaScript. It is compiled and invoked in a
blank page that lives in its own browser context (no shared storage, cookies
or DOM with the capture page). Inside that page the function body is
compiled with the ambient browser globals shadowed, leaving the allow-listed
capabilities in plain reach: fetch, timers, Math, Date, JSON, console and
Promise.
"""

import logging

from playwright.async_api import Browser, BrowserContext, Page
from playwright.async_api import Error as PlaywrightError

from framecast.exceptions import RenderFunctionError
from framecast.render.context import FrameContext, RenderOutput, normalize_render_result

logger = logging.getLogger(__name__)

# Browser globals hidden from the render function body. Shadowing is not
# airtight: the Function constructor still reaches the sandbox page's own
# globals. The separate browser context is the isolation boundary; the
# capture page is never reachable from here.
SHADOWED_GLOBALS = (
    "window",
    "self",
    "globalThis",
    "document",
    "frames",
    "parent",
    "top",
    "opener",
    "open",
    "location",
    "history",
    "navigator",
    "localStorage",
    "sessionStorage",
    "indexedDB",
    "caches",
    "cookieStore",
    "XMLHttpRequest",
    "WebSocket",
    "EventSource",
    "Worker",
    "SharedWorker",
    "importScripts",
)

_COMPILE_SCRIPT = """
([source, shadowed]) => {
    const factory = new Function(...shadowed, '"use strict";\\nreturn (' + source + '\\n);');
    const fn = factory(...shadowed.map(() => undefined));
    if (typeof fn !== 'function') {
        throw new Error('render must be a function, got ' + typeof fn);
    }
    window.__framecastRender = fn;
}
"""

_INVOKE_SCRIPT = """
async (context) => {
    const result = await window.__framecastRender(Object.freeze(context));
    if (result && typeof result === 'object') {
        const waitUntil = result.waitUntil;
        return {
            html: result.html,
            waitUntil: typeof waitUntil === 'function' ? waitUntil.toString() : (waitUntil ?? null),
        };
    }
    return result === undefined ? null : result;
}
"""


class RenderSandbox:
    """Compiles the render function once and invokes it per frame."""

    def __init__(self, browser: Browser, render_source: str):
        self.browser = browser
        self.render_source = render_source
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    async def open(self) -> "RenderSandbox":
        self._context = await self.browser.new_context(java_script_enabled=True)
        self._page = await self._context.new_page()
        try:
            await self._page.evaluate(_COMPILE_SCRIPT, [self.render_source, list(SHADOWED_GLOBALS)])
        except PlaywrightError as e:
            raise RenderFunctionError(_clean_js_error(e)) from e
        logger.info("[SANDBOX] Render function compiled")
        return self

    async def evaluate(self, context: FrameContext) -> RenderOutput:
        """Run the render function for one frame (awaits async render functions)."""
        if self._page is None:
            raise RuntimeError("Sandbox is not open")
        try:
            raw = await self._page.evaluate(_INVOKE_SCRIPT, context.to_dict())
        except PlaywrightError as e:
            raise RenderFunctionError(_clean_js_error(e), frame=context.frame) from e
        return normalize_render_result(raw)

    async def close(self) -> None:
        try:
            if self._page is not None:
                await self._page.close()
        except PlaywrightError as e:
            logger.warning(f"[SANDBOX] Failed to close page: {e}")
        try:
            if self._context is not None:
                await self._context.close()
        except PlaywrightError as e:
            logger.warning(f"[SANDBOX] Failed to close context: {e}")
        self._page = None
        self._context = None

    async def __aenter__(self) -> "RenderSandbox":
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def _clean_js_error(error: Exception) -> str:
    """First line of a Playwright evaluation error, without the call log."""
    text = str(error).strip()
    return text.splitlines()[0] if text else "Unknown error"
