"""HTML to PNG rendering on a shared Chromium instance.

``BrowserManager`` owns the one browser process for the whole app. It is
created by the application lifespan, launched lazily on the first render,
and closed only at shutdown. Every render gets its own browser context
(cookies, storage, viewport, device scale factor) which is closed as soon
as the capture is done, whether it succeeded or not.

A render walks these states::

    idle -> context_acquired -> content_loaded -> sized -> captured -> released

Any error on the way aborts the render as a single ``RenderError``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

import structlog
from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from html2png.core.config import Settings, get_settings
from html2png.core.errors import RenderError

logger = structlog.get_logger()

# Tallest of the document's scroll/offset extents.
MEASURE_CONTENT_HEIGHT_JS = """() => Math.max(
    document.body ? document.body.scrollHeight : 0,
    document.body ? document.body.offsetHeight : 0,
    document.documentElement.clientHeight,
    document.documentElement.scrollHeight,
    document.documentElement.offsetHeight
)"""


class RenderStage(str, Enum):
    idle = "idle"
    context_acquired = "context_acquired"
    content_loaded = "content_loaded"
    sized = "sized"
    captured = "captured"
    released = "released"
    failed = "failed"


@dataclass(frozen=True)
class RenderRequest:
    html: str
    width: int = 1200
    height: int | None = None
    dpr: int = 1
    full_page: bool = False


class BrowserManager:
    def __init__(self, launch_args: list[str] | None = None):
        self.launch_args = list(launch_args or [])
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def get_browser(self) -> Browser:
        browser = self._browser
        if browser is not None and browser.is_connected():
            return browser

        async with self._lock:
            # Another request may have launched it while we waited.
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            if self._browser is not None:
                logger.warning("browser.disconnected", msg="Relaunching shared browser")
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(args=self.launch_args)
            logger.info("browser.launched", version=self._browser.version)
            return self._browser

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except PlaywrightError as e:
                    logger.warning("browser.close_failed", error=str(e))
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.info("browser.closed")


def _consume_outcome(task: asyncio.Task) -> None:
    # The caller may have gone away; keep the result from being reported as unretrieved.
    if not task.cancelled():
        task.exception()


class HtmlRenderer:
    def __init__(
        self,
        browsers: BrowserManager,
        settle_ms: int = 100,
        timeout_ms: int = 30_000,
        default_viewport_height: int = 800,
    ):
        self.browsers = browsers
        self.settle_ms = settle_ms
        self.timeout_ms = timeout_ms
        self.default_viewport_height = default_viewport_height

    @classmethod
    def from_settings(cls, browsers: BrowserManager, settings: Settings | None = None) -> "HtmlRenderer":
        settings = settings or get_settings()
        return cls(
            browsers,
            settle_ms=settings.RENDER_SETTLE_MS,
            timeout_ms=settings.RENDER_TIMEOUT_MS,
            default_viewport_height=settings.RENDER_DEFAULT_VIEWPORT_HEIGHT,
        )

    async def render(self, request: RenderRequest) -> bytes:
        """Render ``request.html`` and return PNG bytes.

        The work runs in its own task so that a cancelled caller (client hung
        up) does not interrupt it half way; the render finishes, its context
        is released, and the result is dropped.
        """
        task = asyncio.ensure_future(self._render(request))
        task.add_done_callback(_consume_outcome)
        return await asyncio.shield(task)

    async def _render(self, request: RenderRequest) -> bytes:
        stage = RenderStage.idle
        context: BrowserContext | None = None
        try:
            browser = await self.browsers.get_browser()
            context = await browser.new_context(
                viewport={"width": request.width, "height": request.height or self.default_viewport_height},
                device_scale_factor=request.dpr,
            )
            stage = RenderStage.context_acquired

            page = await context.new_page()
            await page.set_content(request.html, wait_until="networkidle", timeout=self.timeout_ms)
            # Let fonts and images finish async layout.
            await page.wait_for_timeout(self.settle_ms)
            stage = RenderStage.content_loaded

            full_page = request.full_page
            if request.height is None and not request.full_page:
                content_height = int(await page.evaluate(MEASURE_CONTENT_HEIGHT_JS))
                await page.set_viewport_size({"width": request.width, "height": max(1, content_height)})
                full_page = True
            stage = RenderStage.sized

            png = await page.screenshot(type="png", full_page=full_page, timeout=self.timeout_ms)
            stage = RenderStage.captured
            logger.info(
                "render.captured",
                width=request.width,
                height=request.height,
                dpr=request.dpr,
                full_page=request.full_page,
                byte_size=len(png),
            )
            return png
        except (PlaywrightError, ValueError, TypeError, OSError) as e:
            logger.warning("render.failed", last_stage=stage.value, error_type=type(e).__name__, error=str(e))
            raise RenderError(stage=stage.value, detail=str(e)) from e
        finally:
            if context is not None:
                await asyncio.shield(self._release(context))

    async def _release(self, context: BrowserContext) -> None:
        try:
            await context.close()
        except PlaywrightError as e:
            # Browser may already be gone; the manager relaunches it on next use.
            logger.warning("render.context_close_failed", error=str(e))
