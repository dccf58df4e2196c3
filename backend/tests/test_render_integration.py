"""End-to-end renders against a real Chromium. Skipped when no browser is installed."""

import asyncio

import pytest
import pytest_asyncio
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from html2png.services.renderer import BrowserManager, HtmlRenderer, RenderRequest
from tests.fakes import png_size


async def _chromium_available() -> bool:
    try:
        async with async_playwright() as p:
            browser = await p.chromium.launch(args=["--no-sandbox"])
            await browser.close()
    except PlaywrightError:
        return False
    return True


@pytest_asyncio.fixture
async def html_renderer():
    if not await _chromium_available():
        pytest.skip("Chromium is not installed (run `playwright install chromium`)")
    browsers = BrowserManager(["--no-sandbox", "--disable-setuid-sandbox"])
    yield HtmlRenderer(browsers, settle_ms=50)
    await browsers.close()


@pytest.mark.asyncio
async def test_auto_sized_render_matches_content(html_renderer):
    html = '<body style="margin:0"><div style="height:1500px;background:#c00"></div></body>'
    png = await html_renderer.render(RenderRequest(html=html, width=800))

    width, height = png_size(png)
    assert width == 800
    assert height == 1500


@pytest.mark.asyncio
async def test_fixed_height_and_dpr(html_renderer):
    html = '<body style="margin:0"><div style="height:3000px"></div></body>'
    png = await html_renderer.render(RenderRequest(html=html, width=400, height=300, dpr=2))
    assert png_size(png) == (800, 600)


@pytest.mark.asyncio
async def test_hello_world(html_renderer):
    png = await html_renderer.render(RenderRequest(html="<h1>Hello</h1>", width=800))
    width, height = png_size(png)
    assert width == 800
    assert height > 0


@pytest.mark.asyncio
async def test_concurrent_renders_share_one_browser(html_renderer):
    pngs = await asyncio.gather(
        *(html_renderer.render(RenderRequest(html=f"<p>{i}</p>", width=300 + i * 10, height=200)) for i in range(4))
    )
    assert [png_size(p)[0] for p in pngs] == [300, 310, 320, 330]
    assert html_renderer.browsers.running
