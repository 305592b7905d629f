"""
Page renderer using Playwright for JavaScript rendering.

Handles headless browser rendering to capture dynamically generated content.
One browser instance is shared; every render gets its own isolated context.
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from playwright.async_api import async_playwright, Browser, Response

from ..utils.constants import (
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    MOBILE_USER_AGENT,
    SCROLL_STEP,
    CAPTURE_SCROLL_INTERVAL,
    DISCOVERY_SCROLL_INTERVAL,
    CAPTURE_SETTLE_MS,
    DISCOVERY_SETTLE_MS,
)
from ..utils.log import get_logger


# Scrolls in fixed steps until within 50px of the document bottom
AUTO_SCROLL_JS = """
async ([step, interval]) => {
    await new Promise((resolve) => {
        let total = 0;
        const timer = setInterval(() => {
            const scrollHeight = document.body ? document.body.scrollHeight : 0;
            window.scrollBy(0, step);
            total += step;
            if (total >= scrollHeight - window.innerHeight - 50) {
                clearInterval(timer);
                resolve();
            }
        }, interval);
    });
}
"""

RESOURCE_ROLES = {
    "image": "image",
    "font": "font",
    "stylesheet": "stylesheet",
    "script": "script",
}

CONTENT_TYPE_ROLES = (
    (re.compile(r'image', re.I), "image"),
    (re.compile(r'font', re.I), "font"),
    (re.compile(r'css', re.I), "stylesheet"),
    (re.compile(r'javascript|ecmascript', re.I), "script"),
)


def classify_response(resource_type: str, content_type: str) -> Optional[str]:
    """
    Infer the content role of a network response.

    Args:
        resource_type: Playwright request resource type
        content_type: Value of the response content-type header

    Returns:
        'image', 'font', 'stylesheet', 'script' or None
    """
    role = RESOURCE_ROLES.get(resource_type or "")
    if role:
        return role
    for pattern, role in CONTENT_TYPE_ROLES:
        if pattern.search(content_type or ""):
            return role
    return None


@dataclass
class RenderedPage:
    """Markup and observed assets of one viewport capture."""

    url: str
    viewport: str
    html: str
    assets: Dict[str, str] = field(default_factory=dict)  # URL -> role


class PageRenderer:
    """
    Renders web pages using Playwright headless browser.

    Captures the final DOM after JavaScript execution and lazy loading.
    """

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT,
        headless: bool = True,
        viewports: Optional[Dict[str, Dict[str, int]]] = None
    ):
        """
        Initialize the page renderer.

        Args:
            timeout: Navigation timeout in milliseconds
            headless: Run browser in headless mode
            viewports: Viewport sizes keyed by viewport class
        """
        self.timeout = timeout
        self.headless = headless
        self.viewports = viewports or {
            "desktop": {"width": 1920, "height": 1080},
            "mobile": {"width": 375, "height": 667},
        }
        self.logger = get_logger("renderer")

        self._playwright = None
        self._browser: Optional[Browser] = None
        self._start_lock = asyncio.Lock()

    async def start(self) -> None:
        """
        Start the Playwright browser instance.

        Concurrent first callers share one launch.
        """
        async with self._start_lock:
            if self._browser:
                return
            self.logger.info("Starting Playwright browser...")
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=[
                    '--disable-blink-features=AutomationControlled',
                    '--no-sandbox',
                    '--disable-setuid-sandbox',
                    '--disable-dev-shm-usage',
                ]
            )
            self.logger.info("Browser started successfully")

    async def stop(self) -> None:
        """
        Stop the Playwright browser instance.
        """
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        self.logger.info("Browser stopped")

    async def discover_links(self, url: str) -> Tuple[str, List[str]]:
        """
        Render a listing page and read every anchor href.

        Scrolls to the bottom to trigger lazy-loaded listings before
        reading the DOM. Errors propagate to the caller.

        Args:
            url: URL to render

        Returns:
            Tuple of (rendered markup, raw anchor hrefs)
        """
        await self.start()

        context = await self._browser.new_context(
            viewport={"width": 1280, "height": 800},
            user_agent=DEFAULT_USER_AGENT,
            ignore_https_errors=True,
        )
        try:
            page = await context.new_page()
            await page.goto(url, wait_until="networkidle", timeout=self.timeout)
            await page.evaluate(AUTO_SCROLL_JS, [SCROLL_STEP, DISCOVERY_SCROLL_INTERVAL])
            await page.wait_for_load_state("networkidle", timeout=self.timeout)
            await page.wait_for_timeout(DISCOVERY_SETTLE_MS)

            hrefs = await page.eval_on_selector_all(
                "a[href]",
                "(anchors) => anchors.map(a => a.getAttribute('href') || '').filter(Boolean)"
            )
            html = await page.content()
        finally:
            await context.close()

        return html, hrefs

    async def capture(self, url: str, viewport: str) -> RenderedPage:
        """
        Capture the fully rendered markup of a page for one viewport class.

        Every image, font, stylesheet or script response seen while the page
        loads is recorded, whether or not it survives in the final markup.
        Errors propagate to the caller.

        Args:
            url: URL to render
            viewport: 'desktop' or 'mobile'

        Returns:
            RenderedPage with markup and observed assets
        """
        await self.start()

        assets: Dict[str, str] = {}

        def on_response(response: Response) -> None:
            asset_url = response.url
            if asset_url.startswith(('data:', 'blob:')):
                return
            role = classify_response(
                response.request.resource_type,
                response.headers.get('content-type', '')
            )
            if role and asset_url not in assets:
                assets[asset_url] = role

        context = await self._browser.new_context(
            viewport=self.viewports[viewport],
            user_agent=MOBILE_USER_AGENT if viewport == "mobile" else DEFAULT_USER_AGENT,
            is_mobile=viewport == "mobile",
            ignore_https_errors=True,
        )
        try:
            page = await context.new_page()
            page.on("response", on_response)

            self.logger.info(f"Navigating [{viewport}] {url}")
            await page.goto(url, wait_until="networkidle", timeout=self.timeout)
            await page.evaluate(AUTO_SCROLL_JS, [SCROLL_STEP, CAPTURE_SCROLL_INTERVAL])
            await page.wait_for_timeout(CAPTURE_SETTLE_MS)
            html = await page.content()
        finally:
            await context.close()

        return RenderedPage(url=url, viewport=viewport, html=html, assets=assets)

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()
