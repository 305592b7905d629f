"""
In-memory stand-ins for the network and browser capabilities.
"""

import asyncio
from collections import Counter
from typing import Dict, List, Optional, Tuple

from site_snapshot.exceptions import FetchError
from site_snapshot.crawler.renderer import RenderedPage


class FakeFetcher:
    """Serves canned bodies; unknown URLs fail like a 404."""

    def __init__(self, pages: Optional[Dict[str, str]] = None, binaries: Optional[Dict[str, bytes]] = None):
        self.pages = pages or {}
        self.binaries = binaries or {}
        self.calls = Counter()

    async def fetch_text(self, url: str) -> str:
        self.calls[url] += 1
        # Yield so concurrent workers interleave
        await asyncio.sleep(0)
        if url not in self.pages:
            raise FetchError(url, "HTTP 404")
        return self.pages[url]

    async def fetch_bytes(self, url: str) -> bytes:
        self.calls[url] += 1
        await asyncio.sleep(0)
        if url not in self.binaries:
            raise FetchError(url, "HTTP 404")
        return self.binaries[url]


class FakeRenderer:
    """Returns canned renders for discovery and capture."""

    def __init__(
        self,
        listings: Optional[Dict[str, List[str]]] = None,
        captures: Optional[Dict[Tuple[str, str], Tuple[str, Dict[str, str]]]] = None,
        fail: Optional[set] = None,
        fail_discovery: bool = False,
    ):
        self.listings = listings or {}
        self.captures = captures or {}
        self.fail = fail or set()
        self.fail_discovery = fail_discovery
        self.discovered: List[str] = []
        self.captured: List[Tuple[str, str]] = []

    async def discover_links(self, url: str):
        self.discovered.append(url)
        await asyncio.sleep(0)
        if self.fail_discovery:
            raise RuntimeError("browser crashed")
        return "<html></html>", list(self.listings.get(url, []))

    async def capture(self, url: str, viewport: str) -> RenderedPage:
        self.captured.append((url, viewport))
        await asyncio.sleep(0)
        if (url, viewport) in self.fail:
            raise RuntimeError(f"Timeout 30000ms exceeded navigating to {url}")
        html, assets = self.captures.get(
            (url, viewport),
            (f"<html><body><p>{viewport}</p></body></html>", {})
        )
        return RenderedPage(url=url, viewport=viewport, html=html, assets=dict(assets))


def page(*hrefs: str, body: str = "") -> str:
    """Minimal HTML document linking to the given hrefs."""
    anchors = "".join(f'<a href="{href}">link</a>' for href in hrefs)
    return f"<html><head><title>t</title></head><body>{body}{anchors}</body></html>"


class FakeBrowser:
    def __init__(self, driver: "FakePlaywright"):
        self.driver = driver

    async def close(self) -> None:
        self.driver.closed += 1


class FakeChromium:
    def __init__(self, driver: "FakePlaywright"):
        self.driver = driver

    async def launch(self, **kwargs) -> FakeBrowser:
        self.driver.launched += 1
        # Let other starters run while the launch is in flight
        await asyncio.sleep(0.01)
        return FakeBrowser(self.driver)


class FakePlaywright:
    """Counts browser launches and shutdowns in place of Playwright."""

    def __init__(self):
        self.launched = 0
        self.closed = 0
        self.stopped = 0
        self.chromium = FakeChromium(self)

    def __call__(self) -> "FakePlaywright":
        return self

    async def start(self) -> "FakePlaywright":
        await asyncio.sleep(0)
        return self

    async def stop(self) -> None:
        self.stopped += 1
