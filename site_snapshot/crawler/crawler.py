"""
Crawl graph builder.

Discovers every reachable internal page of the site, recording which pages
link to which, and persists the result as the crawl graph artifact that
drives every later stage.
"""

import asyncio
import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set
from urllib.parse import urlsplit, urlunsplit

from ..exceptions import FetchError
from ..utils.log import get_logger
from ..utils.paths import normalize_url, ensure_parent_dir
from ..utils.settings import Settings
from .extractor import LinkExtractor, is_listing_route
from .sitemap import SitemapReader


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class CrawlGraph:
    """Visited pages plus the referrers observed for each link target."""

    site: str
    pages: Set[str] = field(default_factory=set)
    edges: Dict[str, Set[str]] = field(default_factory=dict)
    generated_at: str = ""

    def add_edge(self, target: str, referrer: str) -> None:
        self.edges.setdefault(target, set()).add(referrer)

    def sorted_pages(self) -> List[str]:
        return sorted(self.pages)

    def to_dict(self) -> Dict:
        return {
            "site": self.site,
            "count": len(self.pages),
            "pages": self.sorted_pages(),
            "edges": {
                target: sorted(referrers)
                for target, referrers in sorted(self.edges.items())
            },
            "generatedAt": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "CrawlGraph":
        return cls(
            site=data.get("site", ""),
            pages=set(data.get("pages") or []),
            edges={k: set(v) for k, v in (data.get("edges") or {}).items()},
            generated_at=data.get("generatedAt", ""),
        )

    def save(self, path: str) -> None:
        ensure_parent_dir(path)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    @classmethod
    def load(cls, path: str) -> Optional["CrawlGraph"]:
        """
        Load a crawl graph artifact.

        Returns:
            CrawlGraph, or None when the file is absent or unreadable
        """
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return cls.from_dict(json.load(f))
        except (OSError, ValueError) as e:
            get_logger("crawler").warning(f"Ignoring unreadable crawl graph {path}: {e}")
            return None


class SiteCrawler:
    """
    Builds the crawl graph with a bounded pool of async workers.

    A URL moves from unseen to queued to visited and never back. The visited
    set is updated before the first await of a task, so a URL queued from
    two referrers in the same wave is fetched once.
    """

    def __init__(self, settings: Settings, fetcher, renderer=None):
        """
        Initialize the crawler.

        Args:
            settings: Pipeline settings
            fetcher: Page-fetch capability (``async fetch_text(url)``)
            renderer: Optional rendering capability
                      (``async discover_links(url) -> (markup, hrefs)``)
        """
        self.settings = settings
        self.site_origin = settings.site_origin
        self.fetcher = fetcher
        self.renderer = renderer
        self.concurrency = settings.crawl_concurrency
        self.extractor = LinkExtractor(self.site_origin, settings.home_pagination_max)
        self.sitemaps = SitemapReader(self.site_origin, fetcher)
        self.logger = get_logger("crawler")

        self._visited: Set[str] = set()
        self._queued: Set[str] = set()
        self._errors: List[Dict] = []

    @property
    def errors(self) -> List[Dict]:
        return list(self._errors)

    def seed_urls(self) -> List[str]:
        """
        Homepage seeds: the configured URL plus bare and ``www.`` host variants.

        Returns:
            Normalized seed URLs without duplicates
        """
        seeds = [normalize_url(self.settings.site_url)]
        parsed = urlsplit(self.settings.site_url)
        host = parsed.netloc.lower()
        root_host = host[4:] if host.startswith('www.') else host
        for variant_host in (root_host, f"www.{root_host}"):
            variant = normalize_url(urlunsplit((parsed.scheme, variant_host, '/', '', '')))
            if variant not in seeds:
                seeds.append(variant)
        return seeds

    async def crawl(self) -> CrawlGraph:
        """
        Crawl the site until the queue is drained.

        Returns:
            CrawlGraph of every visited page and discovered edge
        """
        graph = CrawlGraph(site=self.site_origin)
        queue: asyncio.Queue = asyncio.Queue()

        for seed in self.seed_urls() + await self.sitemaps.collect():
            self._enqueue(queue, seed)

        self.logger.info(f"Crawling {self.site_origin} with {self.concurrency} workers")

        workers = [
            asyncio.create_task(self._worker(queue, graph))
            for _ in range(self.concurrency)
        ]
        try:
            await queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        graph.pages = set(self._visited)
        graph.generated_at = utc_timestamp()
        self.logger.info(f"Crawled {len(graph.pages)} pages")
        return graph

    def _enqueue(self, queue: asyncio.Queue, url: str) -> None:
        if url in self._visited or url in self._queued:
            return
        self._queued.add(url)
        queue.put_nowait(url)

    async def _worker(self, queue: asyncio.Queue, graph: CrawlGraph) -> None:
        while True:
            url = await queue.get()
            try:
                await self._process(url, queue, graph)
            except Exception as e:
                self.logger.error(f"Unexpected error crawling {url}: {e}")
                self._errors.append({'url': url, 'error': str(e), 'type': 'crawl_error'})
            finally:
                queue.task_done()

    async def _process(self, url: str, queue: asyncio.Queue, graph: CrawlGraph) -> None:
        """Visit one page and enqueue everything it links to."""
        if url in self._visited:
            return
        self._visited.add(url)
        self._queued.discard(url)

        self.logger.info(f"[{len(self._visited)}] Fetching {url}")
        try:
            html = await self.fetcher.fetch_text(url)
        except FetchError as e:
            self.logger.warning(f"Failed to fetch {url}: {e.reason}")
            self._errors.append({'url': url, 'error': e.reason, 'type': 'fetch_error'})
            return

        links = set(self.extractor.extract_internal_links(html, url))
        links.update(self.extractor.pagination_links(url, html))

        if self.renderer is not None and is_listing_route(url):
            links.update(await self._discover_dynamic(url))

        for link in links:
            graph.add_edge(link, url)
            self._enqueue(queue, link)

    async def _discover_dynamic(self, url: str) -> Set[str]:
        """Render a listing route to recover client-side injected links."""
        try:
            _, hrefs = await self.renderer.discover_links(url)
        except Exception as e:
            self.logger.warning(f"Dynamic discovery failed for {url}: {e}")
            return set()

        found = self.extractor.filter_listing_hrefs(hrefs, url)
        self.logger.info(f"Dynamic discovery added {len(found)} post/pagination links from {url}")
        return found
