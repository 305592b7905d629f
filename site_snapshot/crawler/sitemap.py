"""
Sitemap reader for seeding the crawl.

Walks XML sitemap indexes recursively and scrapes the HTML post listing
that some hosted sites expose when the XML sitemap is partial.
"""

from typing import List, Set
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..exceptions import FetchError
from ..utils.constants import POST_PATH_MARKER
from ..utils.log import get_logger
from ..utils.paths import normalize_url, is_internal, to_absolute
from .extractor import make_soup


class SitemapReader:
    """
    Collects page URLs from a site's sitemaps.

    Every source is best-effort: fetch and parse failures are logged and
    contribute nothing.
    """

    XML_SITEMAPS = ("/sitemap.xml", "/blog-posts-sitemap.xml")
    HTML_LISTING = "/blog-posts-sitemap.html"

    def __init__(self, site_origin: str, fetcher):
        """
        Initialize the sitemap reader.

        Args:
            site_origin: Origin of the site
            fetcher: Object providing ``async fetch_text(url)``
        """
        self.site_origin = site_origin
        self.fetcher = fetcher
        self.logger = get_logger("sitemap")

    async def collect(self) -> List[str]:
        """
        Gather every internal page URL listed by the site's sitemaps.

        Returns:
            Sorted list of normalized URLs
        """
        seen: Set[str] = set()
        urls: Set[str] = set()

        for path in self.XML_SITEMAPS:
            await self._read_xml(urljoin(self.site_origin, path), seen, urls)

        urls.update(await self._read_html_listing())

        self.logger.info(f"Sitemaps listed {len(urls)} pages")
        return sorted(urls)

    def _keep(self, loc: str, urls: Set[str]) -> None:
        if is_internal(loc, self.site_origin):
            urls.add(normalize_url(loc))

    async def _read_xml(self, url: str, seen: Set[str], urls: Set[str]) -> None:
        """Read one sitemap document, recursing into nested index entries."""
        if url in seen:
            return
        seen.add(url)

        try:
            xml = await self.fetcher.fetch_text(url)
        except FetchError as e:
            self.logger.warning(f"Failed to fetch sitemap {url}: {e.reason}")
            return

        try:
            soup = BeautifulSoup(xml, 'xml')
        except Exception as e:
            self.logger.warning(f"Failed to parse sitemap {url}: {e}")
            return

        for entry in soup.find_all('sitemap'):
            loc = entry.find('loc')
            if loc and loc.text.strip():
                nested = loc.text.strip()
                if is_internal(nested, self.site_origin):
                    await self._read_xml(nested, seen, urls)

        entries = soup.find_all('url')
        if entries:
            for entry in entries:
                loc = entry.find('loc')
                if loc and loc.text.strip():
                    self._keep(loc.text.strip(), urls)
        elif not soup.find('sitemap'):
            # Some generators emit bare <loc> lists without <url> wrappers
            for loc in soup.find_all('loc'):
                if loc.text.strip():
                    self._keep(loc.text.strip(), urls)

    async def _read_html_listing(self) -> Set[str]:
        """Scrape post links from the HTML listing page."""
        listing_url = urljoin(self.site_origin, self.HTML_LISTING)
        urls: Set[str] = set()

        try:
            html = await self.fetcher.fetch_text(listing_url)
        except FetchError as e:
            self.logger.debug(f"No HTML post listing at {listing_url}: {e.reason}")
            return urls

        for anchor in make_soup(html).find_all('a', href=True):
            href = anchor.get('href', '')
            if POST_PATH_MARKER not in href:
                continue
            absolute = to_absolute(href, listing_url)
            if absolute:
                self._keep(absolute, urls)

        return urls
