"""
Link extractor for parsing page markup during the crawl.

Uses BeautifulSoup for HTML parsing to find internal anchor targets and the
numbered pagination convention of listing routes.
"""

import re
from typing import Iterable, List, Optional, Set
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..utils.constants import PAGINATION_PATTERN, POST_PATH_MARKER
from ..utils.log import get_logger
from ..utils.paths import (
    normalize_url,
    is_internal,
    to_absolute,
    get_origin,
    get_url_path,
)


def make_soup(html: str) -> BeautifulSoup:
    """
    Parse HTML with lxml, falling back to the builtin parser.

    Args:
        html: Markup to parse

    Returns:
        BeautifulSoup document
    """
    try:
        return BeautifulSoup(html, 'lxml')
    except Exception:
        return BeautifulSoup(html, 'html.parser')


def is_home_route(url: str) -> bool:
    """Check whether a URL is the site's home route ('/' or '/home')."""
    return get_url_path(url) in ('/', '/home')


def is_listing_route(url: str) -> bool:
    """Check whether a URL is the home route or one of its numbered pages."""
    path = get_url_path(url)
    return path in ('/', '/home') or bool(re.fullmatch(r'/home/page/\d+', path))


class LinkExtractor:
    """
    Extracts crawlable links from page markup.

    Finds internal anchors, detects the highest numbered page of the
    ``/home/page/N`` convention and filters dynamically discovered hrefs.
    """

    PAGINATION_RE = re.compile(PAGINATION_PATTERN)

    def __init__(self, site_origin: str, pagination_ceiling: Optional[int] = None):
        """
        Initialize the link extractor.

        Args:
            site_origin: Origin used for internal-link checks
            pagination_ceiling: Configured home-route page count override
        """
        self.site_origin = site_origin
        self.pagination_ceiling = (
            pagination_ceiling
            if isinstance(pagination_ceiling, int) and pagination_ceiling > 1
            else None
        )
        self.logger = get_logger("extractor")

    def _hrefs(self, soup: BeautifulSoup) -> List[str]:
        return [
            anchor.get('href', '')
            for anchor in soup.find_all('a', href=True)
            if anchor.get('href', '').strip()
        ]

    def _beyond_ceiling(self, url: str) -> bool:
        if self.pagination_ceiling is None:
            return False
        match = self.PAGINATION_RE.search(get_url_path(url))
        return bool(match) and int(match.group(1)) > self.pagination_ceiling

    def _internal(self, hrefs: Iterable[str], page_url: str) -> Set[str]:
        links = set()
        for href in hrefs:
            absolute = to_absolute(href, page_url)
            if not absolute or not is_internal(absolute, self.site_origin):
                continue
            link = normalize_url(absolute)
            if self._beyond_ceiling(link):
                continue
            links.add(link)
        return links

    def extract_internal_links(self, html: str, page_url: str) -> Set[str]:
        """
        Extract every internal anchor target from page markup.

        Args:
            html: Raw page markup
            page_url: URL of the page (for resolving relative hrefs)

        Returns:
            Set of normalized internal URLs
        """
        soup = make_soup(html)
        links = self._internal(self._hrefs(soup), page_url)
        self.logger.debug(f"Extracted {len(links)} internal links from {page_url}")
        return links

    def find_max_page(self, html: str) -> int:
        """
        Find the highest page number linked via the pagination convention.

        Args:
            html: Raw page markup

        Returns:
            Highest page index, 1 when no pagination link exists
        """
        max_page = 1
        for href in self._hrefs(make_soup(html)):
            match = self.PAGINATION_RE.search(href)
            if match:
                max_page = max(max_page, int(match.group(1)))
        return max_page

    def pagination_links(self, page_url: str, html: str) -> List[str]:
        """
        Synthesize numbered page links ``2..N`` for a page.

        On the home route a configured ceiling replaces the discovered
        maximum. Elsewhere the discovered maximum is capped by the ceiling.

        Args:
            page_url: URL of the page
            html: Raw page markup

        Returns:
            Normalized pagination URLs
        """
        target_max = self.find_max_page(html)
        if self.pagination_ceiling is not None:
            if is_home_route(page_url):
                target_max = self.pagination_ceiling
            else:
                target_max = min(target_max, self.pagination_ceiling)

        origin = get_origin(page_url)
        return [
            normalize_url(urljoin(origin, f"/home/page/{n}"))
            for n in range(2, target_max + 1)
        ]

    def filter_listing_hrefs(self, hrefs: Iterable[str], page_url: str) -> Set[str]:
        """
        Keep content-post and pagination hrefs found by dynamic rendering.

        Args:
            hrefs: Raw anchor hrefs read from the rendered page
            page_url: URL of the rendered page

        Returns:
            Set of normalized internal URLs
        """
        wanted = [
            href for href in hrefs
            if href and (POST_PATH_MARKER in href or self.PAGINATION_RE.search(href))
        ]
        return self._internal(wanted, page_url)
