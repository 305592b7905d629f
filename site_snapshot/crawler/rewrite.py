"""
Document transformer for turning raw snapshots into exportable pages.

Merges responsive variants, points asset references at their local copies,
strips tracking scripts and rewrites internal links to path-only form.
"""

import os
import re
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlsplit

from ..utils.constants import TRACKER_SIGNATURES
from ..utils.log import get_logger
from ..utils.paths import (
    is_internal,
    to_absolute,
    output_path_for_url,
    ensure_parent_dir,
)
from ..utils.settings import Settings
from .capture import SnapshotSet
from .downloader import AssetManifest
from .extractor import make_soup
from .responsive import merge_desktop_mobile


TRACKER_PATTERN = re.compile(TRACKER_SIGNATURES, re.I)

EXTENSION_SUFFIX = re.compile(r'\.\w{1,6}$')


def rewrite_assets(html: str, manifest: AssetManifest) -> str:
    """
    Replace every literal occurrence of a manifested URL with its local path.

    The substitution runs over the whole document text, so URLs inside
    inline styles, scripts and plain text are all rewritten. Longer URLs go
    first so a URL that prefixes another cannot clobber it.

    Args:
        html: Document markup
        manifest: Remote URL to local path mapping

    Returns:
        Rewritten markup
    """
    for remote, local in sorted(manifest.items(), key=lambda item: len(item[0]), reverse=True):
        replacement = '/' + local
        html = html.replace(remote, replacement)
        escaped = remote.replace('&', '&amp;')
        if escaped != remote:
            html = html.replace(escaped, replacement)
    return html


def remove_tracking(html: str) -> str:
    """
    Remove scripts matching known analytics signatures.

    Args:
        html: Document markup

    Returns:
        Markup without tracking scripts
    """
    soup = make_soup(html)
    for script in soup.find_all('script'):
        src = script.get('src', '')
        code = script.string or ''
        if TRACKER_PATTERN.search(f"{src} {code}"):
            script.decompose()
    return str(soup)


def _local_href(absolute: str, keep_fragment: bool = True) -> str:
    parsed = urlsplit(absolute)
    path = parsed.path or '/'
    if not path.endswith('/') and not EXTENSION_SUFFIX.search(path.rsplit('/', 1)[-1]):
        path += '/'
    href = path
    if parsed.query:
        href += '?' + parsed.query
    if keep_fragment and parsed.fragment:
        href += '#' + parsed.fragment
    return href


def rewrite_internal_links(html: str, page_url: str, site_origin: str) -> str:
    """
    Turn internal anchors and canonical links into path-only references.

    Args:
        html: Document markup
        page_url: URL of the page (for resolving relative hrefs)
        site_origin: Origin of the site

    Returns:
        Rewritten markup
    """
    soup = make_soup(html)

    for anchor in soup.find_all('a', href=True):
        href = anchor.get('href', '').strip()
        if not href or href.startswith('#'):
            continue
        absolute = to_absolute(href, page_url)
        if absolute and is_internal(absolute, site_origin):
            anchor['href'] = _local_href(absolute)

    for link in soup.find_all('link', href=True):
        rel = link.get('rel', [])
        if isinstance(rel, str):
            rel = rel.split()
        if 'canonical' not in [r.lower() for r in rel]:
            continue
        absolute = to_absolute(link.get('href', ''), page_url)
        if absolute and is_internal(absolute, site_origin):
            link['href'] = _local_href(absolute, keep_fragment=False)

    return str(soup)


class DocumentTransformer:
    """
    Produces the final exported document for every captured page.

    Reads snapshots only through the SnapshotSet and asset locations only
    through the AssetManifest.
    """

    def __init__(self, settings: Settings, snapshots: SnapshotSet, manifest: AssetManifest):
        """
        Initialize the document transformer.

        Args:
            settings: Pipeline settings
            snapshots: Snapshot locations from the capture stage
            manifest: Asset locations from the resolver stage
        """
        self.settings = settings
        self.snapshots = snapshots
        self.manifest = manifest
        self.output_dir = settings.output_dir
        self.logger = get_logger("rewriter")
        self._errors: List[Dict] = []

    @property
    def errors(self) -> List[Dict]:
        return list(self._errors)

    def output_path(self, url: str) -> str:
        return output_path_for_url(self.output_dir, url, self.settings.site_origin, '.html')

    def select_base(self, url: str) -> Optional[str]:
        """
        Pick the document a page is built from.

        Returns:
            Merged, desktop or mobile markup, or None if nothing was captured
        """
        desktop = self.snapshots.read(url, 'desktop')
        mobile = self.snapshots.read(url, 'mobile')

        if desktop and mobile and self.settings.single_responsive:
            return merge_desktop_mobile(desktop, mobile)
        return desktop or mobile or None

    def transform(self, url: str, html: str) -> str:
        """
        Apply tracking removal, asset rewrite and link rewrite to a page.

        Tracking scripts go first, while their remote sources are still
        recognizable.

        Args:
            url: Page URL
            html: Base document markup

        Returns:
            Exportable markup
        """
        if self.settings.remove_tracking:
            html = remove_tracking(html)
        html = rewrite_assets(html, self.manifest)
        return rewrite_internal_links(html, url, self.settings.site_origin)

    def transform_page(self, url: str) -> Optional[str]:
        """
        Build and write the exported document of one page.

        Returns:
            Output path, or None when the page was skipped or failed
        """
        base = self.select_base(url)
        if base is None:
            self.logger.warning(f"No snapshot found for {url}")
            return None

        out_path = self.output_path(url)
        try:
            html = self.transform(url, base)
        except Exception as e:
            self.logger.error(f"Failed to process {url}: {e}")
            self._errors.append({'url': url, 'error': str(e), 'type': 'transform_error'})
            return None

        ensure_parent_dir(out_path)
        with open(out_path, 'w', encoding='utf-8') as f:
            f.write(html)

        self.logger.info(f"Wrote {os.path.relpath(out_path)}")
        return out_path

    def transform_all(self, pages: Iterable[str]) -> List[str]:
        """
        Transform every page.

        Args:
            pages: Page URLs from the crawl graph

        Returns:
            Paths of the written documents
        """
        written = []
        claimed: Dict[str, str] = {}
        for url in pages:
            # Host variants of one path share an export file; the first exported page keeps it
            target = self.output_path(url)
            if target in claimed:
                self.logger.warning(f"Skipping {url}: {claimed[target]} already exported to {target}")
                continue

            out_path = self.transform_page(url)
            if out_path:
                claimed[out_path] = url
                written.append(out_path)

        self.logger.info(f"Exported {len(written)} pages to {self.output_dir}")
        return written
