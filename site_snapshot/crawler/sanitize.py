"""
Platform-noise sanitizer for exported documents.

Removes residual hosting-platform runtime artifacts (resource hints,
runtime and widget scripts, embedded app iframes) that the renderer could
not avoid capturing. Running it again over its own output changes nothing.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Iterator, List

from bs4 import BeautifulSoup

from ..exceptions import CorruptDocumentError
from ..utils.log import get_logger


RESOURCE_HINTS = {'preload', 'modulepreload', 'prefetch', 'preconnect', 'dns-prefetch'}

# Scripts the export injects itself
ALLOWED_SCRIPT_PATTERNS = (
    re.compile(r'/assets/gps/map-init\.js'),
    re.compile(r'unpkg\.com/leaflet@', re.I),
)

DENIED_SCRIPT_PATTERNS = (
    re.compile(r'^blob:', re.I),
    re.compile(r'static\.parastorage\.com', re.I),
    re.compile(r'wixstatic\.com/.*\.js(\?|$)', re.I),
    re.compile(r'requirejs', re.I),
    re.compile(r'sentry-next\.wixpress\.com', re.I),
    re.compile(r'viewer-apps\.parastorage\.com', re.I),
    re.compile(r'wixapps\.net', re.I),
    re.compile(r'firebase', re.I),
    # Any other absolute script is a third-party runtime
    re.compile(r'^https?://', re.I),
)

RUNTIME_SCRIPT_IDS = ('viewer-model', 'SITE_DATA', 'wix-essential-viewer-model')
RUNTIME_DATA_URLS = ('wix-thunderbolt', 'wixui', 'parastorage')

DENIED_IFRAME_HOSTS = ('spotwalla', 'wixapps.net', 'wix.com', 'wixstatic.com')
DENIED_IFRAME_TITLES = ('Wix Chat',)

DISALLOWED_PERMISSION = 'vr'


def should_remove_script_src(src: str) -> bool:
    """
    Decide whether an external script is platform runtime noise.

    Args:
        src: Script src attribute

    Returns:
        True if the script must go
    """
    if not src:
        return False
    if any(p.search(src) for p in ALLOWED_SCRIPT_PATTERNS):
        return False
    return any(p.search(src) for p in DENIED_SCRIPT_PATTERNS)


@dataclass
class SanitizeResult:
    """Outcome of sanitizing a directory of documents."""

    scanned: int = 0
    changed: int = 0
    corrupt: List[str] = field(default_factory=list)


class Sanitizer:
    """
    Strips platform runtime noise from exported HTML files.
    """

    def __init__(self):
        self.logger = get_logger("sanitizer")

    def sanitize_html(self, html: str):
        """
        Sanitize markup.

        Args:
            html: Document markup

        Returns:
            Tuple of (markup, number of modifications)
        """
        soup = BeautifulSoup(html, 'lxml')
        removed = 0

        for link in soup.find_all('link'):
            rel = link.get('rel', [])
            if isinstance(rel, str):
                rel = rel.split()
            href = link.get('href', '')
            if RESOURCE_HINTS & {r.lower() for r in rel} or href.lower().startswith('blob:'):
                link.decompose()
                removed += 1

        for script in soup.find_all('script'):
            src = script.get('src')
            if src is not None:
                if should_remove_script_src(src):
                    script.decompose()
                    removed += 1
                    continue
            script_id = script.get('id', '')
            data_url = script.get('data-url', '').lower()
            if (any(marker in script_id for marker in RUNTIME_SCRIPT_IDS)
                    or any(marker in data_url for marker in RUNTIME_DATA_URLS)):
                script.decompose()
                removed += 1
                continue
            if src is None:
                # The export is static: no inline code survives
                script.decompose()
                removed += 1

        for iframe in soup.find_all('iframe'):
            src = iframe.get('src', '')
            title = iframe.get('title', '')
            if any(host in src for host in DENIED_IFRAME_HOSTS) or title in DENIED_IFRAME_TITLES:
                parent = iframe.parent
                iframe.decompose()
                removed += 1
                if parent is not None and parent.name not in ('body', 'html', '[document]') \
                        and not parent.find(True) and not parent.get_text(strip=True):
                    parent.decompose()

        for element in soup.find_all(allow=True):
            tokens = [t.strip() for t in element['allow'].split(';') if t.strip()]
            cleaned = [t for t in tokens if t.lower() != DISALLOWED_PERMISSION]
            if len(cleaned) == len(tokens):
                continue
            if cleaned:
                element['allow'] = '; '.join(cleaned)
            else:
                del element['allow']
            removed += 1

        for element in soup.find_all(allowvr=True):
            del element['allowvr']
            removed += 1

        return str(soup), removed

    def sanitize_file(self, path: str) -> bool:
        """
        Sanitize one exported document in place.

        Args:
            path: HTML file path

        Returns:
            True if the file changed, False otherwise

        Raises:
            CorruptDocumentError: If the file cannot be decoded or parsed
        """
        try:
            with open(path, 'r', encoding='utf-8') as f:
                original = f.read()
        except UnicodeDecodeError as e:
            raise CorruptDocumentError(path, f"not valid UTF-8 ({e.reason})") from e

        try:
            html, removed = self.sanitize_html(original)
        except Exception as e:
            raise CorruptDocumentError(path, str(e)) from e

        if not removed:
            return False

        with open(path, 'w', encoding='utf-8') as f:
            f.write(html)
        self.logger.debug(f"Sanitized {path} ({removed} removals)")
        return True

    def sanitize_directory(self, root: str) -> SanitizeResult:
        """
        Sanitize every HTML file under a directory.

        A corrupt file is reported and skipped; the others are still
        processed.

        Args:
            root: Export directory

        Returns:
            SanitizeResult with counts and corrupt file paths
        """
        result = SanitizeResult()
        if not os.path.isdir(root):
            self.logger.warning(f"{root} not found, nothing to sanitize")
            return result

        for path in walk_html(root):
            result.scanned += 1
            try:
                if self.sanitize_file(path):
                    result.changed += 1
            except CorruptDocumentError as e:
                self.logger.error(str(e))
                result.corrupt.append(path)

        self.logger.info(f"Sanitize completed. Updated {result.changed} file(s).")
        return result


def walk_html(root: str) -> Iterator[str]:
    """Yield every .html file under a directory, in sorted order."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            if name.lower().endswith('.html'):
                yield os.path.join(dirpath, name)
