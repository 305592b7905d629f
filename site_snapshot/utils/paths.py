"""
Path and URL utilities for the snapshot pipeline.

Provides URL canonicalization, internal-link checks, the export path
convention and directory management. The crawler and the document
transformer share these functions so page identity always agrees.
"""

import os
import posixpath
import re
from typing import Optional
from urllib.parse import urlsplit, urlunsplit, urljoin, unquote_plus, quote

from .constants import TRACKING_PARAMS


_UNSAFE_PATH_CHARS = re.compile(r'[^a-zA-Z0-9_\-/]')


def normalize_url(url: str) -> str:
    """
    Canonicalize an absolute URL.

    Lower-cases scheme and host, strips the fragment and removes query
    entries whose key is a known tracking parameter. Remaining query
    entries keep their original text and order.

    Args:
        url: Absolute URL to normalize

    Returns:
        Normalized URL string, or the input unchanged if it cannot be parsed
    """
    try:
        parsed = urlsplit(url.strip())
        # Accessing hostname/port validates the netloc
        hostname = parsed.hostname
        port = parsed.port
    except (ValueError, AttributeError):
        return url

    if not parsed.scheme or not parsed.netloc or not hostname:
        return url

    netloc = hostname.lower()
    if ':' in netloc:
        netloc = f"[{netloc}]"
    if port is not None:
        netloc = f"{netloc}:{port}"
    userinfo = parsed.netloc.rpartition('@')[0]
    if userinfo:
        netloc = f"{userinfo}@{netloc}"

    kept = []
    for part in parsed.query.split('&'):
        if not part:
            continue
        key = unquote_plus(part.split('=', 1)[0])
        if key in TRACKING_PARAMS:
            continue
        kept.append(part)

    return urlunsplit((
        parsed.scheme.lower(),
        netloc,
        parsed.path or '/',
        '&'.join(kept),
        ''
    ))


def _strip_www(host: str) -> str:
    host = host.lower()
    return host[4:] if host.startswith('www.') else host


def is_internal(url: str, site_origin: str) -> bool:
    """
    Check whether a URL points at the site being snapshotted.

    Relative URLs are resolved against the site origin. Scheme and host are
    compared after stripping a leading ``www.`` from both sides.

    Args:
        url: URL to check (absolute or relative)
        site_origin: Origin of the site

    Returns:
        True if internal, False otherwise (including unparsable input)
    """
    try:
        base = urlsplit(site_origin)
        target = urlsplit(urljoin(site_origin, url.strip()))
        base_host = base.hostname or ''
        target_host = target.hostname or ''
    except (ValueError, AttributeError):
        return False

    if not base_host or not target_host:
        return False

    return (
        base.scheme.lower() == target.scheme.lower()
        and _strip_www(base_host) == _strip_www(target_host)
    )


def to_absolute(href: Optional[str], base: str) -> Optional[str]:
    """
    Resolve an href against a base URL.

    Args:
        href: Raw attribute value
        base: URL of the document containing the href

    Returns:
        Absolute URL, or None if the href is missing or unparsable
    """
    if href is None:
        return None
    try:
        absolute = urljoin(base, href.strip())
        urlsplit(absolute).port
    except (ValueError, AttributeError):
        return None
    return absolute


def get_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for a URL."""
    parsed = urlsplit(url)
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"


def get_url_path(url: str) -> str:
    """Return the path of a URL without trailing slashes ('/' for the root)."""
    path = urlsplit(url).path.rstrip('/')
    return path or '/'


def has_extension(segment: str) -> bool:
    """Check whether the last path segment carries a ``.ext`` suffix."""
    return bool(posixpath.splitext(posixpath.basename(segment))[1])


def url_to_relative_path(url: str, site_origin: str) -> str:
    """
    Derive the extensionless export path of a page URL.

    A trailing-slash or extensionless path maps to ``<path>/index``, an
    extension-bearing path loses its extension, and a query string is
    appended as ``_`` plus its percent-encoded form.

    Args:
        url: Page URL (absolute or relative to the site)
        site_origin: Origin of the site

    Returns:
        Relative path starting with '/'
    """
    parsed = urlsplit(urljoin(site_origin, url))
    pathname = re.sub(r'/{2,}', '/', parsed.path or '/')

    if pathname.endswith('/'):
        rel = posixpath.join(pathname, 'index')
    else:
        root, ext = posixpath.splitext(pathname)
        if not ext:
            rel = posixpath.join(pathname, 'index')
        else:
            rel = root

    if parsed.query:
        rel += '_' + quote(parsed.query, safe="-_.!~*'()")

    return rel


def safe_file(base: str, ext: str = '.html') -> str:
    """
    Turn an export path into a safe relative file name.

    Args:
        base: Path produced by url_to_relative_path
        ext: Extension to append

    Returns:
        Relative file path
    """
    name = base[1:] if base.startswith('/') else base
    name = _UNSAFE_PATH_CHARS.sub('_', name)
    if not name:
        name = 'index'
    return name + ext


def output_path_for_url(
    root_dir: str,
    url: str,
    site_origin: str,
    ext: str = '.html'
) -> str:
    """
    Compute the on-disk path for a page under a root directory.

    Args:
        root_dir: Directory holding the documents
        url: Page URL
        site_origin: Origin of the site
        ext: '.desktop.html', '.mobile.html' or '.html'

    Returns:
        File path
    """
    rel = safe_file(url_to_relative_path(url, site_origin), ext)
    return os.path.join(root_dir, *rel.split('/'))


def ensure_dir(path: str) -> None:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists
    """
    os.makedirs(path, exist_ok=True)


def ensure_parent_dir(file_path: str) -> None:
    """
    Ensure the parent directory of a file exists.

    Args:
        file_path: File path whose parent directory should exist
    """
    parent = os.path.dirname(file_path)
    if parent:
        ensure_dir(parent)


def to_posix(path: str) -> str:
    """Use forward slashes regardless of platform."""
    return path.replace('\\', '/')
