"""
Asset resolver for fetching and localizing website resources.

Downloads every distinct asset observed during capture in parallel and
records where each one now lives under the export tree.
"""

import asyncio
import hashlib
import json
import os
import posixpath
import re
from typing import Dict, Iterable, Optional, Set
from urllib.parse import urlsplit, urlunsplit, unquote

from ..exceptions import FetchError
from ..utils.constants import TRACKER_SIGNATURES
from ..utils.log import get_logger
from ..utils.paths import ensure_parent_dir
from ..utils.settings import Settings
from .capture import AssetReference
from .sanitize import should_remove_script_src


FOLDER_PATTERNS = (
    (re.compile(r'\.(png|jpe?g|gif|webp|svg|avif)($|\?)', re.I), 'images'),
    (re.compile(r'\.(woff2?|ttf|otf|eot)($|\?)', re.I), 'fonts'),
    (re.compile(r'\.css($|\?)', re.I), 'css'),
    (re.compile(r'\.js($|\?)', re.I), 'js'),
)

DEFAULT_FOLDER = 'misc'

TRACKER_PATTERN = re.compile(TRACKER_SIGNATURES, re.I)

ROLE_EXTENSIONS = {
    'stylesheet': '.css',
    'script': '.js',
    'font': '.woff2',
    'image': '.png',
}


def normalize_image_cdn_url(url: str) -> str:
    """
    Request the original of a Wix media image.

    Strips the ``/v1/...`` transformation segment and the query string
    from ``wixstatic.com`` media URLs. Other URLs are returned unchanged.

    Args:
        url: Asset URL

    Returns:
        URL of the untransformed asset
    """
    try:
        parsed = urlsplit(url)
        host = parsed.hostname or ''
    except ValueError:
        return url

    if 'wixstatic.com' in host and '/media/' in parsed.path:
        idx = parsed.path.find('/v1/')
        if idx != -1:
            return urlunsplit((parsed.scheme, parsed.netloc, parsed.path[:idx], '', ''))
    return url


def classify_folder(url: str) -> str:
    """
    Pick the asset folder from the URL's file extension.

    Args:
        url: Asset URL

    Returns:
        'images', 'fonts', 'css', 'js' or 'misc'
    """
    for pattern, folder in FOLDER_PATTERNS:
        if pattern.search(url):
            return folder
    return DEFAULT_FOLDER


def is_stripped_script(reference: AssetReference, remove_tracking: bool = True) -> bool:
    """
    Check whether an asset is a script the exported documents drop anyway.

    Such scripts are never localized, so tracking removal and the sanitizer
    still see their remote sources.

    Args:
        reference: Asset URL and role
        remove_tracking: Whether analytics scripts are being removed

    Returns:
        True if the asset must not be downloaded
    """
    if reference.role != 'script' and classify_folder(reference.url) != 'js':
        return False
    if remove_tracking and TRACKER_PATTERN.search(reference.url):
        return True
    return should_remove_script_src(reference.url)


def filename_from_url(url: str, role: str = '', hash_names: bool = False) -> str:
    """
    Derive the local file name of an asset.

    Args:
        url: Asset URL (after optional CDN normalization)
        role: Content role recorded at capture time
        hash_names: Insert a short hash of the URL before the extension

    Returns:
        File name
    """
    try:
        path = unquote(urlsplit(url).path)
    except ValueError:
        path = ''

    base = posixpath.basename(path) or 'file'
    if '.' not in base:
        base += ROLE_EXTENSIONS.get(role, '')

    base = re.sub(r'[<>:"|?*\\]', '_', base)

    if hash_names:
        url_hash = hashlib.sha256(url.encode()).hexdigest()[:8]
        name, ext = os.path.splitext(base)
        base = f"{name}_{url_hash}{ext}"

    return base


class AssetManifest:
    """Write-once mapping of remote asset URL to local relative path."""

    def __init__(self, entries: Optional[Dict[str, str]] = None):
        self._entries: Dict[str, str] = dict(entries or {})

    def add(self, remote_url: str, local_path: str) -> bool:
        """
        Record a localized asset.

        Returns:
            False if the URL already had an entry (which is kept)
        """
        if remote_url in self._entries:
            return False
        self._entries[remote_url] = local_path
        return True

    def get(self, remote_url: str) -> Optional[str]:
        return self._entries.get(remote_url)

    def items(self):
        return self._entries.items()

    def __contains__(self, remote_url: str) -> bool:
        return remote_url in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def to_dict(self) -> Dict[str, str]:
        return dict(sorted(self._entries.items()))

    def save(self, path: str) -> None:
        ensure_parent_dir(path)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    @classmethod
    def load(cls, path: str) -> "AssetManifest":
        """
        Load a manifest; a missing or unreadable file yields an empty one.
        """
        if not os.path.exists(path):
            get_logger("downloader").warning(f"No asset manifest at {path}; assets stay remote")
            return cls()
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            get_logger("downloader").warning(f"Ignoring unreadable asset manifest {path}: {e}")
            return cls()
        return cls(data if isinstance(data, dict) else {})


class AssetResolver:
    """
    Downloads assets asynchronously into ``assets/<folder>/<filename>``.

    Handles parallel downloads with a bounded semaphore; failed downloads
    are logged and left out of the manifest.
    """

    def __init__(self, settings: Settings, fetcher):
        """
        Initialize the asset resolver.

        Args:
            settings: Pipeline settings
            fetcher: Bulk binary-fetch capability (``async fetch_bytes(url)``)
        """
        self.settings = settings
        self.fetcher = fetcher
        self.output_dir = settings.output_dir
        self.logger = get_logger("downloader")

        self._semaphore = asyncio.Semaphore(settings.asset_concurrency)
        self._failed: Set[str] = set()
        self._claimed: Dict[str, str] = {}  # local path -> remote URL
        self._done = 0

    @property
    def failed_assets(self) -> Set[str]:
        """Get set of URLs that failed to download."""
        return self._failed.copy()

    def local_path_for(self, reference: AssetReference) -> str:
        """
        Deterministic local relative path of an asset.

        Args:
            reference: Asset URL and role

        Returns:
            Path of the form ``assets/<folder>/<filename>``
        """
        url = reference.url
        if self.settings.download_high_res:
            url = normalize_image_cdn_url(url)
        folder = classify_folder(url)
        name = filename_from_url(url, reference.role, self.settings.hash_asset_names)
        return f"assets/{folder}/{name}"

    async def resolve_all(self, references: Iterable[AssetReference]) -> AssetManifest:
        """
        Download every distinct asset.

        Args:
            references: Asset references from the capture stage

        Returns:
            AssetManifest of successfully downloaded assets
        """
        distinct: Dict[str, AssetReference] = {}
        for reference in references:
            if is_stripped_script(reference, self.settings.remove_tracking):
                self.logger.debug(f"Not localizing stripped script {reference.url}")
                continue
            distinct.setdefault(reference.url, reference)

        manifest = AssetManifest()
        if not distinct:
            self.logger.info("No assets to download")
            return manifest

        self.logger.info(f"Downloading {len(distinct)} assets...")
        self._done = 0
        await asyncio.gather(*[
            self._resolve(reference, manifest, len(distinct))
            for reference in distinct.values()
        ])

        self.logger.info(
            f"Downloaded {len(manifest)} assets, {len(self._failed)} failed"
        )
        return manifest

    async def _resolve(
        self,
        reference: AssetReference,
        manifest: AssetManifest,
        total: int
    ) -> None:
        local_rel = self.local_path_for(reference)
        fetch_url = (
            normalize_image_cdn_url(reference.url)
            if self.settings.download_high_res else reference.url
        )

        previous = self._claimed.setdefault(local_rel, reference.url)
        if previous != reference.url:
            self.logger.warning(
                f"{reference.url} and {previous} both map to {local_rel}; "
                f"the later download overwrites the earlier"
            )

        async with self._semaphore:
            try:
                content = await self.fetcher.fetch_bytes(fetch_url)
            except FetchError as e:
                self.logger.warning(f"Failed asset {fetch_url}: {e.reason}")
                self._failed.add(reference.url)
                return

            out_path = os.path.join(self.output_dir, *local_rel.split('/'))
            ensure_parent_dir(out_path)
            with open(out_path, 'wb') as f:
                f.write(content)

        manifest.add(reference.url, local_rel)
        self._done += 1
        if self._done % 25 == 0:
            self.logger.info(f"Downloaded {self._done}/{total} assets...")
