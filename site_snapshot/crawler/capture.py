"""
Capture engine.

Renders every crawled page under the desktop and mobile viewport classes,
stores the raw snapshots and collects the asset references observed on the
network while the pages loaded.
"""

import asyncio
import json
import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..utils.constants import VIEWPORT_CLASSES
from ..utils.log import get_logger
from ..utils.paths import output_path_for_url, ensure_parent_dir, to_posix
from ..utils.settings import Settings
from .crawler import utc_timestamp


SNAPSHOT_EXTENSIONS = {
    "desktop": ".desktop.html",
    "mobile": ".mobile.html",
}


@dataclass(frozen=True)
class AssetReference:
    """A remote URL observed while rendering, tagged by content role."""

    url: str
    role: str


@dataclass
class AssetReferenceSet:
    """Union of asset references across all captures, one entry per URL."""

    site: str
    roles: Dict[str, str] = field(default_factory=dict)  # URL -> role
    generated_at: str = ""

    def add(self, reference: AssetReference) -> None:
        # First observed role wins
        self.roles.setdefault(reference.url, reference.role)

    def update(self, assets: Dict[str, str]) -> None:
        for url, role in assets.items():
            self.add(AssetReference(url, role))

    def __len__(self) -> int:
        return len(self.roles)

    def __iter__(self):
        for url in sorted(self.roles):
            yield AssetReference(url, self.roles[url])

    def to_dict(self) -> Dict:
        return {
            "site": self.site,
            "count": len(self.roles),
            "assets": sorted(self.roles),
            "roles": dict(sorted(self.roles.items())),
            "generatedAt": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "AssetReferenceSet":
        roles = dict(data.get("roles") or {})
        for url in data.get("assets") or []:
            roles.setdefault(url, "")
        return cls(site=data.get("site", ""), roles=roles, generated_at=data.get("generatedAt", ""))

    def save(self, path: str) -> None:
        ensure_parent_dir(path)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    @classmethod
    def load(cls, path: str) -> Optional["AssetReferenceSet"]:
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return cls.from_dict(json.load(f))
        except (OSError, ValueError) as e:
            get_logger("capture").warning(f"Ignoring unreadable asset list {path}: {e}")
            return None


@dataclass
class SnapshotSet:
    """Where each page's viewport snapshots were written."""

    site: str
    root: str
    pages: Dict[str, Dict[str, str]] = field(default_factory=dict)  # URL -> {viewport: relpath}
    generated_at: str = ""

    def record(self, url: str, viewport: str, path: str) -> None:
        rel = to_posix(os.path.relpath(path, self.root))
        self.pages.setdefault(url, {})[viewport] = rel

    def path_for(self, url: str, viewport: str) -> Optional[str]:
        """Absolute path of a snapshot, None when it was never captured."""
        rel = self.pages.get(url, {}).get(viewport)
        if not rel:
            return None
        return os.path.join(self.root, *rel.split('/'))

    def read(self, url: str, viewport: str) -> Optional[str]:
        path = self.path_for(url, viewport)
        if not path:
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except OSError as e:
            get_logger("capture").warning(f"Snapshot {path} unreadable: {e}")
            return None

    def to_dict(self) -> Dict:
        return {
            "site": self.site,
            "count": len(self.pages),
            "pages": {url: dict(sorted(v.items())) for url, v in sorted(self.pages.items())},
            "generatedAt": self.generated_at,
        }

    def save(self, path: str) -> None:
        ensure_parent_dir(path)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    @classmethod
    def load(cls, path: str, root: str) -> Optional["SnapshotSet"]:
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            get_logger("capture").warning(f"Ignoring unreadable snapshot index {path}: {e}")
            return None
        return cls(
            site=data.get("site", ""),
            root=root,
            pages={k: dict(v) for k, v in (data.get("pages") or {}).items()},
            generated_at=data.get("generatedAt", ""),
        )


class CaptureEngine:
    """
    Captures desktop and mobile snapshots for every page.

    Pages run concurrently up to the configured width; within one page the
    two viewport classes run one after the other on the shared browser.
    """

    def __init__(self, settings: Settings, renderer):
        """
        Initialize the capture engine.

        Args:
            settings: Pipeline settings
            renderer: Rendering capability
                      (``async capture(url, viewport) -> RenderedPage``)
        """
        self.settings = settings
        self.renderer = renderer
        self.temp_dir = settings.temp_dir
        self.logger = get_logger("capture")
        self._semaphore = asyncio.Semaphore(settings.capture_concurrency)
        self._errors: List[Dict] = []

    @property
    def errors(self) -> List[Dict]:
        return list(self._errors)

    def snapshot_path(self, url: str, viewport: str) -> str:
        return output_path_for_url(
            self.temp_dir, url, self.settings.site_origin, SNAPSHOT_EXTENSIONS[viewport]
        )

    async def capture_all(self, pages: Iterable[str]):
        """
        Capture every page under both viewport classes.

        Args:
            pages: Page URLs from the crawl graph

        Returns:
            Tuple of (SnapshotSet, AssetReferenceSet)
        """
        snapshots = SnapshotSet(site=self.settings.site_origin, root=self.temp_dir)
        references = AssetReferenceSet(site=self.settings.site_url)

        # Host variants of one path share snapshot files; the first page keeps them
        claimed: Dict[str, str] = {}
        unique = []
        for url in pages:
            target = self.snapshot_path(url, VIEWPORT_CLASSES[0])
            if target in claimed:
                self.logger.warning(f"Skipping {url}: snapshots of {claimed[target]} already use {target}")
                continue
            claimed[target] = url
            unique.append(url)
        pages = unique

        self.logger.info(f"Capturing {len(pages)} pages")
        await asyncio.gather(*[
            self._capture_page(url, snapshots, references) for url in pages
        ])

        snapshots.generated_at = references.generated_at = utc_timestamp()
        self.logger.info(
            f"Captured {sum(len(v) for v in snapshots.pages.values())} snapshots, "
            f"{len(references)} assets referenced"
        )
        return snapshots, references

    async def _capture_page(
        self,
        url: str,
        snapshots: SnapshotSet,
        references: AssetReferenceSet
    ) -> None:
        async with self._semaphore:
            for viewport in VIEWPORT_CLASSES:
                try:
                    rendered = await self.renderer.capture(url, viewport)
                except Exception as e:
                    self.logger.warning(f"Failed to capture {url} [{viewport}]: {e}")
                    self._errors.append({
                        'url': url,
                        'viewport': viewport,
                        'error': str(e),
                        'type': 'render_error'
                    })
                    continue

                path = self.snapshot_path(url, viewport)
                ensure_parent_dir(path)
                with open(path, 'w', encoding='utf-8') as f:
                    f.write(rendered.html)

                snapshots.record(url, viewport, path)
                references.update(rendered.assets)
                self.logger.info(f"Saved {viewport} HTML: {path}")
