"""
Snapshot pipeline orchestration.

Runs the crawl, capture, asset, rewrite and sanitize stages, persisting the
artifact each stage produces and loading the ones it consumes. Every stage
can run on its own against artifacts left by an earlier run.
"""

import json
import os
import shutil
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..exceptions import SnapshotError
from ..utils.log import get_logger, print_success, print_warning
from ..utils.paths import ensure_dir, normalize_url
from ..utils.settings import Settings
from .capture import AssetReferenceSet, CaptureEngine, SnapshotSet
from .crawler import CrawlGraph, SiteCrawler
from .downloader import AssetManifest, AssetResolver
from .fetcher import HttpFetcher
from .renderer import PageRenderer
from .rewrite import DocumentTransformer
from .sanitize import Sanitizer, SanitizeResult


@dataclass
class PipelineResult:
    """Summary of a full pipeline run."""

    pages_crawled: int = 0
    snapshots_captured: int = 0
    assets_referenced: int = 0
    assets_downloaded: int = 0
    pages_exported: int = 0
    files_sanitized: int = 0
    corrupt_documents: List[str] = field(default_factory=list)
    errors: List[Dict] = field(default_factory=list)
    duration_seconds: float = 0.0


class SnapshotPipeline:
    """
    Coordinates all stages to snapshot a website.
    """

    def __init__(self, settings: Settings):
        """
        Initialize the pipeline.

        Args:
            settings: Pipeline settings passed to every stage
        """
        self.settings = settings
        self.logger = get_logger("pipeline")
        self._errors: List[Dict] = []

    @property
    def graph_path(self) -> str:
        return os.path.join(self.settings.data_dir, 'sitemap.json')

    @property
    def references_path(self) -> str:
        return os.path.join(self.settings.data_dir, 'assets.json')

    @property
    def snapshots_path(self) -> str:
        return os.path.join(self.settings.data_dir, 'snapshots.json')

    @property
    def manifest_path(self) -> str:
        return os.path.join(self.settings.data_dir, 'assets.local.json')

    @property
    def errors_path(self) -> str:
        return os.path.join(self.settings.data_dir, 'errors.json')

    def _renderer(self) -> PageRenderer:
        return PageRenderer(
            timeout=self.settings.timeout,
            headless=self.settings.headless,
            viewports={
                'desktop': self.settings.desktop_viewport,
                'mobile': self.settings.mobile_viewport,
            }
        )

    def _fetcher(self) -> HttpFetcher:
        return HttpFetcher(timeout=self.settings.timeout)

    def load_pages(self) -> List[str]:
        """Pages to process: the crawl graph, or just the site URL without one."""
        graph = CrawlGraph.load(self.graph_path)
        if graph is None:
            self.logger.warning(f"No crawl graph at {self.graph_path}; using the site URL only")
            return [normalize_url(self.settings.site_url)]
        return graph.sorted_pages()

    async def run_crawl(self, fetcher=None, renderer=None) -> CrawlGraph:
        """
        Build and persist the crawl graph.

        Args:
            fetcher: Page-fetch capability; an HttpFetcher when omitted
            renderer: Rendering capability; a PageRenderer when both are omitted

        Returns:
            CrawlGraph
        """
        ensure_dir(self.settings.data_dir)

        if fetcher is not None:
            crawler = SiteCrawler(self.settings, fetcher, renderer)
            graph = await crawler.crawl()
        else:
            renderer = self._renderer()
            try:
                async with self._fetcher() as http:
                    crawler = SiteCrawler(self.settings, http, renderer)
                    graph = await crawler.crawl()
            finally:
                await renderer.stop()

        self._errors.extend(crawler.errors)
        graph.save(self.graph_path)
        print_success(f"Wrote sitemap with {len(graph.pages)} pages to {self.graph_path}")
        return graph

    async def run_capture(self, renderer=None):
        """
        Capture snapshots of every page and persist snapshot and asset lists.

        Args:
            renderer: Rendering capability; a PageRenderer when omitted

        Returns:
            Tuple of (SnapshotSet, AssetReferenceSet)
        """
        ensure_dir(self.settings.temp_dir)
        ensure_dir(self.settings.data_dir)
        pages = self.load_pages()

        if renderer is not None:
            engine = CaptureEngine(self.settings, renderer)
            snapshots, references = await engine.capture_all(pages)
        else:
            async with self._renderer() as browser:
                engine = CaptureEngine(self.settings, browser)
                snapshots, references = await engine.capture_all(pages)

        self._errors.extend(engine.errors)
        snapshots.save(self.snapshots_path)
        references.save(self.references_path)
        print_success(f"Wrote asset list with {len(references)} assets to {self.references_path}")
        return snapshots, references

    async def run_assets(self, fetcher=None) -> AssetManifest:
        """
        Download every referenced asset and persist the localization manifest.

        Args:
            fetcher: Binary-fetch capability; an HttpFetcher when omitted

        Returns:
            AssetManifest
        """
        ensure_dir(self.settings.output_dir)
        references = AssetReferenceSet.load(self.references_path)
        if references is None:
            print_warning(f"No asset list at {self.references_path}. Run capture first.")
            references = AssetReferenceSet(site=self.settings.site_url)

        if fetcher is not None:
            resolver = AssetResolver(self.settings, fetcher)
            manifest = await resolver.resolve_all(references)
        else:
            async with self._fetcher() as http:
                resolver = AssetResolver(self.settings, http)
                manifest = await resolver.resolve_all(references)

        for url in sorted(resolver.failed_assets):
            self._errors.append({'url': url, 'error': 'Failed to download asset', 'type': 'download_error'})

        manifest.save(self.manifest_path)
        print_success(f"Assets downloaded. Mapping saved to {self.manifest_path}")
        return manifest

    def run_rewrite(self) -> List[str]:
        """
        Transform every captured page into its exported document.

        Returns:
            Paths of the written documents
        """
        ensure_dir(self.settings.output_dir)
        pages = self.load_pages()

        snapshots = SnapshotSet.load(self.snapshots_path, self.settings.temp_dir)
        if snapshots is None:
            print_warning(f"No snapshot index at {self.snapshots_path}. Run capture first.")
            snapshots = SnapshotSet(site=self.settings.site_origin, root=self.settings.temp_dir)

        manifest = AssetManifest.load(self.manifest_path)

        transformer = DocumentTransformer(self.settings, snapshots, manifest)
        written = transformer.transform_all(pages)
        self._errors.extend(transformer.errors)
        return written

    def run_sanitize(self) -> SanitizeResult:
        """Strip platform runtime noise from every exported document."""
        return Sanitizer().sanitize_directory(self.settings.output_dir)

    def run_export(self, dest: str, clean: bool = True) -> str:
        """
        Copy the export tree to a destination directory.

        Args:
            dest: Destination directory
            clean: Empty the destination first

        Returns:
            Absolute destination path

        Raises:
            SnapshotError: If there is nothing to export or the destination
                           overlaps the export tree
        """
        source = os.path.abspath(self.settings.output_dir)
        if not os.path.isdir(source):
            raise SnapshotError(f"{self.settings.output_dir} not found. Run the pipeline first.")

        target = os.path.abspath(dest)
        if os.path.commonpath([source, target]) in (source, target):
            raise SnapshotError(f"Destination {dest} overlaps the export tree {source}")

        if clean and os.path.isdir(target):
            shutil.rmtree(target)
        shutil.copytree(source, target, dirs_exist_ok=True)

        print_success(f"Exported {os.path.relpath(source)} -> {os.path.relpath(target)}")
        return target

    async def run_all(self) -> PipelineResult:
        """
        Run every stage in order.

        Returns:
            PipelineResult with statistics
        """
        start_time = time.time()

        graph = await self.run_crawl()
        snapshots, references = await self.run_capture()
        manifest = await self.run_assets()
        written = self.run_rewrite()
        sanitized = self.run_sanitize()

        result = PipelineResult(
            pages_crawled=len(graph.pages),
            snapshots_captured=sum(len(v) for v in snapshots.pages.values()),
            assets_referenced=len(references),
            assets_downloaded=len(manifest),
            pages_exported=len(written),
            files_sanitized=sanitized.changed,
            corrupt_documents=sanitized.corrupt,
            errors=self.errors,
            duration_seconds=time.time() - start_time,
        )
        self.write_error_log()
        return result

    @property
    def errors(self) -> List[Dict]:
        return list(self._errors)

    def write_error_log(self) -> Optional[str]:
        """Write errors.json if any unit failed during this run."""
        if not self._errors:
            return None

        ensure_dir(self.settings.data_dir)
        with open(self.errors_path, 'w', encoding='utf-8') as f:
            json.dump(self._errors, f, indent=2, ensure_ascii=False)

        self.logger.info(f"Generated error log: {self.errors_path}")
        return self.errors_path
