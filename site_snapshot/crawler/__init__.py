"""
Crawler module for website snapshots.

Contains the stages of the pipeline: crawl graph building, capture, asset
resolution, document transformation and sanitization.
"""

from .crawler import CrawlGraph, SiteCrawler
from .capture import AssetReference, AssetReferenceSet, SnapshotSet, CaptureEngine
from .downloader import AssetManifest, AssetResolver
from .rewrite import DocumentTransformer
from .sanitize import Sanitizer
from .pipeline import SnapshotPipeline

__all__ = [
    "CrawlGraph",
    "SiteCrawler",
    "AssetReference",
    "AssetReferenceSet",
    "SnapshotSet",
    "CaptureEngine",
    "AssetManifest",
    "AssetResolver",
    "DocumentTransformer",
    "Sanitizer",
    "SnapshotPipeline",
]
