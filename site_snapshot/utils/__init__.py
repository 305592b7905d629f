"""
Utility modules for the snapshot pipeline.

Contains logging, URL canonicalization and export paths, settings, and
constants.
"""

from .log import setup_logger, get_logger
from .paths import (
    normalize_url,
    is_internal,
    to_absolute,
    url_to_relative_path,
    safe_file,
    output_path_for_url,
    ensure_dir,
)
from .settings import Settings
from .constants import (
    DEFAULT_USER_AGENT,
    MOBILE_USER_AGENT,
    DEFAULT_TIMEOUT,
    DEFAULT_CRAWL_CONCURRENCY,
    DEFAULT_CAPTURE_CONCURRENCY,
    DEFAULT_ASSET_CONCURRENCY,
    TRACKING_PARAMS,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "normalize_url",
    "is_internal",
    "to_absolute",
    "url_to_relative_path",
    "safe_file",
    "output_path_for_url",
    "ensure_dir",
    "Settings",
    "DEFAULT_USER_AGENT",
    "MOBILE_USER_AGENT",
    "DEFAULT_TIMEOUT",
    "DEFAULT_CRAWL_CONCURRENCY",
    "DEFAULT_CAPTURE_CONCURRENCY",
    "DEFAULT_ASSET_CONCURRENCY",
    "TRACKING_PARAMS",
]
