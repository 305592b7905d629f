#!/usr/bin/env python3
"""
Site Snapshot - export a live website as a static, self-contained copy.

Usage:
    python -m site_snapshot.main --config config/settings.json all
    python -m site_snapshot.main --url https://example.com crawl

Stages:
    crawl     Discover every internal page (data/sitemap.json)
    capture   Render desktop and mobile snapshots (temp/pages, data/assets.json)
    assets    Download referenced assets (output/assets, data/assets.local.json)
    rewrite   Build the exported pages (output/**.html)
    sanitize  Strip platform runtime noise from the exported pages
    all       Run every stage above in order
    export    Copy output/ to a destination directory (--dest, --no-clean)
"""

import argparse
import asyncio
import logging
import os
import sys

from site_snapshot.crawler import SnapshotPipeline
from site_snapshot.exceptions import ConfigError, SnapshotError
from site_snapshot.utils.log import (
    setup_logger,
    print_status,
    print_success,
    print_error,
    print_info
)
from site_snapshot.utils.settings import Settings


STAGES = ('crawl', 'capture', 'assets', 'rewrite', 'sanitize', 'all', 'export')


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog='site-snapshot',
        description='Export a live website as a static snapshot',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --config config/settings.json all
    %(prog)s --url https://example.com --work-dir ./snap crawl
    %(prog)s --url https://example.com --pagination-max 12 --high-res all
    %(prog)s --url https://example.com export --dest public --no-clean
        """
    )

    parser.add_argument(
        'stage',
        choices=STAGES,
        help='Pipeline stage to run'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default=None,
        help='Path to a JSON settings file'
    )

    parser.add_argument(
        '--url', '-u',
        type=str,
        default=None,
        help='URL of the site to snapshot (overrides siteUrl)'
    )

    parser.add_argument(
        '--work-dir', '-w',
        type=str,
        default=None,
        help='Directory holding data/, temp/ and output/ (default: .)'
    )

    parser.add_argument(
        '--timeout',
        type=int,
        default=None,
        help='Fetch and navigation timeout in milliseconds (default: 30000)'
    )

    parser.add_argument(
        '--concurrency',
        type=int,
        default=None,
        help='Crawl worker count (default: 3)'
    )

    parser.add_argument(
        '--pagination-max',
        type=int,
        default=None,
        help='Number of /home/page/N pages to crawl from the home route'
    )

    parser.add_argument(
        '--high-res',
        action='store_true',
        default=None,
        help='Download untransformed originals of CDN images'
    )

    parser.add_argument(
        '--dest', '-d',
        type=str,
        default='dist',
        help='Export destination directory (default: dist)'
    )

    parser.add_argument(
        '--no-clean',
        action='store_true',
        help='Keep existing files in the export destination'
    )

    parser.add_argument(
        '--no-headless',
        action='store_true',
        help='Run browser in visible mode (useful for debugging)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Also write logs to this file'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress output except errors'
    )

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """
    Build the pipeline settings from the settings file and CLI overrides.

    Raises:
        ConfigError: If no site URL is available or a value is invalid
    """
    overrides = dict(
        site_url=args.url,
        work_dir=args.work_dir,
        timeout=args.timeout,
        crawl_concurrency=args.concurrency,
        home_pagination_max=args.pagination_max,
        download_high_res=args.high_res,
        headless=False if args.no_headless else None,
    )

    if args.config:
        return Settings.from_file(args.config, **overrides)

    if not args.url:
        raise ConfigError("Either --config or --url is required")

    return Settings.from_dict({}, **overrides)


def print_summary(result) -> None:
    """
    Print the pipeline summary.

    Args:
        result: PipelineResult object
    """
    print_status("=" * 60)
    print_success("SNAPSHOT SUMMARY")
    print_status("=" * 60)
    print_status(f"  Pages crawled:      {result.pages_crawled}")
    print_status(f"  Snapshots:          {result.snapshots_captured}")
    print_status(f"  Assets downloaded:  {result.assets_downloaded}/{result.assets_referenced}")
    print_status(f"  Pages exported:     {result.pages_exported}")
    print_status(f"  Files sanitized:    {result.files_sanitized}")
    print_status(f"  Errors:             {len(result.errors)}")
    print_status(f"  Duration:           {result.duration_seconds:.1f} seconds")
    print_status("=" * 60)


async def run_stage(
    pipeline: SnapshotPipeline,
    stage: str,
    quiet: bool = False,
    dest: str = 'dist',
    clean: bool = True
) -> int:
    """
    Run one stage (or all of them).

    Returns:
        Exit code (0 for success, 1 when corrupt documents were found)
    """
    if stage == 'all':
        result = await pipeline.run_all()
        if not quiet:
            print_summary(result)
        return 1 if result.corrupt_documents else 0

    if stage == 'export':
        pipeline.run_export(dest, clean=clean)
        return 0

    if stage == 'crawl':
        await pipeline.run_crawl()
    elif stage == 'capture':
        await pipeline.run_capture()
    elif stage == 'assets':
        await pipeline.run_assets()
    elif stage == 'rewrite':
        pipeline.run_rewrite()
    elif stage == 'sanitize':
        result = pipeline.run_sanitize()
        if result.corrupt:
            print_error(f"{len(result.corrupt)} corrupt document(s) could not be sanitized")
            return 1

    pipeline.write_error_log()
    return 0


async def main(argv=None) -> int:
    """
    Main entry point for the snapshot tool.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_arguments(argv)

    log_level = logging.DEBUG if args.verbose else (logging.WARNING if args.quiet else logging.INFO)
    setup_logger(level=log_level, log_file=args.log_file)

    try:
        settings = build_settings(args)

        if not args.quiet:
            print_info(f"Site: {settings.site_url}")
            print_info(f"Work directory: {os.path.abspath(settings.work_dir)}")

        pipeline = SnapshotPipeline(settings)
        code = await run_stage(
            pipeline, args.stage, args.quiet, dest=args.dest, clean=not args.no_clean
        )

        if code == 0 and args.stage in ('rewrite', 'sanitize', 'all'):
            print_success(f"Snapshot written to: {os.path.abspath(settings.output_dir)}")

        return code

    except KeyboardInterrupt:
        print_error("Interrupted by user")
        return 1
    except ConfigError as e:
        print_error(f"Invalid configuration: {e}")
        return 1
    except (SnapshotError, OSError) as e:
        print_error(f"Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def run() -> None:
    """Entry point wrapper for running as module."""
    sys.exit(asyncio.run(main()))


if __name__ == '__main__':
    run()
