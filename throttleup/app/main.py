"""Command line entry point.

Run with: python -m throttleup --filename video.mp4 --ratelimit 1000
"""

import argparse
import asyncio
import sys
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from throttleup.app.core.config import (
    Settings,
    align_chunk_size,
    get_settings,
    kbps_to_bytes_per_second,
)
from throttleup.app.core.http_client import create_upload_client
from throttleup.app.core.logging import get_logger, setup_logging
from throttleup.app.exceptions import ConfigurationError, ThrottleUpError
from throttleup.app.services.metadata import build_metadata, load_metadata
from throttleup.app.services.progress import ProgressReporter
from throttleup.app.services.source import open_source
from throttleup.app.services.uploader import ResumableUploader

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="throttleup",
        description="Upload a video with an optional bandwidth ceiling and live progress",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  throttleup --filename video.mp4                   # No rate limit
  throttleup --filename video.mp4 --ratelimit 2000  # At most 2 Mbps
  throttleup --filename https://host/video.mp4 --meta-json meta.json

The bearer token is read from THROTTLEUP_ACCESS_TOKEN.
        """,
    )
    parser.add_argument("--filename", "-f", default="", help="Filename to upload. Can be a URL")
    parser.add_argument("--title", default="Video Title", help="Video title")
    parser.add_argument(
        "--description", default="uploaded by throttleup", help="Video description"
    )
    parser.add_argument("--category-id", default="", help="Video category Id")
    parser.add_argument("--tags", default="", help="Comma separated list of video tags")
    parser.add_argument("--privacy", default="private", help="Video privacy status")
    parser.add_argument(
        "--quiet", "-q", action="store_true", default=None, help="Suppress progress indicator"
    )
    parser.add_argument(
        "--ratelimit",
        type=int,
        default=None,
        help="Rate limit upload in kbps. No limit by default",
    )
    parser.add_argument(
        "--meta-json",
        default="",
        help="JSON file containing title, description, tags etc (optional)",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Upload chunk size in bytes, rounded up to a multiple of 256 KiB",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    return parser


def validate_args(args: argparse.Namespace) -> List[str]:
    """Validate numeric CLI arguments."""
    errors = []
    if args.ratelimit is not None and args.ratelimit < 0:
        errors.append("--ratelimit must be 0 (unlimited) or positive")
    if args.chunk_size is not None and args.chunk_size < 1:
        errors.append("--chunk-size must be positive")
    return errors


async def run_upload(
    args: argparse.Namespace,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Open the source, upload it through a throttled client and return the video.

    Args:
        args: Parsed command line arguments
        transport: Network transport override, used by tests
    """
    meta = load_metadata(args.meta_json) if args.meta_json else None
    metadata = build_metadata(
        meta,
        title=args.title,
        description=args.description,
        category_id=args.category_id,
        tags=args.tags,
        privacy=args.privacy,
    )

    settings = get_settings()
    kbps = settings.rate_limit_kbps if args.ratelimit is None else args.ratelimit
    quiet = settings.quiet if args.quiet is None else args.quiet
    chunk_size = settings.chunk_size if args.chunk_size is None else align_chunk_size(args.chunk_size)

    # Source errors surface here, before any upload request is made
    source = await open_source(args.filename)
    async with source:
        client, throttling = create_upload_client(
            source.size,
            rate=kbps_to_bytes_per_second(kbps),
            transport=transport,
        )
        async with client:
            uploader = ResumableUploader(
                client,
                settings.upload_url,
                access_token=settings.access_token,
                chunk_size=chunk_size,
                on_total_known=throttling.set_total_size,
            )
            reporter = None
            if not quiet:
                reporter = ProgressReporter(throttling, interval=settings.progress_interval)

            print(f"Uploading file '{args.filename}'...")
            if reporter is not None:
                await reporter.start()
            try:
                return await uploader.upload(source, metadata)
            finally:
                if reporter is not None:
                    await reporter.stop()


def load_settings() -> Settings:
    """Read settings, turning invalid ``THROTTLEUP_*`` values into a ConfigurationError."""
    try:
        return get_settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid THROTTLEUP_* settings: {e}") from e


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        load_settings()
    except ConfigurationError as e:
        print(f"\n{e.message}", file=sys.stderr)
        return e.exit_code

    setup_logging("DEBUG" if args.verbose else None)

    if not args.filename:
        print("You must provide a filename of a video file to upload", file=sys.stderr)
        parser.print_help(sys.stderr)
        return 1

    try:
        errors = validate_args(args)
        if errors:
            raise ConfigurationError("; ".join(errors))
        video = asyncio.run(run_upload(args))
    except ThrottleUpError as e:
        print(f"\n{e.message}", file=sys.stderr)
        return e.exit_code
    except httpx.HTTPError as e:
        logger.debug("Transport failure", exc_info=True)
        print(f"\nError making upload call: {e}", file=sys.stderr)
        return 1

    print(f"Upload successful! Video ID: {video.get('id', '')}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
