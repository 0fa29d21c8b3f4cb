"""
Cache sweep command.

Deletes cached renditions older than a retention window. Intended to be
run periodically by an external scheduler (cron, systemd timer):

    imgserve-sweep --days=30
"""

import argparse
import logging
import sys
from typing import List, Optional

from ..config.server_config import ServerConfig
from ..storage.cache_store import DiskCacheStore, SweepReport
from ..utils.format_utils import format_bytes


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imgserve-sweep",
        description="Clean up old cached resized images"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="Number of days to keep cached images (default: 30)"
    )
    parser.add_argument(
        "--cache-dir",
        default=None,
        help="Cache directory (default: IMGSERVE_CACHE_DIR or <storage>/cache/images)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log each failure and the sweep summary"
    )
    return parser


def summarize(report: SweepReport) -> List[str]:
    """Human-readable summary lines for a sweep report."""
    if not report.cache_dir_exists:
        return ["No image cache directory found."]

    lines = []
    if report.deleted_count > 0:
        lines.append(
            f"Deleted {report.deleted_count} cached images older than {report.days} days."
        )
        lines.append(f"Freed up {format_bytes(report.bytes_freed)} of disk space.")
    else:
        lines.append(f"No cached images older than {report.days} days found.")

    if report.failed_count:
        lines.append(f"{report.failed_count} cached images could not be deleted (see log).")
    return lines


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for imgserve-sweep."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = ServerConfig.from_env()
    days = config.retention_days if args.days is None else args.days
    if days < 0:
        parser.error("--days must be zero or positive")

    store = DiskCacheStore(args.cache_dir or config.cache_dir)
    report = store.sweep(days=days)

    for line in summarize(report):
        print(line)

    return 0


if __name__ == "__main__":
    sys.exit(main())
