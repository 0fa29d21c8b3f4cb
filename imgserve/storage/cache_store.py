"""Content-addressed disk cache for resized renditions.

Layout:
    <cache_root>/<md5(cache key)>.jpg                 (shard_depth=0)
    <cache_root>/ab/<md5(cache key)>.jpg              (shard_depth=1)
    <cache_root>/ab/cd/<md5(cache key)>.jpg           (shard_depth=2)

The cache key includes the source asset's modification time, so editing
the source silently re-keys every rendition of it. Old renditions are
never invalidated explicitly; they are orphaned and reclaimed by the
age-based sweep, which looks only at each entry's own mtime.
"""

import hashlib
import logging
import os
import threading
import time
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Iterator, Optional, Union

logger = logging.getLogger(__name__)

ARTIFACT_EXTENSION = ".jpg"
SECONDS_PER_DAY = 86400


def cache_key(
    path: str,
    width: Optional[int],
    height: Optional[int],
    fit: str,
    last_modified: float
) -> str:
    """
    Derive the cache key digest for one rendition of one source version.

    Args:
        path: Normalised logical asset path
        width: Requested width or None
        height: Requested height or None
        fit: Fit mode name
        last_modified: Source modification time (epoch seconds)

    Returns:
        Hex MD5 digest
    """
    raw = "_".join((
        path,
        "" if width is None else str(width),
        "" if height is None else str(height),
        fit,
        repr(float(last_modified)),
    ))
    # MD5 only spreads keys across names; it is not a security boundary
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


@dataclass
class SweepReport:
    """Outcome of a sweep or clear pass."""
    days: Optional[int]
    cutoff: Optional[float]
    deleted_count: int = 0
    bytes_freed: int = 0
    failed_count: int = 0
    cache_dir_exists: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CacheStats:
    """Disk usage of the cache store."""
    cache_dir: str
    entries: int = 0
    total_bytes: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class DiskCacheStore:
    """Rendition blobs on disk, addressed by cache key digest.

    No locking: concurrent writers for the same key each write a private
    temp file and rename it into place, so readers only ever see complete
    files and the last rename wins.
    """

    def __init__(self, cache_dir: Union[str, Path], shard_depth: int = 0):
        """
        Args:
            cache_dir: Cache root directory (created lazily on first write)
            shard_depth: Number of 2-hex-character bucket levels (0 = flat)
        """
        self.cache_dir = Path(cache_dir)
        self.shard_depth = max(0, min(shard_depth, 8))

    def path_for(self, key: str) -> Path:
        """Filesystem path for a cache key."""
        parent = self.cache_dir
        for level in range(self.shard_depth):
            parent = parent / key[level * 2:level * 2 + 2]
        return parent / f"{key}{ARTIFACT_EXTENSION}"

    def get(self, key: str) -> Optional[bytes]:
        """
        Read a cached rendition.

        A file that vanishes between lookup and read (e.g. removed by a
        concurrent sweep) is reported as a miss. Any other read failure is
        logged and also reported as a miss, so the caller regenerates.

        Returns:
            Rendition bytes or None
        """
        try:
            return self.path_for(key).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Cache read failed for {key[:8]}...: {e}")
            return None

    def put(self, key: str, data: bytes) -> Path:
        """
        Persist a rendition atomically.

        Raises:
            OSError: If the directory cannot be created or the write fails
        """
        target = self.path_for(key)
        target.parent.mkdir(parents=True, exist_ok=True)

        temp_path = target.with_name(
            f".{target.name}.{os.getpid()}.{threading.get_ident()}.tmp"
        )
        try:
            with open(temp_path, "wb") as tmp:
                tmp.write(data)
            # Atomic rename: readers see the old file or the new one, never partial
            os.replace(temp_path, target)
        finally:
            try:
                os.unlink(temp_path)
            except FileNotFoundError:
                pass  # Renamed into place

        logger.debug(f"Cache PUT: {key[:8]}... ({len(data)} bytes)")
        return target

    def iter_entries(self) -> Iterator[Path]:
        """Yield every regular file under the cache root."""
        if not self.cache_dir.is_dir():
            return
        for dirpath, _dirnames, filenames in os.walk(self.cache_dir):
            for name in filenames:
                yield Path(dirpath) / name

    def sweep(self, days: int = 30, now: Optional[float] = None) -> SweepReport:
        """
        Delete entries whose own mtime is older than now - days.

        Purely age-based: the source asset is never consulted. Per-entry
        failures are logged and skipped.

        Args:
            days: Retention window in days
            now: Reference time (epoch seconds), defaults to time.time()

        Returns:
            SweepReport with counts and bytes freed
        """
        if days < 0:
            raise ValueError(f"days must be >= 0, got {days}")

        now = time.time() if now is None else now
        cutoff = now - days * SECONDS_PER_DAY
        report = SweepReport(days=days, cutoff=cutoff)

        if not self.cache_dir.is_dir():
            report.cache_dir_exists = False
            logger.info(f"Sweep skipped: no cache directory at {self.cache_dir}")
            return report

        for entry in self.iter_entries():
            try:
                st = entry.stat()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Sweep: cannot stat {entry}: {e}")
                report.failed_count += 1
                continue

            if st.st_mtime >= cutoff:
                continue

            try:
                entry.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Sweep: failed to delete {entry}: {e}")
                report.failed_count += 1
                continue

            report.deleted_count += 1
            report.bytes_freed += st.st_size

        logger.info(
            f"Sweep complete: {report.deleted_count} entries older than {days} days "
            f"deleted, {report.bytes_freed} bytes freed, {report.failed_count} failures"
        )
        return report

    def clear(self) -> SweepReport:
        """Delete every entry regardless of age."""
        report = SweepReport(days=None, cutoff=None)

        if not self.cache_dir.is_dir():
            report.cache_dir_exists = False
            return report

        for entry in self.iter_entries():
            try:
                size = entry.stat().st_size
                entry.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Clear: failed to delete {entry}: {e}")
                report.failed_count += 1
                continue
            report.deleted_count += 1
            report.bytes_freed += size

        logger.info(
            f"Cache cleared: {report.deleted_count} entries, {report.bytes_freed} bytes"
        )
        return report

    def stats(self) -> CacheStats:
        """Count entries and bytes on disk."""
        stats = CacheStats(cache_dir=str(self.cache_dir))
        for entry in self.iter_entries():
            try:
                stats.total_bytes += entry.stat().st_size
            except FileNotFoundError:
                continue
            stats.entries += 1
        return stats
