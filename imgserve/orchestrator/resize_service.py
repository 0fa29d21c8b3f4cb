"""Resize-and-cache orchestration.

Request flow for GET /images/{path}?w=&h=&fit=:

1. No w/h            -> original bytes, no cache entry
2. Validate w/h      -> InvalidDimensions (400)
3. Resolve asset     -> AssetNotFound (404)
4. Not transformable -> original bytes (non-image, or unindexed raw file)
5. Cache key         -> md5(path, w, h, fit, source mtime)
6. Memory/disk hit   -> cached bytes with 1-year Cache-Control
7. Miss              -> transform, persist, return with 1-year Cache-Control
8. Transform failure -> original bytes (fail-open, logged)

Concurrent misses for the same key are not coalesced: each request
transforms and the last rename into the cache wins. Outputs for a key are
equivalent, so this only wastes work.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from ..config.server_config import (
    CACHE_MAX_AGE_SECONDS,
    DEFAULT_RETENTION_DAYS,
    MAX_DIMENSION,
    ServerConfig,
)
from ..storage.asset_lookup import (
    AssetLookup,
    AssetNotFound,
    AssetUnreadable,
    LocalAssetStorage,
    MediaIndex,
    Resolution,
    normalize_asset_path,
)
from ..storage.cache_store import DiskCacheStore, SweepReport, cache_key
from ..storage.memory_cache import MemoryArtifactCache
from ..transform.engine import (
    DEFAULT_JPEG_QUALITY,
    OUTPUT_MIME_TYPE,
    FitMode,
    transform_image,
)
from ..transform.image_utils import is_image_mime
from ..utils.errors import ImageServiceError
from .prometheus_metrics import MetricsCollector, metrics_collector

logger = logging.getLogger(__name__)

CACHE_CONTROL_HEADER = f"public, max-age={CACHE_MAX_AGE_SECONDS}"

DimensionValue = Union[str, int, None]


class InvalidDimensions(ImageServiceError):
    """Requested width/height is not an integer in [1, max_dimension]."""
    pass


@dataclass
class ImageResponse:
    """Body and headers for one served image."""
    body: bytes
    media_type: str
    outcome: str  # memory_hit, cache_hit, transformed, passthrough, fallback
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def cacheable(self) -> bool:
        return "Cache-Control" in self.headers


def _is_absent(value: DimensionValue) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_dimension(
    name: str,
    value: DimensionValue,
    max_dimension: int = MAX_DIMENSION
) -> Optional[int]:
    """
    Parse one w/h query value.

    Args:
        name: Parameter name, for the error message
        value: Raw query value (empty string counts as absent)
        max_dimension: Upper bound (inclusive)

    Returns:
        Integer dimension, or None if absent

    Raises:
        InvalidDimensions: If not an integer in [1, max_dimension]
    """
    if _is_absent(value):
        return None

    if isinstance(value, bool):
        raise InvalidDimensions(f"Invalid dimensions: {name}={value!r}")

    try:
        parsed = int(value.strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise InvalidDimensions(f"Invalid dimensions: {name}={value!r} is not an integer")

    if parsed <= 0 or parsed > max_dimension:
        raise InvalidDimensions(
            f"Invalid dimensions: {name}={parsed} (must be 1-{max_dimension})"
        )
    return parsed


class ResizeService:
    """
    Serve stored images, resized on demand and cached on disk.

    Args:
        lookup: Asset resolution chain and byte access
        store: Disk cache store
        memory_cache: Optional in-memory hot tier; None disables it
        max_dimension: Per-axis upper bound for w/h
        jpeg_quality: Output quality for renditions
        metrics: Metrics collector
    """

    def __init__(
        self,
        lookup: AssetLookup,
        store: DiskCacheStore,
        memory_cache: Optional[MemoryArtifactCache] = None,
        max_dimension: int = MAX_DIMENSION,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        metrics: MetricsCollector = metrics_collector
    ):
        self.lookup = lookup
        self.store = store
        self.memory_cache = memory_cache
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality
        self.retention_days = retention_days
        self.metrics = metrics

    @classmethod
    def from_config(
        cls,
        config: ServerConfig,
        index: Optional[MediaIndex] = None
    ) -> 'ResizeService':
        """
        Build the service from configuration.

        The memory tier is enabled or disabled here, once; requests never
        re-check the flag.

        Args:
            config: Server configuration
            index: Media index; loaded from config.media_index_path if omitted
        """
        storage = LocalAssetStorage(config.storage_dir)

        if index is None and config.media_index_path:
            index = MediaIndex.from_json(config.media_index_path)

        memory_cache = None
        if config.memory_cache_enabled:
            memory_cache = MemoryArtifactCache(
                max_size=config.memory_cache_size,
                ttl_seconds=config.memory_cache_ttl_seconds,
            )

        return cls(
            lookup=AssetLookup.for_storage(storage, index),
            store=DiskCacheStore(config.cache_dir, shard_depth=config.shard_depth),
            memory_cache=memory_cache,
            max_dimension=config.max_dimension,
            jpeg_quality=config.jpeg_quality,
            retention_days=config.retention_days,
        )

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    def handle(
        self,
        path: str,
        w: DimensionValue = None,
        h: DimensionValue = None,
        fit: Optional[str] = None
    ) -> ImageResponse:
        """
        Serve one image request.

        Args:
            path: Logical asset path (may contain slashes)
            w: Requested width (query value)
            h: Requested height (query value)
            fit: Fit mode name; unknown values mean 'contain'

        Returns:
            ImageResponse

        Raises:
            InvalidAssetPath: Unsafe path
            InvalidDimensions: w/h out of range or not integers
            AssetNotFound: No index record and no raw file
            AssetUnreadable: Asset resolved but its bytes could not be read
        """
        path = normalize_asset_path(path)

        if _is_absent(w) and _is_absent(h):
            return self._serve_original(path)

        width = parse_dimension("w", w, self.max_dimension)
        height = parse_dimension("h", h, self.max_dimension)

        resolution = self.lookup.resolve(path)
        if resolution is None:
            raise AssetNotFound(f"Asset not found: {path}")

        asset = resolution.asset
        if not resolution.allows_transform or not is_image_mime(asset.mime_type):
            logger.debug(
                f"Pass-through for {path} (via {resolution.strategy}, {asset.mime_type})"
            )
            return self._passthrough(resolution, self._read_original(path))

        fit_mode = FitMode.parse(fit)
        key = cache_key(path, width, height, fit_mode.value, asset.last_modified)

        cached = self._lookup_cached(key)
        if cached is not None:
            return cached

        original = self._read_original(path)

        try:
            start = time.time()
            rendered = transform_image(
                original,
                width=width,
                height=height,
                fit=fit_mode.value,
                quality=self.jpeg_quality,
                max_dimension=self.max_dimension,
            )
            self.metrics.record_transform(time.time() - start)
        except Exception as e:
            logger.error(f"Image resize failed for {path}: {e}")
            self.metrics.record_transform_failure()
            return self._passthrough(resolution, original, outcome="fallback")

        try:
            self.store.put(key, rendered)
        except OSError as e:
            logger.error(f"Failed to cache rendition {key[:8]}... for {path}: {e}")
            self.metrics.record_cache_write_failure()

        if self.memory_cache is not None:
            self.memory_cache.put(key, rendered)

        logger.info(
            f"Resized {path} (w={width}, h={height}, fit={fit_mode.value}): "
            f"{len(original)} -> {len(rendered)} bytes"
        )
        return self._rendition(rendered, "transformed")

    def _lookup_cached(self, key: str) -> Optional[ImageResponse]:
        if self.memory_cache is not None:
            data = self.memory_cache.get(key)
            if data is not None:
                return self._rendition(data, "memory_hit")

        try:
            data = self.store.get(key)
        except OSError as e:
            logger.error(f"Cache lookup failed for {key[:8]}..., regenerating: {e}")
            data = None
        if data is None:
            return None

        if self.memory_cache is not None:
            self.memory_cache.put(key, data)
        logger.debug(f"Cache HIT: {key[:8]}...")
        return self._rendition(data, "cache_hit")

    def _rendition(self, data: bytes, outcome: str) -> ImageResponse:
        self.metrics.record_outcome(outcome)
        return ImageResponse(
            body=data,
            media_type=OUTPUT_MIME_TYPE,
            outcome=outcome,
            headers={"Cache-Control": CACHE_CONTROL_HEADER},
        )

    def _passthrough(
        self,
        resolution: Resolution,
        data: bytes,
        outcome: str = "passthrough"
    ) -> ImageResponse:
        self.metrics.record_outcome(outcome)
        return ImageResponse(body=data, media_type=resolution.asset.mime_type, outcome=outcome)

    def _serve_original(self, path: str) -> ImageResponse:
        resolution = self.lookup.resolve(path)
        if resolution is None:
            raise AssetNotFound(f"Asset not found: {path}")
        # No resize requested: a record without a file is simply not found
        data = self.lookup.read_bytes(path)
        return self._passthrough(resolution, data)

    def _read_original(self, path: str) -> bytes:
        try:
            return self.lookup.read_bytes(path)
        except (AssetNotFound, OSError) as e:
            raise AssetUnreadable(f"Original for {path} is unreadable: {e}")

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def sweep(self, days: Optional[int] = None, now: Optional[float] = None) -> SweepReport:
        """
        Delete renditions older than the retention window.

        Args:
            days: Retention window (default: configured retention_days)
            now: Reference time, for tests

        Returns:
            SweepReport
        """
        days = self.retention_days if days is None else days
        report = self.store.sweep(days=days, now=now)
        self.metrics.record_sweep(report.deleted_count, report.bytes_freed)
        return report

    def clear(self) -> SweepReport:
        """Delete every rendition, on disk and in memory."""
        report = self.store.clear()
        if self.memory_cache is not None:
            self.memory_cache.clear()
        self.metrics.record_sweep(report.deleted_count, report.bytes_freed)
        return report

    def stats(self) -> dict:
        """Disk usage plus memory tier statistics when enabled."""
        disk = self.store.stats()
        self.metrics.update_cache_size(disk.entries, disk.total_bytes)
        return {
            "disk": disk.to_dict(),
            "memory": self.memory_cache.stats() if self.memory_cache is not None else None,
            "shard_depth": self.store.shard_depth,
        }
