"""
Server Configuration

Configuration for the image resize server and the cache sweep command.
Defaults are suitable for a single host serving a local storage disk;
every setting is overridable via environment variables.

Configuration:
- Main API port: 8080
- Admin API port: 8081
- Storage root: ./storage/public
- Cache root: <storage root>/cache/images
"""

import os
from dataclasses import dataclass
from typing import Optional
import logging


logger = logging.getLogger(__name__)

# Hard upper bound on either requested axis
MAX_DIMENSION = 5000

# Cache-Control max-age for cached/transformed renditions (1 year)
CACHE_MAX_AGE_SECONDS = 31536000

DEFAULT_RETENTION_DAYS = 30


def _env_bool(name: str, default: bool) -> bool:
    """Read a 0/1 style boolean from the environment."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    """
    Server configuration.

    Resolved once at startup by from_env(); the resize service reads its
    capability flags (memory tier, sharding) from here at construction and
    never re-probes them per request.
    """

    # Network
    main_port: int
    admin_port: int
    host: str

    # Paths
    storage_dir: str
    cache_dir: str
    log_dir: str

    # Transform limits
    max_dimension: int
    jpeg_quality: int

    # Cache store
    retention_days: int
    shard_depth: int  # 0 = flat directory, N = N levels of 2-hex buckets

    # Secondary in-memory tier
    memory_cache_enabled: bool
    memory_cache_size: int
    memory_cache_ttl_seconds: int

    # Optional JSON media index (path -> {mime_type, last_modified})
    media_index_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'ServerConfig':
        """
        Load configuration from defaults and environment overrides.

        Environment variable overrides:
        - IMGSERVE_HOST / IMGSERVE_PORT / IMGSERVE_ADMIN_PORT
        - IMGSERVE_STORAGE_DIR: Root of the public storage disk
        - IMGSERVE_CACHE_DIR: Cache root (default: <storage>/cache/images)
        - IMGSERVE_LOG_DIR: Log directory
        - IMGSERVE_MAX_DIMENSION: Per-axis upper bound (default: 5000)
        - IMGSERVE_JPEG_QUALITY: Output quality (default: 75)
        - IMGSERVE_RETENTION_DAYS: Sweep retention window (default: 30)
        - IMGSERVE_SHARD_DEPTH: Cache bucket depth (default: 0)
        - IMGSERVE_MEMORY_CACHE: Enable in-memory tier (0/1, default: 0)
        - IMGSERVE_MEMORY_CACHE_SIZE / IMGSERVE_MEMORY_CACHE_TTL
        - IMGSERVE_MEDIA_INDEX: Path to a JSON media index

        Returns:
            ServerConfig instance
        """
        storage_dir = os.getenv(
            "IMGSERVE_STORAGE_DIR",
            os.path.join(os.getcwd(), "storage", "public")
        )
        cache_dir = os.getenv(
            "IMGSERVE_CACHE_DIR",
            os.path.join(storage_dir, "cache", "images")
        )
        log_dir = os.getenv(
            "IMGSERVE_LOG_DIR",
            os.path.join(os.getcwd(), "logs")
        )

        max_dimension = int(os.getenv("IMGSERVE_MAX_DIMENSION", str(MAX_DIMENSION)))
        if max_dimension < 1 or max_dimension > MAX_DIMENSION:
            logger.warning(
                f"IMGSERVE_MAX_DIMENSION={max_dimension} out of range, using {MAX_DIMENSION}"
            )
            max_dimension = MAX_DIMENSION

        jpeg_quality = int(os.getenv("IMGSERVE_JPEG_QUALITY", "75"))
        jpeg_quality = min(95, max(1, jpeg_quality))

        shard_depth = max(0, int(os.getenv("IMGSERVE_SHARD_DEPTH", "0")))

        config = cls(
            main_port=int(os.getenv("IMGSERVE_PORT", "8080")),
            admin_port=int(os.getenv("IMGSERVE_ADMIN_PORT", "8081")),
            host=os.getenv("IMGSERVE_HOST", "0.0.0.0"),
            storage_dir=storage_dir,
            cache_dir=cache_dir,
            log_dir=log_dir,
            max_dimension=max_dimension,
            jpeg_quality=jpeg_quality,
            retention_days=int(
                os.getenv("IMGSERVE_RETENTION_DAYS", str(DEFAULT_RETENTION_DAYS))
            ),
            shard_depth=shard_depth,
            memory_cache_enabled=_env_bool("IMGSERVE_MEMORY_CACHE", False),
            memory_cache_size=int(os.getenv("IMGSERVE_MEMORY_CACHE_SIZE", "64")),
            memory_cache_ttl_seconds=int(os.getenv("IMGSERVE_MEMORY_CACHE_TTL", "3600")),
            media_index_path=os.getenv("IMGSERVE_MEDIA_INDEX") or None,
        )

        logger.info(f"Storage directory: {config.storage_dir}")
        logger.info(f"Cache directory: {config.cache_dir} (shard depth {config.shard_depth})")
        logger.info(
            f"Memory tier: {'enabled' if config.memory_cache_enabled else 'disabled'}"
        )

        return config

    def __str__(self) -> str:
        """Human-readable configuration display."""
        return f"""
Image Server Configuration
===================================================
Network:
  Main Port:        {self.main_port}
  Admin Port:       {self.admin_port}
  Host:             {self.host}

Paths:
  Storage:          {self.storage_dir}
  Cache:            {self.cache_dir}
  Logs:             {self.log_dir}
  Media Index:      {self.media_index_path or '-'}

Transform:
  Max Dimension:    {self.max_dimension}px
  JPEG Quality:     {self.jpeg_quality}

Cache:
  Retention:        {self.retention_days} days
  Shard Depth:      {self.shard_depth}
  Memory Tier:      {'on' if self.memory_cache_enabled else 'off'} ({self.memory_cache_size} entries, {self.memory_cache_ttl_seconds}s)
===================================================
        """.strip()

    def to_dict(self) -> dict:
        """
        Convert configuration to dictionary.

        Returns:
            Dictionary representation of configuration
        """
        return {
            "main_port": self.main_port,
            "admin_port": self.admin_port,
            "host": self.host,
            "storage_dir": self.storage_dir,
            "cache_dir": self.cache_dir,
            "log_dir": self.log_dir,
            "max_dimension": self.max_dimension,
            "jpeg_quality": self.jpeg_quality,
            "retention_days": self.retention_days,
            "shard_depth": self.shard_depth,
            "memory_cache_enabled": self.memory_cache_enabled,
            "memory_cache_size": self.memory_cache_size,
            "memory_cache_ttl_seconds": self.memory_cache_ttl_seconds,
            "media_index_path": self.media_index_path,
        }
