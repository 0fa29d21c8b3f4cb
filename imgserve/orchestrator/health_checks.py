"""Health check utilities for the image server.

Provides component-level checks for disk space and the cache/storage
directories. Used by the admin /admin/health endpoint.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Any

import psutil

logger = logging.getLogger(__name__)

DISK_HEALTHY_PERCENT = 90


def _nearest_existing(path: Path) -> Path:
    """Walk up to the first existing ancestor (disk_usage needs a real path)."""
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return Path(os.sep)


def check_disk_health(path: str) -> Dict[str, Any]:
    """Check usage of the disk holding path.

    Returns:
        Dict with 'percent_used', 'healthy', 'available_gb', 'total_gb'
    """
    try:
        disk = psutil.disk_usage(str(_nearest_existing(Path(path))))
    except OSError as e:
        logger.debug(f"Disk health check failed for {path}: {e}")
        return {"healthy": False, "error": str(e)}

    return {
        "percent_used": disk.percent,
        "healthy": disk.percent < DISK_HEALTHY_PERCENT,
        "available_gb": disk.free / (1024**3),
        "total_gb": disk.total / (1024**3)
    }


def check_directory_health(path: str, must_exist: bool = True, writable: bool = True) -> Dict[str, Any]:
    """Check that a directory is usable.

    Args:
        path: Directory to check
        must_exist: If False, a missing directory is healthy as long as it
            could be created (its nearest existing ancestor is writable)
        writable: Require write access (read access otherwise)

    Returns:
        Dict with 'path', 'exists', 'accessible', 'healthy'
    """
    directory = Path(path)
    exists = directory.is_dir()
    target = directory if exists else _nearest_existing(directory)
    accessible = os.access(target, os.W_OK if writable else os.R_OK)

    return {
        "path": str(directory),
        "exists": exists,
        "accessible": accessible,
        "healthy": (exists or not must_exist) and accessible
    }


def get_health_status(storage_dir: str, cache_dir: str) -> Dict[str, Any]:
    """Aggregate health of all components.

    The cache directory is created lazily on the first write, so a
    missing cache directory is not a failure.

    Returns:
        Dict with overall 'healthy' flag and per-component results
    """
    components = {
        "storage": check_directory_health(storage_dir, must_exist=True, writable=False),
        "cache": check_directory_health(cache_dir, must_exist=False),
        "disk": check_disk_health(cache_dir),
    }
    return {
        "healthy": all(c.get("healthy", False) for c in components.values()),
        "components": components
    }
