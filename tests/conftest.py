"""
Pytest Configuration and Shared Fixtures

Provides storage/cache directories, generated test images and a ready
ResizeService for all tests.
"""

import io
import logging
import os
import sys
from pathlib import Path

import pytest
from PIL import Image

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from imgserve.config.server_config import ServerConfig
from imgserve.orchestrator.resize_service import ResizeService
from imgserve.storage.asset_lookup import (
    Asset,
    AssetLookup,
    LocalAssetStorage,
    MediaIndex,
)
from imgserve.storage.cache_store import DiskCacheStore


def _make_image(size=(1200, 800), fmt="JPEG", color=(200, 30, 30), mode="RGB") -> bytes:
    """Encode a solid-colour image of the given size."""
    img = Image.new(mode, size, color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def _image_size(data: bytes):
    """Decoded (width, height) of encoded image bytes."""
    with Image.open(io.BytesIO(data)) as img:
        return img.size


@pytest.fixture
def make_image():
    """Factory for encoded solid-colour test images."""
    return _make_image


@pytest.fixture
def image_size():
    """Decode bytes and return (width, height)."""
    return _image_size


@pytest.fixture
def storage_dir(tmp_path):
    """
    Create temporary storage root.

    Returns:
        Path to storage root
    """
    storage = tmp_path / "storage"
    storage.mkdir()
    return storage


@pytest.fixture
def cache_dir(tmp_path):
    """
    Cache root path (not created; the store creates it on first write).

    Returns:
        Path to cache directory
    """
    return tmp_path / "cache" / "images"


@pytest.fixture
def photo(storage_dir):
    """
    1200x800 JPEG stored at 5/photo.jpg.

    Returns:
        Logical path of the stored photo
    """
    target = storage_dir / "5" / "photo.jpg"
    target.parent.mkdir(parents=True)
    target.write_bytes(_make_image((1200, 800)))
    return "5/photo.jpg"


@pytest.fixture
def media_index():
    """Empty media index; tests add records as needed."""
    return MediaIndex()


@pytest.fixture
def index_asset(storage_dir, media_index):
    """
    Factory: write a file and register it in the media index.

    Returns:
        Callable(path, data, mime_type) -> Asset
    """
    def _add(path, data, mime_type="image/jpeg"):
        target = storage_dir / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        asset = Asset(
            path=path,
            mime_type=mime_type,
            last_modified=target.stat().st_mtime,
            size=len(data),
        )
        media_index.add(asset)
        return asset
    return _add


@pytest.fixture
def service(storage_dir, cache_dir):
    """
    ResizeService with the filesystem as its index.

    Returns:
        ResizeService
    """
    storage = LocalAssetStorage(storage_dir)
    return ResizeService(
        lookup=AssetLookup.for_storage(storage),
        store=DiskCacheStore(cache_dir),
    )


@pytest.fixture
def indexed_service(storage_dir, cache_dir, media_index):
    """
    ResizeService backed by a media index with raw-file fallback.

    Returns:
        ResizeService
    """
    storage = LocalAssetStorage(storage_dir)
    return ResizeService(
        lookup=AssetLookup.for_storage(storage, media_index),
        store=DiskCacheStore(cache_dir),
    )


@pytest.fixture
def test_config(storage_dir, cache_dir, tmp_path):
    """ServerConfig pointing at temporary directories."""
    return ServerConfig(
        main_port=8080,
        admin_port=8081,
        host="127.0.0.1",
        storage_dir=str(storage_dir),
        cache_dir=str(cache_dir),
        log_dir=str(tmp_path / "logs"),
        max_dimension=5000,
        jpeg_quality=75,
        retention_days=30,
        shard_depth=0,
        memory_cache_enabled=False,
        memory_cache_size=16,
        memory_cache_ttl_seconds=3600,
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop IMGSERVE_* variables leaking in from the host environment."""
    for name in list(os.environ):
        if name.startswith("IMGSERVE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_logging():
    """
    Reset logging configuration between tests.

    Prevents log handler conflicts between tests.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    yield

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
