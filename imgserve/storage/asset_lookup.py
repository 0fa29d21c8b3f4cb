"""Asset lookup over the public storage disk.

The media index (which paths are known, their mime type and modification
time) belongs to the media subsystem; this module only consumes it. An
asset is resolved by trying an ordered list of strategies:

1. IndexedLookupStrategy - a media index record exists for the path
2. RawFileStrategy       - no record, but the file exists on disk

The first strategy that finds the path wins. Assets found only as raw
files are served as-is and never transformed.
"""

import json
import logging
import mimetypes
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..transform.image_utils import SNIFF_BYTES, guess_mime_type
from ..utils.errors import ImageServiceError

logger = logging.getLogger(__name__)


class AssetError(ImageServiceError):
    """Base exception for asset lookup errors."""
    pass


class InvalidAssetPath(AssetError):
    """Path is empty or escapes the storage root."""
    pass


class AssetNotFound(AssetError):
    """Neither an index record nor a raw file exists for the path."""
    pass


class AssetUnreadable(AssetError):
    """Asset was resolved but its bytes could not be read."""
    pass


@dataclass(frozen=True)
class Asset:
    """Read-only view of a stored asset."""
    path: str
    mime_type: str
    last_modified: float  # epoch seconds
    size: Optional[int] = None


@dataclass(frozen=True)
class Resolution:
    """Result of resolving a path: the asset and which strategy found it."""
    asset: Asset
    strategy: str
    allows_transform: bool


def normalize_asset_path(path: str) -> str:
    """
    Validate and normalise a logical asset path.

    Empty and '.' segments are dropped; '..' segments, absolute paths,
    backslashes and NUL bytes are rejected.

    Args:
        path: Path as captured from the request URL

    Returns:
        Normalised relative path using '/' separators

    Raises:
        InvalidAssetPath: If the path is empty or unsafe
    """
    if not path or "\x00" in path or "\\" in path:
        raise InvalidAssetPath(f"Invalid asset path: {path!r}")
    if path.startswith("/"):
        raise InvalidAssetPath(f"Absolute asset paths are not allowed: {path!r}")

    segments = [seg for seg in path.split("/") if seg not in ("", ".")]
    if not segments:
        raise InvalidAssetPath(f"Invalid asset path: {path!r}")
    if ".." in segments:
        raise InvalidAssetPath(f"Path traversal rejected: {path!r}")

    return "/".join(segments)


def _to_epoch(value: Union[int, float, str, datetime]) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, (int, float)):
        return float(value)
    return datetime.fromisoformat(value).timestamp()


class LocalAssetStorage:
    """Read access to files under the storage root."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def resolve(self, path: str) -> Path:
        """Map a logical path to a filesystem path inside the root."""
        full_path = (self.root / normalize_asset_path(path)).resolve()
        root = self.root.resolve()
        if full_path != root and root not in full_path.parents:
            raise InvalidAssetPath(f"Path escapes storage root: {path!r}")
        return full_path

    def stat(self, path: str) -> Optional[os.stat_result]:
        """Stat a regular file, None if it does not exist."""
        full_path = self.resolve(path)
        try:
            st = full_path.stat()
        except (FileNotFoundError, NotADirectoryError):
            return None
        if not full_path.is_file():
            return None
        return st

    def read_head(self, path: str, length: int = SNIFF_BYTES) -> bytes:
        try:
            with open(self.resolve(path), "rb") as f:
                return f.read(length)
        except OSError:
            return b""

    def read_bytes(self, path: str) -> bytes:
        """
        Read a stored file.

        Raises:
            AssetNotFound: If the file does not exist
        """
        full_path = self.resolve(path)
        try:
            return full_path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise AssetNotFound(f"No stored file for {path}")


class MediaIndex:
    """In-memory media index: logical path -> Asset record."""

    def __init__(self, records: Optional[Iterable[Asset]] = None):
        self._records: Dict[str, Asset] = {}
        for asset in records or ():
            self.add(asset)

    def add(self, asset: Asset) -> None:
        self._records[normalize_asset_path(asset.path)] = asset

    def remove(self, path: str) -> None:
        self._records.pop(normalize_asset_path(path), None)

    def find(self, path: str) -> Optional[Asset]:
        return self._records.get(path)

    def __len__(self) -> int:
        return len(self._records)

    @classmethod
    def from_json(cls, json_path: Union[str, Path]) -> 'MediaIndex':
        """
        Load an index from a JSON file.

        Expected format:
            {"5/photo.jpg": {"mime_type": "image/jpeg",
                             "last_modified": "2025-09-29T22:33:46",
                             "size": 48213}}

        last_modified may be epoch seconds or an ISO-8601 string.
        """
        with open(json_path, "r", encoding="utf-8") as f:
            raw = json.load(f)

        index = cls()
        for path, record in raw.items():
            index.add(Asset(
                path=path,
                mime_type=record["mime_type"],
                last_modified=_to_epoch(record["last_modified"]),
                size=record.get("size"),
            ))

        logger.info(f"Loaded media index from {json_path}: {len(index)} records")
        return index


class ResolutionStrategy:
    """One step of the resolution chain."""

    name = "strategy"
    allows_transform = True

    def find(self, path: str) -> Optional[Asset]:
        raise NotImplementedError


class IndexedLookupStrategy(ResolutionStrategy):
    """Resolve through the media index."""

    name = "index"
    allows_transform = True

    def __init__(self, index: MediaIndex):
        self.index = index

    def find(self, path: str) -> Optional[Asset]:
        return self.index.find(path)


class RawFileStrategy(ResolutionStrategy):
    """Resolve a file directly from the storage disk.

    Behind a media index this is the fallback for files not indexed yet,
    which are served untouched. Without an index the filesystem itself is
    the index, and raw files may be transformed.
    """

    name = "raw_file"
    allows_transform = False

    def __init__(self, storage: LocalAssetStorage, allows_transform: bool = False):
        self.storage = storage
        self.allows_transform = allows_transform
        if allows_transform:
            self.name = "filesystem"

    def find(self, path: str) -> Optional[Asset]:
        st = self.storage.stat(path)
        if st is None:
            return None
        mime_type, _ = mimetypes.guess_type(path)
        if mime_type is None:
            # No usable extension; sniff the leading bytes
            mime_type = guess_mime_type(path, self.storage.read_head(path))
        return Asset(
            path=path,
            mime_type=mime_type,
            last_modified=st.st_mtime,
            size=st.st_size,
        )


class AssetLookup:
    """
    Ordered resolution chain plus byte access.

    Args:
        strategies: Strategies tried in order
        storage: Storage the asset bytes are read from
    """

    def __init__(self, strategies: List[ResolutionStrategy], storage: LocalAssetStorage):
        self.strategies = list(strategies)
        self.storage = storage

    @classmethod
    def for_storage(
        cls,
        storage: LocalAssetStorage,
        index: Optional[MediaIndex] = None
    ) -> 'AssetLookup':
        """Standard chain: index then untouched raw file, or filesystem alone."""
        if index is None:
            return cls([RawFileStrategy(storage, allows_transform=True)], storage)
        return cls([IndexedLookupStrategy(index), RawFileStrategy(storage)], storage)

    def resolve(self, path: str) -> Optional[Resolution]:
        """
        Try each strategy in order.

        Args:
            path: Normalised logical path

        Returns:
            Resolution from the first strategy that finds the path, or None
        """
        for strategy in self.strategies:
            asset = strategy.find(path)
            if asset is not None:
                logger.debug(f"Resolved {path} via {strategy.name}")
                return Resolution(
                    asset=asset,
                    strategy=strategy.name,
                    allows_transform=strategy.allows_transform,
                )
        return None

    def find(self, path: str) -> Optional[Asset]:
        resolution = self.resolve(path)
        return resolution.asset if resolution else None

    def read_bytes(self, path: str) -> bytes:
        return self.storage.read_bytes(path)
