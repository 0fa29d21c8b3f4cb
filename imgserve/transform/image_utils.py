"""Image format helpers for stored assets.

Handles:
- Magic-byte format sniffing
- Mime-type resolution for raw files that have no index record
"""

import mimetypes
import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Enough leading bytes to recognise every signature below
SNIFF_BYTES = 16

DEFAULT_MIME_TYPE = "application/octet-stream"

FORMAT_MIME_TYPES = {
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'webp': 'image/webp',
    'bmp': 'image/bmp',
    'tiff': 'image/tiff',
}


def detect_image_format(data: bytes) -> str:
    """
    Detect image format from magic bytes.

    Args:
        data: Leading bytes of the file (at least SNIFF_BYTES for full coverage)

    Returns:
        Format string: 'jpeg', 'png', 'webp', 'gif', 'bmp', 'tiff' or 'unknown'
    """
    if len(data) < 2:
        return 'unknown'

    # JPEG: FF D8
    if data[:2] == b'\xff\xd8':
        return 'jpeg'

    # BMP: BM
    elif data[:2] == b'BM':
        return 'bmp'

    # GIF: GIF87a or GIF89a
    elif data[:3] == b'GIF':
        return 'gif'

    # PNG: 89 50 4E 47 0D 0A 1A 0A
    elif data[:8] == b'\x89PNG\r\n\x1a\n':
        return 'png'

    # WebP: RIFF....WEBP
    elif data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return 'webp'

    # TIFF: little or big endian byte order mark
    elif data[:4] in (b'II*\x00', b'MM\x00*'):
        return 'tiff'

    else:
        return 'unknown'


def is_image_mime(mime_type: Optional[str]) -> bool:
    """True for any image/* mime type."""
    return bool(mime_type) and mime_type.lower().startswith("image/")


def guess_mime_type(path: str, head: bytes = b"") -> str:
    """
    Resolve a mime type for a raw stored file.

    The file extension wins; magic bytes are used when the extension is
    missing or unknown.

    Args:
        path: Logical asset path
        head: Leading bytes of the file, if already read

    Returns:
        Mime type string, application/octet-stream when nothing matches
    """
    guessed, _ = mimetypes.guess_type(path)
    if guessed:
        return guessed

    fmt = detect_image_format(head)
    if fmt in FORMAT_MIME_TYPES:
        logger.debug(f"Mime type for {path} sniffed from content: {fmt}")
        return FORMAT_MIME_TYPES[fmt]

    return DEFAULT_MIME_TYPE
