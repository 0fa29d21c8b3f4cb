"""Build URLs for resized images.

Public helpers for code that links to served images (templates, API
clients, content exporters). The server itself never calls them; they
mirror the query format GET /images/{path} accepts.

    image_url("1/image.jpg")            -> /images/1/image.jpg
    image_url("1/image.jpg", 300)       -> /images/1/image.jpg?w=300
    image_url("1/image.jpg", 300, 200)  -> /images/1/image.jpg?w=300&h=200
"""

from typing import Optional
from urllib.parse import quote, urlencode

IMAGE_ROUTE_PREFIX = "/images/"


def image_url(
    path: str,
    width: Optional[int] = None,
    height: Optional[int] = None,
    fit: Optional[str] = None,
    base_url: str = ""
) -> str:
    """URL for a stored image, optionally resized."""
    url = base_url.rstrip("/") + IMAGE_ROUTE_PREFIX + quote(path.lstrip("/"))

    params = {}
    if width:
        params["w"] = width
    if height:
        params["h"] = height
    if fit and (width or height):
        params["fit"] = fit

    return url + ("?" + urlencode(params) if params else "")


def thumbnail(path: str, size: int = 150, base_url: str = "") -> str:
    """Square thumbnail URL."""
    return image_url(path, size, size, base_url=base_url)


def medium(path: str, width: int = 800, base_url: str = "") -> str:
    return image_url(path, width, base_url=base_url)


def large(path: str, width: int = 1200, base_url: str = "") -> str:
    return image_url(path, width, base_url=base_url)
