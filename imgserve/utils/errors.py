"""Common exception base for the image server."""


class ImageServiceError(Exception):
    """
    Base exception for request-level failures.

    Subclasses:
    - InvalidDimensions (orchestrator.resize_service)
    - AssetError: InvalidAssetPath, AssetNotFound, AssetUnreadable (storage.asset_lookup)
    - TransformError: DecodeError, UnsupportedDimensions (transform.engine)
    """
    pass
