from __future__ import annotations

from typing import Any


class BikeRenderError(RuntimeError):
    """Base class for render pipeline failures."""


class CatalogLoadError(BikeRenderError):
    """The accessory dataset could not be read or parsed."""


class UnsupportedImageError(BikeRenderError):
    """The uploaded image could not be decoded (and is not a recoverable HEIC)."""


class BackendRejection(BikeRenderError):
    """Terminal error returned by the image backend."""

    def __init__(self, status_code: int, body: Any, message: str | None = None) -> None:
        super().__init__(message or f"Image backend request failed ({status_code})")
        self.status_code = status_code
        self.body = body


class OptionalParameterRejected(BackendRejection):
    """Backend refused one or more optional quality parameters; safe to retry without them."""

    def __init__(self, status_code: int, body: Any, parameters: list[str]) -> None:
        super().__init__(
            status_code,
            body,
            message=f"Image backend rejected optional parameters: {', '.join(parameters)}",
        )
        self.parameters = parameters


class MissingImageInResponse(BikeRenderError):
    """Backend call succeeded but the envelope held no decodable image."""

    status_code = 500

    def __init__(self, body: Any, message: str = "No image data returned by backend") -> None:
        super().__init__(message)
        self.body = body


class UnsupportedModelError(ValueError):
    """No request strategy is registered for the requested backend model."""
