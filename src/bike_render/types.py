from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import BackendRejection, MissingImageInResponse

Variant = Literal["r1300gs", "r1300gs_adventure"]
View = Literal["left", "right", "front_3q", "rear_3q"]
RenderSize = Literal["1024x1024", "1536x1024", "1024x1536"]

VIEWS: tuple[str, ...] = ("left", "right", "front_3q", "rear_3q")
RENDER_SIZES: tuple[str, ...] = ("1024x1024", "1536x1024", "1024x1536")
DEFAULT_VIEW = "left"
DEFAULT_SIZE = "1536x1024"


@dataclass(frozen=True, slots=True)
class AccessoryItem:
    """A single catalog record; immutable once loaded."""

    id: str
    name: str
    category: str
    description: str
    product_types: frozenset[str] = frozenset()

    def summary(self) -> "AccessorySummary":
        return AccessorySummary(
            id=self.id,
            name=self.name,
            category=self.category,
            description=self.description,
        )


@dataclass(frozen=True, slots=True)
class AccessorySummary:
    """Projection of an accessory handed to callers and to the prompt composer."""

    id: str
    name: str
    category: str = ""
    description: str = ""

    def as_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class FilteredAccessory:
    id: str
    reason: str

    def as_dict(self) -> dict[str, str]:
        return {"id": self.id, "reason": self.reason}


@dataclass(slots=True)
class ResolutionResult:
    """Outcome of resolving a comma-separated accessory id list."""

    selected: list[AccessorySummary] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    filtered_out: list[FilteredAccessory] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "selected": [item.as_dict() for item in self.selected],
            "missing": list(self.missing),
            "filtered_out": [item.as_dict() for item in self.filtered_out],
        }


@dataclass(slots=True)
class SearchResult:
    total: int
    items: list[AccessorySummary]

    def as_dict(self) -> dict[str, Any]:
        return {"total": self.total, "items": [item.as_dict() for item in self.items]}


@dataclass(slots=True)
class UploadedImage:
    """Raw upload as handed over by the HTTP layer."""

    data: bytes
    mime_type: str = ""
    filename: str = ""


class RenderConfiguration(BaseModel):
    """Caller-chosen render settings, normalized the way the public API accepts them."""

    model_config = ConfigDict(frozen=True)

    variant: Variant = Field(..., description="Motorcycle trim line to render")
    view: View = Field(default=DEFAULT_VIEW, description="Camera viewpoint")
    background: str = Field(default="studio_gray", description="Background tag")
    realism: str = Field(default="studio_3d", description="Style register tag")
    size: RenderSize = Field(default=DEFAULT_SIZE, description="Requested output geometry")
    debug: bool = Field(default=False, description="Return the composed prompt instead of rendering")

    @field_validator("variant", mode="before")
    @classmethod
    def _normalize_variant(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("view", mode="before")
    @classmethod
    def _normalize_view(cls, value: object) -> str:
        text = str(value or DEFAULT_VIEW).strip().lower()
        return text if text in VIEWS else DEFAULT_VIEW

    @field_validator("background", mode="before")
    @classmethod
    def _normalize_background(cls, value: object) -> str:
        return str(value or "studio_gray").strip().lower()

    @field_validator("realism", mode="before")
    @classmethod
    def _normalize_realism(cls, value: object) -> str:
        return str(value or "studio_3d").strip().lower()

    @field_validator("size", mode="before")
    @classmethod
    def _normalize_size(cls, value: object) -> str:
        text = str(value or DEFAULT_SIZE).strip()
        return text if text in RENDER_SIZES else DEFAULT_SIZE


@dataclass(slots=True)
class RenderOutcome:
    """Either a rendered PNG or a failure with an HTTP-style status and diagnostics."""

    image_bytes: bytes | None = None
    status_code: int = 200
    details: Any = None
    error: str | None = None
    model: str | None = None
    size: str | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.image_bytes is not None

    @classmethod
    def success(cls, image_bytes: bytes, **kwargs: Any) -> "RenderOutcome":
        return cls(image_bytes=image_bytes, status_code=200, **kwargs)

    @classmethod
    def failure(cls, status_code: int, error: str, details: Any = None, **kwargs: Any) -> "RenderOutcome":
        return cls(status_code=status_code, error=error, details=details, **kwargs)

    @classmethod
    def from_error(cls, exc: BackendRejection | MissingImageInResponse, **kwargs: Any) -> "RenderOutcome":
        if isinstance(exc, MissingImageInResponse):
            return cls.failure(exc.status_code, "No image data returned by backend", exc.body, **kwargs)
        return cls.failure(exc.status_code, "Image backend request failed", exc.body, **kwargs)

    def error_payload(self) -> dict[str, Any]:
        return {"error": self.error, "details": self.details}
