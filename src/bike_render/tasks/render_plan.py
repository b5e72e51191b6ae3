from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, List, Sequence

from pydantic import BaseModel, Field, RootModel, ValidationError, field_validator

from ..types import RenderConfiguration, Variant


def _lower_variant(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


class RenderJob(BaseModel):
    """Single render: one photo, one accessory selection, one configuration."""

    name: str
    image_path: str = Field(..., description="Path to the motorcycle photo to edit")
    accessory_ids: str = Field(default="", description="Comma-separated accessory ids")
    variant: Variant = Field(..., description="r1300gs or r1300gs_adventure")
    view: str | None = Field(default=None)
    background: str | None = Field(default=None)
    realism: str | None = Field(default=None)
    size: str | None = Field(default=None, description="Size spec e.g. '1536x1024'")
    debug: bool = Field(default=False)

    normalize_variant = field_validator("variant", mode="before")(_lower_variant)

    def render_configuration(self) -> RenderConfiguration:
        return RenderConfiguration.model_validate(
            self.model_dump(include={"variant", "view", "background", "realism", "size", "debug"})
        )


class RenderImage(BaseModel):
    """Photo reused across several accessory profiles."""

    name: str = Field(..., description="Identifier applied to job names when combined with a profile")
    image_path: str = Field(..., description="Path to the motorcycle photo")
    overrides: dict[str, Any] = Field(
        default_factory=dict,
        description="Shallow overrides applied to every job built from this image (e.g. view)",
    )


class RenderProfile(BaseModel):
    """Accessory selection and render settings applied to one or more images."""

    name: str
    accessory_ids: str = ""
    variant: Variant
    view: str | None = None
    background: str | None = None
    realism: str | None = None
    size: str | None = None

    normalize_variant = field_validator("variant", mode="before")(_lower_variant)


class RenderMatrixDefinition(BaseModel):
    """
    Matrix-style batch that renders every profile against every image.

    Each profile is executed for every image, producing the cartesian product of jobs.
    """

    images: List[RenderImage]
    profiles: List[RenderProfile]
    name_pattern: str = Field(
        default="{image}-{profile}",
        description=(
            "Python str.format template used to derive job names. "
            "Available placeholders: {image}, {profile}, {index}, {index1}."
        ),
    )

    def to_jobs(self) -> List[RenderJob]:
        jobs: List[RenderJob] = []
        for image in self.images:
            for profile in self.profiles:
                context = {
                    "image": image.name,
                    "profile": profile.name,
                    "index": len(jobs),
                    "index1": len(jobs) + 1,
                }
                try:
                    job_name = self.name_pattern.format(**context)
                except KeyError as exc:
                    raise RuntimeError(
                        f"Invalid name_pattern placeholder '{exc.args[0]}'. "
                        "Supported placeholders: {image}, {profile}, {index}, {index1}."
                    ) from exc

                data = profile.model_dump(mode="python", exclude={"name"})
                data.update(name=job_name, image_path=image.image_path)
                data.update(image.overrides)
                try:
                    jobs.append(RenderJob.model_validate(data))
                except ValidationError as exc:
                    raise RuntimeError(f"Invalid render job '{job_name}': {exc}") from exc
        return jobs


class RenderBatch(RootModel[List[RenderJob]]):
    """Collection of render jobs loaded from a batch JSON document."""

    @classmethod
    def from_jobs(cls, jobs: Sequence[RenderJob]) -> "RenderBatch":
        return cls(root=list(jobs))

    def job_names(self) -> Sequence[str]:
        return [job.name for job in self.root]

    def __iter__(self) -> Iterable[RenderJob]:
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)


def load_render_batch(path: str | Path) -> RenderBatch:
    """Load and validate a batch file (plain job list or image x profile matrix)."""
    with Path(path).open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    if isinstance(data, list):
        try:
            return RenderBatch.model_validate(data)
        except ValidationError as exc:
            raise RuntimeError(f"Invalid render batch at {path}") from exc

    if isinstance(data, dict):
        try:
            matrix = RenderMatrixDefinition.model_validate(data)
        except ValidationError as exc:
            raise RuntimeError(f"Invalid matrix render batch at {path}") from exc
        return RenderBatch.from_jobs(matrix.to_jobs())

    raise RuntimeError(
        f"Unsupported render batch structure at {path}; expected list or matrix-style object."
    )
