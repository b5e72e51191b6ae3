"""
Request/response shaping for each supported image backend model.

A strategy owns everything model-specific: the endpoint path, how the request
body is laid out, which optional quality parameters may be dropped on
rejection, which output geometries are accepted, the prompt-length ceiling,
the input image contract and how the generated image is pulled out of the
response. Supporting a new model means registering one more strategy.
"""
from __future__ import annotations

import base64
import binascii
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from ..errors import MissingImageInResponse, UnsupportedModelError
from ..tasks.image_normalize import ImagePolicy

FREE_ASPECT_MAX_DIMENSION = 1600


@dataclass(frozen=True, slots=True)
class BackendRequest:
    """A fully shaped outbound call, ready for the HTTP client."""

    path: str
    json: Dict[str, Any] | None = None
    data: Dict[str, str] | None = None
    files: list[tuple[str, tuple[str, bytes, str]]] | None = None
    optional_params: tuple[str, ...] = field(default_factory=tuple)

    def describe(self) -> Dict[str, Any]:
        """Request summary without image payloads, for logs and diagnostics."""
        if self.json is not None:
            return {"path": self.path, "keys": sorted(self.json.keys()), "optional": list(self.optional_params)}
        return {"path": self.path, "fields": sorted((self.data or {}).keys()), "optional": list(self.optional_params)}


def parse_size(size: str) -> tuple[int, int]:
    width, _, height = size.lower().partition("x")
    try:
        return int(width), int(height)
    except ValueError as exc:
        raise ValueError(f"Invalid size '{size}', expected WIDTHxHEIGHT") from exc


def extract_image_base64(data: Any) -> str | None:
    """Find the generated image in either a flat ``data`` list or a structured ``output`` list."""
    if not isinstance(data, dict):
        return None

    entries = data.get("data")
    if isinstance(entries, list):
        for entry in entries:
            if isinstance(entry, dict) and entry.get("b64_json"):
                return entry["b64_json"]

    outputs = data.get("output")
    if isinstance(outputs, list):
        for entry in outputs:
            if (
                isinstance(entry, dict)
                and entry.get("type") == "image_generation_call"
                and isinstance(entry.get("result"), str)
                and entry["result"]
            ):
                return entry["result"]

    return None


def decode_image_payload(data: Any) -> bytes:
    image_base64 = extract_image_base64(data)
    if not image_base64:
        raise MissingImageInResponse(data)
    try:
        return base64.b64decode("".join(str(image_base64).split()), validate=True)
    except (ValueError, binascii.Error) as exc:
        raise MissingImageInResponse(data, message=f"Failed to decode base64 image data: {exc}") from exc


class BackendStrategy(ABC):
    """Contract every backend model strategy fulfils."""

    def __init__(
        self,
        model: str,
        *,
        supported_sizes: tuple[str, ...],
        prompt_length_limit: int | None = None,
        square_input: bool = False,
        optional_params: Mapping[str, str] | None = None,
    ) -> None:
        self.model = model
        self.supported_sizes = supported_sizes
        self.prompt_length_limit = prompt_length_limit
        self.square_input = square_input
        self.optional_params: Dict[str, str] = dict(optional_params or {})

    def effective_size(self, requested: str) -> str:
        """Largest supported geometry fitting inside the request, else the smallest supported one."""
        if requested in self.supported_sizes:
            return requested
        req_w, req_h = parse_size(requested)
        dims = {size: parse_size(size) for size in self.supported_sizes}
        fitting = [size for size, (w, h) in dims.items() if w <= req_w and h <= req_h]
        pool = fitting or list(self.supported_sizes)
        area = lambda size: dims[size][0] * dims[size][1]  # noqa: E731
        return max(pool, key=area) if fitting else min(pool, key=area)

    def image_policy(self, size: str) -> ImagePolicy:
        if self.square_input:
            width, _ = parse_size(size)
            return ImagePolicy(target_max_dimension=width, square_crop=True, require_alpha=True)
        return ImagePolicy(target_max_dimension=FREE_ASPECT_MAX_DIMENSION)

    @abstractmethod
    def build_request(
        self,
        png_bytes: bytes,
        prompt: str,
        size: str,
        *,
        include_optional: bool = True,
    ) -> BackendRequest:
        ...

    def decode_response(self, data: Any) -> bytes:
        return decode_image_payload(data)


class ImagesEditStrategy(BackendStrategy):
    """Multipart ``/images/edits`` upload with the image as a binary field."""

    path = "/images/edits"

    def __init__(self, model: str, *, send_response_format: bool = True, **kwargs: Any) -> None:
        super().__init__(model, **kwargs)
        self.send_response_format = send_response_format

    def build_request(
        self,
        png_bytes: bytes,
        prompt: str,
        size: str,
        *,
        include_optional: bool = True,
    ) -> BackendRequest:
        data_fields: Dict[str, str] = {
            "model": self.model,
            "prompt": prompt,
            "size": size,
        }
        if self.send_response_format:
            data_fields["response_format"] = "b64_json"

        sent: tuple[str, ...] = ()
        if include_optional and self.optional_params:
            data_fields.update(self.optional_params)
            sent = tuple(self.optional_params)

        return BackendRequest(
            path=self.path,
            data=data_fields,
            files=[("image", ("bike.png", png_bytes, "image/png"))],
            optional_params=sent,
        )


class ResponsesImageStrategy(BackendStrategy):
    """JSON ``/responses`` call with the image inlined as a base64 data URL."""

    path = "/responses"

    def build_request(
        self,
        png_bytes: bytes,
        prompt: str,
        size: str,
        *,
        include_optional: bool = True,
    ) -> BackendRequest:
        data_url = "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")
        tool: Dict[str, Any] = {"type": "image_generation", "size": size}

        sent: tuple[str, ...] = ()
        if include_optional and self.optional_params:
            tool.update(self.optional_params)
            sent = tuple(self.optional_params)

        body = {
            "model": self.model,
            "input": [
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": prompt},
                        {"type": "input_image", "image_url": data_url},
                    ],
                }
            ],
            "tools": [tool],
            "tool_choice": {"type": "image_generation"},
        }
        return BackendRequest(path=self.path, json=body, optional_params=sent)


DALLE2_SIZES = ("256x256", "512x512", "1024x1024")
GPT_IMAGE_SIZES = ("1024x1024", "1536x1024", "1024x1536")
QUALITY_PARAMS = {"quality": "high", "output_format": "png"}

_STRATEGIES: Dict[str, BackendStrategy] = {}


def register_strategy(strategy: BackendStrategy) -> BackendStrategy:
    _STRATEGIES[strategy.model] = strategy
    return strategy


def get_strategy(model: str) -> BackendStrategy:
    try:
        return _STRATEGIES[model.strip()]
    except KeyError:
        known = ", ".join(registered_models())
        raise UnsupportedModelError(f"Unsupported image model '{model}'. Known models: {known}") from None


def registered_models() -> list[str]:
    return sorted(_STRATEGIES)


register_strategy(
    ImagesEditStrategy(
        "dall-e-2",
        supported_sizes=DALLE2_SIZES,
        prompt_length_limit=1000,
        square_input=True,
    )
)
for _model in ("gpt-image-1", "gpt-image-1-mini", "gpt-image-1.5"):
    register_strategy(
        ImagesEditStrategy(
            _model,
            send_response_format=False,
            supported_sizes=GPT_IMAGE_SIZES,
            optional_params=QUALITY_PARAMS,
        )
    )
for _model in ("gpt-4.1", "gpt-4.1-mini", "gpt-4o", "gpt-5"):
    register_strategy(
        ResponsesImageStrategy(
            _model,
            supported_sizes=GPT_IMAGE_SIZES,
            optional_params=QUALITY_PARAMS,
        )
    )
