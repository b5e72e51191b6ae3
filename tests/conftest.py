"""Shared pytest fixtures for bike_render tests."""

from __future__ import annotations

import base64
import io
import json
from pathlib import Path
from typing import Callable

import httpx
import pytest
from PIL import Image

from bike_render.catalog import AccessoryCatalog, MountabilityPolicy

ACCESSORY_RECORDS = [
    {
        "id": "abc",
        "name": "GS Pro Helmet",
        "category": "Rider Equipment",
        "description": "Adventure helmet with peak.",
        "keywords": {"product_type": {"Helmet": 5}},
    },
    {
        "id": "xyz",
        "name": "Touring windshield",
        "category": "Ergonomics",
        "description": "Tall screen for wind protection.",
        "keywords": {"product_type": {"windshield": 3}},
    },
    {
        "id": "bag1",
        "name": "Tank bag",
        "category": "Luggage",
        "description": "Magnetic tank bag.",
        "keywords": {"product_type": {"tank bag": 9}},
    },
    {
        "id": "dp",
        "name": "City daypack",
        "category": "Luggage",
        "description": "Compact daypack for commuting.",
    },
    {
        "id": 101,
        "title": "Pannier set",
        "category": "Luggage",
        "description": "Aluminium side cases.",
    },
    {
        "id": " sp1 ",
        "name": "Engine guard",
        "category": "Protection",
        "description": "Stainless steel crash bar.",
        "keywords": {"product_type": {"crash bar": 4}},
    },
]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def policy() -> MountabilityPolicy:
    return MountabilityPolicy.default()


@pytest.fixture
def dataset_path(tmp_path: Path) -> Path:
    """Write the sample accessory dataset to disk.

    Returns:
        Path to ``accessories.json`` inside the test's temporary directory.
    """
    path = tmp_path / "accessories.json"
    path.write_text(json.dumps(ACCESSORY_RECORDS), encoding="utf-8")
    return path


@pytest.fixture
def catalog(dataset_path: Path, policy: MountabilityPolicy) -> AccessoryCatalog:
    return AccessoryCatalog.load(dataset_path, policy)


def make_image_bytes(
    size: tuple[int, int] = (800, 600),
    fmt: str = "JPEG",
    mode: str = "RGB",
    color: object = (30, 90, 160),
    **save_kwargs: object,
) -> bytes:
    """Encode a solid-colour test image."""
    image = Image.new(mode, size, color)
    with io.BytesIO() as buffer:
        image.save(buffer, format=fmt, **save_kwargs)
        return buffer.getvalue()


def png_b64(size: tuple[int, int] = (64, 64)) -> str:
    return base64.b64encode(make_image_bytes(size, fmt="PNG")).decode("ascii")


class RecordingTransport:
    """Serve queued responses to an httpx client and keep every request it saw."""

    def __init__(self, *responses: httpx.Response | Callable[[httpx.Request], httpx.Response]) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        if not self._responses:
            raise AssertionError(f"Unexpected backend call to {request.url}")
        response = self._responses.pop(0)
        if callable(response):
            return response(request)
        return response

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def image_bytes() -> bytes:
    return make_image_bytes()
