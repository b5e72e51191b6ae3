from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from types import TracebackType
from typing import Any

import anyio

from ..catalog import AccessoryCatalog, CatalogHolder, load_catalog_or_empty, load_policy
from ..clients.gateway import RenderGateway
from ..clients.strategies import BackendStrategy, get_strategy
from ..config import AppConfig
from ..types import RenderConfiguration, RenderOutcome, ResolutionResult, SearchResult, UploadedImage
from .image_normalize import normalize_image
from .prompt_compose import compose_prompt

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RenderResult:
    """Everything the HTTP layer needs to answer a render request."""

    config: RenderConfiguration
    resolution: ResolutionResult
    prompt: str
    model: str
    requested_size: str
    effective_size: str
    outcome: RenderOutcome | None = None

    def debug_payload(self) -> dict[str, Any]:
        return {
            "ok": True,
            "variant": self.config.variant,
            "view": self.config.view,
            "requested_size": self.requested_size,
            "effective_size": self.effective_size,
            "model": self.model,
            "missing_accessory_ids": list(self.resolution.missing),
            "filtered_out": [item.as_dict() for item in self.resolution.filtered_out],
            "resolved_accessories": [item.as_dict() for item in self.resolution.selected],
            "prompt": self.prompt,
        }

    def json_payload(self) -> dict[str, Any]:
        outcome = self.outcome
        backend: Any = None
        if outcome is not None:
            backend = {"image_bytes": len(outcome.image_bytes)} if outcome.ok else outcome.details
        return {
            "ok": bool(outcome and outcome.ok),
            "status": outcome.status_code if outcome else None,
            "model": self.model,
            "requested_size": self.requested_size,
            "effective_size": self.effective_size,
            "missing_accessory_ids": list(self.resolution.missing),
            "filtered_out": [item.as_dict() for item in self.resolution.filtered_out],
            "backend": backend,
        }

    def response_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "image/png",
            "X-Missing-Accessory-Ids": ",".join(self.resolution.missing),
            "X-Filtered-Out-Accessory-Ids": ",".join(item.id for item in self.resolution.filtered_out),
        }


class RenderPipeline:
    """Resolve accessories, compose the prompt, normalize the photo and call the backend."""

    def __init__(
        self,
        config: AppConfig,
        catalog: AccessoryCatalog | CatalogHolder,
        gateway: RenderGateway,
    ) -> None:
        self._config = config
        self._holder = catalog if isinstance(catalog, CatalogHolder) else CatalogHolder(catalog)
        self._gateway = gateway
        self._limiter: anyio.CapacityLimiter | None = None

    @classmethod
    def from_config(cls, config: AppConfig, gateway: RenderGateway | None = None) -> "RenderPipeline":
        policy = load_policy(config.catalog.policy_path)
        catalog = load_catalog_or_empty(config.catalog.path, policy)
        gateway = gateway or RenderGateway(
            base_url=config.openai.base_url,
            timeout_seconds=config.openai.timeout_seconds,
        )
        return cls(config, catalog, gateway)

    @property
    def catalog(self) -> AccessoryCatalog:
        return self._holder.catalog

    @property
    def strategy(self) -> BackendStrategy:
        return get_strategy(self._config.openai.model)

    def reload_catalog(self) -> int:
        """Rebuild the catalog from disk and swap it in; returns the new item count."""
        policy = load_policy(self._config.catalog.policy_path)
        catalog = load_catalog_or_empty(self._config.catalog.path, policy)
        self._holder.swap(catalog)
        return len(catalog)

    def search_accessories(
        self,
        query: str = "",
        limit: int | None = 100,
        mountable_only: bool = False,
    ) -> SearchResult:
        return self.catalog.search(query, limit=limit, mountable_only=mountable_only)

    async def render(
        self,
        upload: UploadedImage,
        render_config: RenderConfiguration,
        accessory_ids: str,
    ) -> RenderResult:
        """
        Run one render request end to end.

        In debug mode the prompt and resolution are returned without touching the
        image or the backend.

        Raises
        ------
        UnsupportedImageError
            If the upload cannot be decoded.
        """
        strategy = self.strategy
        model = strategy.model
        resolution = self.catalog.resolve_from_csv(accessory_ids, mountable_only=True)
        prompt = compose_prompt(render_config, resolution.selected, strategy.prompt_length_limit)
        effective_size = strategy.effective_size(render_config.size)

        result = RenderResult(
            config=render_config,
            resolution=resolution,
            prompt=prompt,
            model=model,
            requested_size=render_config.size,
            effective_size=effective_size,
        )
        if render_config.debug:
            return result

        api_key = self._config.openai.api_key
        if not api_key:
            result.outcome = RenderOutcome.failure(500, "Missing OPENAI_API_KEY", model=model, size=effective_size)
            return result

        logger.info(
            "Rendering %s with model %s at %s (%d accessories, %d missing, %d filtered out)",
            render_config.variant,
            model,
            effective_size,
            len(resolution.selected),
            len(resolution.missing),
            len(resolution.filtered_out),
        )
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(self._config.workers.image_workers)
        policy = strategy.image_policy(effective_size)
        png_bytes = await anyio.to_thread.run_sync(
            partial(normalize_image, upload.data, upload.mime_type, upload.filename, policy),
            abandon_on_cancel=True,
            limiter=self._limiter,
        )
        result.outcome = await self._gateway.render(model, png_bytes, prompt, render_config.size, api_key)
        return result

    async def aclose(self) -> None:
        await self._gateway.aclose()

    async def __aenter__(self) -> "RenderPipeline":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
