from __future__ import annotations

import logging
import re
from types import TracebackType
from typing import Any, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from ..errors import BackendRejection, MissingImageInResponse, OptionalParameterRejected
from ..types import RenderOutcome
from .strategies import BackendRequest, get_strategy

logger = logging.getLogger(__name__)

_UNKNOWN_PARAMETER = re.compile(r"unknown parameter", re.IGNORECASE)


def _error_text(body: Any) -> str:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return " ".join(str(error.get(key) or "") for key in ("message", "param", "code"))
        if isinstance(error, str):
            return error
        return str(body)
    return str(body or "")


def rejected_optional_params(status_code: int, body: Any, sent: Sequence[str]) -> list[str]:
    """Optional parameters named by an ``unknown parameter`` rejection, if that is what this is."""
    if not sent or not 400 <= status_code < 500:
        return []
    text = _error_text(body)
    if not _UNKNOWN_PARAMETER.search(text):
        return []
    return [name for name in sent if re.search(rf"\b{re.escape(name)}\b", text)]


class RenderGateway:
    """Client for the external image-edit service; one instance serves many concurrent renders."""

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._session = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._session.aclose()

    async def _send(self, request: BackendRequest, api_key: str) -> Any:
        try:
            response = await self._session.post(
                request.path.lstrip("/"),
                headers={"Authorization": f"Bearer {api_key}"},
                json=request.json,
                data=request.data,
                files=request.files,
            )
        except httpx.TimeoutException as exc:
            raise BackendRejection(504, {"error": f"Image backend timed out: {exc}"}) from exc
        except httpx.TransportError as exc:
            raise BackendRejection(502, {"error": f"Image backend unreachable: {exc}"}) from exc

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        if response.is_error:
            rejected = rejected_optional_params(response.status_code, body, request.optional_params)
            if rejected:
                raise OptionalParameterRejected(response.status_code, body, rejected)
            raise BackendRejection(response.status_code, body)
        return body

    async def render(
        self,
        model: str,
        png_bytes: bytes,
        prompt: str,
        requested_size: str,
        api_key: str,
    ) -> RenderOutcome:
        """
        Send one edit request for *model* and decode the generated image.

        A rejection naming one of the optional quality parameters is retried once
        without them. Every other failure is returned as a failed outcome.
        """
        strategy = get_strategy(model)
        size = strategy.effective_size(requested_size)
        include_optional = True
        attempts = 0

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(2),
                retry=retry_if_exception_type(OptionalParameterRejected),
                reraise=True,
            ):
                with attempt:
                    attempts += 1
                    request = strategy.build_request(
                        png_bytes, prompt, size, include_optional=include_optional
                    )
                    logger.debug("Image backend request: %s", request.describe())
                    try:
                        body = await self._send(request, api_key)
                    except OptionalParameterRejected as exc:
                        logger.warning(
                            "Model %s rejected %s; retrying without optional parameters",
                            model,
                            ", ".join(exc.parameters),
                        )
                        include_optional = False
                        raise
                    image_bytes = strategy.decode_response(body)
        except (BackendRejection, MissingImageInResponse) as exc:
            logger.warning("Render with model %s failed after %d attempt(s): %s", model, attempts, exc)
            return RenderOutcome.from_error(exc, model=model, size=size, attempts=attempts)

        return RenderOutcome.success(image_bytes, model=model, size=size, attempts=attempts)

    async def __aenter__(self) -> "RenderGateway":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
