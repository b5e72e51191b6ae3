from __future__ import annotations

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from ..tasks.render_pipeline import RenderResult

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def _slug(value: str) -> str:
    return _UNSAFE.sub("_", value).strip("_") or "render"


class OutputStore:
    """Writes render results below ``<root>/<batch_name>/``."""

    def __init__(self, root_dir: Path, batch_name: str | None = None) -> None:
        name = batch_name or datetime.now().strftime("%Y%m%d-%H%M%S")
        self.base_dir = Path(root_dir) / _slug(name)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def save(self, job_name: str, result: RenderResult, include_metadata: bool = True) -> Path:
        """Persist one result and return the primary file written.

        Successful renders produce ``<job>.png``; debug runs and failures produce
        ``<job>.json`` holding the payload the HTTP layer would have returned.
        """
        stem = _slug(job_name)
        outcome = result.outcome

        if outcome is not None and outcome.ok and outcome.image_bytes is not None:
            image_path = self.base_dir / f"{stem}.png"
            image_path.write_bytes(outcome.image_bytes)
            if include_metadata:
                metadata: dict[str, Any] = result.json_payload()
                metadata.update(
                    prompt=result.prompt,
                    resolved_accessories=[item.as_dict() for item in result.resolution.selected],
                    attempts=outcome.attempts,
                )
                self._write_json(self.base_dir / f"{stem}.metadata.json", metadata)
            return image_path

        if outcome is None:
            payload = result.debug_payload()
        else:
            payload = {**result.json_payload(), **outcome.error_payload()}
        json_path = self.base_dir / f"{stem}.json"
        self._write_json(json_path, payload)
        return json_path

    @staticmethod
    def _write_json(path: Path, payload: dict[str, Any]) -> None:
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
