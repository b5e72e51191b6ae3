from __future__ import annotations

import logging
import mimetypes
from pathlib import Path

import anyio
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn, TimeRemainingColumn

from ..output.store import OutputStore
from ..types import UploadedImage
from .render_pipeline import RenderPipeline, RenderResult
from .render_plan import RenderBatch, RenderJob

logger = logging.getLogger(__name__)


def read_upload(path: str | Path) -> UploadedImage:
    """Load a photo from disk the way the HTTP layer would hand it over."""
    file_path = Path(path)
    if not file_path.exists():
        raise RuntimeError(f"Image file not found: {file_path}")
    mime_type, _ = mimetypes.guess_type(file_path.name)
    return UploadedImage(data=file_path.read_bytes(), mime_type=mime_type or "", filename=file_path.name)


class BatchRunner:
    """Render every job of a batch through one pipeline and store the results."""

    def __init__(
        self,
        pipeline: RenderPipeline,
        batch: RenderBatch,
        store: OutputStore,
        console: Console | None = None,
        max_concurrency: int = 2,
        include_metadata: bool = True,
    ) -> None:
        self._pipeline = pipeline
        self._batch = batch
        self._store = store
        self._console = console or Console()
        self._max_concurrency = max(1, max_concurrency)
        self._include_metadata = include_metadata

    async def _run_job(self, job: RenderJob) -> RenderResult | None:
        try:
            upload = read_upload(job.image_path)
            result = await self._pipeline.render(upload, job.render_configuration(), job.accessory_ids)
        except RuntimeError as exc:
            # unreadable or missing photo
            self._console.print(f"[red]{job.name}:[/red] {exc}")
            return None

        self._store.save(job.name, result, include_metadata=self._include_metadata)
        outcome = result.outcome
        if outcome is not None and not outcome.ok:
            self._console.print(f"[yellow]{job.name}:[/yellow] {outcome.error} ({outcome.status_code})")
        if result.resolution.missing:
            logger.warning("%s: unknown accessory ids %s", job.name, ", ".join(result.resolution.missing))
        return result

    async def run(self) -> dict[str, RenderResult | None]:
        """Execute the batch; returns results keyed by job name (``None`` for unreadable or missing images)."""
        jobs = list(self._batch)
        results: dict[str, RenderResult | None] = {}
        limiter = anyio.CapacityLimiter(self._max_concurrency)

        with Progress(
            SpinnerColumn(),
            TextColumn("[bold]Render[/bold]"),
            TextColumn("{task.description}"),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=self._console,
            transient=True,
        ) as progress:
            task_id = progress.add_task("queued", total=len(jobs))

            async def worker(job: RenderJob) -> None:
                async with limiter:
                    progress.update(task_id, description=job.name, advance=0)
                    results[job.name] = await self._run_job(job)
                    progress.advance(task_id)

            async with anyio.create_task_group() as group:
                for job in jobs:
                    group.start_soon(worker, job)

        self._console.print(f"[green]Outputs saved to[/green] {self._store.base_dir}")
        return results
