from __future__ import annotations

import argparse
import json
from pathlib import Path

import anyio
from pydantic import ValidationError
from rich.console import Console

from bike_render.config import AppConfig, configure_logging, load_config
from bike_render.errors import UnsupportedImageError
from bike_render.output.store import OutputStore
from bike_render.tasks.batch_runner import read_upload
from bike_render.tasks.render_pipeline import RenderPipeline
from bike_render.types import RenderConfiguration


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render one motorcycle photo with accessories.")
    parser.add_argument("image", type=Path, help="Motorcycle photo (JPEG, PNG, HEIC, ...).")
    parser.add_argument("accessory_ids", help="Comma-separated accessory ids.")
    parser.add_argument("--variant", required=True, help="r1300gs or r1300gs_adventure.")
    parser.add_argument("--view", default="left", help="left, right, front_3q or rear_3q.")
    parser.add_argument("--background", default="studio_gray")
    parser.add_argument("--realism", default="studio_3d")
    parser.add_argument("--size", default="1536x1024")
    parser.add_argument("--debug", action="store_true", help="Print the prompt instead of rendering.")
    parser.add_argument("--name", default=None, help="Output file stem (defaults to the image stem).")
    parser.add_argument("--dotenv", type=Path, default=None)
    return parser.parse_args()


async def _run(args: argparse.Namespace, config: AppConfig, console: Console) -> int:
    try:
        render_config = RenderConfiguration(
            variant=args.variant,
            view=args.view,
            background=args.background,
            realism=args.realism,
            size=args.size,
            debug=args.debug,
        )
    except ValidationError as exc:
        console.print(f"[red]Invalid render settings:[/red] {exc}")
        return 2

    async with RenderPipeline.from_config(config) as pipeline:
        try:
            result = await pipeline.render(read_upload(args.image), render_config, args.accessory_ids)
        except UnsupportedImageError as exc:
            console.print(f"[red]{exc}[/red]")
            return 2

    if result.outcome is None:
        console.print_json(json.dumps(result.debug_payload()))
        return 0

    store = OutputStore(config.output.root_dir, batch_name="single")
    saved = store.save(args.name or args.image.stem, result, include_metadata=config.output.include_metadata)
    if not result.outcome.ok:
        console.print(f"[red]{result.outcome.error}[/red] ({result.outcome.status_code}) -> {saved}")
        return 1
    console.print(f"[green]Render saved to[/green] {saved}")
    for name, value in result.response_headers().items():
        console.print(f"  {name}: {value}")
    return 0


def main() -> None:
    args = parse_args()
    console = Console()
    config = load_config(args.dotenv)
    configure_logging(config.log_level, console)
    raise SystemExit(anyio.run(_run, args, config, console))


if __name__ == "__main__":
    main()
