from __future__ import annotations

import argparse
from pathlib import Path

import anyio
from rich.console import Console

from bike_render.config import AppConfig, configure_logging, load_config
from bike_render.output.store import OutputStore
from bike_render.tasks.batch_runner import BatchRunner
from bike_render.tasks.render_pipeline import RenderPipeline
from bike_render.tasks.render_plan import load_render_batch


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Render a batch of motorcycle photos with accessory selections."
    )
    parser.add_argument(
        "batch_file",
        type=Path,
        help="Path to the JSON batch definition file.",
    )
    parser.add_argument(
        "--batch-name",
        type=str,
        default=None,
        help="Optional override for the batch name (defaults to batch file stem).",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=2,
        help="Number of renders in flight at once.",
    )
    parser.add_argument(
        "--dotenv",
        type=Path,
        default=None,
        help="Optional path to a .env file containing backend credentials.",
    )
    return parser.parse_args()


async def _run(args: argparse.Namespace, config: AppConfig, console: Console) -> None:
    batch = load_render_batch(args.batch_file)
    store = OutputStore(config.output.root_dir, batch_name=args.batch_name or args.batch_file.stem)

    async with RenderPipeline.from_config(config) as pipeline:
        runner = BatchRunner(
            pipeline,
            batch,
            store,
            console=console,
            max_concurrency=args.concurrency,
            include_metadata=config.output.include_metadata,
        )
        await runner.run()


def main() -> None:
    args = parse_args()
    console = Console()
    config = load_config(args.dotenv)
    configure_logging(config.log_level, console)

    if not args.batch_file.exists():
        console.print(f"[red]Batch file not found:[/red] {args.batch_file}")
        raise SystemExit(1)

    anyio.run(_run, args, config, console)


if __name__ == "__main__":
    main()
