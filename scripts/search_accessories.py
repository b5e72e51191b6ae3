from __future__ import annotations

import argparse
from pathlib import Path

from rich.console import Console
from rich.table import Table

from bike_render.catalog import load_catalog_or_empty, load_policy
from bike_render.config import configure_logging, load_config


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Search the accessory catalog.")
    parser.add_argument("query", nargs="?", default="", help="Case-insensitive text to match.")
    parser.add_argument("--limit", type=int, default=100)
    parser.add_argument("--mountable-only", action="store_true")
    parser.add_argument("--dotenv", type=Path, default=None)
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    console = Console()
    config = load_config(args.dotenv)
    configure_logging(config.log_level, console)

    catalog = load_catalog_or_empty(config.catalog.path, load_policy(config.catalog.policy_path))
    result = catalog.search(args.query, limit=args.limit, mountable_only=args.mountable_only)

    table = Table(title=f"{result.total} match(es)")
    table.add_column("id")
    table.add_column("name")
    table.add_column("category")
    for item in result.items:
        table.add_row(item.id, item.name, item.category)
    console.print(table)


if __name__ == "__main__":
    main()
