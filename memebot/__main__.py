"""Diagnostics for the lookup core: resolve a query, list suggestions, show cache stats."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from memebot.config import settings
from memebot.logging_config import setup_logging
from memebot.service import build_service


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="memebot", description=__doc__)
    parser.add_argument("--log-level", default=None, help="override LOG_LEVEL from settings")
    sub = parser.add_subparsers(dest="command", required=True)

    lookup = sub.add_parser("lookup", help="resolve a template name against the catalog")
    lookup.add_argument("query", nargs="+", help="free-text template name")

    sub.add_parser("suggest", help="print suggested template names")
    sub.add_parser("stats", help="print cache statistics as JSON")
    sub.add_parser("refresh-catalog", help="fetch the catalog now and store it")
    return parser


async def main(argv: list[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    setup_logging(log_dir=settings.LOG_DIR, level=args.log_level or settings.LOG_LEVEL)
    service = build_service(settings)
    try:
        if args.command == "lookup":
            query = " ".join(args.query)
            result = await service.lookup(query)
            if result.record is not None:
                print(f"cached: {result.record.canonical_name} {result.record.template_image_url}")
            elif result.match is not None:
                entry = result.match.entry
                print(f"{entry.name} [{result.match.tier} {result.match.score:.1f}] {entry.template_image_url}")
            else:
                print(f"no match for {query!r}")
                return 1
        elif args.command == "suggest":
            for name in await service.suggestions.get_suggestions():
                print(name)
        elif args.command == "stats":
            stats = await service.stats()
            print(json.dumps(stats.to_dict(), indent=2, ensure_ascii=False))
        elif args.command == "refresh-catalog":
            catalog = await service.catalog.refresh()
            print(f"catalog entries={len(catalog)} stale={catalog.stale}")
            return 0 if not catalog.stale else 2
    finally:
        await service.close()
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
