#!/usr/bin/env python

"""
Command-line entry point for the tool marketplace.

Usage:
    python -m toolmarket serve [--host HOST] [--port PORT] [--reload]
    python -m toolmarket settings
    python -m toolmarket search "convert currencies" [--category finance] [--limit 5] [--json]
    python -m toolmarket categories [--json]
"""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from typing import List, Optional

from toolmarket.config import print_settings, settings, validate_environment
from toolmarket.marketplace import Marketplace, OperationResult
from toolmarket.utils.eth import format_wei


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tool Marketplace - register, discover and execute tools")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress non-essential output")

    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default=settings.api_host,
                       help=f"Host to bind to (default: {settings.api_host})")
    serve.add_argument("--port", type=int, default=settings.api_port,
                       help=f"Port to bind to (default: {settings.api_port})")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload for development")

    subparsers.add_parser("settings", help="Show current settings")

    search = subparsers.add_parser("search", help="Search public tools")
    search.add_argument("query", help="Natural-language description of the tool you need")
    search.add_argument("--category", type=str, default=None, help="Restrict to a category")
    search.add_argument("--limit", type=int, default=settings.default_search_limit, help="Maximum results")
    search.add_argument("--json", "-j", action="store_true", help="Output in JSON format")

    categories = subparsers.add_parser("categories", help="List tool categories")
    categories.add_argument("--json", "-j", action="store_true", help="Output in JSON format")

    return parser


def _print_failure(result: OperationResult) -> None:
    print(f"Error ({result.error_type}): {result.error}")


async def search_command(query: str, category: Optional[str], limit: int, as_json: bool) -> int:
    marketplace = Marketplace.from_settings()
    result = await marketplace.search_global(query, {"category": category}, limit=limit)

    if as_json:
        if result.success:
            result.data = [
                {
                    "tool_id": hit.tool.tool_id,
                    "name": hit.tool.name,
                    "category": hit.tool.category,
                    "cost_in_wei": hit.tool.pricing.cost_in_wei,
                    "similarity": hit.similarity,
                }
                for hit in result.data
            ]
        print(json.dumps(result.model_dump(mode="json"), indent=2))
        return 0 if result.success else 1

    if not result.success:
        _print_failure(result)
        return 1
    if not result.data:
        print("No matching tools found.")
        return 0

    for rank, hit in enumerate(result.data, start=1):
        tool = hit.tool
        print(f"{rank}. {tool.name} [{tool.category}] ({hit.similarity:.3f})")
        print(f"   {tool.description}")
        print(f"   id: {tool.tool_id}  cost: {format_wei(tool.pricing.cost_in_wei)}")
    return 0


async def categories_command(as_json: bool) -> int:
    marketplace = Marketplace.from_settings()
    result = await marketplace.categories()

    if as_json:
        print(json.dumps(result.model_dump(mode="json"), indent=2))
        return 0 if result.success else 1

    if not result.success:
        _print_failure(result)
        return 1
    if not result.data:
        print("No categories yet.")
        return 0

    for summary in result.data:
        print(f"{summary.category}: {summary.count} tool(s), average cost {format_wei(summary.avg_cost_in_wei)}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Handle debug mode
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.info("Debug mode enabled")

    # Handle quiet mode
    if args.quiet:
        logging.getLogger().setLevel(logging.WARNING)

    if args.command == "serve":
        from toolmarket.api import run_api

        validate_environment()
        run_api(host=args.host, port=args.port, reload=args.reload)
        return 0

    if args.command == "settings":
        print(print_settings())
        return 0

    if args.command == "search":
        return asyncio.run(search_command(args.query, args.category, args.limit, args.json))

    if args.command == "categories":
        return asyncio.run(categories_command(args.json))

    parser.print_help()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)
    except Exception as e:
        print(f"Error: {e}")
        if logging.getLogger().getEffectiveLevel() <= logging.DEBUG:
            traceback.print_exc()
        sys.exit(1)
