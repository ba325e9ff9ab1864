"""TableBridge CLI entry point.

Usage:
    tablebridge run [--config tablebridge.yaml]
    tablebridge init [--output tablebridge.yaml]
    tablebridge menu-search "ribeye" [--config tablebridge.yaml]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def _load(config_path: str | None):
    from tablebridge.config import load_config

    if config_path and Path(config_path).exists():
        return load_config(config_path), config_path
    if config_path:
        logger.warning(f"Config file not found: {config_path}, using environment")
    return load_config(None), "environment"


def cmd_run(args: argparse.Namespace) -> None:
    """Run the TableBridge server."""
    config, source = _load(args.config)

    # Configure logging
    logger.remove()
    logger.add(sys.stderr, level=config.logging.level)

    logger.info(f"TableBridge starting with config: {source}")
    logger.info(f"Restaurant: {config.restaurant.name}")
    logger.info(f"Listening on: {config.provider.listen_host}:{config.provider.listen_port}")
    logger.info(f"Stream path: {config.provider.listen_path}")
    logger.info(f"Agent: {config.agent.url} (model: {config.agent.model})")
    if not config.agent.api_key:
        logger.warning("No OpenAI API key configured; agent connections will be rejected")

    from tablebridge.server import run_server

    run_server(config)


def cmd_init(args: argparse.Namespace) -> None:
    """Generate a starter configuration file."""
    output = Path(args.output)

    if output.exists() and not args.force:
        logger.error(f"File already exists: {output}. Use --force to overwrite.")
        sys.exit(1)

    from tablebridge.config import DEFAULT_CONFIG_YAML

    output.write_text(DEFAULT_CONFIG_YAML)
    print(f"Configuration written to: {output}")
    print(f"\nEdit the file and run: tablebridge run --config {output}")


def cmd_menu_search(args: argparse.Namespace) -> None:
    """Ingest the configured menus and print the spoken answer for a query."""
    config, _ = _load(args.config)

    logger.remove()
    logger.add(sys.stderr, level=config.logging.level)

    from tablebridge.services.menu import MenuIndex, format_menu_answer

    async def _search() -> str:
        index = MenuIndex(config.menu_sources)
        await index.ingest()
        rows = await index.search(args.query, config.menu.result_limit)
        return format_menu_answer(args.query, rows, config.menu.spoken_limit)

    print(asyncio.run(_search()))


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="tablebridge",
        description="TableBridge - Twilio to OpenAI Realtime voice host for restaurants",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # `tablebridge run`
    run_parser = subparsers.add_parser("run", help="Run the TableBridge server")
    run_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to a YAML config file (default: environment and .env)",
    )

    # `tablebridge init`
    init_parser = subparsers.add_parser("init", help="Generate a starter config file")
    init_parser.add_argument(
        "--output", "-o",
        default="tablebridge.yaml",
        help="Output file path (default: tablebridge.yaml)",
    )
    init_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Overwrite existing file",
    )

    # `tablebridge menu-search`
    search_parser = subparsers.add_parser("menu-search", help="Search the configured menus")
    search_parser.add_argument("query", help="Dish, drink or ingredient to look up")
    search_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to a YAML config file (default: environment and .env)",
    )

    args = parser.parse_args()

    if args.command == "run":
        cmd_run(args)
    elif args.command == "init":
        cmd_init(args)
    elif args.command == "menu-search":
        cmd_menu_search(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
