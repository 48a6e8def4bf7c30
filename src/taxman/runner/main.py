"""
CLI main entry point.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import httpx

from ..config import (
    DEFAULT_CONFIG_PATH,
    Config,
    ConfigValidationError,
    create_default_config,
    load_config,
)
from ..connectors import (
    JsonFileSessionStore,
    build_adapter_registry,
    fetch_review_queue_by_provider,
    get_connector_statuses,
    post_drafts_by_provider,
    resolve_provider,
)
from ..decision import DecisionEngine
from ..schemas import (
    CanonicalTransaction,
    OperationMode,
    PostingCommand,
    TenantContext,
    TransactionValidationError,
    select_postable_commands,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="taxman",
        description="Classify business expenses and post drafts to freee, QuickBooks or Xero",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init command
    subparsers.add_parser("init", help="Write a default config file")

    # evaluate command
    evaluate_parser = subparsers.add_parser(
        "evaluate", help="Classify transactions from a JSON file"
    )
    evaluate_parser.add_argument("file", type=Path, help="JSON list of transactions")

    # route command
    route_parser = subparsers.add_parser("route", help="Show which provider a tenant routes to")
    route_parser.add_argument("--region", type=str, default=None, help="Region code (e.g. JP)")
    route_parser.add_argument("--provider", type=str, default=None, help="Requested provider")

    # status command
    subparsers.add_parser("status", help="Show connector status")

    # post command
    post_parser = subparsers.add_parser("post", help="Post accepted decisions as drafts")
    post_parser.add_argument(
        "file", type=Path, help="JSON list of {transaction, decision} pairs"
    )
    post_parser.add_argument("--region", type=str, default=None, help="Region code")
    post_parser.add_argument("--provider", type=str, default=None, help="Requested provider")
    post_parser.add_argument(
        "--min-confidence",
        type=float,
        default=None,
        help="Minimum decision confidence (default: auto_post_min_confidence)",
    )

    # queue command
    queue_parser = subparsers.add_parser("queue", help="List drafts awaiting review")
    queue_parser.add_argument("--region", type=str, default=None, help="Region code")
    queue_parser.add_argument("--provider", type=str, default=None, help="Requested provider")
    queue_parser.add_argument(
        "--limit",
        type=int,
        default=30,
        help="Maximum drafts to list (1-100, default: 30)",
    )

    return parser


def _print_json(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


def _load_json_list(path: Path) -> list:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else [data]


def _tenant(config: Config, region: str | None = None) -> TenantContext:
    return TenantContext(
        region_code=(region or config.tenant.region_code).upper(),
        organization_id=config.tenant.organization_id,
        user_id=config.tenant.user_id,
        mode=OperationMode(config.tenant.mode),
    )


def cmd_init(config_path: Path) -> int:
    """Write a default config file."""
    if config_path.exists():
        print(f"⚠️  {config_path} already exists, not overwriting")
        return 1
    create_default_config(config_path)
    print(f"✅ Wrote default config to {config_path}")
    return 0


async def _evaluate_all(config: Config, transactions: list[CanonicalTransaction]) -> list[dict]:
    async with httpx.AsyncClient() as client:
        engine = DecisionEngine.from_config(config, http_client=client)
        return [
            (await engine.evaluate_transaction(transaction)).to_dict()
            for transaction in transactions
        ]


def cmd_evaluate(config: Config, file: Path) -> int:
    """Classify transactions and print the decisions."""
    try:
        transactions = [CanonicalTransaction.from_dict(row) for row in _load_json_list(file)]
    except (OSError, json.JSONDecodeError) as e:
        print(f"❌ Failed to read {file}: {e}")
        return 1
    except TransactionValidationError as e:
        print(f"❌ Invalid transaction ({e.code}): {e.message}")
        return 1

    decisions = asyncio.run(_evaluate_all(config, transactions))
    _print_json(decisions)
    return 0


def cmd_route(config: Config, region: str | None, provider: str | None) -> int:
    """Show routing for a region / requested provider."""
    routed = resolve_provider(region or config.tenant.region_code, provider)
    _print_json(routed.to_dict())
    return 0


def cmd_status(config: Config) -> int:
    """Show connector status."""
    store = JsonFileSessionStore(config.session_path)
    adapters = build_adapter_registry(config)
    statuses = get_connector_statuses(store, adapters)

    print("\n🔌 Connector Status")
    print("=" * 40)
    for status in statuses:
        mark = "✅" if status.connected else "❌"
        print(f"  {mark} {status.label:<20} {status.mode:<16} {status.next_action}")
    print()
    return 0


async def _post(
    config: Config,
    provider: str,
    commands: list[PostingCommand],
    tenant: TenantContext,
) -> dict:
    store = JsonFileSessionStore(config.session_path)
    async with httpx.AsyncClient() as client:
        adapters = build_adapter_registry(config, client)
        result = await post_drafts_by_provider(provider, commands, store, tenant, adapters)
    return result.to_dict()


def cmd_post(
    config: Config,
    file: Path,
    region: str | None,
    provider: str | None,
    min_confidence: float | None,
) -> int:
    """Filter accepted decisions and post them as drafts."""
    try:
        pairs = [PostingCommand.from_dict(row) for row in _load_json_list(file)]
    except (OSError, json.JSONDecodeError) as e:
        print(f"❌ Failed to read {file}: {e}")
        return 1
    except (TransactionValidationError, KeyError, ValueError) as e:
        print(f"❌ Invalid posting command: {e}")
        return 1

    threshold = config.auto_post_min_confidence if min_confidence is None else min_confidence
    commands = select_postable_commands(pairs, min_confidence=threshold)
    logger.info("%d of %d commands passed the posting filter", len(commands), len(pairs))
    if not commands:
        print("⚠️  No commands passed the posting filter")
        return 0

    tenant = _tenant(config, region)
    routed = resolve_provider(tenant.region_code, provider)
    result = asyncio.run(_post(config, routed.provider, commands, tenant))
    _print_json(result)
    return 0 if result["ok"] else 1


async def _queue(config: Config, provider: str, limit: int) -> dict:
    store = JsonFileSessionStore(config.session_path)
    async with httpx.AsyncClient() as client:
        adapters = build_adapter_registry(config, client)
        result = await fetch_review_queue_by_provider(provider, store, limit, adapters)
    return result.to_dict()


def cmd_queue(config: Config, region: str | None, provider: str | None, limit: int) -> int:
    """List drafts awaiting review in the provider."""
    routed = resolve_provider(region or config.tenant.region_code, provider)
    result = asyncio.run(_queue(config, routed.provider, limit))
    _print_json(result)
    return 0 if result["ok"] else 1


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init":
        return cmd_init(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
    except (ConfigValidationError, OSError) as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"❌ Config error: {error}")
        return 1

    # Route to command
    if parsed.command == "evaluate":
        return cmd_evaluate(config, parsed.file)
    elif parsed.command == "route":
        return cmd_route(config, parsed.region, parsed.provider)
    elif parsed.command == "status":
        return cmd_status(config)
    elif parsed.command == "post":
        return cmd_post(
            config,
            parsed.file,
            region=parsed.region,
            provider=parsed.provider,
            min_confidence=parsed.min_confidence,
        )
    elif parsed.command == "queue":
        return cmd_queue(config, parsed.region, parsed.provider, parsed.limit)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
