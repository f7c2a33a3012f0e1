#!/usr/bin/env python3
"""
drivegate - command line access to the multi-account Drive gateway.

Authorizes accounts, lists and inspects Drive objects, and runs the
change poller against an in-memory cache.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from drivegate.cache import MemoryCache
from drivegate.config import GatewayConfig, get_config_path
from drivegate.drive import (
    AccountPool,
    DriveError,
    DriveGateway,
    PartialResult,
    QuotaExceededError,
)


def load_config(path: Path) -> GatewayConfig:
    config = GatewayConfig.load(path)
    if not config.accounts:
        print(f"ERROR: no accounts configured in {path}")
        print()
        print("Add at least one OAuth client to the config file:")
        print('  {"accounts": [{"client_id": "...", "client_secret": "..."}]}')
        raise SystemExit(1)
    return config


def open_gateway(config: GatewayConfig, cache=None) -> DriveGateway:
    return DriveGateway.from_config(config, cache=cache, start_polling=False)


# ============================================================================
# Commands
# ============================================================================


def cmd_authorize(config: GatewayConfig, args) -> int:
    """Authorize every account that has no stored token."""
    pool = AccountPool.authorize(config.accounts, config.token_path)
    print(f"{len(pool)} account(s) authorized, tokens in {config.token_path}")
    return 0


def cmd_ls(config: GatewayConfig, args) -> int:
    """List a folder, rotating once through every account on quota errors."""
    with open_gateway(config) as gateway:
        for _ in range(len(gateway.pool)):
            try:
                result = gateway.get_objects_by_parent(args.parent_id, strict=args.strict)
            except QuotaExceededError as e:
                result = PartialResult(error=e)
            if not isinstance(result.error, QuotaExceededError):
                break
            gateway.rotate_accounts()

    for obj in sorted(result, key=lambda o: (not o.is_dir, o.name.lower())):
        kind = "d" if obj.is_dir else "-"
        print(f"{kind} {obj.size:>12} {obj.mtime:%Y-%m-%d %H:%M}  {obj.name}  [{obj.id}]")

    if not result.complete:
        print(f"\nWarning: listing incomplete ({result.error})")
        return 2
    return 0


def cmd_stat(config: GatewayConfig, args) -> int:
    """Print one object's metadata."""
    with open_gateway(config) as gateway:
        obj = gateway.get_object(args.file_id)

    for key, value in obj.to_dict().items():
        print(f"  {key}: {value}")
    return 0


def cmd_watch(config: GatewayConfig, args) -> int:
    """Poll for changes and print what the cache receives."""
    cache = MemoryCache()
    with open_gateway(config, cache=cache) as gateway:
        if args.interval:
            gateway.poller.interval = args.interval

        if args.once:
            result = gateway.poller.poll_once()
            if result is None:
                return 1
            for obj in cache.objects.values():
                print(f"  {obj.id}  {obj.name}")
            print(f"{result.stored} object(s) updated in {result.pages} page(s)")
            return 0 if result.complete else 2

        print(f"Watching for changes every {gateway.poller.interval:.0f}s (Ctrl+C to stop)")
        gateway.poller.start()
        try:
            while gateway.poller.running:
                time.sleep(1.0)
        except KeyboardInterrupt:
            print("\nStopping...")
    return 0


# ============================================================================
# CLI
# ============================================================================


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Multi-account Google Drive gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python drive_watch.py authorize            # Sign in every configured account
  python drive_watch.py ls root              # List a folder
  python drive_watch.py stat FILE_ID         # Show object metadata
  python drive_watch.py watch --once         # Run one change poll
"""
    )
    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="Config file (default: $DRIVEGATE_CONFIG or ./drivegate.json)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("authorize", help="Authorize accounts without a stored token")

    ls = sub.add_parser("ls", help="List a folder")
    ls.add_argument("parent_id")
    ls.add_argument("--strict", action="store_true",
                    help="Fail instead of printing a partial listing")

    stat = sub.add_parser("stat", help="Show object metadata")
    stat.add_argument("file_id")

    watch = sub.add_parser("watch", help="Poll for changes")
    watch.add_argument("--once", action="store_true", help="Run a single poll and exit")
    watch.add_argument("--interval", type=float, default=None,
                       help="Seconds between polls (default: from config)")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config or get_config_path())
    commands = {
        "authorize": cmd_authorize,
        "ls": cmd_ls,
        "stat": cmd_stat,
        "watch": cmd_watch,
    }
    try:
        return commands[args.command](config, args)
    except DriveError as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
