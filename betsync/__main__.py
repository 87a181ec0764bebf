"""betsync CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path.cwd() / ".env"
load_dotenv(env_file)

from betsync import __version__
from betsync.config import get_settings
from betsync.engine import (
    BettingEngine,
    MutationError,
    MutationGateway,
    Projection,
    Reconciler,
    SnapshotLoader,
    SnapshotLoadError,
)
from betsync.services.betting import BetStatus, BettingAPIError, BettingClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# betsync configuration
# Secrets such as BETSYNC_LOGFIRE_TOKEN belong in .env, not here.
# Sections below are merged over environment/default values.

api:
  base_url: http://localhost:3001
  api_prefix: /api/v1
  timeout_seconds: 30.0
  max_retries: 3

stream:
  url: http://localhost:3001/sse
  reconnect_delay_seconds: 1.0
  max_reconnect_delay_seconds: 30.0
  # Restrict accepted payload shapes per event, e.g.
  # accepted_shapes:
  #   account_deleted: [id]

engine:
  focus_new_accounts: false
  follow_new_batches: true
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from betsync.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def _render(projection: Projection) -> str:
    lines = [f"[{projection.connection_state.value}]"]
    for account in projection.accounts:
        marker = "*" if account.id == projection.focused_account_id else " "
        lines.append(f" {marker} {account.id:>4}  {account.name} ({account.hostname})")
    for batch in projection.active_batches:
        marker = ">" if batch.id == projection.selected_batch_id else " "
        lines.append(
            f"     {marker} batch {batch.id}: {len(batch.bets)} bets, "
            f"{batch.pending_count} pending"
        )
    for bet in projection.bets:
        lines.append(
            f"         bet {bet.pid}: {bet.selection} stake={bet.stake:.2f} "
            f"cost={bet.cost:.2f} [{bet.status.value}]"
        )
    if projection.load_error:
        lines.append(f"   ! {projection.load_error}")
    return "\n".join(lines)


def cmd_init(args: argparse.Namespace) -> int:
    """Create the data directory and a config template."""
    data_dir = Path("data").resolve()

    try:
        data_dir.mkdir(exist_ok=True)
        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE)
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        print(f"\n✓ Data directory initialized at {data_dir}\n")
        return 0

    except OSError as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()
    except ValidationError as e:
        print("\n❌ Configuration validation failed:\n")
        for error in e.errors():
            print(f"  {'.'.join(str(p) for p in error['loc'])}: {error['msg']}")
        return 1

    print(f"\n=== betsync {__version__} configuration ===\n")
    print(f"Data Directory: {settings.data_dir}\n")

    print("REST API:")
    print(f"  URL: {settings.api.api_url}")
    print(f"  Timeout: {settings.api.timeout_seconds}s")
    print(f"  Max Retries: {settings.api.max_retries}\n")

    print("Event Stream:")
    print(f"  URL: {settings.stream.url}")
    print(f"  Reconnect Delay: {settings.stream.reconnect_delay_seconds}s")
    print(f"  Max Reconnect Delay: {settings.stream.max_reconnect_delay_seconds}s")
    print(f"  Accepted Shapes: {settings.stream.accepted_shapes or 'all'}\n")

    print("Engine:")
    print(f"  Focus New Accounts: {settings.engine.focus_new_accounts}")
    print(f"  Follow New Batches: {settings.engine.follow_new_batches}\n")

    print(f"Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")
    return 0


async def _list_accounts() -> int:
    settings = get_settings()
    async with BettingClient(settings.api) as client:
        accounts = await client.get_accounts()

    if not accounts:
        print("No accounts.")
    for account in accounts:
        print(f"{account.id:>4}  {account.name} ({account.hostname})")
    return 0


def cmd_accounts(args: argparse.Namespace) -> int:
    """List accounts from a fresh snapshot."""
    try:
        return asyncio.run(_list_accounts())
    except BettingAPIError as e:
        logger.error(f"Failed to list accounts: {e}")
        return 1


async def _watch(args: argparse.Namespace) -> int:
    settings = get_settings()
    async with BettingEngine(settings) as engine:
        if args.account:
            await engine.select_account(args.account)

        last: list[str] = []

        def show(projection: Projection) -> None:
            rendered = _render(projection)
            if last and last[-1] == rendered:
                return
            last[:] = [rendered]
            print(rendered, flush=True)

        engine.add_listener(show)
        show(engine.projection())

        if args.seconds:
            await asyncio.sleep(args.seconds)
        else:
            await asyncio.Event().wait()
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    """Start the engine and print the projection as it changes."""
    _init_logfire()
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        return asyncio.run(_watch(args))
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
        return 0


async def _mutate(args: argparse.Namespace) -> int:
    settings = get_settings()
    async with BettingClient(settings.api) as client:
        reconciler = Reconciler()
        loader = SnapshotLoader(client, reconciler)
        gateway = MutationGateway(client, reconciler)

        await loader.load_accounts()
        reconciler.focus_account(args.account)
        await loader.load_focus(args.account)

        if args.command == "set-status":
            await gateway.set_bet_status(args.account, args.batch, args.bet, args.status)
        elif args.command == "submit":
            await gateway.submit_batch(args.account, args.batch)
        elif args.command == "cancel":
            await gateway.cancel_batch(args.account, args.batch)

        remaining = [b.id for b in reconciler.active_batches]
        print(f"✓ {args.command} done. Active batches: {', '.join(remaining) or 'none'}")
    return 0


def cmd_mutate(args: argparse.Namespace) -> int:
    """Run one mutation against the server and report the reconciled result."""
    _init_logfire()
    try:
        return asyncio.run(_mutate(args))
    except (SnapshotLoadError, MutationError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"\n❌ {e}\n")
        return 1


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="betsync: live view of betting accounts, batches and bets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"betsync {__version__}")

    subparsers = parser.add_subparsers(title="commands", dest="command")

    parser_init = subparsers.add_parser(
        "init",
        help="Create data directory and config template",
    )
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_accounts = subparsers.add_parser(
        "accounts",
        help="List accounts",
    )
    parser_accounts.set_defaults(func=cmd_accounts)

    parser_watch = subparsers.add_parser(
        "watch",
        help="Follow the live account/batch/bet view",
    )
    parser_watch.add_argument("--account", help="Account ID to focus")
    parser_watch.add_argument(
        "--seconds",
        type=float,
        default=0,
        help="Stop after this many seconds (default: run until interrupted)",
    )
    parser_watch.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_watch.set_defaults(func=cmd_watch)

    parser_status = subparsers.add_parser(
        "set-status",
        help="Set a bet's status",
    )
    parser_status.add_argument("--account", required=True, help="Account ID")
    parser_status.add_argument("--batch", required=True, help="Batch ID")
    parser_status.add_argument("--bet", required=True, help="Bet PID")
    parser_status.add_argument(
        "--status",
        required=True,
        choices=[s.value for s in BetStatus],
        help="New bet status",
    )
    parser_status.set_defaults(func=cmd_mutate)

    for name, help_text in (("submit", "Submit a batch"), ("cancel", "Cancel a batch")):
        parser_batch = subparsers.add_parser(name, help=help_text)
        parser_batch.add_argument("--account", required=True, help="Account ID")
        parser_batch.add_argument("--batch", required=True, help="Batch ID")
        parser_batch.set_defaults(func=cmd_mutate)

    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
