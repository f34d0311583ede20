"""
Command-line interface for the Anonymous Relay.

Provides CLI commands for operating the relay:
- run: Connect to Discord and serve submissions (plus the liveness probe)
- check-config: Show the effective configuration and missing required values
- ledger-status: Show the ledger counter, entry count and burned ids

Usage:
    anon-relay run
    anon-relay check-config
    anon-relay ledger-status [--path PATH]

Environment Variables:
    RELAY_BOT_TOKEN, RELAY_GUILD_ID, RELAY_CHANNEL_ID, RELAY_WEBHOOK_URL (required)
    See anon_relay.config for the complete list.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logger = logging.getLogger("anon_relay.cli")


def _import_config():
    """
    Import the configuration module, which loads settings on first import.

    Returns:
        The ``anon_relay.config`` module, or None after printing the error
        when a setting cannot be parsed
    """
    from anon_relay.errors import ConfigurationError

    try:
        import anon_relay.config as cfgmod
    except ConfigurationError as e:
        logger.critical("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return None
    return cfgmod


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run the relay until SIGTERM/SIGINT.

    Configuration is validated before any connection attempt. Missing
    required values, an unreadable ledger or a fatal gateway error end the
    process with status 1.

    Returns:
        0 on clean shutdown, 1 on fatal error
    """
    cfgmod = _import_config()
    if cfgmod is None:
        return 1
    config = cfgmod.config

    from anon_relay.errors import (
        ConfigurationError,
        GatewayConnectionError,
        LedgerLoadError,
        PersistenceError,
    )
    from anon_relay.runtime import serve

    cfgmod.configure_logging(config)

    missing = config.missing_required()
    if missing:
        error = ConfigurationError(missing)
        logger.critical("%s", error)
        print(f"Error: {error}", file=sys.stderr)
        return 1

    status = cfgmod.get_config_status(config)
    logger.info(
        "config: bot token %s, webhook %s, guild %s, channel %s",
        "loaded" if status["bot_token_loaded"] else "missing",
        "loaded" if status["webhook_url_loaded"] else "missing",
        status["guild_id"],
        status["channel_id"],
    )

    try:
        asyncio.run(serve(config))
    except (LedgerLoadError, PersistenceError) as e:
        logger.critical("ledger unavailable: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except GatewayConnectionError as e:
        logger.critical("gateway connection failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1 if e.fatal else 0
    except KeyboardInterrupt:
        print("\nRelay stopped.")
        return 0

    return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    """
    Print the effective configuration.

    Returns:
        0 if every required value is set, 1 otherwise
    """
    cfgmod = _import_config()
    if cfgmod is None:
        return 1
    config = cfgmod.config

    cfgmod.print_config_summary(config)
    missing = config.missing_required()
    if missing:
        print("Missing required values: " + ", ".join(missing), file=sys.stderr)
        return 1
    print("Configuration complete.")
    return 0


def cmd_ledger_status(args: argparse.Namespace) -> int:
    """
    Summarize the ledger without disclosing any author.

    Returns:
        0 on success, 1 if the ledger cannot be read
    """
    from anon_relay.errors import LedgerLoadError
    from anon_relay.ledger import LedgerStore

    if getattr(args, "path", None):
        path = Path(args.path)
    else:
        cfgmod = _import_config()
        if cfgmod is None:
            return 1
        path = cfgmod.config.ledger.absolute_path
    if not path.exists():
        print(f"No ledger at {path}")
        return 0

    store = LedgerStore(path)
    try:
        store.load()
    except LedgerLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    gaps = store.gaps()
    print(f"Ledger:          {path}")
    print(f"Last message id: {store.last_id}")
    print(f"Recorded:        {len(store.state.entries)}")
    print(f"Burned ids:      {', '.join(str(i) for i in gaps) if gaps else 'none'}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="anon-relay",
        description="Anonymous Relay - anonymous posting with a moderator disclosure ledger",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        help="Run the relay",
        description="Connect to Discord, place the invitation button and serve submissions.",
    )
    run_parser.set_defaults(func=cmd_run)

    check_parser = subparsers.add_parser(
        "check-config",
        help="Show configuration and missing required values",
    )
    check_parser.set_defaults(func=cmd_check_config)

    status_parser = subparsers.add_parser(
        "ledger-status",
        help="Show ledger counter, entry count and burned ids",
    )
    status_parser.add_argument(
        "--path",
        type=str,
        help="Ledger file to inspect (default: configured ledger path)",
    )
    status_parser.set_defaults(func=cmd_ledger_status)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
