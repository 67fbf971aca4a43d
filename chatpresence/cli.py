"""CLI interface for chatpresence."""

import argparse
import asyncio
import getpass
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from chatpresence.core.config import Config, load_config
from chatpresence.core.logging import setup_logging
from chatpresence.model.notification import NotificationKind
from chatpresence.model.session import SessionSnapshot
from chatpresence.runtime.session import SessionManager
from chatpresence.stores.token import FileTokenStore

logger = logging.getLogger(__name__)


def console_notify(kind: NotificationKind, text: str) -> None:
    """Print notifications to the terminal."""
    if kind is NotificationKind.ERROR:
        print(f"✗ {text}", file=sys.stderr)
    else:
        print(f"✓ {text}")


def parse_assignments(values: list[str]) -> dict[str, str]:
    """Parse ``key=value`` arguments into a dict.

    Args:
        values: Strings like ``fullName=Ada Lovelace``.

    Returns:
        Mapping of keys to string values.

    Raises:
        ValueError: If an item has no ``=`` or an empty key.
    """
    result: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Expected key=value, got '{item}'")
        result[key] = value
    return result


def format_snapshot(snapshot: SessionSnapshot) -> str:
    """Render a session snapshot for the terminal."""
    lines = [f"State:    {snapshot.auth_state.value}"]
    if snapshot.user:
        name = snapshot.user.full_name or snapshot.user.email or snapshot.user.id
        lines.append(f"User:     {name} ({snapshot.user.id})")
    lines.append(f"Presence: {snapshot.presence_state.value}")
    lines.append(f"Online:   {', '.join(snapshot.online_users) if snapshot.online_users else '-'}")
    return "\n".join(lines)


def build_config(args: argparse.Namespace) -> Config:
    """Load config from --config, falling back to environment variables."""
    if args.env_file:
        load_dotenv(args.env_file, override=True)
    else:
        load_dotenv()

    if args.config:
        return load_config(args.config)
    return Config.from_env()


def build_manager(config: Config) -> SessionManager:
    return SessionManager(config, FileTokenStore(config.storage.path), notify=console_notify)


async def run_login(manager: SessionManager, args: argparse.Namespace) -> int:
    """Handle the login subcommand."""
    password = args.password or getpass.getpass("Password: ")
    credentials: dict[str, Any] = {"email": args.email, "password": password}
    mode = "login"
    if args.signup:
        mode = "signup"
        credentials["fullName"] = args.full_name or args.email
        credentials["bio"] = args.bio or ""

    ok = await manager.login(mode, credentials)
    if ok:
        print(format_snapshot(manager.snapshot()))
    return 0 if ok else 1


async def run_status(manager: SessionManager, args: argparse.Namespace) -> int:
    """Handle the status subcommand."""
    await manager.initialize()
    if manager.user and args.wait > 0:
        # Give the server a moment to push the first roster
        await asyncio.sleep(args.wait)
    print(format_snapshot(manager.snapshot()))
    return 0 if manager.user else 1


async def run_update_profile(manager: SessionManager, args: argparse.Namespace) -> int:
    """Handle the update-profile subcommand."""
    try:
        patch = parse_assignments(args.set)
    except ValueError as e:
        logger.error(str(e))
        return 1
    if not patch:
        logger.error("Nothing to update; pass at least one --set key=value")
        return 1

    await manager.initialize()
    if not manager.user:
        logger.error("Not logged in")
        return 1

    ok = await manager.update_profile(patch)
    return 0 if ok else 1


async def run_watch(manager: SessionManager, args: argparse.Namespace) -> int:
    """Handle the watch subcommand: print roster changes until interrupted."""
    last_roster: tuple[str, ...] | None = None

    def on_change(snapshot: SessionSnapshot) -> None:
        nonlocal last_roster
        if snapshot.online_users != last_roster:
            last_roster = snapshot.online_users
            print(f"Online ({len(snapshot.online_users)}): {', '.join(snapshot.online_users) or '-'}")

    manager.subscribe(on_change)
    await manager.initialize()
    if not manager.user:
        logger.error("Not logged in")
        return 1

    stop_event = asyncio.Event()

    def signal_handler() -> None:
        stop_event.set()

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, signal_handler)
    loop.add_signal_handler(signal.SIGTERM, signal_handler)

    logger.info(f"Watching presence for {manager.user.id}; press Ctrl+C to stop")
    await stop_event.wait()
    logger.info("Shutdown signal received, stopping...")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatpresence",
        description="Manage a chat backend session and watch who is online",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to YAML config (default: build from CHAT_BACKEND_URL)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    login_parser = subparsers.add_parser("login", help="Sign in (or register with --signup)")
    login_parser.add_argument("--email", required=True, help="Account email")
    login_parser.add_argument("--password", help="Account password (prompted if omitted)")
    login_parser.add_argument("--signup", action="store_true", help="Create a new account")
    login_parser.add_argument("--full-name", help="Display name for --signup")
    login_parser.add_argument("--bio", help="Profile bio for --signup")

    status_parser = subparsers.add_parser("status", help="Validate the stored session and print it")
    status_parser.add_argument(
        "--wait",
        type=float,
        default=1.0,
        help="Seconds to wait for the online roster (default: 1.0)",
    )

    subparsers.add_parser("logout", help="Forget the stored session")

    update_parser = subparsers.add_parser("update-profile", help="Change profile fields")
    update_parser.add_argument(
        "--set",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Field to change, e.g. --set fullName='Ada Lovelace' (repeatable)",
    )

    subparsers.add_parser("watch", help="Print online users as they change")

    return parser


COMMANDS = {
    "login": run_login,
    "status": run_status,
    "update-profile": run_update_profile,
    "watch": run_watch,
}


async def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch the subcommand."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = build_config(args)
    setup_logging(
        level="DEBUG" if args.verbose else config.logging.level,
        directory=config.logging.directory,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count,
    )

    manager = build_manager(config)
    try:
        if args.command == "logout":
            await manager.logout()
            return 0
        return await COMMANDS[args.command](manager, args)
    finally:
        await manager.close()


def run() -> None:
    """Entry point for the console script."""
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        return
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in config: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Startup failed: {e} (run with -v for details)", file=sys.stderr)
        sys.exit(1)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    run()
