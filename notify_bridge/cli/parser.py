"""
CLI Parser - Argument parser for the notify-bridge command.
"""

import argparse

from ..events import EventKind

__all__ = ["create_parser"]


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="notify-bridge",
        description="Claude Code notification bridge - hook events to desktop notifications",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # serve
    subparsers.add_parser("serve", help="Run the broker in the foreground")

    # start
    subparsers.add_parser("start", help="Start a detached broker")

    # stop
    stop_parser = subparsers.add_parser("stop", help="Stop the broker")
    stop_parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Seconds to wait before SIGKILL (default: 10)",
    )

    # status
    subparsers.add_parser("status", help="Show broker PID and health")

    # health
    subparsers.add_parser("health", help="Quick health check")

    # ensure
    subparsers.add_parser("ensure", help="Start the broker if it is not running")

    # send
    send_parser = subparsers.add_parser("send", help="Submit one notification event")
    send_parser.add_argument("type", choices=EventKind.values(), help="Notification type")
    send_parser.add_argument("-m", "--message", default=None, help="Notification text")

    # hook
    subparsers.add_parser("hook", help="Submit the hook event read from stdin (always exits 0)")

    # listen
    listen_parser = subparsers.add_parser("listen", help="Run the desktop listener")
    listen_parser.add_argument("--url", default=None, help="Broker channel URL")
    listen_parser.add_argument(
        "--headless",
        action="store_true",
        help="Record notifications instead of showing them",
    )

    return parser
