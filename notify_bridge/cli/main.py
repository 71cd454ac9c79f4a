"""
CLI Main - Entry point for the `notify-bridge` command.

Usage:
    notify-bridge serve                 Run the broker in the foreground
    notify-bridge start                 Start a detached broker
    notify-bridge stop                  Stop the broker
    notify-bridge status                Show broker PID and health
    notify-bridge health                Quick health check
    notify-bridge ensure                Start the broker if needed
    notify-bridge send TYPE [-m MSG]    Submit an event
    notify-bridge hook                  Submit the hook event on stdin
    notify-bridge listen                Run the desktop listener
"""

import sys

from ..config import BrokerConfig, ClientConfig
from ..logs import configure_logging
from .client import print_error
from .commands import run_command
from .parser import create_parser

__all__ = ["main"]


def main(args: list[str] | None = None) -> int:
    """Main entry point for the notify-bridge CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    if args is None:
        args = sys.argv[1:]

    parser = create_parser()
    parsed = parser.parse_args(args)

    if not hasattr(parsed, "command") or parsed.command is None:
        parser.print_help()
        return 0

    config = BrokerConfig()
    client_config = ClientConfig()

    # The hook runs inside Claude Code; keep its stderr quiet
    configure_logging("WARNING" if parsed.command == "hook" else config.log_level)

    try:
        return run_command(parsed.command, parsed, config, client_config)
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        if parsed.command == "hook":
            return 0
        print_error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
