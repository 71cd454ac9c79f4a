"""
CLI - Command-line interface for the notification bridge.

The `notify-bridge` command manages the broker and feeds it events.

Example:
    # Wire into Claude Code hooks
    $ CLAUDE_HOOK_NAME=stop notify-bridge hook < event.json

    # Check the broker
    $ notify-bridge status
    Broker is running (PID 12345)
      URL: http://127.0.0.1:3099
      Listeners: 1
      Uptime: 42s

    # Desktop listener
    $ notify-bridge listen
"""

from .main import main

__all__ = ["main"]
