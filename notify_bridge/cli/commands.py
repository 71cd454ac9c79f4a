"""
CLI Commands - Command handlers.
"""

import argparse
import asyncio
import signal
import sys
from dataclasses import replace

import httpx
import structlog

from ..client import ClientRuntime, DesktopNotifier, JsonFileStore, RecordingNotifier
from ..config import BrokerConfig, ClientConfig
from .client import BrokerClient, print_error
from .daemon import broker_status, ensure_broker, serve_broker, start_broker, stop_broker
from .hook import run_hook

__all__ = ["COMMANDS", "build_runtime", "run_command", "run_listener"]

logger = structlog.get_logger(__name__)

COMMANDS = {"serve", "start", "stop", "status", "health", "ensure", "send", "hook", "listen"}


def run_command(
    command: str,
    args: argparse.Namespace,
    config: BrokerConfig,
    client_config: ClientConfig,
) -> int:
    """Run the specified command.

    Returns:
        Exit code
    """
    if command == "serve":
        return serve_broker(config)
    elif command == "start":
        return start_broker(config)
    elif command == "stop":
        return stop_broker(config, timeout=args.timeout)
    elif command == "status":
        return broker_status(config)
    elif command == "ensure":
        ensure_broker(config)
        return 0
    elif command == "hook":
        return run_hook(config, sys.stdin)
    elif command == "listen":
        if args.url:
            client_config = replace(client_config, ws_url=args.url)
        return run_listener(client_config, headless=args.headless)

    with BrokerClient(config) as client:
        if command == "health":
            if not client.is_running():
                print("Status: down")
                return 1
            health = client.health()
            print(f"Status: {health.get('status', 'unknown')} ({health.get('connectedClients', 0)} listeners)")
            return 0 if health.get("status") == "ok" else 1

        elif command == "send":
            ensure_broker(config)
            try:
                result = client.notify(args.type, args.message)
            except httpx.HTTPError as e:
                print_error(f"Broker unreachable: {e}")
                return 1
            if "error" in result:
                print_error(result["error"])
                return 1
            print(f"Delivered to {result.get('clientsNotified', 0)} listener(s)")
            return 0

    return 0


def build_runtime(client_config: ClientConfig, headless: bool = False) -> ClientRuntime:
    """Listener runtime with file-backed state.

    Desktop notification clicks are routed back to the runtime, which
    clears the notification and acknowledges everything unread.
    """
    store = JsonFileStore(client_config.state_file)
    if headless:
        return ClientRuntime(client_config, store=store, renderer=RecordingNotifier())

    notifier = DesktopNotifier()
    runtime = ClientRuntime(client_config, store=store, renderer=notifier)
    notifier.on_click = runtime.notification_clicked
    return runtime


def run_listener(client_config: ClientConfig, headless: bool = False) -> int:
    """Run the desktop listener until SIGINT/SIGTERM."""

    async def _main() -> None:
        runtime = build_runtime(client_config, headless)
        stop = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop.set)

        await runtime.start()
        try:
            await stop.wait()
        finally:
            await runtime.close()

    asyncio.run(_main())
    return 0
