"""
CLI Daemon - Run, start, stop and ensure the broker process.

`ensure` is the launcher used before every event submission:

1. Healthy broker -> done
2. Take the launch lock (10s); on timeout wait 2s and re-probe
3. Re-probe under the lock (another launcher may have won)
4. Drop a stale PID file
5. Spawn a detached broker and poll /health for up to 5s

It is best-effort: callers proceed whether or not the broker came up.
"""

import os
import signal
import subprocess
import sys
import time

import structlog

from ..broker import BrokerController, PIDFile, process_exists
from ..config import BrokerConfig
from ..logs import configure_logging
from .client import BrokerClient
from .lock import FileLock, LockTimeout

__all__ = [
    "broker_status",
    "ensure_broker",
    "serve_broker",
    "spawn_broker",
    "start_broker",
    "stop_broker",
    "wait_for_health",
]

logger = structlog.get_logger(__name__)

LOCK_TIMEOUT = 10.0
LOCK_RETRY_DELAY = 2.0
START_TIMEOUT = 5.0
POLL_INTERVAL = 0.1


def serve_broker(config: BrokerConfig) -> int:
    """Run the broker in the foreground.

    Returns:
        Exit code (1 if the port is taken)
    """
    config.ensure_dirs()
    configure_logging(config.log_level, config.log_file)
    return BrokerController(config).run()


def spawn_broker(config: BrokerConfig) -> subprocess.Popen:
    """Start a detached broker process (own session, no inherited stdio)."""
    cmd = [sys.executable, "-m", "notify_bridge", "serve"]
    env = dict(os.environ)
    env["NOTIFY_BRIDGE_HOST"] = config.host
    env["NOTIFY_BRIDGE_PORT"] = str(config.port)
    env["NOTIFY_BRIDGE_PID_FILE"] = str(config.pid_file)
    env["NOTIFY_BRIDGE_RUNTIME_DIR"] = str(config.runtime_dir)

    logger.info("broker_spawning", cmd=" ".join(cmd))
    return subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        close_fds=True,
        env=env,
    )


def wait_for_health(client: BrokerClient, timeout: float = START_TIMEOUT) -> bool:
    """Poll /health until it answers or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while True:
        if client.is_running():
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(POLL_INTERVAL)


def ensure_broker(config: BrokerConfig) -> bool:
    """Make sure a broker is running (idempotent, lock-protected).

    Returns:
        True if a healthy broker answered in time
    """
    with BrokerClient(config) as client:
        if client.is_running():
            return True

        lock = FileLock(config.lock_file, timeout=LOCK_TIMEOUT)
        try:
            lock.acquire()
        except LockTimeout:
            logger.warning("launch_lock_timeout", lock_file=str(config.lock_file))
            time.sleep(LOCK_RETRY_DELAY)
            return client.is_running()

        try:
            if client.is_running():
                return True

            pid_file = PIDFile(config.pid_file)
            pid = pid_file.read()
            if pid is not None and not process_exists(pid):
                logger.info("stale_pid_removed", pid=pid)
                pid_file.remove()
                pid = None

            if pid is None:
                spawn_broker(config)
            else:
                logger.info("broker_starting_elsewhere", pid=pid)

            healthy = wait_for_health(client, START_TIMEOUT)
        finally:
            lock.release()

    if not healthy:
        logger.warning("broker_not_healthy", timeout=START_TIMEOUT)
    return healthy


def start_broker(config: BrokerConfig) -> int:
    """Start a detached broker and wait for it to answer."""
    with BrokerClient(config) as client:
        if client.is_running():
            print(f"Broker is already running on {config.base_url}")
            return 0

    if ensure_broker(config):
        pid = PIDFile(config.pid_file).read()
        print(f"Broker started (PID {pid})", file=sys.stderr)
        return 0

    print("Broker failed to start", file=sys.stderr)
    return 1


def stop_broker(config: BrokerConfig, timeout: float = 10.0) -> int:
    """Stop the running broker (SIGTERM, then SIGKILL after ``timeout``)."""
    pid_file = PIDFile(config.pid_file)

    if not pid_file.is_running():
        print("Broker is not running")
        return 0

    pid = pid_file.read()
    print(f"Stopping broker (PID {pid})...")

    if not pid_file.signal(signal.SIGTERM):
        print("Failed to send shutdown signal", file=sys.stderr)
        return 1

    start = time.monotonic()
    while pid is not None and process_exists(pid):
        if time.monotonic() - start > timeout:
            print("Timeout waiting for shutdown, sending SIGKILL...")
            pid_file.signal(signal.SIGKILL)
            time.sleep(0.5)
            break
        time.sleep(0.1)

    if pid is not None and process_exists(pid):
        print("Failed to stop broker", file=sys.stderr)
        return 1

    pid_file.remove()
    print("Broker stopped")
    return 0


def broker_status(config: BrokerConfig) -> int:
    """Print PID and health summary.

    Returns:
        Exit code (0 if running, 1 if not)
    """
    pid_file = PIDFile(config.pid_file)

    with BrokerClient(config) as client:
        if not client.is_running():
            print("Broker is not running")
            return 1
        health = client.health()

    pid = pid_file.read()
    print(f"Broker is running (PID {pid if pid is not None else 'unknown'})")
    print(f"  URL: {config.base_url}")
    print(f"  Listeners: {health.get('connectedClients', 0)}")
    print(f"  Uptime: {health.get('uptime', 0):.0f}s")
    return 0
