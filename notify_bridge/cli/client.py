"""
CLI Client - HTTP client for the running broker.

Synchronous, short timeouts: hook scripts must never hang the tool
that called them.
"""

import sys
from typing import Any

import httpx

from ..config import BrokerConfig

__all__ = ["BrokerClient", "print_error"]


class BrokerClient:
    """HTTP client for the broker.

    Example:
        with BrokerClient() as client:
            if client.is_running():
                client.notify("stop", "done")
    """

    def __init__(self, config: BrokerConfig | None = None, timeout: float = 2.0) -> None:
        self.config = config or BrokerConfig()
        self.base_url = self.config.base_url
        self._client = httpx.Client(timeout=timeout)

    def is_running(self) -> bool:
        """Check if the broker is up and answering /health."""
        try:
            response = self._client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def health(self) -> dict[str, Any]:
        """Get health status."""
        response = self._client.get(f"{self.base_url}/health")
        response.raise_for_status()
        return response.json()

    def notify(
        self,
        kind: str,
        message: str | None = None,
        timestamp: str | None = None,
    ) -> dict[str, Any]:
        """Submit one event.

        Returns:
            Broker response ({"success", "clientsNotified"} or {"error"})
        """
        payload: dict[str, Any] = {"type": kind}
        if message is not None:
            payload["message"] = message
        if timestamp is not None:
            payload["timestamp"] = timestamp

        response = self._client.post(f"{self.base_url}/notify", json=payload)
        if response.status_code == 400:
            return response.json()
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "BrokerClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def print_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"Error: {message}", file=sys.stderr)
