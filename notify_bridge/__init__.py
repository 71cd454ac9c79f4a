"""
Claude Notify Bridge - Desktop notifications for Claude Code hook events.

A local broker accepts event postings over HTTP and fans them out to
every connected listener over a WebSocket channel. Listeners render
them as desktop notifications according to user settings.
"""

__version__ = "1.0.0"

from .config import BrokerConfig, ClientConfig, client_config, config

__all__ = [
    "__version__",
    "BrokerConfig",
    "ClientConfig",
    "client_config",
    "config",
]
