"""
Broker - The local notification broker.

Components:
- BroadcastHub: set of open listener connections and fan-out
- ConnectionLifecycle: handshake, keepalive, removal of listeners
- IdleShutdown: grace timer armed while nobody is listening
- BrokerController: bind, PID file, signals, graceful shutdown

Example:
    from notify_bridge.broker import BrokerController
    from notify_bridge.config import BrokerConfig

    sys.exit(BrokerController(BrokerConfig()).run())
"""

from .app import create_app
from .connection import ConnectionLifecycle, ConnectionState, ListenerConnection
from .controller import BindError, BrokerController, BrokerServer
from .hub import BroadcastHub
from .idle import IdleShutdown
from .pid import PIDFile, process_exists
from .signals import SignalHandler

__all__ = [
    "BindError",
    "BroadcastHub",
    "BrokerController",
    "BrokerServer",
    "ConnectionLifecycle",
    "ConnectionState",
    "IdleShutdown",
    "ListenerConnection",
    "PIDFile",
    "SignalHandler",
    "create_app",
    "process_exists",
]
