"""
Transport layer: sockets, connections, the response channel and the
worker pool. Handlers never import from here directly; they only see
Request, Response and ResponseSender.
"""

from .connection import Connection, ConnectionState
from .exchange import Exchange
from .socket_server import SocketServer
from .thread_pool import ThreadPool, WorkerState

__all__ = [
    "Connection",
    "ConnectionState",
    "Exchange",
    "SocketServer",
    "ThreadPool",
    "WorkerState",
]
