# desktop_shell/core/ports.py
"""
Desktop Shell – loopback port allocator
=======================================

Checks ports by actually binding them (other local processes may hold a
port only for a moment) and closes the test socket straight away, so
nothing is left listening.  No retries: an exhausted range is reported
as `NoFreePort` and the caller decides what to do.
"""

from __future__ import annotations

import platform
import socket
from typing import Collection

from desktop_shell.core.errors import NoFreePort


def _family(host: str) -> socket.AddressFamily:
    return socket.AF_INET6 if ":" in host else socket.AF_INET


def new_socket(host: str) -> socket.socket:
    """TCP socket with the options every loopback bind here uses (port check and listener)."""
    sock = socket.socket(_family(host), socket.SOCK_STREAM)
    if platform.system() != "Windows":
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    return sock


def is_port_free(host: str, port: int) -> bool:
    """True when `host:port` can be bound right now."""
    with new_socket(host) as s:
        try:
            s.bind((host, port))
        except OSError:
            return False
    return True


def find_free_port(
    host: str,
    start: int,
    end: int,
    exclude: Collection[int] = (),
) -> int:
    """
    Return the first bindable port in the inclusive range [start, end].

    Raises NoFreePort if every port is taken (or excluded).
    """
    for port in range(start, end + 1):
        if port in exclude:
            continue
        if is_port_free(host, port):
            return port
    raise NoFreePort(f"no free port on {host} in range {start}-{end}")
