"""Small helpers for debugging output and socket setup."""

from __future__ import annotations

import base64
import ipaddress
import os
import socket
from typing import Tuple, Union

Address = Union[Tuple[str, int], Tuple[str, int, int, int]]


def bytes_to_string(data: bytes) -> str:
    """Render packet contents in a printable form (base64)."""
    return base64.b64encode(bytes(data)).decode("ascii")


def _enable_reuse(sock: socket.socket) -> None:
    if os.name != "nt" and hasattr(socket, "SO_REUSEPORT"):
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
    else:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)


def socket_with_reuse(addr: Address) -> socket.socket:
    """Return a non-blocking UDP socket bound to `addr` with port reuse enabled.

    `addr` must hold an IP address, not a host name.
    """
    version = ipaddress.ip_address(addr[0]).version
    family = socket.AF_INET6 if version == 6 else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        _enable_reuse(sock)
        sock.setblocking(False)
        sock.bind(addr)
    except OSError:
        sock.close()
        raise
    return sock