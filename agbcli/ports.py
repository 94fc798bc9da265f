"""Choosing a local port for the OAuth callback server."""

from __future__ import annotations

import os
import re
import socket

_DIGITS = re.compile(r"[0-9]+")


def parse_alternative_ports(alternative_ports: str) -> list[str]:
    """Split a comma separated port list, dropping blanks and surrounding spaces."""
    return [part.strip() for part in alternative_ports.split(",") if part.strip()]


def is_valid_port(port: str) -> bool:
    """Return True for a decimal port number between 1 and 65535."""
    if not _DIGITS.fullmatch(port):
        return False
    return 1 <= int(port) <= 65535


def is_port_occupied(port: str) -> bool:
    """Return True when nothing can listen on ``port``; invalid ports count as occupied."""
    if not is_valid_port(port):
        return True
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        if os.name != "nt":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(("", int(port)))
            sock.listen(1)
        except OSError:
            return True
    return False


def select_available_port(default_port: str, alternative_ports: str) -> str:
    """Return the default port if free, else the first free alternative.

    Raises RuntimeError when every candidate is occupied.
    """
    if not is_port_occupied(default_port):
        return default_port
    for port in parse_alternative_ports(alternative_ports):
        if is_valid_port(port) and not is_port_occupied(port):
            return port
    if alternative_ports.strip():
        raise RuntimeError(
            f"default port {default_port} and all alternative ports "
            f"({alternative_ports}) are occupied"
        )
    raise RuntimeError(
        f"default port {default_port} is occupied and no alternative ports were provided"
    )