from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import Tuple

from .constants import SERVER_PORT


class ResolutionError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class Endpoint:
    host: str
    port: int
    family: int = socket.AF_INET

    @property
    def address(self) -> Tuple[str, int]:
        return (self.host, self.port)

    def describe(self, original: str) -> str:
        # "localhost -> 127.0.0.1", but just "127.0.0.1" when nothing changed
        if original != self.host:
            return f"{original} -> {self.host}"
        return self.host

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def resolve(address: str, port: int = SERVER_PORT) -> Endpoint:
    """Map a hostname or dotted IPv4 literal to an IPv4 endpoint.

    Raises ResolutionError when nothing IPv4 comes back. There is no retry;
    the caller decides whether that ends the run.
    """
    if not address:
        raise ResolutionError("empty address")
    try:
        infos = socket.getaddrinfo(address, port, socket.AF_INET)
    except (socket.gaierror, UnicodeError) as exc:
        raise ResolutionError(f"invalid address or hostname {address!r}: {exc}") from exc

    for family, _type, _proto, _canon, sockaddr in infos:
        if family == socket.AF_INET:
            return Endpoint(host=sockaddr[0], port=port)
    raise ResolutionError(f"no IPv4 address for {address!r}")
