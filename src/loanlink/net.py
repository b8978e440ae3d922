from __future__ import annotations

import logging
import random
import socket
import time
from dataclasses import dataclass
from typing import Tuple

from .constants import MAX_MESSAGE_SIZE, MAX_PENDING_CONNECTIONS

# one byte past the limit so oversized datagrams are detectable instead of silently cut
RECV_BUFSIZE = MAX_MESSAGE_SIZE + 1


@dataclass(frozen=True, slots=True)
class Impairment:
    """Simulated loss/delay, applied to datagrams in both directions."""

    loss_rate: float = 0.0
    delay_ms: int = 0

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and random.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class UdpEndpoint:
    def __init__(self, sock: socket.socket, impairment: Impairment | None = None, name: str = "udp"):
        self.sock = sock
        self.impairment = impairment or Impairment()
        self.name = name

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        timeout_s: float | None = None,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, port))
        except OSError:
            sock.close()
            raise
        sock.settimeout(timeout_s)
        return cls(sock, impairment, name="server")

    @classmethod
    def sending(
        cls,
        timeout_s: float | None = None,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.settimeout(timeout_s)
        return cls(sock, impairment, name="client")

    @property
    def local_address(self) -> Tuple[str, int]:
        return self.sock.getsockname()

    def set_receive_timeout(self, timeout_s: float | None) -> None:
        self.sock.settimeout(timeout_s)

    def sendto(self, data: bytes, addr: Tuple[str, int]) -> int:
        if self.impairment.should_drop():
            logging.debug("[%s] dropped outbound %d bytes", self.name, len(data))
            return len(data)
        self.impairment.sleep_if_needed()
        return self.sock.sendto(data, addr)

    def recvfrom(self, bufsize: int = RECV_BUFSIZE) -> Tuple[bytes, Tuple[str, int]]:
        while True:
            data, addr = self.sock.recvfrom(bufsize)
            if self.impairment.should_drop():
                logging.debug("[%s] dropped inbound %d bytes", self.name, len(data))
                continue
            self.impairment.sleep_if_needed()
            return data, addr

    def close(self) -> None:
        self.sock.close()

    def __enter__(self) -> "UdpEndpoint":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def tcp_listener(host: str, port: int, backlog: int = MAX_PENDING_CONNECTIONS) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        # quick rebind after a restart instead of "address already in use"
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    return sock
