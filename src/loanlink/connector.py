from __future__ import annotations

import errno
import logging
import os
import select
import socket
import time
from dataclasses import dataclass, field
from typing import Callable

from .resolver import Endpoint
from .result import Failure, Result, RetryBudget

_IN_PROGRESS = frozenset({errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY})


def new_tcp_socket() -> socket.socket:
    return socket.socket(socket.AF_INET, socket.SOCK_STREAM)


def wait_writable(sock: socket.socket, timeout_s: float) -> bool:
    _, writable, _ = select.select([], [sock], [], timeout_s)
    return bool(writable)


@dataclass(slots=True)
class ReliableConnector:
    """Bounded-time TCP connection establishment.

    Each attempt goes Idle -> Connecting -> Connected | Failed on a brand-new
    socket. The socket is non-blocking while connecting so an unreachable
    host costs at most ``budget.delay_s`` instead of the kernel's multi-minute
    SYN retry schedule, and is put back into blocking mode before it is
    handed out; a still non-blocking session would make the later response
    read return immediately with nothing.

    Failed attempts close their socket and the whole attempt is retried until
    the budget runs out, at which point CONNECTION_EXHAUSTED is returned.
    """

    budget: RetryBudget = field(default_factory=RetryBudget)
    sleep: Callable[[float], None] = time.sleep
    socket_factory: Callable[[], socket.socket] = new_tcp_socket
    wait_writable: Callable[[socket.socket, float], bool] = wait_writable

    def attempt(self, endpoint: Endpoint, timeout_s: float) -> Result[socket.socket]:
        try:
            sock = self.socket_factory()
        except OSError as exc:
            return Result.fail(Failure.CONNECTION_OTHER, f"socket creation failed: {exc}")

        try:
            outcome = self._connect(sock, endpoint, timeout_s)
        except OSError as exc:
            outcome = Result.fail(Failure.CONNECTION_OTHER, str(exc))

        if not outcome.ok:
            sock.close()
        return outcome

    def _connect(self, sock: socket.socket, endpoint: Endpoint, timeout_s: float) -> Result[socket.socket]:
        sock.setblocking(False)
        err = sock.connect_ex(endpoint.address)

        if err in _IN_PROGRESS:
            if not self.wait_writable(sock, timeout_s):
                return Result.fail(Failure.CONNECTION_TIMEOUT, f"no handshake within {timeout_s:g}s")
            err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)

        if err == 0:
            sock.setblocking(True)
            return Result.success(sock)
        if err == errno.ECONNREFUSED:
            return Result.fail(Failure.CONNECTION_REFUSED, "server is not accepting connections")
        return Result.fail(Failure.CONNECTION_OTHER, os.strerror(err))

    def connect(self, endpoint: Endpoint, budget: RetryBudget | None = None) -> Result[socket.socket]:
        budget = budget or self.budget
        last: Result[socket.socket] | None = None

        while not budget.exhausted:
            budget = budget.spend()
            last = self.attempt(endpoint, budget.delay_s)
            if last.ok:
                logging.info("connected to %s (attempt %d)", endpoint, budget.attempts)
                return Result.success(last.value, attempts=budget.attempts)

            logging.warning(
                "connect attempt %d/%d to %s: %s",
                budget.attempts,
                budget.max_attempts,
                endpoint,
                last.describe(),
            )
            if not budget.exhausted:
                self.sleep(budget.delay_s)

        logging.error("failed to connect to %s after %d attempts", endpoint, budget.attempts)
        return Result.fail(
            Failure.CONNECTION_EXHAUSTED,
            last.describe() if last else "",
            attempts=budget.attempts,
        )
