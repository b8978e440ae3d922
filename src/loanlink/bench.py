from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Literal

from .client import request_over_tcp, request_over_udp
from .connector import ReliableConnector
from .constants import MAX_RETRIES, RETRY_INTERVAL_S
from .net import Impairment
from .resolver import Endpoint
from .result import Result, RetryBudget
from .server import DatagramServer, ReliableServer

DEFAULT_REQUEST = "150000 30 4.69"


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    transport: str
    ok: bool
    attempts: int
    duration_s: float
    datagrams_sent: int
    timeouts: int
    framing_failures: int
    response: str
    failure: str


def _serve_datagrams(server: DatagramServer, stop: threading.Event) -> None:
    server.udp.set_receive_timeout(0.05)
    while not stop.is_set():
        try:
            server.serve_one()
        except TimeoutError:
            continue


def run_benchmark(
    *,
    transport: Literal["tcp", "udp"],
    request: str = DEFAULT_REQUEST,
    loss_rate: float = 0.0,
    delay_ms: int = 0,
    max_retries: int = MAX_RETRIES,
    timeout_s: float = RETRY_INTERVAL_S,
) -> BenchmarkResult:
    """One loan query against a loopback server running in a daemon thread."""
    budget = RetryBudget(max_attempts=max_retries, delay_s=timeout_s)
    impair = Impairment(loss_rate=loss_rate, delay_ms=delay_ms)
    stop = threading.Event()
    datagrams_sent = timeouts = framing_failures = 0
    start = time.monotonic()

    if transport == "tcp":
        tcp_server = ReliableServer.listening("127.0.0.1", 0, keep_going=True)
        host, port = tcp_server.address
        t = threading.Thread(target=tcp_server.serve_forever, kwargs={"max_sessions": 1}, daemon=True)
        t.start()
        try:
            result: Result[str] = request_over_tcp(
                Endpoint(host, port),
                request,
                ReliableConnector(budget=budget),
            )
        finally:
            t.join(timeout=5.0)
            tcp_server.close()
    else:
        udp_server = DatagramServer.listening("127.0.0.1", 0, impairment=impair)
        host, port = udp_server.address
        t = threading.Thread(target=_serve_datagrams, args=(udp_server, stop), daemon=True)
        t.start()
        try:
            result, metrics = request_over_udp(Endpoint(host, port), request, budget=budget, impairment=impair)
        finally:
            stop.set()
            t.join(timeout=5.0)
            udp_server.close()
        datagrams_sent = metrics.datagrams_sent
        timeouts = metrics.timeouts
        framing_failures = metrics.framing_failures

    return BenchmarkResult(
        transport=transport,
        ok=result.ok,
        attempts=result.attempts,
        duration_s=time.monotonic() - start,
        datagrams_sent=datagrams_sent,
        timeouts=timeouts,
        framing_failures=framing_failures,
        response=result.value or "",
        failure=result.describe() if not result.ok else "",
    )
