from __future__ import annotations

import logging
import time
from typing import Callable, Literal, Tuple

from .connector import ReliableConnector
from .constants import SERVER_PORT
from .exchange import ExchangeMetrics, ReliableExchanger, UnreliableExchanger
from .loan import build_request
from .net import Impairment, UdpEndpoint
from .resolver import Endpoint, resolve
from .result import Result, RetryBudget

Transport = Literal["tcp", "udp"]


def request_over_tcp(
    endpoint: Endpoint,
    message: str,
    connector: ReliableConnector | None = None,
) -> Result[str]:
    connector = connector or ReliableConnector()
    connected = connector.connect(endpoint)
    if not connected.ok:
        return Result.fail(connected.failure, connected.detail, attempts=connected.attempts)

    # the session lives for exactly this one exchange
    with connected.value as session:
        logging.info("awaiting response on port %d", session.getsockname()[1])
        return ReliableExchanger(session).exchange(message)


def request_over_udp(
    endpoint: Endpoint,
    message: str,
    budget: RetryBudget | None = None,
    impairment: Impairment | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[Result[str], ExchangeMetrics]:
    with UdpEndpoint.sending(impairment=impairment) as udp:
        exchanger = UnreliableExchanger.to_endpoint(
            udp,
            endpoint,
            budget=budget or RetryBudget(),
            sleep=sleep,
        )
        return exchanger.run(message), exchanger.metrics


def run_client(
    transport: Transport,
    address: str,
    amount: str,
    years: str,
    rate: str,
    *,
    port: int = SERVER_PORT,
    budget: RetryBudget | None = None,
    impairment: Impairment | None = None,
) -> Result[str]:
    """Validate, resolve, and run one loan query. Raises ValueError on bad input."""
    message = build_request(amount, years, rate)
    endpoint = resolve(address, port)
    logging.info("address is valid: %s", endpoint.describe(address))

    budget = budget or RetryBudget()
    if transport == "tcp":
        return request_over_tcp(endpoint, message, ReliableConnector(budget=budget))

    result, metrics = request_over_udp(endpoint, message, budget=budget, impairment=impairment)
    logging.debug(
        "udp exchange: sent=%d timeouts=%d framing_failures=%d seconds=%.3f",
        metrics.datagrams_sent,
        metrics.timeouts,
        metrics.framing_failures,
        metrics.duration_s,
    )
    return result
