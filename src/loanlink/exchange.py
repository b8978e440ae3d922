from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass, field
from typing import Callable, Tuple

from .constants import ENCODING, MAX_MESSAGE_SIZE
from .framing import AckEnvelope
from .net import RECV_BUFSIZE, UdpEndpoint
from .resolver import Endpoint
from .result import Failure, Result, RetryBudget


@dataclass(slots=True)
class ExchangeMetrics:
    datagrams_sent: int = 0
    timeouts: int = 0
    framing_failures: int = 0
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def retransmits(self) -> int:
        return max(0, self.datagrams_sent - 1)


class ReliableExchanger:
    """One request, one response over an established TCP session.

    There is no framing on this transport: one ``send`` is expected to map to
    one ``recv`` on the other side. Nothing here retries.
    """

    def __init__(self, session: socket.socket):
        self.session = session

    def send(self, message: str) -> Result[int]:
        data = message.encode(ENCODING)
        if len(data) > MAX_MESSAGE_SIZE:
            return Result.fail(Failure.MESSAGE_TOO_LARGE, f"{len(data)} > {MAX_MESSAGE_SIZE} bytes")
        try:
            sent = self.session.send(data)
        except OSError as exc:
            logging.error("failed to send message: %s", exc)
            return Result.fail(Failure.SEND_ERROR, str(exc))

        if sent < len(data):
            # in-order stream: a short write means a broken stream, not something to patch up
            logging.error("partial send: %d of %d bytes", sent, len(data))
            return Result.fail(Failure.PARTIAL_SEND, f"{sent} of {len(data)} bytes sent")

        logging.info("sent message (%d bytes)", sent)
        return Result.success(sent)

    def await_response(self) -> Result[str]:
        try:
            data = self.session.recv(RECV_BUFSIZE)
        except OSError as exc:
            logging.error("receive failed: %s", exc)
            return Result.fail(Failure.RECEIVE_ERROR, str(exc))

        if not data:
            logging.warning("connection closed by peer; 0 bytes received")
            return Result.fail(Failure.PEER_CLOSED, "0 bytes received")
        if len(data) > MAX_MESSAGE_SIZE:
            return Result.fail(Failure.MESSAGE_TOO_LARGE, f"response exceeds {MAX_MESSAGE_SIZE} bytes")

        try:
            text = data.decode(ENCODING)
        except UnicodeDecodeError as exc:
            return Result.fail(Failure.RECEIVE_ERROR, f"response is not {ENCODING}: {exc}")
        logging.info("received response (%d bytes)", len(data))
        return Result.success(text)

    def exchange(self, message: str) -> Result[str]:
        sent = self.send(message)
        if not sent.ok:
            return Result.fail(sent.failure, sent.detail)
        return self.await_response()


@dataclass(slots=True)
class UnreliableExchanger:
    """Send-and-wait over UDP with an application-level acknowledgment.

    Each cycle sends the whole request, then waits up to ``budget.delay_s``
    for an AckEnvelope. A timeout and a reply missing either marker are
    handled the same way: the request is sent again. That is only safe
    because the server's work is a pure function of the request. The loop
    ends on the first fully framed reply, on a hard send error, or when the
    budget is spent (ACK_EXHAUSTED).
    """

    udp: UdpEndpoint
    dest: Tuple[str, int]
    budget: RetryBudget = field(default_factory=RetryBudget)
    sleep: Callable[[float], None] = time.sleep
    metrics: ExchangeMetrics = field(default_factory=ExchangeMetrics)

    @classmethod
    def to_endpoint(cls, udp: UdpEndpoint, endpoint: Endpoint, **kwargs) -> "UnreliableExchanger":
        return cls(udp, endpoint.address, **kwargs)

    def _send_once(self, data: bytes) -> Result[int]:
        try:
            sent = self.udp.sendto(data, self.dest)
        except OSError as exc:
            logging.error("failed to send message: %s", exc)
            return Result.fail(Failure.SEND_ERROR, str(exc))

        self.metrics.datagrams_sent += 1
        if sent < len(data):
            logging.warning("partial send: %d of %d bytes", sent, len(data))
        else:
            logging.info("sent message (%d bytes)", sent)
        return Result.success(sent)

    def _await_ack(self, timeout_s: float) -> Result[str]:
        self.udp.set_receive_timeout(timeout_s)
        try:
            raw, _ = self.udp.recvfrom(RECV_BUFSIZE)
        except TimeoutError:
            self.metrics.timeouts += 1
            return Result.fail(Failure.ACK_TIMEOUT, f"no response after {timeout_s:g}s")
        except ConnectionError as exc:
            # e.g. ICMP port unreachable reported for an earlier send
            self.metrics.timeouts += 1
            return Result.fail(Failure.ACK_TIMEOUT, f"no response: {exc}")

        envelope = AckEnvelope.parse(raw)
        if envelope is None:
            self.metrics.framing_failures += 1
            return Result.fail(Failure.ACK_FRAMING_INCOMPLETE, f"{len(raw)} bytes without both markers")
        return Result.success(envelope.payload)

    def run(self, message: str) -> Result[str]:
        data = message.encode(ENCODING)
        if len(data) > MAX_MESSAGE_SIZE:
            return Result.fail(Failure.MESSAGE_TOO_LARGE, f"{len(data)} > {MAX_MESSAGE_SIZE} bytes", attempts=0)

        budget = self.budget
        last: Result[str] | None = None
        try:
            while not budget.exhausted:
                budget = budget.spend()

                sent = self._send_once(data)
                if not sent.ok:
                    return Result.fail(sent.failure, sent.detail, attempts=budget.attempts)

                last = self._await_ack(budget.delay_s)
                if last.ok:
                    logging.info("acknowledged response (attempt %d)", budget.attempts)
                    return Result.success(last.value, attempts=budget.attempts)

                logging.warning(
                    "attempt %d/%d: %s",
                    budget.attempts,
                    budget.max_attempts,
                    last.describe(),
                )
                if not budget.exhausted:
                    self.sleep(budget.delay_s)
        finally:
            self.metrics.end_ts = time.monotonic()

        logging.error("no acknowledgment after %d attempts", budget.attempts)
        return Result.fail(
            Failure.ACK_EXHAUSTED,
            last.describe() if last else "",
            attempts=budget.attempts,
        )
