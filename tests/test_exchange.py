from __future__ import annotations

import errno
import logging
import socket

from loanlink.constants import ACK_START, MAX_MESSAGE_SIZE
from loanlink.exchange import ReliableExchanger, UnreliableExchanger
from loanlink.framing import AckEnvelope
from loanlink.result import Failure, RetryBudget

REQUEST = "150000 30 4.69"
REPORT = "\n$150000 loan\nmonthly payment is $777.06\ntotal payment is $9324.72"
SERVER = ("127.0.0.1", 13000)


class FakeUdp:
    """Scripted peer: each entry in ``replies`` answers one receive; None means silence."""

    def __init__(self, replies=(), short_by: int = 0, send_error: OSError | None = None):
        self.replies = list(replies)
        self.short_by = short_by
        self.send_error = send_error
        self.sent = []
        self.timeouts = []

    def sendto(self, data: bytes, addr) -> int:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((data, addr))
        return len(data) - self.short_by

    def set_receive_timeout(self, timeout_s) -> None:
        self.timeouts.append(timeout_s)

    def recvfrom(self, bufsize: int = MAX_MESSAGE_SIZE + 1):
        reply = self.replies.pop(0) if self.replies else None
        if reply is None:
            raise TimeoutError("timed out")
        if isinstance(reply, OSError):
            raise reply
        return reply, SERVER


def make_exchanger(udp, **kwargs):
    sleeps = []
    ex = UnreliableExchanger(udp, SERVER, sleep=sleeps.append, **kwargs)
    return ex, sleeps


def test_first_reply_acknowledged():
    udp = FakeUdp([AckEnvelope(REPORT).to_bytes()])
    ex, sleeps = make_exchanger(udp)
    r = ex.run(REQUEST)
    assert r.ok
    assert r.value == REPORT
    assert r.attempts == 1
    assert udp.sent == [(REQUEST.encode(), SERVER)]
    assert udp.timeouts == [1.0]
    assert sleeps == []


def test_silent_peer_gets_exactly_max_attempts():
    udp = FakeUdp()
    ex, sleeps = make_exchanger(udp)
    r = ex.run(REQUEST)
    assert r.failure is Failure.ACK_EXHAUSTED
    assert r.attempts == 10
    assert len(udp.sent) == 10
    assert all(data == REQUEST.encode() for data, _ in udp.sent)
    assert sleeps == [1.0] * 9
    assert ex.metrics.timeouts == 10
    assert ex.metrics.datagrams_sent == 10
    assert ex.metrics.retransmits == 9


def test_dropped_first_reply_resends_once():
    udp = FakeUdp([None, AckEnvelope(REPORT).to_bytes()])
    ex, sleeps = make_exchanger(udp)
    r = ex.run(REQUEST)
    assert r.ok
    assert r.value == REPORT
    assert r.attempts == 2
    assert len(udp.sent) == 2
    assert sleeps == [1.0]


def test_unreachable_peer_is_retried_like_a_timeout():
    refused = ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused")
    udp = FakeUdp([refused, AckEnvelope(REPORT).to_bytes()])
    ex, sleeps = make_exchanger(udp)
    r = ex.run(REQUEST)
    assert r.ok
    assert r.value == REPORT
    assert r.attempts == 2
    assert len(udp.sent) == 2
    assert ex.metrics.timeouts == 1
    assert sleeps == [1.0]


def test_unreachable_peer_until_exhausted():
    refused = ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused")
    udp = FakeUdp([refused] * 3)
    ex, _ = make_exchanger(udp, budget=RetryBudget(max_attempts=3, delay_s=0.1))
    r = ex.run(REQUEST)
    assert r.failure is Failure.ACK_EXHAUSTED
    assert r.attempts == 3
    assert "Connection refused" in r.detail


def test_start_marker_without_end_marker_triggers_resend():
    partial = (ACK_START + REPORT).encode()
    udp = FakeUdp([partial, AckEnvelope(REPORT).to_bytes()])
    ex, _ = make_exchanger(udp)
    r = ex.run(REQUEST)
    assert r.ok
    assert r.value == REPORT
    assert len(udp.sent) == 2
    assert ex.metrics.framing_failures == 1
    assert ex.metrics.timeouts == 0


def test_unframed_replies_until_exhausted():
    udp = FakeUdp([REPORT.encode()] * 3)
    ex, _ = make_exchanger(udp, budget=RetryBudget(max_attempts=3, delay_s=0.1))
    r = ex.run(REQUEST)
    assert r.failure is Failure.ACK_EXHAUSTED
    assert "framing incomplete" in r.detail
    assert udp.timeouts == [0.1] * 3


def test_hard_send_error_aborts_retries():
    udp = FakeUdp(send_error=OSError(errno.ENETUNREACH, "Network is unreachable"))
    ex, sleeps = make_exchanger(udp)
    r = ex.run(REQUEST)
    assert r.failure is Failure.SEND_ERROR
    assert r.attempts == 1
    assert sleeps == []


def test_short_send_only_warns(caplog):
    udp = FakeUdp([AckEnvelope(REPORT).to_bytes()], short_by=1)
    ex, _ = make_exchanger(udp)
    with caplog.at_level(logging.WARNING):
        r = ex.run(REQUEST)
    assert r.ok
    assert "partial send" in caplog.text


def test_oversized_request_is_never_sent():
    udp = FakeUdp()
    ex, _ = make_exchanger(udp)
    r = ex.run("9" * (MAX_MESSAGE_SIZE + 1))
    assert r.failure is Failure.MESSAGE_TOO_LARGE
    assert udp.sent == []


class FakeSession:
    def __init__(self, accept: int | None = None, send_error=None, recv_error=None):
        self.accept = accept
        self.send_error = send_error
        self.recv_error = recv_error

    def send(self, data: bytes) -> int:
        if self.send_error is not None:
            raise self.send_error
        return len(data) if self.accept is None else self.accept

    def recv(self, bufsize: int) -> bytes:
        if self.recv_error is not None:
            raise self.recv_error
        return b""


def test_reliable_roundtrip_over_socketpair():
    client, server = socket.socketpair()
    with client, server:
        ex = ReliableExchanger(client)
        sent = ex.send(REQUEST)
        assert sent.ok and sent.value == len(REQUEST)
        assert server.recv(1024) == REQUEST.encode()
        server.sendall(REPORT.encode())
        r = ex.await_response()
        assert r.ok
        assert r.value == REPORT


def test_reliable_peer_closed():
    client, server = socket.socketpair()
    with client:
        server.close()
        r = ReliableExchanger(client).await_response()
        assert r.failure is Failure.PEER_CLOSED


def test_reliable_partial_send_is_fatal():
    r = ReliableExchanger(FakeSession(accept=3)).send(REQUEST)
    assert r.failure is Failure.PARTIAL_SEND
    assert r.detail == f"3 of {len(REQUEST)} bytes sent"


def test_reliable_send_error():
    r = ReliableExchanger(FakeSession(send_error=BrokenPipeError(errno.EPIPE, "Broken pipe"))).send(REQUEST)
    assert r.failure is Failure.SEND_ERROR


def test_reliable_receive_error():
    session = FakeSession(recv_error=ConnectionResetError(errno.ECONNRESET, "reset"))
    r = ReliableExchanger(session).await_response()
    assert r.failure is Failure.RECEIVE_ERROR


def test_reliable_exchange_stops_after_failed_send():
    r = ReliableExchanger(FakeSession(accept=0)).exchange(REQUEST)
    assert r.failure is Failure.PARTIAL_SEND


def test_reliable_oversized_response():
    client, server = socket.socketpair()
    with client, server:
        server.sendall(b"x" * (MAX_MESSAGE_SIZE + 1))
        r = ReliableExchanger(client).await_response()
        assert r.failure is Failure.MESSAGE_TOO_LARGE
