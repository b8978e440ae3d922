from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from typing import Callable, Tuple

from .constants import ENCODING, MAX_MESSAGE_SIZE, MAX_PENDING_CONNECTIONS
from .framing import AckEnvelope
from .loan import handle_request
from .net import RECV_BUFSIZE, Impairment, UdpEndpoint, tcp_listener

# text in, report out; raises ValueError for requests it will not answer
Handler = Callable[[str], str]


@dataclass(slots=True)
class ReliableServer:
    """Iterative TCP server: Listening -> Accepting -> Serving -> Listening.

    One session at a time, one request per session, session closed after
    every iteration. An empty read, a receive error or a failed reply stops
    the whole loop unless ``keep_going`` is set. Requests that fail
    validation get no reply but do not stop the server.
    """

    listener: socket.socket
    handler: Handler = handle_request
    keep_going: bool = False

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        backlog: int = MAX_PENDING_CONNECTIONS,
        **kwargs,
    ) -> "ReliableServer":
        return cls(tcp_listener(host, port, backlog), **kwargs)

    @property
    def address(self) -> Tuple[str, int]:
        return self.listener.getsockname()

    def _session_failed(self, reason: str) -> bool:
        logging.error(reason)
        return self.keep_going

    def serve_one(self) -> bool:
        """Serve a single session. Returns False when the server must stop."""
        try:
            session, peer = self.listener.accept()
        except OSError as exc:
            logging.error("accept failed: %s", exc)
            return False

        with session:
            logging.info("client connected from %s:%d", *peer)
            return self._serve_session(session)

    def _serve_session(self, session: socket.socket) -> bool:
        try:
            data = session.recv(RECV_BUFSIZE)
        except OSError as exc:
            return self._session_failed(f"receive failed: {exc}")

        if not data:
            return self._session_failed("no message from client")
        if len(data) > MAX_MESSAGE_SIZE:
            return self._session_failed(f"message from client exceeds {MAX_MESSAGE_SIZE} bytes")

        try:
            message = data.decode(ENCODING)
            logging.info("message from client: %r", message)
            response = self.handler(message)
        except ValueError as exc:
            logging.warning("rejected request: %s", exc)
            return True

        try:
            session.sendall(response.encode(ENCODING))
        except OSError as exc:
            return self._session_failed(f"failed to send response: {exc}")

        logging.info("response sent to client: %r", response)
        return True

    def serve_forever(self, max_sessions: int | None = None) -> int:
        host, port = self.address
        logging.info("server listening on %s:%d", host, port)
        served = 0
        while max_sessions is None or served < max_sessions:
            if not self.serve_one():
                logging.error("stopping server")
                return 1
            served += 1
        return 0

    def close(self) -> None:
        self.listener.close()


@dataclass(slots=True)
class DatagramServer:
    """Iterative UDP server: Waiting -> Dispatching -> Waiting.

    Waits with no timeout. Valid requests get one AckEnvelope reply sent to
    the originating address and nothing more: no confirmation, no resend.
    Retransmission is entirely the client's job. Garbage is logged and
    ignored, never fatal.
    """

    udp: UdpEndpoint
    handler: Handler = handle_request

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        impairment: Impairment | None = None,
        **kwargs,
    ) -> "DatagramServer":
        return cls(UdpEndpoint.listening(host, port, timeout_s=None, impairment=impairment), **kwargs)

    @property
    def address(self) -> Tuple[str, int]:
        return self.udp.local_address

    def serve_one(self) -> bool:
        """Handle one datagram. Returns True when a reply went out."""
        try:
            raw, addr = self.udp.recvfrom(RECV_BUFSIZE)
        except ConnectionError as exc:
            # e.g. an ICMP port-unreachable surfacing from an earlier reply
            logging.warning("receive failed: %s", exc)
            return False

        if not raw:
            logging.warning("ignoring empty datagram from %s:%d", *addr)
            return False
        if len(raw) > MAX_MESSAGE_SIZE:
            logging.warning("ignoring oversized datagram from %s:%d", *addr)
            return False

        try:
            message = raw.decode(ENCODING)
            logging.info("message from %s:%d: %r", addr[0], addr[1], message)
            report = self.handler(message)
        except ValueError as exc:
            logging.warning("ignoring invalid request from %s:%d: %s", addr[0], addr[1], exc)
            return False

        reply = AckEnvelope(report).to_bytes()
        try:
            self.udp.sendto(reply, addr)
        except OSError as exc:
            logging.error("failed to send response: %s", exc)
            return False

        logging.info("response to %s:%d: %r", addr[0], addr[1], report)
        return True

    def serve_forever(self, max_requests: int | None = None) -> int:
        host, port = self.address
        logging.info("server ready on %s:%d", host, port)
        handled = 0
        while max_requests is None or handled < max_requests:
            self.serve_one()
            handled += 1
        return 0

    def close(self) -> None:
        self.udp.close()
