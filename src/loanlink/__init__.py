"""loanlink: loan payment queries over TCP and UDP.

The interesting part is the transport layer, laid out the way reliability-first
code tends to be:
- bounded-time connection establishment instead of kernel-default stalls
- an explicit acknowledgment envelope plus retransmission on the datagram side
- outcomes as values, so timeouts and exhaustion are testable without sockets

The loan math itself lives in ``loanlink.loan`` and is deliberately boring.
"""

__all__ = []
