from __future__ import annotations

import argparse
import dataclasses
import json
import logging

from .bench import run_benchmark
from .client import run_client
from .constants import MAX_RETRIES, RETRY_INTERVAL_S, SERVER_PORT
from .net import Impairment
from .result import RetryBudget
from .server import DatagramServer, ReliableServer


def _client(transport: str, args: argparse.Namespace) -> int:
    try:
        result = run_client(
            transport,  # type: ignore[arg-type]
            args.address,
            args.amount,
            args.years,
            args.rate,
            port=args.port,
            budget=RetryBudget(max_attempts=args.max_retries, delay_s=args.timeout),
            impairment=Impairment(getattr(args, "loss_rate", 0.0), getattr(args, "delay_ms", 0)),
        )
    except ValueError as exc:
        logging.error("%s", exc)
        return 1

    if not result.ok:
        if result.failure.terminal:
            logging.error("giving up after %d attempts: %s", result.attempts, result.describe())
        else:
            logging.error("request failed: %s", result.describe())
        return 1

    logging.info("response from server (attempt %d)", result.attempts)
    print(result.value)
    return 0


def cmd_tcp_client(args: argparse.Namespace) -> int:
    return _client("tcp", args)


def cmd_udp_client(args: argparse.Namespace) -> int:
    return _client("udp", args)


def cmd_tcp_server(args: argparse.Namespace) -> int:
    try:
        server = ReliableServer.listening(args.listen_host, args.port, keep_going=args.keep_going)
    except OSError as exc:
        logging.error("bind failed: %s", exc)
        return 1
    try:
        return server.serve_forever()
    finally:
        server.close()


def cmd_udp_server(args: argparse.Namespace) -> int:
    impair = Impairment(args.loss_rate, args.delay_ms)
    try:
        server = DatagramServer.listening(args.listen_host, args.port, impairment=impair)
    except OSError as exc:
        logging.error("bind failed: %s", exc)
        return 1
    try:
        return server.serve_forever()
    finally:
        server.close()


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(
        transport=args.transport,
        request=args.request,
        loss_rate=args.loss_rate,
        delay_ms=args.delay_ms,
        max_retries=args.max_retries,
        timeout_s=args.timeout,
    )
    payload = {"role": "bench", **dataclasses.asdict(r)}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0 if r.ok else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="loanlink", description="Loan payment queries over TCP or UDP.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_retry(x: argparse.ArgumentParser) -> None:
        x.add_argument("--timeout", type=float, default=RETRY_INTERVAL_S, help="seconds per attempt and between attempts")
        x.add_argument("--max-retries", type=int, default=MAX_RETRIES)

    def add_impairment(x: argparse.ArgumentParser) -> None:
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate datagram loss")
        x.add_argument("--delay-ms", type=int, default=0, help="simulate datagram delay")

    def add_query(x: argparse.ArgumentParser) -> None:
        x.add_argument("address", help="server hostname or IPv4 address")
        x.add_argument("amount", help="loan principal, e.g. 150,000 (no currency sign)")
        x.add_argument("years", help="whole number of years")
        x.add_argument("rate", help="annual rate, e.g. 4.69 or 4.69%%")
        x.add_argument("--port", type=int, default=SERVER_PORT)

    tcp_client = sub.add_parser("tcp-client", help="query a TCP server")
    add_query(tcp_client)
    add_retry(tcp_client)
    tcp_client.set_defaults(func=cmd_tcp_client)

    udp_client = sub.add_parser("udp-client", help="query a UDP server")
    add_query(udp_client)
    add_retry(udp_client)
    add_impairment(udp_client)
    udp_client.set_defaults(func=cmd_udp_client)

    tcp_server = sub.add_parser("tcp-server", help="serve loan reports over TCP")
    tcp_server.add_argument("--listen-host", default="0.0.0.0")
    tcp_server.add_argument("--port", type=int, default=SERVER_PORT)
    tcp_server.add_argument(
        "--keep-going",
        action="store_true",
        help="keep serving after a failed session instead of exiting",
    )
    tcp_server.set_defaults(func=cmd_tcp_server)

    udp_server = sub.add_parser("udp-server", help="serve loan reports over UDP")
    udp_server.add_argument("--listen-host", default="0.0.0.0")
    udp_server.add_argument("--port", type=int, default=SERVER_PORT)
    add_impairment(udp_server)
    udp_server.set_defaults(func=cmd_udp_server)

    bench = sub.add_parser("bench", help="one query against a loopback server")
    bench.add_argument("--transport", choices=["tcp", "udp"], default="udp")
    bench.add_argument("--request", default="150000 30 4.69")
    bench.add_argument("--json", action="store_true")
    add_retry(bench)
    add_impairment(bench)
    bench.set_defaults(func=cmd_bench)

    return p


def main(argv: list[str] | None = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
