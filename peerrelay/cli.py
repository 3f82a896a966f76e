"""
Command-line entry point.

Usage:
    peerrelay --bind 0.0.0.0:9001
    PEERRELAY_IDLE_TIMEOUT=60 peerrelay
"""

import argparse
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from .config import OverflowPolicy, RelayConfig, parse_bind


LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="peerrelay",
        description="WebSocket signaling relay for WebRTC peers",
    )
    parser.add_argument("--bind", metavar="HOST:PORT",
                        help="Bind address (default: $PEERRELAY_BIND or 0.0.0.0:9001)")
    parser.add_argument("--log-level", choices=["critical", "error", "warning", "info", "debug"],
                        help="Log level (default: info)")
    parser.add_argument("--idle-timeout", type=float, metavar="SECONDS",
                        help="Disconnect peers silent for this long (0 disables)")
    parser.add_argument("--max-session-members", type=int, metavar="N",
                        help="Soft member limit for one-to-many and many-to-many sessions")
    parser.add_argument("--queue-size", type=int, metavar="N", dest="outbound_queue_size",
                        help="Outbound frames buffered per peer")
    parser.add_argument("--overflow-policy", choices=[p.value for p in OverflowPolicy],
                        help="What to do when a peer's outbound queue is full")
    return parser


def config_from_args(args: argparse.Namespace) -> RelayConfig:
    overrides = {
        "log_level": args.log_level,
        "idle_timeout": args.idle_timeout,
        "max_session_members": args.max_session_members,
        "outbound_queue_size": args.outbound_queue_size,
        "overflow_policy": args.overflow_policy,
    }
    if args.bind:
        overrides["host"], overrides["port"] = parse_bind(args.bind)
    return RelayConfig.from_env(**overrides)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
    except (ValueError, ValidationError) as e:
        parser.error(str(e))

    # uvicorn's "trace" has no stdlib counterpart
    level = "DEBUG" if config.log_level == "trace" else config.log_level.upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)

    # Imported late so --help works without the server stack loaded
    from .http.server import run

    try:
        run(config)
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
