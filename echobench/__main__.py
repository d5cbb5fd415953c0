"""
Entry point for EchoBench.

Run with: python -m echobench ws://host:port
"""

from __future__ import annotations

import argparse
import asyncio
import atexit
import sys

from .config import (
    CONFIG_FILE,
    TRANSPORTS,
    BenchmarkConfig,
    RuntimeConfig,
    load_config_file,
    apply_config_file,
    save_default_config,
)
from .exceptions import EchoBenchError
from .logging_setup import setup_logging, log
from .orchestrator import RoundOrchestrator


def _cleanup() -> None:
    """Cleanup function called at exit."""
    log("[CLEANUP] EchoBench shutting down...")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="EchoBench - round-based connection ramp-up and echo latency benchmark"
    )
    ap.add_argument(
        "target",
        nargs="?",
        help="Endpoint to benchmark: ws://host:port, wss://... or udp://host:port",
    )
    ap.add_argument(
        "--connections",
        type=int,
        dest="connections_per_round",
        help="Connections added each round (default: 50)",
    )
    ap.add_argument(
        "--requests",
        type=int,
        dest="requests_per_connection",
        help="Requests per connection per round (default: 100)",
    )
    ap.add_argument(
        "--rounds",
        type=int,
        dest="total_rounds",
        help="Number of rounds (default: 5)",
    )
    ap.add_argument(
        "--max-stagnant-ticks",
        type=int,
        help="Tick ceiling for a stalled batch (default: 100 websocket, 20 datagram)",
    )
    ap.add_argument(
        "--success-ratio",
        type=float,
        dest="success_ratio_threshold",
        help="Stalled batches above this success ratio end early (default: 0.9)",
    )
    ap.add_argument(
        "--tick-interval",
        type=float,
        help="Seconds between detector ticks (default: 1.0)",
    )
    ap.add_argument(
        "--transport",
        choices=TRANSPORTS,
        help="Override the transport inferred from the target scheme",
    )
    ap.add_argument(
        "--no-log-file",
        action="store_true",
        help="Disable file logging",
    )
    ap.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    ap.add_argument(
        "--config",
        help=f"Path to config file (default: {CONFIG_FILE})",
    )
    ap.add_argument(
        "--init-config",
        action="store_true",
        help="Generate default configuration file and exit",
    )
    return ap


def build_config(args: argparse.Namespace) -> tuple[BenchmarkConfig, RuntimeConfig]:
    """
    Merge CLI arguments over the config file.

    Raises:
        ValidationError: If the merged settings are invalid
    """
    runtime = RuntimeConfig(config_path=args.config, log_to_file=not args.no_log_file)

    benchmark_args = {
        "target_address": args.target,
        "connections_per_round": args.connections_per_round,
        "requests_per_connection": args.requests_per_connection,
        "total_rounds": args.total_rounds,
        "max_stagnant_ticks": args.max_stagnant_ticks,
        "success_ratio_threshold": args.success_ratio_threshold,
        "tick_interval": args.tick_interval,
        "transport": args.transport,
    }
    apply_config_file(runtime, benchmark_args, load_config_file(args.config))

    # CLI args take precedence over file
    if args.no_log_file:
        runtime.log_to_file = False
    if args.log_level:
        runtime.log_level = args.log_level

    config = BenchmarkConfig(**{k: v for k, v in benchmark_args.items() if v is not None})
    return config, runtime


def main():
    """Main entry point for EchoBench."""
    ap = build_parser()
    args = ap.parse_args()

    # Generate default config if requested
    if args.init_config:
        config_path = args.config or CONFIG_FILE
        if save_default_config(config_path):
            print(f"Default configuration saved to: {config_path}")
            sys.exit(0)
        else:
            print(f"Failed to save configuration to: {config_path}")
            sys.exit(1)

    try:
        config, runtime = build_config(args)
    except EchoBenchError as e:
        ap.error(str(e))

    setup_logging(
        log_to_file=runtime.log_to_file,
        log_to_console=True,
        log_level=runtime.log_level,
    )
    atexit.register(_cleanup)

    orchestrator = RoundOrchestrator(config)
    try:
        asyncio.run(orchestrator.run())
    except EchoBenchError as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
