"""
Configuration for EchoBench.

Defaults, paths, and the immutable benchmark configuration are centralized here.
"""

from __future__ import annotations

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

import yaml

from .exceptions import InvalidConfigError, UnknownTransportError


# ---------------- Benchmark Defaults ----------------

DEFAULT_TARGET = "ws://127.0.0.1:8080"
DEFAULT_CONNECTIONS_PER_ROUND = 50
DEFAULT_REQUESTS_PER_CONNECTION = 100
DEFAULT_TOTAL_ROUNDS = 5

# Stagnation detector
STAGNATION_WINDOW = 20  # Samples of success count kept per connection
DEFAULT_SUCCESS_RATIO_THRESHOLD = 0.9
DEFAULT_TICK_INTERVAL = 1.0  # Seconds between detector ticks


# ---------------- Transports ----------------

TRANSPORT_WEBSOCKET = "websocket"
TRANSPORT_DATAGRAM = "datagram"
TRANSPORTS = (TRANSPORT_WEBSOCKET, TRANSPORT_DATAGRAM)

# Address scheme -> transport
SCHEME_TRANSPORTS = {
    "ws": TRANSPORT_WEBSOCKET,
    "wss": TRANSPORT_WEBSOCKET,
    "udp": TRANSPORT_DATAGRAM,
}

# Stagnant tick ceiling when none is given
MAX_STAGNANT_TICKS = {
    TRANSPORT_WEBSOCKET: 100,
    TRANSPORT_DATAGRAM: 20,
}

# The datagram frame carries the tag as a single ASCII digit
DATAGRAM_MAX_REQUESTS = 10


# ---------------- File Paths ----------------

APPDIR = os.path.join(os.path.expanduser("~"), ".echobench")
LOG_DIR = os.path.join(APPDIR, "logs")
CONFIG_FILE = os.path.join(APPDIR, "config.yaml")


# ---------------- Logging Configuration ----------------

LOG_FILE = os.path.join(LOG_DIR, "echobench.log")
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB per log file
LOG_BACKUP_COUNT = 5  # Keep 5 rotated log files


def transport_for_address(address: str) -> str:
    """
    Infer the transport from a target address scheme.

    Raises:
        UnknownTransportError: If the scheme maps to no transport
    """
    scheme = urlparse(address).scheme.lower()
    if scheme not in SCHEME_TRANSPORTS:
        raise UnknownTransportError(scheme or address)
    return SCHEME_TRANSPORTS[scheme]


@dataclass(frozen=True)
class BenchmarkConfig:
    """Read-only settings shared by every component for one run."""

    target_address: str = DEFAULT_TARGET
    connections_per_round: int = DEFAULT_CONNECTIONS_PER_ROUND
    requests_per_connection: int = DEFAULT_REQUESTS_PER_CONNECTION
    total_rounds: int = DEFAULT_TOTAL_ROUNDS
    transport: Optional[str] = None
    max_stagnant_ticks: Optional[int] = None
    success_ratio_threshold: float = DEFAULT_SUCCESS_RATIO_THRESHOLD
    tick_interval: float = DEFAULT_TICK_INTERVAL
    stagnation_window: int = field(default=STAGNATION_WINDOW, init=False)

    def __post_init__(self):
        """Fill transport-dependent defaults and validate."""
        transport = self.transport or transport_for_address(self.target_address)
        if transport not in TRANSPORTS:
            raise UnknownTransportError(transport)
        object.__setattr__(self, "transport", transport)

        if self.max_stagnant_ticks is None:
            object.__setattr__(self, "max_stagnant_ticks", MAX_STAGNANT_TICKS[transport])

        for name in (
            "connections_per_round",
            "requests_per_connection",
            "total_rounds",
            "max_stagnant_ticks",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise InvalidConfigError(name, value, "must be a positive integer")

        if not 0.0 < self.success_ratio_threshold <= 1.0:
            raise InvalidConfigError(
                "success_ratio_threshold", self.success_ratio_threshold, "must be in (0, 1]"
            )
        if self.tick_interval <= 0:
            raise InvalidConfigError("tick_interval", self.tick_interval, "must be positive")

        if transport == TRANSPORT_DATAGRAM and self.requests_per_connection > DATAGRAM_MAX_REQUESTS:
            raise InvalidConfigError(
                "requests_per_connection",
                self.requests_per_connection,
                f"datagram frames carry a single-digit tag (max {DATAGRAM_MAX_REQUESTS})",
            )

    def cumulative_connections(self, round_index: int) -> int:
        """Connections alive once the given round has ramped up."""
        return self.connections_per_round * (round_index + 1)


@dataclass
class RuntimeConfig:
    """Process-level settings that can be modified at startup."""

    config_path: Optional[str] = None
    log_to_file: bool = True
    log_level: str = "INFO"

    def __post_init__(self):
        """Ensure directories exist."""
        if self.log_to_file:
            Path(LOG_DIR).mkdir(parents=True, exist_ok=True)


def load_config_file(path: Optional[str] = None) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to config file (defaults to CONFIG_FILE)

    Returns:
        Configuration dict (empty if file doesn't exist)

    Raises:
        InvalidConfigError: If the file is not valid YAML
    """
    config_path = path or CONFIG_FILE

    if not os.path.exists(config_path):
        return {}

    with open(config_path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InvalidConfigError("config_file", config_path, str(e)) from e
    return data if isinstance(data, dict) else {}


DEFAULT_CONFIG_TEMPLATE = """\
# EchoBench Configuration

# Endpoint to benchmark (ws://, wss:// or udp://)
# target: ws://127.0.0.1:8080

benchmark:
  # Connections added each round (cumulative across rounds)
  connections_per_round: 50
  # Tagged echo requests per connection per round
  requests_per_connection: 100
  # Number of rounds
  rounds: 5
  # Stagnant ticks before a batch is abandoned (default: 100 websocket, 20 datagram)
  # max_stagnant_ticks: 100
  # A stalled batch ends early once this share of requests succeeded
  success_ratio: 0.9
  # Seconds between detector ticks
  tick_interval: 1.0

# Logging settings
logging:
  # Enable file logging
  to_file: true
  # Log level: DEBUG, INFO, WARNING, ERROR
  level: INFO
"""


def save_default_config(path: Optional[str] = None) -> bool:
    """
    Save default configuration file.

    Args:
        path: Path to config file (defaults to CONFIG_FILE)

    Returns:
        True if saved successfully
    """
    config_path = path or CONFIG_FILE

    try:
        Path(config_path).parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            f.write(DEFAULT_CONFIG_TEMPLATE)
        return True
    except OSError:
        return False


# YAML key under "benchmark" -> BenchmarkConfig field
_BENCHMARK_KEYS = {
    "connections_per_round": "connections_per_round",
    "requests_per_connection": "requests_per_connection",
    "rounds": "total_rounds",
    "max_stagnant_ticks": "max_stagnant_ticks",
    "success_ratio": "success_ratio_threshold",
    "tick_interval": "tick_interval",
    "transport": "transport",
}


def apply_config_file(
    runtime_config: RuntimeConfig, benchmark_args: dict, file_config: dict
) -> None:
    """
    Apply file configuration as defaults.

    Values already present in benchmark_args (from the CLI) take precedence.
    benchmark_args is updated in place with BenchmarkConfig keyword arguments.
    """
    if benchmark_args.get("target_address") is None and "target" in file_config:
        benchmark_args["target_address"] = file_config["target"]

    bench_config = file_config.get("benchmark", {}) or {}
    for key, field_name in _BENCHMARK_KEYS.items():
        if key in bench_config and benchmark_args.get(field_name) is None:
            benchmark_args[field_name] = bench_config[key]

    # Logging settings
    logging_config = file_config.get("logging", {}) or {}
    if "to_file" in logging_config:
        runtime_config.log_to_file = logging_config["to_file"]
    if "level" in logging_config:
        runtime_config.log_level = logging_config["level"]
