"""
Benchmark connection for EchoBench.

A Connection owns one duplex channel for the whole run. Each round it sends a
batch of tagged requests, matches echoed responses back to their records by
tag, and waits on its stagnation detector to decide when the batch is over.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from .channels import ChannelFactory, DuplexChannel, Message
from .codec import TagCodec
from .config import BenchmarkConfig
from .detector import StagnationDetector, TerminationReason
from .exceptions import ChannelClosedError, ConnectError, MalformedResponseError
from .logging_setup import log_debug


def now_ms() -> float:
    """Monotonic clock in milliseconds."""
    return time.perf_counter() * 1000.0


@dataclass
class RequestRecord:
    """Timing of one tagged request within a batch (milliseconds)."""
    sequence_id: int
    start: float
    received: Optional[float] = None
    finish: Optional[float] = None
    server_timestamp: Optional[float] = None

    @property
    def complete(self) -> bool:
        return self.received is not None and self.finish is not None

    @property
    def round_trip(self) -> Optional[float]:
        """finish - start, or None while incomplete."""
        if not self.complete:
            return None
        return self.finish - self.start


ConnectionCallback = Callable[["Connection"], None]


class Connection:
    """
    One persistent channel plus per-batch request bookkeeping.

    Connected once, reused for every round, closed once at the end of the run.
    """

    def __init__(
        self,
        connection_id: int,
        config: BenchmarkConfig,
        channel_factory: ChannelFactory,
        codec: TagCodec,
        clock: Callable[[], float] = now_ms,
        on_connected: Optional[ConnectionCallback] = None,
        on_response: Optional[ConnectionCallback] = None,
    ):
        self.id = connection_id
        self.config = config
        self.codec = codec
        self.channel: Optional[DuplexChannel] = None
        self.keep_alive = True
        self.connected_at: Optional[float] = None

        # Per-batch state, replaced by every send_batch()
        self.current_batch: List[RequestRecord] = []
        self.success_count = 0
        self.detector: Optional[StagnationDetector] = None
        self.termination: Optional[TerminationReason] = None

        # Response accounting across the run
        self.malformed_responses = 0
        self.unmatched_responses = 0
        self.duplicate_responses = 0
        self.late_responses = 0
        self.send_failures = 0

        self._channel_factory = channel_factory
        self._clock = clock
        self._on_connected = on_connected
        self._on_response = on_response
        self._batch_open = False
        self._detector_task: Optional[asyncio.Future] = None

    @property
    def is_connected(self) -> bool:
        return self.channel is not None and self.channel.is_open

    @property
    def recent_success_counts(self) -> List[int]:
        """Success-count samples held by the current batch's detector."""
        return self.detector.recent_counts() if self.detector else []

    async def connect(self, address: Optional[str] = None) -> None:
        """
        Open the channel and start matching inbound responses.

        Raises:
            ConnectError: If the channel could not be opened (not retried)
        """
        address = address or self.config.target_address
        channel = self._channel_factory()
        try:
            await channel.open(address)
        except ConnectError:
            raise
        except OSError as e:
            raise ConnectError(address, str(e)) from e

        channel.on_message(self._handle_message)
        self.channel = channel
        self.connected_at = self._clock()
        log_debug(f"[CONN] #{self.id} connected to {address}")

        if self._on_connected is not None:
            self._on_connected(self)

    def _handle_message(self, message: Message) -> None:
        """Stamp the record matching the response tag; first write wins."""
        try:
            decoded = self.codec.decode(message)
        except MalformedResponseError as e:
            self.malformed_responses += 1
            log_debug(f"[CONN] #{self.id} malformed response: {e}")
            return

        if not self._batch_open:
            self.late_responses += 1
            return

        tag = decoded.tag
        if not 0 <= tag < len(self.current_batch):
            self.unmatched_responses += 1
            log_debug(f"[CONN] #{self.id} response for unknown tag {tag}")
            return

        record = self.current_batch[tag]
        if record.received is not None or record.finish is not None:
            self.duplicate_responses += 1
            return

        now = self._clock()
        record.received = now
        record.finish = now
        record.server_timestamp = decoded.server_timestamp
        self.success_count += 1

        if self._on_response is not None:
            self._on_response(self)

    def batch_complete(self) -> bool:
        """True when every record of the current batch is complete."""
        return bool(self.current_batch) and all(r.complete for r in self.current_batch)

    async def send_batch(self) -> List[RequestRecord]:
        """
        Send one round's batch and wait until the detector ends it.

        Requests go out in strictly increasing tag order without waiting for
        replies. Requests still unanswered when the batch ends stay incomplete.

        Returns:
            The batch's records, indexed by sequence id

        Raises:
            ChannelClosedError: If the connection was never opened
        """
        if self.channel is None:
            raise ChannelClosedError(f"Connection #{self.id} is not connected")

        size = self.config.requests_per_connection
        self.success_count = 0
        self.termination = None
        self.current_batch = []
        self.detector = StagnationDetector(
            batch_size=size,
            max_stagnant_ticks=self.config.max_stagnant_ticks,
            success_ratio_threshold=self.config.success_ratio_threshold,
            window=self.config.stagnation_window,
        )
        self._batch_open = True

        for sequence_id in range(size):
            self.current_batch.append(RequestRecord(sequence_id=sequence_id, start=self._clock()))
            payload = self.codec.encode(sequence_id)
            try:
                await self.channel.send(payload, text=self.codec.text)
            except ChannelClosedError as e:
                self.send_failures += 1
                log_debug(f"[CONN] #{self.id} send {sequence_id} failed: {e}")

        self._detector_task = asyncio.ensure_future(self._watch())
        try:
            self.termination = await self._detector_task
        finally:
            self._detector_task = None
            self._batch_open = False

        log_debug(
            f"[DETECT] #{self.id} batch ended after {self.detector.ticks} ticks: "
            f"{self.termination.value} ({self.success_count}/{size})"
        )
        return list(self.current_batch)

    async def _watch(self) -> TerminationReason:
        """Tick the detector until it reports a termination reason."""
        while True:
            await asyncio.sleep(self.config.tick_interval)
            reason = self.detector.tick(self.success_count, self.batch_complete())
            if reason is not None:
                return reason

    async def close(self) -> None:
        """Stop the detector and close the channel. Call once."""
        self.keep_alive = False
        if self._detector_task is not None:
            self._detector_task.cancel()
        if self.channel is not None:
            self.channel.on_message(None)
            await self.channel.close()
        log_debug(f"[CONN] #{self.id} closed")
