"""Progress aggregation and rendering for transfer and checkout operations."""

import logging
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TextIO, Tuple


@dataclass(frozen=True)
class TransferStats:
    """Snapshot of object transfer counters for one clone or fetch."""
    received_objects: int = 0
    indexed_objects: int = 0
    total_objects: int = 0
    received_bytes: int = 0
    indexed_deltas: int = 0
    total_deltas: int = 0


@dataclass(frozen=True)
class CheckoutProgress:
    """Snapshot of working-tree checkout counters."""
    path: Optional[str] = None
    current: int = 0
    total: int = 0


class ProgressPhase(Enum):
    TRANSFER = "transfer"
    RESOLVING_DELTAS = "resolving_deltas"


class ProgressState:
    """
    Latest transfer and checkout snapshots.

    Transport progress arrives on GitPython's stderr pump thread while checkout
    progress arrives on the calling thread, so every read and write goes
    through one lock. Each record call overwrites the previous snapshot.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._transfer = TransferStats()
        self._checkout = CheckoutProgress()

    def record_transfer(self, stats: TransferStats) -> None:
        with self._lock:
            self._transfer = stats

    def record_checkout(self, progress: CheckoutProgress) -> None:
        with self._lock:
            self._checkout = progress

    def reset(self) -> None:
        with self._lock:
            self._transfer = TransferStats()
            self._checkout = CheckoutProgress()

    def snapshot(self) -> Tuple[TransferStats, CheckoutProgress]:
        with self._lock:
            return self._transfer, self._checkout


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return (100 * part) // whole


class StatusSink(ABC):
    """Destination for single-line status output."""

    @abstractmethod
    def write(self, line: str) -> None:
        """Replace the current status line with ``line``."""

    def finish_line(self) -> None:
        """Keep the current line visible and start a new one."""


class NullStatusSink(StatusSink):
    def write(self, line: str) -> None:
        pass


class LoggingStatusSink(StatusSink):
    """Sends status lines to a debug logger instead of a terminal."""

    def __init__(self, logger_name: str = 'reposync.git_sync.progress'):
        self.logger = logging.getLogger(logger_name)

    def write(self, line: str) -> None:
        self.logger.debug(line)


class StreamStatusSink(StatusSink):
    """Overwrites one terminal line in place using carriage returns."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream
        self._width = 0

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def write(self, line: str) -> None:
        padding = " " * max(0, self._width - len(line))
        self.stream.write(f"\r{line}{padding}")
        self.stream.flush()
        self._width = len(line)

    def finish_line(self) -> None:
        if self._width:
            self.stream.write("\n")
            self.stream.flush()
            self._width = 0


class ProgressReporter:
    """Formats the current ProgressState into one status line."""

    def __init__(self, state: ProgressState, sink: Optional[StatusSink] = None):
        self.state = state
        self.sink = sink if sink is not None else NullStatusSink()
        self._last_phase: Optional[ProgressPhase] = None
        self._sink_lock = threading.Lock()

    @staticmethod
    def phase_of(stats: TransferStats) -> ProgressPhase:
        if stats.total_objects > 0 and stats.received_objects == stats.total_objects:
            return ProgressPhase.RESOLVING_DELTAS
        return ProgressPhase.TRANSFER

    def render(self) -> str:
        stats, checkout = self.state.snapshot()
        return self._format(stats, checkout)

    def _format(self, stats: TransferStats, checkout: CheckoutProgress) -> str:
        if self.phase_of(stats) is ProgressPhase.RESOLVING_DELTAS:
            return f"Resolving deltas {stats.indexed_deltas}/{stats.total_deltas}"

        network_pct = _percent(stats.received_objects, stats.total_objects)
        index_pct = _percent(stats.indexed_objects, stats.total_objects)
        checkout_pct = _percent(checkout.current, checkout.total)
        kbytes = stats.received_bytes // 1024
        return (
            f"downloading {network_pct:3}% ({kbytes:4} kb, "
            f"{stats.received_objects:5}/{stats.total_objects:5})  /  "
            f"idx {index_pct:3}% ({stats.indexed_objects:5}/{stats.total_objects:5})  /  "
            f"chk {checkout_pct:3}% ({checkout.current:4}/{checkout.total:4}) "
            f"{checkout.path or ''}"
        )

    def report(self) -> str:
        """Render the current state and write it to the status sink."""
        stats, checkout = self.state.snapshot()
        phase = self.phase_of(stats)
        line = self._format(stats, checkout)
        with self._sink_lock:
            if self._last_phase is ProgressPhase.TRANSFER and phase is ProgressPhase.RESOLVING_DELTAS:
                self.sink.finish_line()
            self._last_phase = phase
            self.sink.write(line)
        return line

    def finish(self) -> None:
        """End the status line once an operation is complete."""
        with self._sink_lock:
            self.sink.finish_line()
            self._last_phase = None
