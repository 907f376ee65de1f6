"""Timing of sync phases."""

import logging
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Deque, Dict, Generator, List, Optional

from .progress import TransferStats

SLOW_PHASE_SECONDS = 30.0

# Oldest timings are dropped past this many phases
MAX_TIMINGS = 100


@dataclass
class PhaseTiming:
    """Wall-clock timing of one sync phase."""
    phase: str
    duration: float
    started_at: float
    context: Optional[Dict[str, Any]] = None
    success: bool = True


class PerformanceLogger:
    """
    Records how long clone, fetch, analysis and integration phases take.

    Timings are kept in memory in the order the phases ran so the facade can
    report them alongside a sync result. Only the most recent
    ``max_timings`` phases are kept.
    """

    def __init__(self, logger_name: str = 'reposync.git_sync.performance', max_timings: int = MAX_TIMINGS):
        self.logger = logging.getLogger(logger_name)
        self._timings: Deque[PhaseTiming] = deque(maxlen=max_timings)

    @contextmanager
    def time_phase(
        self,
        phase: str,
        context: Optional[Dict[str, Any]] = None,
        log_level: int = logging.DEBUG
    ) -> Generator[None, None, None]:
        """
        Time the enclosed block as ``phase``.

        Exceptions propagate unchanged; the phase is recorded as failed.
        """
        started_at = time.time()
        self.logger.log(log_level, f"⏱️ Starting {phase}")

        success = True
        try:
            yield
        except Exception as e:
            success = False
            self.logger.warning(f"❌ {phase} failed after {time.time() - started_at:.3f}s: {e}")
            raise
        finally:
            duration = time.time() - started_at
            self._timings.append(PhaseTiming(
                phase=phase,
                duration=duration,
                started_at=started_at,
                context=context,
                success=success
            ))

            if success:
                self.logger.log(log_level, f"✅ {phase} completed in {duration:.3f}s")
                if context:
                    context_str = ", ".join(f"{k}={v}" for k, v in context.items())
                    self.logger.debug(f"📊 {phase} context: {context_str}")
            if duration > SLOW_PHASE_SECONDS:
                self.logger.warning(f"⚠️ Slow sync phase: '{phase}' took {duration:.3f}s")

    def log_transfer_performance(self, phase: str, url: str, duration: float, stats: TransferStats) -> None:
        """Log object and byte counts of a finished clone or fetch."""
        self.logger.info(
            f"📡 {phase} from {url}: {stats.total_objects} objects, "
            f"{format_data_size(stats.received_bytes)} in {duration:.3f}s"
        )
        if stats.received_bytes and duration > 0:
            speed_mbps = (stats.received_bytes * 8) / (duration * 1_000_000)
            self.logger.debug(f"📡 Transfer speed: {speed_mbps:.2f} Mbps")

    @property
    def timings(self) -> List[PhaseTiming]:
        return list(self._timings)

    def reset(self) -> None:
        self._timings.clear()

    def get_performance_summary(self) -> Dict[str, Any]:
        """
        Summarize recorded phases.

        Returns:
            Dictionary with the phase count, total duration and per-phase
            durations in the order they ran
        """
        if not self._timings:
            return {"total_phases": 0, "total_duration": 0.0, "phases": []}

        return {
            "total_phases": len(self._timings),
            "total_duration": sum(t.duration for t in self._timings),
            "failed_phases": [t.phase for t in self._timings if not t.success],
            "phases": [
                {"phase": t.phase, "duration": round(t.duration, 3), "success": t.success}
                for t in self._timings
            ],
        }


def format_data_size(size_bytes: int) -> str:
    """Format a byte count in human-readable form."""
    if size_bytes < 1024:
        return f"{size_bytes} bytes"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"


_performance_logger: Optional[PerformanceLogger] = None


def get_performance_logger() -> PerformanceLogger:
    """Get or create the shared performance logger."""
    global _performance_logger
    if _performance_logger is None:
        _performance_logger = PerformanceLogger()
    return _performance_logger
