#!/usr/bin/env python3
"""
Unit tests for progress aggregation, rendering and the transport progress adapter.
"""

import io
import threading
import unittest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent))

from git import RemoteProgress

from reposync.git_sync.progress import (
    CheckoutProgress,
    LoggingStatusSink,
    NullStatusSink,
    ProgressPhase,
    ProgressReporter,
    ProgressState,
    StatusSink,
    StreamStatusSink,
    TransferStats,
)
from reposync.git_sync.transfer import TransferProgressHandler, parse_transferred_bytes


class RecordingSink(StatusSink):
    """Collects written lines and line breaks for assertions."""

    def __init__(self):
        self.events = []

    def write(self, line):
        self.events.append(("write", line))

    def finish_line(self):
        self.events.append(("finish", None))


class TestProgressState(unittest.TestCase):

    def test_last_write_wins(self):
        state = ProgressState()
        state.record_transfer(TransferStats(received_objects=1, total_objects=10))
        state.record_transfer(TransferStats(received_objects=4, total_objects=10))
        state.record_checkout(CheckoutProgress(path="a.txt", current=1, total=3))

        stats, checkout = state.snapshot()
        self.assertEqual(stats.received_objects, 4)
        self.assertEqual(checkout, CheckoutProgress(path="a.txt", current=1, total=3))

    def test_reset_clears_both_snapshots(self):
        state = ProgressState()
        state.record_transfer(TransferStats(received_objects=5, total_objects=5))
        state.record_checkout(CheckoutProgress(path="x", current=1, total=1))

        state.reset()

        self.assertEqual(state.snapshot(), (TransferStats(), CheckoutProgress()))

    def test_concurrent_records_leave_a_consistent_snapshot(self):
        state = ProgressState()

        def record_transfers():
            for i in range(500):
                state.record_transfer(TransferStats(received_objects=i, total_objects=500))

        def record_checkouts():
            for i in range(500):
                state.record_checkout(CheckoutProgress(path=f"f{i}", current=i, total=500))

        threads = [threading.Thread(target=record_transfers), threading.Thread(target=record_checkouts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stats, checkout = state.snapshot()
        self.assertEqual(stats.received_objects, 499)
        self.assertEqual(checkout.current, 499)


class TestProgressReporter(unittest.TestCase):

    def setUp(self):
        self.state = ProgressState()
        self.sink = RecordingSink()
        self.reporter = ProgressReporter(self.state, self.sink)

    def test_transfer_line_format(self):
        self.state.record_transfer(TransferStats(
            received_objects=5, indexed_objects=5, total_objects=10, received_bytes=2048
        ))

        self.assertEqual(
            self.reporter.render(),
            "downloading  50% (   2 kb,     5/   10)  /  "
            "idx  50% (    5/   10)  /  chk   0% (   0/   0) "
        )

    def test_checkout_path_is_appended(self):
        self.state.record_transfer(TransferStats(received_objects=1, indexed_objects=1, total_objects=4))
        self.state.record_checkout(CheckoutProgress(path="src/app.txt", current=1, total=4))

        line = self.reporter.render()

        self.assertIn("chk  25% (   1/   4) src/app.txt", line)

    def test_zero_totals_render_zero_percent(self):
        line = self.reporter.render()

        self.assertTrue(line.startswith("downloading   0% (   0 kb,     0/    0)"))
        self.assertIn("idx   0%", line)
        self.assertIn("chk   0%", line)

    def test_checkout_only_renders_transfer_phase(self):
        self.state.record_checkout(CheckoutProgress(path="a", current=2, total=4))

        line = self.reporter.render()

        self.assertTrue(line.startswith("downloading   0%"))
        self.assertIn("chk  50% (   2/   4) a", line)

    def test_delta_phase_when_all_objects_received(self):
        self.state.record_transfer(TransferStats(
            received_objects=10, indexed_objects=10, total_objects=10, indexed_deltas=3, total_deltas=7
        ))

        self.assertEqual(self.reporter.render(), "Resolving deltas 3/7")

    def test_phase_of(self):
        self.assertIs(ProgressReporter.phase_of(TransferStats()), ProgressPhase.TRANSFER)
        self.assertIs(
            ProgressReporter.phase_of(TransferStats(received_objects=3, total_objects=3)),
            ProgressPhase.RESOLVING_DELTAS
        )

    def test_line_is_finished_on_switch_to_delta_phase(self):
        self.state.record_transfer(TransferStats(received_objects=1, total_objects=2))
        self.reporter.report()
        self.state.record_transfer(TransferStats(received_objects=2, total_objects=2, total_deltas=1))
        self.reporter.report()
        self.reporter.report()

        kinds = [kind for kind, _ in self.sink.events]
        self.assertEqual(kinds, ["write", "finish", "write", "write"])
        self.assertEqual(self.sink.events[-1][1], "Resolving deltas 0/1")

    def test_finish_ends_line(self):
        self.reporter.report()
        self.reporter.finish()

        self.assertEqual(self.sink.events[-1], ("finish", None))


class TestStatusSinks(unittest.TestCase):

    def test_sink_without_write_cannot_be_created(self):
        class SilentSink(StatusSink):
            pass

        with self.assertRaises(TypeError):
            SilentSink()

    def test_finish_line_defaults_to_nothing(self):
        sink = NullStatusSink()
        sink.write("ignored")
        self.assertIsNone(sink.finish_line())

    def test_stream_sink_overwrites_in_place(self):
        stream = io.StringIO()
        sink = StreamStatusSink(stream)

        sink.write("long status line")
        sink.write("short")
        sink.finish_line()

        self.assertEqual(stream.getvalue(), "\rlong status line\rshort           \n")

    def test_stream_sink_finish_without_output_writes_nothing(self):
        stream = io.StringIO()
        StreamStatusSink(stream).finish_line()

        self.assertEqual(stream.getvalue(), "")

    def test_logging_sink_logs_at_debug(self):
        sink = LoggingStatusSink()

        with self.assertLogs('reposync.git_sync.progress', level='DEBUG') as logs:
            sink.write("downloading")

        self.assertIn("downloading", logs.output[0])


class TestTransferProgressHandler(unittest.TestCase):

    def setUp(self):
        self.state = ProgressState()
        self.sink = RecordingSink()
        self.reporter = ProgressReporter(self.state, self.sink)
        self.handler = TransferProgressHandler(self.state, self.reporter)

    def test_new_handler_records_fresh_stats(self):
        self.state.record_transfer(TransferStats(received_objects=9, total_objects=9))

        TransferProgressHandler(self.state)

        self.assertEqual(self.state.snapshot()[0], TransferStats())

    def test_receiving_updates_objects_and_bytes(self):
        self.handler.update(RemoteProgress.RECEIVING | RemoteProgress.BEGIN, 3.0, 10.0, ", 1.50 KiB | 1.00 MiB/s")

        stats, _ = self.state.snapshot()
        self.assertEqual(stats.received_objects, 3)
        self.assertEqual(stats.indexed_objects, 3)
        self.assertEqual(stats.total_objects, 10)
        self.assertEqual(stats.received_bytes, 1536)
        self.assertEqual(len(self.sink.events), 1)

    def test_counters_never_decrease(self):
        self.handler.update(RemoteProgress.RECEIVING, 6, 10, ", 2.00 MiB")
        self.handler.update(RemoteProgress.RECEIVING, 4, 10, ", 1.00 MiB")

        stats, _ = self.state.snapshot()
        self.assertEqual(stats.received_objects, 6)
        self.assertEqual(stats.received_bytes, 2 * 1024 * 1024)

    def test_received_is_clamped_to_total(self):
        self.handler.update(RemoteProgress.RECEIVING, 12, 10)

        stats, _ = self.state.snapshot()
        self.assertEqual(stats.received_objects, 10)

    def test_resolving_marks_all_objects_indexed(self):
        self.handler.update(RemoteProgress.RECEIVING | RemoteProgress.END, 10, 10, ", 4.00 KiB")
        self.handler.update(RemoteProgress.RESOLVING | RemoteProgress.BEGIN, 2, 5)

        stats, _ = self.state.snapshot()
        self.assertEqual(stats.received_objects, 10)
        self.assertEqual(stats.indexed_objects, 10)
        self.assertEqual(stats.indexed_deltas, 2)
        self.assertEqual(stats.total_deltas, 5)
        self.assertEqual(self.reporter.render(), "Resolving deltas 2/5")

    def test_remote_side_stages_are_ignored(self):
        self.handler.update(RemoteProgress.COUNTING, 100, 200)
        self.handler.update(RemoteProgress.COMPRESSING, 50, 200)

        self.assertEqual(self.state.snapshot()[0], TransferStats())
        self.assertEqual(self.sink.events, [])

    def test_parse_transferred_bytes(self):
        self.assertEqual(parse_transferred_bytes(", 512 bytes | 10.00 KiB/s"), 512)
        self.assertEqual(parse_transferred_bytes(", 1.20 MiB | 3.00 MiB/s"), int(1.2 * 1024 * 1024))
        self.assertIsNone(parse_transferred_bytes(""))
        self.assertIsNone(parse_transferred_bytes(None))


if __name__ == "__main__":
    unittest.main(verbosity=2)
