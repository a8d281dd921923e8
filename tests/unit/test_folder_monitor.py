import threading
import time

import pytest

pytest.importorskip("watchdog", reason="watchdog dependency is required for monitor tests")

from labelwatch.domains.dimensions.resolver import DimensionResolver
from labelwatch.domains.file_watch.monitor import FolderMonitor
from labelwatch.models.schemas import DimensionSource

from conftest import SIMPLE_LABEL, SIZED_LABEL


class FakeQueue:
    """Stands in for ProcessingQueue and records enqueued items."""

    def __init__(self):
        self.on_settled = None
        self.items = []
        self.lock = threading.Lock()

    def enqueue(self, item):
        with self.lock:
            self.items.append(item)
        return True

    def names(self):
        with self.lock:
            return [item.file_name for item in self.items]


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


def build_monitor(folder, queue, **kwargs):
    kwargs.setdefault("settle_delay_ms", 0)
    return FolderMonitor(folder, queue, DimensionResolver(), **kwargs)


def test_existing_files_are_queued_on_start(tmp_path):
    folder = tmp_path / "inbox"
    folder.mkdir()
    (folder / "a.txt").write_text(SIMPLE_LABEL)
    (folder / "b.pdf").write_text("not a label file")
    (folder / "c.PRN").write_text(SIMPLE_LABEL)
    detected = []
    queue = FakeQueue()
    monitor = build_monitor(folder, queue, on_file_detected=lambda path, kind: detected.append((path.name, kind)))

    monitor.start_watching()
    try:
        assert wait_for(lambda: len(queue.items) == 2)
    finally:
        monitor.stop_watching()

    assert queue.names() == ["a.txt", "c.PRN"]
    assert detected == [("a.txt", "existing"), ("c.PRN", "existing")]
    assert queue.items[0].source_path == folder.resolve() / "a.txt"


def test_missing_folder_is_created(tmp_path):
    folder = tmp_path / "new" / "inbox"
    monitor = build_monitor(folder, FakeQueue())

    monitor.start_watching()
    try:
        assert folder.is_dir()
        assert monitor.is_watching
    finally:
        monitor.stop_watching()

    assert not monitor.is_watching


def test_new_file_is_detected(tmp_path):
    queue = FakeQueue()
    monitor = build_monitor(tmp_path, queue)

    monitor.start_watching()
    try:
        (tmp_path / "incoming.txt").write_text(SIMPLE_LABEL)
        assert wait_for(lambda: "incoming.txt" in queue.names())
    finally:
        monitor.stop_watching()


def test_empty_and_unsupported_files_are_ignored(tmp_path):
    (tmp_path / "a_empty.txt").write_text("  \n\t ")
    (tmp_path / "b_notes.md").write_text(SIMPLE_LABEL)
    (tmp_path / "c_label.txt").write_text(SIMPLE_LABEL)
    queue = FakeQueue()
    monitor = build_monitor(tmp_path, queue)

    assert not monitor.accepts(tmp_path / "b_notes.md")

    monitor.start_watching()
    try:
        assert wait_for(lambda: "c_label.txt" in queue.names())
    finally:
        monitor.stop_watching()

    assert queue.names() == ["c_label.txt"]


def test_per_label_dimensions_without_fixed_size(tmp_path):
    (tmp_path / "two.txt").write_text(SIZED_LABEL + "\n" + SIMPLE_LABEL)
    queue = FakeQueue()
    monitor = build_monitor(tmp_path, queue)

    monitor.start_watching()
    try:
        assert wait_for(lambda: len(queue.items) == 1)
    finally:
        monitor.stop_watching()

    first, second = queue.items[0].dimensions
    assert not monitor.fixed_dimensions
    assert first.source == DimensionSource.EXTRACTED
    assert first.width_mm == pytest.approx(101.6)
    assert second.source == DimensionSource.DEFAULT


def test_fixed_dimensions_apply_to_every_label(tmp_path):
    (tmp_path / "two.txt").write_text(SIZED_LABEL + SIMPLE_LABEL)
    queue = FakeQueue()
    monitor = build_monitor(tmp_path, queue, fixed_width=2, fixed_height=1, unit="in")

    monitor.start_watching()
    try:
        assert wait_for(lambda: len(queue.items) == 1)
    finally:
        monitor.stop_watching()

    assert monitor.fixed_dimensions
    for dimensions in queue.items[0].dimensions:
        assert dimensions.source == DimensionSource.EXPLICIT
        assert dimensions.width_mm == pytest.approx(50.8)
        assert dimensions.height_mm == pytest.approx(25.4)


def test_repeated_events_are_coalesced_until_released(tmp_path):
    path = tmp_path / "label.txt"
    marker = tmp_path / "marker.txt"
    queue = FakeQueue()
    monitor = build_monitor(tmp_path, queue)

    monitor.start_watching()
    try:
        path.write_text(SIMPLE_LABEL)
        monitor.notify(str(path), "modified")
        monitor.notify(str(path), "modified")
        marker.write_text(SIMPLE_LABEL)
        monitor.notify(str(marker), "created")
        assert wait_for(lambda: "marker.txt" in queue.names())
        assert queue.names().count("label.txt") == 1

        # Settling the item lets a later change through again
        label_item = next(item for item in queue.items if item.file_name == "label.txt")
        queue.on_settled(label_item)
        monitor.notify(str(path), "modified")
        assert wait_for(lambda: queue.names().count("label.txt") == 2)
    finally:
        monitor.stop_watching()


def test_locked_file_is_skipped(tmp_path):
    held = tmp_path / "held.txt"
    held.write_text(SIMPLE_LABEL)
    free = tmp_path / "free.txt"
    free.write_text(SIMPLE_LABEL)

    class HeldGate:
        def is_locked(self, path):
            return path.name == "held.txt"

    queue = FakeQueue()
    monitor = build_monitor(tmp_path, queue, file_gate=HeldGate())

    monitor.start_watching()
    try:
        assert wait_for(lambda: "free.txt" in queue.names())
    finally:
        monitor.stop_watching()

    assert queue.names() == ["free.txt"]


def test_file_without_labels_reports_error(tmp_path):
    (tmp_path / "a_garbage.txt").write_text("this is not zpl")
    (tmp_path / "b_label.txt").write_text(SIMPLE_LABEL)
    errors = []
    queue = FakeQueue()
    monitor = build_monitor(tmp_path, queue, on_error=errors.append)

    monitor.start_watching()
    try:
        assert wait_for(lambda: "b_label.txt" in queue.names())
    finally:
        monitor.stop_watching()

    assert queue.names() == ["b_label.txt"]
    assert len(errors) == 1
    assert "a_garbage.txt" in str(errors[0])


def test_removed_folder_is_recreated(tmp_path):
    folder = tmp_path / "inbox"
    errors = []
    queue = FakeQueue()
    monitor = build_monitor(folder, queue, on_error=errors.append)

    monitor.start_watching()
    try:
        folder.rmdir()
        assert wait_for(lambda: errors and folder.is_dir())
        assert isinstance(errors[0], FileNotFoundError)

        (folder / "after.txt").write_text(SIMPLE_LABEL)
        monitor.notify(str(folder / "after.txt"), "created")
        assert wait_for(lambda: "after.txt" in queue.names())
    finally:
        monitor.stop_watching()


def test_stop_watching_is_idempotent(tmp_path):
    monitor = build_monitor(tmp_path, FakeQueue())

    monitor.stop_watching()
    monitor.start_watching()
    monitor.stop_watching()
    monitor.stop_watching()

    assert not monitor.is_watching


def test_settled_callback_is_chained(tmp_path, make_item):
    queue = FakeQueue()
    seen = []
    queue.on_settled = seen.append
    monitor = build_monitor(tmp_path, queue)
    item = make_item("label.txt", source_path=tmp_path / "label.txt")

    queue.on_settled(item)

    assert seen == [item]
    assert monitor.is_watching is False


if __name__ == "__main__":
    pytest.main([__file__])
