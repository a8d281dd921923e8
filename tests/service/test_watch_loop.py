"""
Service-level test for the watch loop.

Runs the real monitor, queue and converter wiring in a background thread with
an in-process renderer, drops label files into the folder and checks the PDFs
and daemon record that come out.
"""

import os
import threading
import time

import pytest

from labelwatch.domains.daemon.record import DaemonRecordStore
from labelwatch.domains.daemon.runner import run_daemon
from labelwatch.utils.config import Settings

from conftest import SIMPLE_LABEL, SIZED_LABEL, FakeRenderer


def wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


@pytest.fixture
def watch_loop(tmp_path):
    listen = tmp_path / "inbox"
    listen.mkdir()
    (listen / "existing.txt").write_text(SIMPLE_LABEL)

    settings = Settings(
        _env_file=None,
        listen_folder=listen,
        pid_dir=tmp_path / "run",
        settle_delay_ms=50,
        retry_delay_ms=50,
        idle_poll_ms=50,
    )
    renderer = FakeRenderer()
    stop_event = threading.Event()
    result = {}

    def target():
        result["ok"] = run_daemon(
            settings,
            renderer=renderer,
            stop_event=stop_event,
            install_signal_handlers=False,
        )

    thread = threading.Thread(target=target, daemon=True)
    thread.start()

    yield listen, settings, renderer

    stop_event.set()
    thread.join(10)
    assert not thread.is_alive()
    assert result["ok"] is True
    assert not DaemonRecordStore(settings.get_pid_dir()).exists()


def test_watch_loop_converts_existing_and_new_files(watch_loop):
    listen, settings, renderer = watch_loop
    store = DaemonRecordStore(settings.get_pid_dir())

    assert wait_for(store.exists)
    record = store.read()
    assert record.process_id == os.getpid()
    assert record.width_mm == 0.0

    assert wait_for(lambda: (listen / "existing.pdf").exists())
    assert wait_for(lambda: not (listen / "existing.txt").exists())

    (listen / "batch.prn").write_text(SIZED_LABEL + "\n" + SIMPLE_LABEL)
    (listen / "notes.md").write_text(SIMPLE_LABEL)

    assert wait_for(lambda: (listen / "batch.pdf").exists())
    assert wait_for(lambda: not (listen / "batch.prn").exists())
    assert (listen / "notes.md").exists()

    sizes = [(round(call[1], 1), round(call[2], 1)) for call in renderer.calls]
    assert (101.6, 152.4) in sizes
    assert sizes.count((100.0, 150.0)) == 2


if __name__ == "__main__":
    pytest.main([__file__])
