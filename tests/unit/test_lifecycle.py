import pytest

from labelwatch.domains.daemon.lifecycle import DaemonLifecycleManager
from labelwatch.domains.daemon.record import DaemonRecordStore
from labelwatch.models.schemas import DaemonRecord, DaemonState


class FakeProcess:
    def __init__(self, pid, returncode=None):
        self.pid = pid
        self.returncode = returncode

    def poll(self):
        return self.returncode


class FakeController:
    """Process controller simulating a daemon that writes its own record."""

    def __init__(self, store, writes_record=True, exit_code=None, spawn_error=None):
        self.store = store
        self.writes_record = writes_record
        self.exit_code = exit_code
        self.spawn_error = spawn_error
        self.alive = set()
        self.spawned = []
        self.terminated = []

    def spawn(self, args):
        if self.spawn_error is not None:
            raise self.spawn_error

        pid = 5000 + len(self.spawned)
        self.spawned.append(args)
        if self.exit_code is None:
            self.alive.add(pid)
        if self.writes_record:
            self.store.write(DaemonRecord(process_id=pid, listen_folder="/inbox"))
        return FakeProcess(pid, self.exit_code)

    def is_alive(self, pid):
        return pid in self.alive

    def terminate(self, pid, timeout=5.0):
        self.terminated.append(pid)
        self.alive.discard(pid)
        return True


def build_manager(tmp_path, **kwargs):
    store = DaemonRecordStore(tmp_path / "run")
    controller = kwargs.pop("controller", None) or FakeController(store)
    kwargs.setdefault("start_timeout", 2.0)
    kwargs.setdefault("poll_interval", 0.01)
    manager = DaemonLifecycleManager(
        tmp_path / "inbox",
        store=store,
        controller=controller,
        **kwargs,
    )
    return manager, controller, store


def test_start_twice_returns_true_then_false(tmp_path):
    manager, controller, store = build_manager(tmp_path)

    assert manager.start() is True
    assert manager.state == DaemonState.RUNNING
    assert manager.is_running() is True

    assert manager.start() is False
    assert manager.is_running() is True
    assert manager.state == DaemonState.RUNNING
    assert len(controller.spawned) == 1
    assert (tmp_path / "inbox").is_dir()


def test_stop_terminates_and_removes_record(tmp_path):
    manager, controller, store = build_manager(tmp_path)
    manager.start()
    pid = store.read().process_id

    assert manager.stop() is True

    assert controller.terminated == [pid]
    assert not store.exists()
    assert manager.is_running() is False
    assert manager.state == DaemonState.STOPPED


def test_stop_when_not_running(tmp_path):
    manager, controller, store = build_manager(tmp_path)

    assert manager.stop() is False
    assert controller.terminated == []
    assert manager.state == DaemonState.STOPPED


def test_stale_record_is_cleaned_up(tmp_path):
    manager, controller, store = build_manager(tmp_path)
    store.write(DaemonRecord(process_id=999999))

    assert manager.is_running() is False
    assert not store.exists()


def test_unreadable_record_is_cleaned_up(tmp_path):
    manager, controller, store = build_manager(tmp_path)
    store.directory.mkdir(parents=True)
    store.path.write_text("not a pid")

    assert manager.status() is False
    assert not store.exists()


def test_stop_with_stale_record_returns_false(tmp_path):
    manager, controller, store = build_manager(tmp_path)
    store.write(DaemonRecord(process_id=999999))

    assert manager.stop() is False
    assert not store.exists()
    assert controller.terminated == []


def test_start_fails_when_daemon_exits_early(tmp_path):
    store = DaemonRecordStore(tmp_path / "run")
    controller = FakeController(store, writes_record=False, exit_code=1)
    manager, _, _ = build_manager(tmp_path, controller=controller)

    assert manager.start() is False
    assert manager.state == DaemonState.STOPPED
    assert controller.terminated == []


def test_start_times_out_and_cleans_up(tmp_path):
    store = DaemonRecordStore(tmp_path / "run")
    controller = FakeController(store, writes_record=False)
    manager, _, _ = build_manager(tmp_path, controller=controller, start_timeout=0.2)

    assert manager.start() is False
    assert manager.state == DaemonState.STOPPED
    assert controller.terminated == [5000]


def test_spawn_error_is_reported_not_raised(tmp_path):
    store = DaemonRecordStore(tmp_path / "run")
    controller = FakeController(store, spawn_error=OSError("no python"))
    manager, _, _ = build_manager(tmp_path, controller=controller)

    assert manager.start() is False
    assert manager.state == DaemonState.STOPPED


def test_status_reports_running_daemon(tmp_path):
    manager, controller, store = build_manager(tmp_path)
    manager.start()

    assert manager.status() is True
    assert manager.get_record().listen_folder == "/inbox"


def test_run_args_pass_configuration_to_daemon(tmp_path):
    manager, _, store = build_manager(tmp_path, width=4.0, height=6.0, unit="in", dpi=300)

    args = manager.run_args()

    assert args[args.index("-l") + 1] == str((tmp_path / "inbox").resolve())
    assert args[args.index("--pid-dir") + 1] == str(store.directory)
    assert args[args.index("-w") + 1] == "4.0"
    assert args[args.index("-h") + 1] == "6.0"
    assert args[args.index("-u") + 1] == "in"
    assert args[args.index("-d") + 1] == "300"


def test_run_args_without_fixed_dimensions(tmp_path):
    manager, _, _ = build_manager(tmp_path)

    assert "-w" not in manager.run_args()
    assert "-h" not in manager.run_args()
    assert "--log-level" not in manager.run_args()


def test_run_args_forward_log_level(tmp_path):
    manager, _, _ = build_manager(tmp_path, log_level="DEBUG")

    args = manager.run_args()

    assert args[args.index("--log-level") + 1] == "DEBUG"


def test_manager_requires_store(tmp_path):
    with pytest.raises(ValueError):
        DaemonLifecycleManager(tmp_path)


if __name__ == "__main__":
    pytest.main([__file__])
