import os
import signal
import time
import pytest

from gearbox.adapters import FunctionAdapter
from gearbox.validator import ValidationHelper
from .conftest import make_config, fixture_path


class RecordingHelper(ValidationHelper):
    """ Records the signals instead of sending them to the parent """

    def __init__(self, *args, **kwargs):
        super(RecordingHelper, self).__init__(*args, **kwargs)
        self.sent = []

    def install_signal_handlers(self):
        pass

    def notify_parent(self, signum):
        self.sent.append(signum)


def make_helper(worker_dir, names=None, **config):
    cfg = make_config(worker_dir=fixture_path(worker_dir), **config)
    return RecordingHelper(FunctionAdapter(), os.getppid(), names=names, config=cfg)


def test_validation_ok():

    helper = make_helper("workers")
    helper.work()

    assert helper.sent == [signal.SIGCONT]
    assert helper.exitcode == 0


def test_validation_failed():

    helper = make_helper("broken")
    helper.work()

    assert helper.sent == [signal.SIGUSR2]
    assert helper.exitcode == 1

    # Only the functions the supervisor runs are checked
    helper = make_helper("broken", names=["ok"])
    helper.work()
    assert helper.sent == [signal.SIGCONT]


def test_validation_function_gone():

    helper = make_helper("workers", names=["sum", "median"])
    helper.work()

    assert helper.sent == [signal.SIGUSR2]


def test_validation_no_workers():

    helper = make_helper("workers", include="median")
    helper.work()

    assert helper.sent == [signal.SIGUSR1]
    assert helper.exitcode == 1


def test_check_code(tmpdir):

    path = str(tmpdir.join("job.py"))
    with open(path, "w") as f:
        f.write("def job(payload, context):\n    return 1\n")

    helper = make_helper("workers")

    # The first check only records the mtimes
    assert not helper.check_code([path])
    assert not helper.check_code([path])

    mtime = os.path.getmtime(path) + 10
    os.utime(path, (mtime, mtime))

    assert helper.check_code([path])
    assert not helper.check_code([path])

    # Deleted files are ignored
    os.unlink(path)
    assert not helper.check_code([path])


def test_watch_code(tmpdir, monkeypatch):

    path = str(tmpdir.join("job.py"))
    with open(path, "w") as f:
        f.write("")

    helper = make_helper("workers", code_check_interval=0)

    checks = []

    def check_code(paths):
        checks.append(paths)
        if len(checks) == 3:
            helper.handle_signal(signal.SIGTERM)
        return len(checks) == 2

    monkeypatch.setattr(helper, "check_code", check_code)
    monkeypatch.setattr(helper, "parent_alive", lambda: True)

    helper.watch_code([path])

    assert len(checks) == 3
    assert helper.sent == [signal.SIGHUP]


def test_watch_code_parent_gone():

    helper = make_helper("workers", code_check_interval=0)
    helper.parent_pid = -1

    start = time.time()
    helper.watch_code([fixture_path("workers", "sum.py")])

    assert time.time() - start < 1
    assert helper.sent == []
