import pytest
import os
import subprocess
import sys
import signal
import psutil
import time

sys.path.append(os.getcwd())

from gearbox.config import get_config
from gearbox.context import set_current_config
from gearbox.processes import ROLE_ENV, FUNCTIONS_ENV, ROLE_WORKER


set_current_config(get_config(sources=("env", )))

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
FIXTURES_DIR = os.path.join(ROOT_DIR, "tests", "fixtures")

PYTHON_BIN = sys.executable
if os.environ.get("PYTHON_BIN"):
    PYTHON_BIN = os.environ["PYTHON_BIN"]


def fixture_path(*parts):
    return os.path.join(FIXTURES_DIR, *parts)


def make_config(**extra):
    """ Default config, without reading any file or env var, with some values overridden """
    config = get_config(sources=(), extra=extra)
    set_current_config(config)
    return config


class FakeSubprocess(object):

    def __init__(self, pid):
        self.pid = pid
        self.returncode = None
        self.signals = []

    def poll(self):
        return self.returncode

    def send_signal(self, sig):
        self.signals.append(sig)

    def kill(self):
        self.send_signal(signal.SIGKILL)
        self.returncode = -signal.SIGKILL

    def wait(self, timeout=None):
        return self.returncode


class FakePool(object):
    """ Same interface as ProcessPool, without starting any process """

    def __init__(self, helper_events=None, supervisor=None):
        self.children = {}
        self.spawned = []
        self.signals = []
        self.helpers = []
        self.next_pid = 1000
        self.helper_events = helper_events or []
        self.supervisor = supervisor
        self.fail_spawn = False
        self.helper_returncode = None

    def make_pid(self):
        self.next_pid += 1
        return self.next_pid

    def popen(self, role, functions=None):
        helper = FakeSubprocess(self.make_pid())
        helper.returncode = self.helper_returncode
        self.helpers.append(helper)

        # What the helper would have sent us with a signal
        if self.supervisor is not None:
            self.supervisor.events.extend(self.helper_events)

        return helper

    def spawn(self, binding, functions):
        if self.fail_spawn:
            raise OSError(11, "Resource temporarily unavailable")

        pid = self.make_pid()
        self.children[pid] = {
            "subprocess": FakeSubprocess(pid),
            "pid": pid,
            "binding": binding,
            "functions": list(functions)
        }
        self.spawned.append(self.children[pid])
        return self.children[pid]

    def exit_child(self, pid, returncode=0):
        self.children[pid]["subprocess"].returncode = returncode

    def reap(self):
        exited = []
        for pid, child in list(self.children.items()):
            if child["subprocess"].returncode is not None:
                child["returncode"] = child["subprocess"].returncode
                del self.children[pid]
                exited.append(child)
        return exited

    def count(self, function_name=None):
        if function_name is None:
            return len(self.children)
        return len([c for c in self.children.values() if function_name in c["functions"]])

    def bindings(self):
        return sorted(child["binding"] for child in self.children.values())

    def stop(self):
        self.signals.append(signal.SIGTERM)

    def kill(self):
        self.signals.append(signal.SIGKILL)


class ProcessFixture(object):

    def __init__(self, request, cmdline=None, quiet=False):
        self.request = request
        self.cmdline = cmdline
        self.process = None
        self.quiet = quiet
        self.stopped = False
        self.started = False

        self.request.addfinalizer(self.stop)

    def start(self, cmdline=None, env=None):

        self.stopped = False

        if not cmdline:
            cmdline = self.cmdline
        if env is None:
            env = {}

        # Kept from parent env
        for env_key in ["PATH", "GEVENT_LOOP", "VIRTUAL_ENV", "PYTHONPATH"]:
            if os.environ.get(env_key) and not env.get(env_key):
                env[env_key] = os.environ.get(env_key)

        if self.quiet:
            stdout = open(os.devnull, 'w')
        else:
            stdout = None

        self.cmdline = cmdline
        print(" ".join(cmdline))
        self.process = subprocess.Popen(cmdline, shell=False, close_fds=True, env=env,
                                        cwd=ROOT_DIR, stdout=stdout)

        if self.quiet:
            stdout.close()

        self.started = True

    def stop(self, force=False, timeout=20, block=True, sig=15):

        # Call this only one time.
        if self.stopped and not force:
            return

        self.stopped = True
        self.started = False

        if self.process is not None and self.process.poll() is None:

            print("Sending signal %s to pid %s" % (sig, self.process.pid))
            os.kill(self.process.pid, sig)

            if not block:
                return

            # Will raise TimeoutExpired
            self.process.wait(timeout=timeout)


class ManagerFixture(ProcessFixture):

    def start(self, flags=None, env=None, expected_workers=0, timeout=20):

        cmdline = [PYTHON_BIN, "gearbox/bin/gearbox_manager.py",
                   "--client_class", "tests.fixtures.clients.IdleClient",
                   "--poll_timeout", "0.2",
                   "--spawn_delay", "0.01"] + (flags or [])

        ProcessFixture.start(self, cmdline=cmdline, env=env)

        if expected_workers > 0:
            self.wait_for_workers(expected_workers, timeout=timeout)

    def workers(self):
        """ Returns {pid: [functions]} for the worker children of the manager """

        workers = {}
        try:
            children = psutil.Process(self.process.pid).children()
        except psutil.NoSuchProcess:
            return workers

        for child in children:
            try:
                environ = child.environ()
            except psutil.Error:
                continue
            if environ.get(ROLE_ENV) == ROLE_WORKER:
                workers[child.pid] = sorted(environ.get(FUNCTIONS_ENV, "").split(","))

        return workers

    def wait_for_workers(self, count, timeout=20, exclude=()):
        start = time.time()
        while time.time() - start < timeout:
            workers = self.workers()
            if len(workers) == count and not set(workers) & set(exclude):
                return workers
            time.sleep(0.1)
        raise AssertionError("Expected %s workers, got %s" % (count, self.workers()))


@pytest.fixture(scope="function")
def manager(request):
    return ManagerFixture(request)
