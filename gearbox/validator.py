import os
import signal
import time
from collections import OrderedDict

from .context import get_current_config, log
from .exceptions import FatalError, NoWorkersFound, ValidationError
from .logger import TRACE
from .processes import Process
from .registry import load_functions_from_config
from .utils import file_mtimes


class ValidationHelper(Process):
    """ Loads all the worker code before the supervisor starts any worker.

        Reports to the parent with a signal: SIGCONT if everything is fine, SIGUSR1 if
        there are no workers, SIGUSR2 if some code is broken. With auto_update, stays
        alive and sends SIGHUP whenever a worker file changes.
    """

    signal_events = {
        signal.SIGTERM: "stop",
        signal.SIGINT: "stop"
    }

    def __init__(self, adapter, parent_pid, names=None, config=None):
        self.adapter = adapter
        self.parent_pid = parent_pid
        self.names = names
        self.config = config or get_current_config()
        self.stop_requested = False
        self.last_check_time = 0

    def handle_signal(self, signum):
        self.stop_requested = True

    def notify_parent(self, signum):
        os.kill(self.parent_pid, signum)

    def parent_alive(self):
        return os.getppid() == self.parent_pid

    def work(self):

        self.install_signal_handlers()

        log.info("Helper forked")

        try:
            functions = self.load_functions()
        except NoWorkersFound as e:
            log.error("%s" % e)
            self.exitcode = 1
            self.notify_parent(signal.SIGUSR1)
            return
        except FatalError as e:
            log.error("%s" % e)
            self.exitcode = 1
            self.notify_parent(signal.SIGUSR2)
            return

        if not self.validate(functions):
            self.exitcode = 1
            self.notify_parent(signal.SIGUSR2)
            return

        # Since we got here, all must be ok
        self.notify_parent(signal.SIGCONT)

        if self.config["auto_update"]:
            self.watch_code([spec.code_path for spec in functions.values()])

    def load_functions(self):
        """ Rebuilds the function table, keeping only the functions the parent asked about """

        functions = load_functions_from_config(self.config)

        if self.names is None:
            return functions

        missing = [name for name in self.names if name not in functions]
        if missing:
            raise FatalError("Functions not found anymore: %s" % ", ".join(missing))

        return OrderedDict((name, functions[name]) for name in self.names)

    def validate(self, functions):
        log.info("Validating %s functions" % len(functions))

        for spec in functions.values():
            try:
                self.adapter.validate(spec)
            except ValidationError as e:
                log.error("%s" % e)
                return False

        return True

    def watch_code(self, paths):

        log.debug("Running loop to check for new code")

        self.check_code(paths)

        while not self.stop_requested and self.parent_alive():
            time.sleep(self.config["code_check_interval"])
            if self.check_code(paths):
                log.info("New code found. Sending SIGHUP")
                self.notify_parent(signal.SIGHUP)

    def check_code(self, paths):
        """ Returns True if a file was modified after the newest mtime we saw last time """

        changed = False
        max_time = self.last_check_time

        for path, mtime in file_mtimes(paths).items():
            log.log(TRACE, "%s - %s %s" % (path, mtime, self.last_check_time))
            max_time = max(max_time, mtime)
            if self.last_check_time and mtime > self.last_check_time:
                changed = True

        self.last_check_time = max_time
        return changed
