import os
import signal
import subprocess
from collections import deque
import gevent
import psutil

from .context import log

# Environment markers telling a re-executed manager command which role to play
ROLE_ENV = "GEARBOX_CHILD_ROLE"
FUNCTIONS_ENV = "GEARBOX_CHILD_FUNCTIONS"

ROLE_WORKER = "worker"
ROLE_HELPER = "helper"

# Binding of the workers serving every non dedicated-only function
BIND_ALL = "all"


class Process(object):
    """ The parent class of Supervisor, ValidationHelper and Worker """

    exitcode = 0

    # signal number => event name
    signal_events = {}

    def install_signal_handlers(self):
        """ Handle events like Ctrl-C from the command line.

            Handlers run in the gevent hub between two steps of the main loop. They only
            queue an event, which the main loop applies later.
        """

        self.events = getattr(self, "events", None) or deque()

        for signum in self.signal_events:
            gevent.signal_handler(signum, self.handle_signal, signum)

    def handle_signal(self, signum):
        self.events.append(self.signal_events[signum])


class ProcessPool(object):
    """ Manages the worker processes of a supervisor, keyed by pid """

    def __init__(self, command, extra_env=None):
        self.command = list(command)
        self.extra_env = extra_env
        self.children = {}

    def get_env(self, role, functions=None):
        env = dict(os.environ)
        env.update(self.extra_env or {})
        env[ROLE_ENV] = role
        if functions is not None:
            env[FUNCTIONS_ENV] = ",".join(functions)
        else:
            env.pop(FUNCTIONS_ENV, None)
        return env

    def popen(self, role, functions=None):
        """ Starts the manager command in another role. Raises OSError if the OS refuses. """

        return subprocess.Popen(
            self.command, shell=False, close_fds=True,
            env=self.get_env(role, functions), cwd=os.getcwd()
        )

    def spawn(self, binding, functions):
        """ Spawns a new worker process and adds it to the pool """

        p = self.popen(ROLE_WORKER, functions)

        self.children[p.pid] = {
            "subprocess": p,
            "pid": p.pid,
            "binding": binding,
            "functions": list(functions)
        }

        return self.children[p.pid]

    def count(self, function_name=None):
        if function_name is None:
            return len(self.children)
        return len([c for c in self.children.values() if function_name in c["functions"]])

    def reap(self):
        """ Removes the exited processes from the pool and returns them """

        exited = []

        for pid, child in list(self.children.items()):
            returncode = child["subprocess"].poll()

            if returncode is None:
                self.check_status(child)
                continue

            child["returncode"] = returncode
            del self.children[pid]
            exited.append(child)

        return exited

    def check_status(self, child):
        """ Warns about processes that are alive but not doing anything """

        try:
            status = psutil.Process(pid=child["pid"]).status()
        except psutil.Error:
            return

        if status in (psutil.STATUS_STOPPED, psutil.STATUS_TRACING_STOP):
            log.warning("Process %s was in status %s" % (child["pid"], status))

    def send_signal(self, sig):
        """ Sends a signal to all the processes still in the pool """

        for pid, child in list(self.children.items()):
            log.info("Stopping child %s (%s)" % (pid, child["binding"]))
            try:
                child["subprocess"].send_signal(sig)
            except OSError as e:
                log.debug("Couldn't send signal %s to %s: %s" % (sig, pid, e))

    def stop(self):
        """ Initiates a graceful stop of the processes """
        self.send_signal(signal.SIGTERM)

    def kill(self):
        """ Kills the processes right now with a SIGKILL """
        self.send_signal(signal.SIGKILL)
