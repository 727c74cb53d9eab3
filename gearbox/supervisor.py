import os
import pwd
import random
import signal
import time
from collections import defaultdict, deque
import gevent

from .context import get_current_config, reopen_log_handlers, log
from .exceptions import FatalError, NoWorkersFound
from .processes import Process, BIND_ALL, ROLE_HELPER
from .registry import serve_all_names, order_functions
from .utils import split_list

# After this many shutdown signals, children are killed instead of asked to stop
MAX_GRACEFUL_SIGNALS = 4

# Seconds we still wait for the verdict of a validation helper that already exited
HELPER_EXIT_GRACE = 1


class Supervisor(Process):
    """ Keeps the configured number of worker processes running for each function.

        init -> validating -> bootstrapping -> running -> stopping -> terminated

        Signals are turned into events by the gevent hub and applied by the main loop,
        see process_events().
    """

    signal_events = {
        signal.SIGTERM: "shutdown",
        signal.SIGINT: "shutdown",
        signal.SIGCONT: "validation_ok",
        signal.SIGUSR1: "no_workers",
        signal.SIGUSR2: "validation_failed",
        signal.SIGHUP: "code_changed"
    }

    def __init__(self, functions, pool, config=None, rnd=None):
        self.functions = functions
        self.pool = pool
        self.config = config or get_current_config()
        self.rnd = rnd or random.Random()
        self.ignore = set(split_list(self.config.get("ignore")))

        self.events = deque()
        self.status = "init"
        self.stopping = False
        self.stop_requested_at = None
        self.term_signal_count = 0
        self.awaiting_validation = False
        self.helper = None

    def work(self):
        """ Runs the whole lifecycle of the pool. Returns when all the workers are gone. """

        self.install_signal_handlers()

        log.info("Started with pid %s" % os.getpid())

        try:
            self.validate()

            if not self.stopping:
                self.bootstrap()

            self.monitor()

        finally:
            self.terminate()

    def process_events(self):
        """ Applies the events queued by the signal handlers, in order """

        while self.events:
            event = self.events.popleft()
            log.debug("Processing event %s" % event)
            getattr(self, "on_%s" % event)()

    def on_shutdown(self):
        log.info("Shutting down...")

        if not self.stopping:
            self.stopping = True
            self.stop_requested_at = time.time()
            self.status = "stopping"

        self.term_signal_count += 1
        if self.term_signal_count <= MAX_GRACEFUL_SIGNALS:
            self.pool.stop()
        else:
            self.pool.kill()

    def on_validation_ok(self):
        self.awaiting_validation = False

    def on_no_workers(self):
        raise NoWorkersFound("No worker files could be found")

    def on_validation_failed(self):
        raise FatalError("Error validating worker functions")

    def on_code_changed(self):
        log.info("Restarting children")
        self.pool.stop()
        reopen_log_handlers()

    def request_stop(self):
        """ Starts draining the pool without waiting for a signal """

        if not self.stopping:
            self.stopping = True
            self.stop_requested_at = time.time()
            self.status = "stopping"
        self.pool.stop()

    def validate(self):
        """ Starts the validation helper and waits until it reports back """

        self.status = "validating"
        self.awaiting_validation = True

        try:
            self.helper = self.pool.popen(ROLE_HELPER, list(self.functions))
        except OSError as e:
            log.error("Failed to fork: %s" % e)
            self.exitcode = 1
            self.request_stop()
            return

        log.info("Started helper %s" % self.helper.pid)

        deadline = time.time() + self.config["validation_timeout"]
        exited_at = None

        while True:

            self.process_events()

            if not self.awaiting_validation or self.stopping:
                break

            if exited_at is None and self.helper.poll() is not None:
                exited_at = time.time()

            # The helper may exit right after signaling, give the signal time to arrive.
            if exited_at is not None and time.time() - exited_at > HELPER_EXIT_GRACE:
                raise FatalError("Validation helper exited with status %s without reporting" % (
                    self.helper.returncode, ))

            if time.time() > deadline:
                raise FatalError("Validation helper didn't report after %s seconds" % (
                    self.config["validation_timeout"], ))

            gevent.sleep(0.005)

    def bootstrap(self):
        """ Starts the initial worker population """

        self.status = "bootstrapping"

        function_count = defaultdict(int)
        do_all_count = self.config["count"]
        do_all_names = serve_all_names(self.functions)

        # "do all" workers register all functions, start them first
        if do_all_count > 0:
            if not do_all_names:
                log.warning("All functions are dedicated, not starting workers that do all jobs")
            else:
                for _ in range(do_all_count):
                    self.start_worker(BIND_ALL)
                    self.pace()
                    if self.stopping:
                        return

                for name in do_all_names:
                    function_count[name] = do_all_count

        # Next we loop the functions and ensure we have enough running for each of them
        for name, spec in self.functions.items():
            while function_count[name] < spec.desired_count:
                self.start_worker(name)
                function_count[name] += 1
                self.pace()
                if self.stopping:
                    return

        for name in self.functions:
            log.info("Running %s workers for %s" % (self.pool.count(name), name))

    def pace(self):
        """ Avoids connecting all the workers to the job server at the same time """
        gevent.sleep(self.config["spawn_delay"])
        self.process_events()

    def start_worker(self, binding=BIND_ALL):
        """ Starts one worker, either for all the shared functions or dedicated to one function """

        if binding in self.ignore:
            return None

        if binding == BIND_ALL:
            names = serve_all_names(self.functions)
        else:
            names = [binding]

        names = order_functions(names, self.functions, rnd=self.rnd)

        try:
            child = self.pool.spawn(binding, names)
        except OSError as e:
            log.error("Could not fork: %s" % e)
            self.exitcode = 1
            self.request_stop()
            return None

        log.info("Started child %s (%s)" % (child["pid"], binding))
        return child

    def monitor(self):
        """ Main loop: respawns exited workers until a shutdown was requested and all workers are gone """

        if not self.stopping:
            self.status = "running"

        while not self.stopping or self.pool.children:
            self.process_events()
            self.watch_once()
            gevent.sleep(self.config["watch_interval"])

    def watch_once(self):

        for child in self.pool.reap():
            log.info("Child %s exited with status %s (%s)" % (child["pid"], child["returncode"], child["binding"]))
            if not self.stopping:
                self.start_worker(child["binding"])

        if self.stopping and self.pool.children and \
                time.time() - self.stop_requested_at > self.config["stop_timeout"]:
            log.info("Children have not exited, killing.")
            self.pool.kill()

        self.reap_helper()

    def reap_helper(self):
        if self.helper is not None and self.helper.poll() is not None:
            if self.config["auto_update"] and not self.awaiting_validation:
                log.warning("Code watcher %s exited with status %s" % (self.helper.pid, self.helper.returncode))
            self.helper = None

    def terminate(self):

        self.status = "terminated"

        if self.helper is not None and self.helper.poll() is None:
            try:
                self.helper.kill()
                self.helper.wait()
            except OSError as e:
                log.debug("Couldn't kill helper %s: %s" % (self.helper.pid, e))
        self.helper = None

        # Only happens when we are exiting on an error
        if self.pool.children:
            self.pool.kill()

        log.info("Exiting")


class PidFile(object):
    """ Holds the pid of the manager. Only the process that wrote it may remove it. """

    def __init__(self, path):
        self.path = path
        self.pid = None

    def write(self):
        pid = os.getpid()
        try:
            with open(self.path, "w") as f:
                f.write("%s" % pid)
        except (IOError, OSError):
            raise FatalError("Unable to write PID to %s" % self.path)
        self.pid = pid

    def remove(self):
        if self.pid != os.getpid():
            return
        if os.path.exists(self.path):
            os.unlink(self.path)
        self.pid = None


def daemonize():
    """ Detaches from the terminal. The calling process exits right away. """

    if os.fork() > 0:
        os._exit(0)  # pylint: disable=protected-access
    os.setsid()


def drop_privileges(user):

    try:
        pw = pwd.getpwnam(user)
    except KeyError:
        raise FatalError("User (%s) not found." % user)

    try:
        os.setgid(pw.pw_gid)
        os.setuid(pw.pw_uid)
    except OSError as e:
        raise FatalError("Unable to change user to %s (UID: %s): %s" % (user, pw.pw_uid, e))

    if os.geteuid() != pw.pw_uid:
        raise FatalError("Unable to change user to %s (UID: %s)." % (user, pw.pw_uid))
