import signal
import time
import traceback
from collections import OrderedDict

from .context import get_current_config, log
from .exceptions import ClientError
from .job import JobContext
from .logger import WORKER
from .processes import Process
from .utils import split_list, truncate_lines


class Worker(Process):
    """ Runs inside each child process: takes jobs from the job server until a limit is reached """

    signal_events = {
        signal.SIGTERM: "stop",
        signal.SIGINT: "stop"
    }

    # init, started, wait (for a job), job (running one), stop
    status = "init"

    def __init__(self, functions, client, adapter, config=None):
        self.functions = OrderedDict((spec.name, spec) for spec in functions)
        self.client = client
        self.adapter = adapter
        self.config = config or get_current_config()

        self.ignore = set(split_list(self.config.get("ignore")))
        self.max_lifetime = self.config["max_worker_lifetime"]
        self.max_runs = self.config["max_runs_per_worker"]
        self.poll_timeout = self.config["poll_timeout"]

        self.start_time = None
        self.jobs_executed = 0
        self.stop_requested = False

    def handle_signal(self, signum):
        # Checked at the top of every iteration of the work loop
        self.stop_requested = True

    def work(self):
        """Starts the work loop.

        """
        self.install_signal_handlers()

        self.work_init()

        try:
            self.work_loop()
        finally:
            self.work_stop()

    def work_init(self):

        self.client.connect(split_list(self.config["host"]))

        for name, spec in self.functions.items():
            if name in self.ignore:
                log.log(WORKER, "Ignoring job %s" % name)
                continue

            if spec.timeout:
                log.log(WORKER, "Adding job %s; timeout: %s" % (name, spec.timeout))
            else:
                log.log(WORKER, "Adding job %s" % name)
            self.client.register_function(name, timeout=spec.timeout)

        self.start_time = time.time()
        self.status = "started"

    def should_stop(self):

        if self.stop_requested:
            log.log(WORKER, "Stop requested, exiting")
            return True

        if self.max_lifetime > 0 and time.time() - self.start_time > self.max_lifetime:
            log.log(WORKER, "Been running too long, exiting")
            return True

        if self.max_runs > 0 and self.jobs_executed >= self.max_runs:
            log.log(WORKER, "Ran %s jobs which is over the maximum(%s), exiting" % (
                self.jobs_executed, self.max_runs))
            return True

        return False

    def work_loop(self):

        while not self.should_stop():

            self.status = "wait"

            try:
                job = self.client.wait_for_job(self.poll_timeout)
            except ClientError as e:
                log.error("%s" % e)
                time.sleep(self.poll_timeout)
                continue

            if job is None:
                continue

            self.status = "job"
            success = self.perform_job(job)

            if success and self.config["restart_each"]:
                log.log(WORKER, "Restarting after job %s" % job.handle)
                break

    def perform_job(self, job):
        """ Runs the job code and acknowledges the job. Returns True if it succeeded. """

        handle = job.handle
        spec = self.functions.get(job.function_name)

        if spec is None:
            log.error("Function %s is not a registered job name" % job.function_name)
            self.acknowledge(job, error="Unknown function %s" % job.function_name)
            return False

        log.log(WORKER, "(%s) Starting Job: %s" % (handle, job.function_name))
        for line in truncate_lines(job.payload):
            log.debug("(%s) Workload: %s" % (handle, line))

        context = JobContext(job)

        try:
            result = self.adapter.run(spec, job.payload, context)

        except Exception as e:  # pylint: disable=broad-except
            log.error("(%s) Job %s failed: %s: %s" % (handle, job.function_name, e.__class__.__name__, e))
            log.debug(traceback.format_exc())
            self.log_context(context)
            self.acknowledge(job, error=e)
            return False

        finally:
            self.jobs_executed += 1

        self.log_context(context)
        for line in truncate_lines(result):
            log.debug("(%s) %s" % (handle, line))

        return self.acknowledge(job, result=result)

    def log_context(self, context):
        for line in context.log_lines():
            log.log(WORKER, "(%s) %s" % (context.handle, line))

    def acknowledge(self, job, result=None, error=None):
        try:
            if error is not None:
                job.fail(error)
                return False
            job.complete(result)
            return True
        except ClientError as e:
            log.error("(%s) Couldn't acknowledge job: %s" % (job.handle, e))
            return False

    def work_stop(self):

        self.status = "stop"

        try:
            self.client.unregister_all()
            self.client.close()
        except ClientError as e:
            log.error("When unregistering: %s" % e)

        lifetime = time.time() - (self.start_time or time.time())
        log.log(WORKER, "Worker spent %.3f seconds performing %s jobs" % (lifetime, self.jobs_executed))
        log.log(WORKER, "Child exiting")
