import os
import socket
import time
from collections import deque
import python3_gearman
import python3_gearman.errors
import ujson as json
from .client import Job, JobQueueClient
from .context import log
from .exceptions import ClientError


def encode_result(result):
    """ The Gearman protocol only carries bytes """
    if result is None:
        return b""
    if isinstance(result, bytes):
        return result
    if isinstance(result, str):
        return result.encode("utf-8")
    return json.dumps(result).encode("utf-8")


class GearmanJob(Job):

    def __init__(self, worker, gearman_job):
        super(GearmanJob, self).__init__(gearman_job.handle, gearman_job.task, gearman_job.data)
        self.worker = worker
        self.gearman_job = gearman_job

    def complete(self, result):
        self.worker.send_job_complete(self.gearman_job, encode_result(result))

    def fail(self, error):
        if error is not None:
            self.worker.send_job_exception(self.gearman_job, encode_result(str(error)))
        self.worker.send_job_failure(self.gearman_job)


class _QueueingGearmanWorker(python3_gearman.GearmanWorker):
    """ Keeps assigned jobs for later instead of running them inside the poll loop """

    def __init__(self, host_list=None):
        super(_QueueingGearmanWorker, self).__init__(host_list=host_list)
        self.assigned_jobs = deque()

    def on_job_execute(self, current_job):
        self.assigned_jobs.append(current_job)
        return True


def _never_called(gearman_worker, gearman_job):
    raise RuntimeError("Gearman jobs are executed by the gearbox worker loop")


class GearmanClient(JobQueueClient):
    """ Job queue client for Gearman servers, through the python3-gearman library """

    def __init__(self):
        super(GearmanClient, self).__init__()
        self.worker = None

    def connect(self, servers):
        super(GearmanClient, self).connect(servers)
        log.debug("Connecting to %s" % ", ".join(self.servers))
        self.worker = _QueueingGearmanWorker(host_list=self.servers)
        self.worker.set_client_id("%s.%s" % (socket.gethostname().split(".")[0], os.getpid()))

    def register_function(self, name, timeout=None):
        super(GearmanClient, self).register_function(name, timeout=timeout)
        if timeout:
            log.debug("Gearman backend doesn't send job timeouts, ignoring timeout=%s for %s" % (timeout, name))
        self.worker.register_task(name, _never_called)

    def wait_for_job(self, timeout):

        if not self.worker.assigned_jobs:
            deadline = time.time() + timeout

            def keep_polling(any_activity):
                return not self.worker.assigned_jobs and time.time() < deadline

            try:
                connections = self.worker.establish_worker_connections()
                self.worker.poll_connections_until_stopped(connections, keep_polling, timeout=timeout)
            except python3_gearman.errors.GearmanError as e:
                raise ClientError("Gearman error: %s" % e)

        if self.worker.assigned_jobs:
            return GearmanJob(self.worker, self.worker.assigned_jobs.popleft())

        return None

    def unregister_all(self):
        for name in list(self.functions):
            self.worker.unregister_task(name)
        super(GearmanClient, self).unregister_all()

    def close(self):
        if self.worker is not None:
            self.worker.shutdown()
            self.worker = None
