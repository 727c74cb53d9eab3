class Job(object):
    """ A job handed to a worker by the job server.

        Must be acknowledged exactly once, with complete() or fail().
    """

    def __init__(self, handle, function_name, payload):
        self.handle = handle
        self.function_name = function_name
        self.payload = payload

    def complete(self, result):
        raise NotImplementedError

    def fail(self, error):
        raise NotImplementedError


class JobQueueClient(object):
    """ The part of a job-queue client library workers use. Subclass it for each backend. """

    def __init__(self):
        self.servers = []
        self.functions = []

    def connect(self, servers):
        self.servers = list(servers)

    def register_function(self, name, timeout=None):
        self.functions.append(name)

    def wait_for_job(self, timeout):
        """ Returns the next Job, or None if nothing came in during timeout seconds.

            Raises ClientError when the job server can't be used.
        """
        raise NotImplementedError

    def unregister_all(self):
        self.functions = []

    def close(self):
        pass
