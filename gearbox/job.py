from .utils import truncate_lines


class JobContext(object):
    """ Passed to the job code with every job.

        Lines added with log() are emitted by the worker once the job returns.
    """

    def __init__(self, job):
        self.job = job
        self.handle = job.handle
        self.function_name = job.function_name
        self.logs = []

    def log(self, message):
        self.logs.append(message)

    def log_lines(self, max_length=256):
        lines = []
        for message in self.logs:
            lines.extend(truncate_lines(message, max_length=max_length))
        return lines
