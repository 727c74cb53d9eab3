class Task(object):
    """ Base class for job code used with the "task" adapter.

        One instance is created per worker process, the first time a job for it arrives,
        and reused for all the following jobs. """

    def run_wrapped(self, payload, context):
        """ Override this method to provide your own wrapping code """
        return self.run(payload, context)

    def run(self, payload, context):
        """ Override this method with the main code of all your tasks """
        raise NotImplementedError
