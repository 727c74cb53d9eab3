import logging
import logging.handlers
import os


# Extra levels between DEBUG and INFO, and below DEBUG.
WORKER = 15
TRACE = 5

logging.addLevelName(WORKER, "WORKER")
logging.addLevelName(TRACE, "TRACE")

# Index is the number of -v flags given on the command line
VERBOSITY_LEVELS = [
    logging.WARNING,  # errors only
    logging.INFO,     # + process info
    WORKER,           # + worker info
    logging.DEBUG,
    TRACE             # everything
]


def level_for_verbosity(verbose):
    verbose = max(0, int(verbose or 0))
    return VERBOSITY_LEVELS[min(verbose, len(VERBOSITY_LEVELS) - 1)]


class ReopenableFileHandler(logging.FileHandler):

    """ Append-only file handler whose stream can be reopened in place.

        Lets external tools rotate the log file: after a move, reopen() makes us
        write to a new file at the original path.
    """

    def __init__(self, filename, encoding="utf-8"):
        super(ReopenableFileHandler, self).__init__(filename, mode="a", encoding=encoding, delay=False)

    def reopen(self):
        self.acquire()
        try:
            if self.stream:
                self.stream.flush()
                self.stream.close()
            self.stream = self._open()
        finally:
            self.release()


def get_syslog_handler():
    address = "/dev/log" if os.path.exists("/dev/log") else ("localhost", logging.handlers.SYSLOG_UDP_PORT)
    handler = logging.handlers.SysLogHandler(address=address)

    # SysLogHandler doesn't know about our custom levels
    handler.priority_map = dict(handler.priority_map, WORKER="info", TRACE="debug")
    return handler
