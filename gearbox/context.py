import logging
import sys
from .exceptions import FatalError
from .logger import ReopenableFileHandler, get_syslog_handler, level_for_verbosity

# This should be Gearbox's only Python object shared by all the components in the same process
_GLOBAL_CONTEXT = {

    # pointer to the current config
    "config": {},

    # handlers we installed on the log object
    "log_handlers": []
}

# Global log object, usable from all components and from job code
log = logging.getLogger("gearbox")


def set_current_config(config):
    _GLOBAL_CONTEXT["config"] = config


def get_current_config():
    if not _GLOBAL_CONTEXT["config"]:
        log.warning("get_current_config was called before the config was loaded. "
                    "Use context.set_current_config(config.get_config()) first.")
    return _GLOBAL_CONTEXT["config"]


def set_logger_config():
    """ Sends the log object to the sink chosen in the config: a file, syslog or stderr """

    config = _GLOBAL_CONTEXT["config"]

    for handler in _GLOBAL_CONTEXT["log_handlers"]:
        log.removeHandler(handler)
        handler.close()

    log_file = config.get("log_file")
    if log_file == "syslog":
        log_handler = get_syslog_handler()
        log_handler.setFormatter(logging.Formatter("gearbox[%(process)d]: [%(levelname)s] %(message)s"))
    else:
        if log_file:
            try:
                log_handler = ReopenableFileHandler(log_file)
            except (IOError, OSError) as e:
                raise FatalError("Could not open log file %s: %s" % (log_file, e))
        else:
            log_handler = logging.StreamHandler(sys.stderr)
        log_handler.setFormatter(logging.Formatter(config["log_format"]))

    log.addHandler(log_handler)
    log.setLevel(level_for_verbosity(config.get("verbose")))
    log.propagate = False

    _GLOBAL_CONTEXT["log_handlers"] = [log_handler]


def reopen_log_handlers():
    """ Reopens the log file, if any. Used after external log rotation. """

    for handler in _GLOBAL_CONTEXT["log_handlers"]:
        if isinstance(handler, ReopenableFileHandler):
            log.debug("Reopening log file %s" % handler.baseFilename)
            handler.reopen()
