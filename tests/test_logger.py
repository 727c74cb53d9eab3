import logging
import os

from gearbox import context
from gearbox.context import set_logger_config, reopen_log_handlers, log
from gearbox.logger import level_for_verbosity, ReopenableFileHandler, WORKER, TRACE
from .conftest import make_config


def test_verbosity_levels():

    assert level_for_verbosity(0) == logging.WARNING
    assert level_for_verbosity(None) == logging.WARNING
    assert level_for_verbosity(1) == logging.INFO
    assert level_for_verbosity(2) == WORKER
    assert level_for_verbosity(3) == logging.DEBUG
    assert level_for_verbosity(4) == TRACE
    assert level_for_verbosity(10) == TRACE

    assert logging.getLevelName(WORKER) == "WORKER"


def test_log_file_reopen(tmpdir):

    path = str(tmpdir.join("gearbox.log"))
    make_config(log_file=path, verbose=2, log_format="%(levelname)s %(message)s")

    try:
        set_logger_config()
        assert log.level == WORKER

        log.log(WORKER, "before rotation")
        log.debug("hidden")

        os.rename(path, path + ".1")
        reopen_log_handlers()

        log.warning("after rotation")

        for handler in context._GLOBAL_CONTEXT["log_handlers"]:
            handler.flush()

        with open(path + ".1") as f:
            assert f.read() == "WORKER before rotation\n"
        with open(path) as f:
            assert f.read() == "WARNING after rotation\n"

    finally:
        for handler in context._GLOBAL_CONTEXT["log_handlers"]:
            log.removeHandler(handler)
            handler.close()
        context._GLOBAL_CONTEXT["log_handlers"] = []
        log.propagate = True
        log.setLevel(logging.NOTSET)


def test_reopenable_file_handler_appends(tmpdir):

    path = str(tmpdir.join("append.log"))
    with open(path, "w") as f:
        f.write("existing\n")

    handler = ReopenableFileHandler(path)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.emit(logging.LogRecord("gearbox", logging.INFO, __file__, 1, "new", None, None))
    handler.close()

    with open(path) as f:
        assert f.read() == "existing\nnew\n"


def test_config_not_loaded_warning(caplog):

    config = context._GLOBAL_CONTEXT["config"]
    context.set_current_config({})

    try:
        assert context.get_current_config() == {}
    finally:
        context.set_current_config(config)

    assert "Use context.set_current_config(config.get_config()) first." in caplog.text
