#!/usr/bin/env python
import os
import sys

# This must be done asap, before anything creates sockets or subprocesses
from gevent import monkey
monkey.patch_all()

import argparse
import json

sys.path.insert(0, os.getcwd())

from gearbox import config
from gearbox.adapters import get_adapter
from gearbox.context import set_current_config, set_logger_config, log
from gearbox.exceptions import FatalError
from gearbox.processes import ProcessPool, ROLE_ENV, FUNCTIONS_ENV, ROLE_WORKER, ROLE_HELPER
from gearbox.registry import load_functions_from_config
from gearbox.utils import load_class_by_path, split_list


def show_help(parser, message=""):
    """ Prints the error and the usage, then exits with an error status """

    if message:
        print("ERROR:\n  %s\n" % message, file=sys.stderr)
    parser.print_help(sys.stderr)
    sys.exit(1)


def run_supervisor(cfg):

    from gearbox.supervisor import Supervisor, PidFile, daemonize, drop_privileges

    functions = load_functions_from_config(cfg)

    if cfg["daemon"]:
        daemonize()

    pid_file = None
    if cfg["pid_file"]:
        pid_file = PidFile(cfg["pid_file"])
        pid_file.write()

    try:
        if cfg["user"]:
            drop_privileges(cfg["user"])

        # Children run this same command line, in another role
        pool = ProcessPool([sys.executable] + sys.argv)

        supervisor = Supervisor(functions, pool)
        supervisor.work()

    finally:
        if pid_file is not None:
            pid_file.remove()

    return supervisor.exitcode


def run_helper(cfg):

    from gearbox.validator import ValidationHelper

    names = split_list(os.environ.get(FUNCTIONS_ENV)) or None
    helper = ValidationHelper(get_adapter(cfg["adapter"], cfg["prefix"]), os.getppid(), names=names)
    helper.work()
    return helper.exitcode


def run_worker(cfg):

    from gearbox.worker import Worker

    functions = load_functions_from_config(cfg)

    specs = []
    for name in split_list(os.environ.get(FUNCTIONS_ENV)):
        if name in functions:
            specs.append(functions[name])
        else:
            log.warning("Function %s is not available anymore" % name)

    client_class = load_class_by_path(cfg["client_class"])
    worker = Worker(specs, client_class(), get_adapter(cfg["adapter"], cfg["prefix"]))
    worker.work()
    return worker.exitcode


def main():

    parser = argparse.ArgumentParser(description='Start a pool of job workers')

    try:
        cfg = config.get_config(parser=parser, sources=("file", "env", "args"))
    except FatalError as e:
        show_help(parser, str(e))

    set_current_config(cfg)

    role = os.environ.get(ROLE_ENV)

    try:
        set_logger_config()

        if role == ROLE_WORKER:
            exitcode = run_worker(cfg)

        elif role == ROLE_HELPER:
            exitcode = run_helper(cfg)

        elif cfg["dump_config"]:
            print(json.dumps(cfg, indent=2, sort_keys=True, default=str))
            exitcode = 0

        else:
            exitcode = run_supervisor(cfg)

    except FatalError as e:
        if role:
            log.error("%s" % e)
            sys.exit(1)
        show_help(parser, str(e))

    sys.exit(exitcode)


if __name__ == "__main__":
    main()
