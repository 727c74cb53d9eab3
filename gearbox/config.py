import argparse
import configparser
import os
import sys
from .version import VERSION
from .exceptions import ConfigError
from .utils import parse_bool


# Section of .ini config files holding the global options. All other sections are functions.
INI_GLOBAL_SECTION = "gearbox"


def add_parser_args(parser):

    parser.add_argument(
        '--config',
        '-c',
        default=None,
        action="store",
        help='Path of a config file (.py or .ini)')

    parser.add_argument(
        '--pid_file',
        '-P',
        default=None,
        action="store",
        help='File to write the manager process ID to')

    parser.add_argument(
        '--log_file',
        '-l',
        default=None,
        action="store",
        help='Log output to this file, or use the keyword "syslog"')

    parser.add_argument(
        '--log_format',
        default="%(asctime)s %(process)5d [%(levelname)s] %(message)s",
        action="store",
        help='log format')

    parser.add_argument(
        '--verbose',
        '-v',
        default=0,
        action='count',
        help='Increase verbosity level by one (up to -vvvv)')

    parser.add_argument(
        '--version',
        default=False,
        action="store_true",
        help='Prints current Gearbox version')

    parser.add_argument(
        '--daemon',
        '-d',
        default=False,
        action='store_true',
        help='Daemon, detach and run in the background')

    parser.add_argument(
        '--dump_config',
        '-Z',
        default=False,
        action='store_true',
        help='Print the effective configuration and exit')

    parser.add_argument(
        '--user',
        '-u',
        default=None,
        action='store',
        help='Run the workers as this user')

    # Worker code

    parser.add_argument(
        '--worker_dir',
        '-w',
        default="./workers",
        action='store',
        help='Comma-separated list of directories where workers are located')

    parser.add_argument(
        '--include',
        default="",
        action='store',
        help='Comma-separated list of functions to run exclusively')

    parser.add_argument(
        '--exclude',
        default="",
        action='store',
        help='Comma-separated list of functions to exclude')

    parser.add_argument(
        '--ignore',
        '-i',
        default=[],
        action='append',
        help='Validate this function but never register it with the job server. Can be repeated.')

    parser.add_argument(
        '--prefix',
        '-p',
        default="",
        action='store',
        help='Prefix function/class names of the workers with this string')

    parser.add_argument(
        '--adapter',
        default="function",
        choices=["function", "task"],
        action='store',
        help='Worker code convention: plain functions, or classes with a run() method')

    parser.add_argument(
        '--auto_update',
        '-a',
        default=False,
        action='store_true',
        help='Automatically check for new worker code and restart the workers')

    parser.add_argument(
        '--code_check_interval',
        default=5,
        type=float,
        action='store',
        help='Seconds between two checks for new worker code')

    # Pool shape

    parser.add_argument(
        '--count',
        '-D',
        default=0,
        type=int,
        action='store',
        help='Start this many workers that do all jobs')

    parser.add_argument(
        '--dedicated_count',
        default=0,
        type=int,
        action='store',
        help='Start this many additional workers dedicated to each function')

    parser.add_argument(
        '--spawn_delay',
        default=0.05,
        type=float,
        action='store',
        help='Seconds to wait between two worker starts at bootstrap')

    parser.add_argument(
        '--watch_interval',
        default=0.05,
        type=float,
        action='store',
        help='Seconds between two checks of the worker processes')

    parser.add_argument(
        '--stop_timeout',
        default=60,
        type=float,
        action='store',
        help='Seconds to wait after a shutdown request before killing the workers')

    parser.add_argument(
        '--validation_timeout',
        default=30,
        type=float,
        action='store',
        help='Seconds to wait for the worker code validation')

    # Worker runtime

    parser.add_argument(
        '--host',
        default="127.0.0.1",
        action='store',
        help='Comma-separated list of job servers, HOST[:PORT]')

    parser.add_argument(
        '--client_class',
        default="gearbox.client_gearman.GearmanClient",
        action='store',
        help='Path to the job queue client class')

    parser.add_argument(
        '--timeout',
        default=0,
        type=int,
        action='store',
        help='Default job timeout in seconds, sent to the job server. 0 to disable')

    parser.add_argument(
        '--poll_timeout',
        default=5,
        type=float,
        action='store',
        help='Max seconds a worker waits for a job before checking its limits')

    parser.add_argument(
        '--max_worker_lifetime',
        '-x',
        default=3600,
        type=float,
        action='store',
        help='Maximum seconds for a worker to live. 0 for unlimited')

    parser.add_argument(
        '--max_runs_per_worker',
        default=0,
        type=int,
        action='store',
        help='Maximum number of jobs a worker will do before exiting. 0 for unlimited')

    parser.add_argument(
        '--restart_each',
        '-r',
        default=False,
        action='store_true',
        help='Restart workers after each job is complete')


class ArgumentParserIgnoringDefaults(argparse.ArgumentParser):
    def add_argument(self, *args, **kwargs):
        kwargs.pop("default", None)
        return argparse.ArgumentParser.add_argument(self, *args, **kwargs)


def _convert(value, name, parser_types, defaults):
    """ Casts a string coming from env or .ini to the type of the option """

    if parser_types.get(name):
        return parser_types[name](value)
    default = defaults.get(name)
    if isinstance(default, bool):
        return parse_bool(value)
    if isinstance(default, int):
        return int(value)
    return value


def read_config_file(config_file):
    """ Returns a dict of lowercase keys from a .py or .ini config file """

    if not os.path.isfile(config_file):
        raise ConfigError("Config file %s not found." % config_file)

    from_file = {}

    if config_file.endswith(".ini"):
        ini = configparser.ConfigParser(interpolation=None)
        ini.read(config_file)
        functions = {}
        for section in ini.sections():
            if section == INI_GLOBAL_SECTION:
                for k, v in ini.items(section):
                    from_file[k.lower()] = v
            else:
                functions[section] = dict(ini.items(section))
        if functions:
            from_file["functions"] = functions

    else:
        sys.path.insert(0, os.path.dirname(os.path.abspath(config_file)))
        try:
            config_module = __import__(os.path.basename(config_file).replace(".py", ""))
        finally:
            sys.path.pop(0)
        for k, v in config_module.__dict__.items():

            # We only keep variables starting with an uppercase character.
            if k[0].isupper():
                from_file[k.lower()] = v

    if not from_file:
        raise ConfigError("No configuration found in %s" % config_file)

    return from_file


def get_config(
        sources=(
            "file",
            "env"),
        env_prefix="GEARBOX_",
        file_path=None,
        parser=None,
        extra=None,
        args=None):
    """ Returns a config dict merged from several possible sources """

    if not parser:
        parser = argparse.ArgumentParser()

    add_parser_args(parser)
    parser_types = {action.dest: action.type for action in parser._actions if action.dest}

    default_config = parser.parse_args([]).__dict__

    # Keys that can't be passed from the command line
    default_config["functions"] = {}

    # Only keep values actually passed on the command line
    from_args = {}
    if "args" in sources:
        cmdline_parser = ArgumentParserIgnoringDefaults(argument_default=argparse.SUPPRESS)
        add_parser_args(cmdline_parser)
        from_args = cmdline_parser.parse_args(args).__dict__

    # If we were given another config file, use it

    if file_path is not None:
        config_file = file_path
    elif from_args.get("config"):
        config_file = from_args.get("config")
    elif os.environ.get(env_prefix + "CONFIG"):
        config_file = os.environ[env_prefix + "CONFIG"]
    # If a gearbox-config.py file is in the current directory, use it!
    elif os.path.isfile(os.path.join(os.getcwd(), "gearbox-config.py")):
        config_file = os.path.join(os.getcwd(), "gearbox-config.py")
    else:
        config_file = None

    from_file = {}
    if config_file and "file" in sources:
        from_file = read_config_file(config_file)
        defaults = dict(default_config)
        for name, value in list(from_file.items()):
            if isinstance(value, str) and name != "functions":
                from_file[name] = _convert(value, name, parser_types, defaults)

    # Merge the config in the order given by the user
    merged_config = dict(default_config)
    merged_config["config"] = config_file

    config_keys = set(list(default_config.keys()) + list(from_file.keys()))

    for part in sources:
        for name in config_keys:

            if part == "env":
                value = os.environ.get(env_prefix + name.upper())
                if value and name != "functions":
                    merged_config[name] = _convert(value, name, parser_types, default_config)
            elif part == "args" and name in from_args:
                merged_config[name] = from_args[name]
            elif part == "file" and name in from_file:
                merged_config[name] = from_file[name]

    if extra:
        merged_config.update(extra)

    if merged_config["version"]:
        print("Gearbox version: %s" % VERSION)
        print("Python version: %s" % sys.version)
        sys.exit(0)

    return merged_config
