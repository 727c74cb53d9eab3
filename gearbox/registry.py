import glob
import os
import random
from collections import OrderedDict
from .context import log
from .exceptions import ConfigError, NoWorkersFound
from .utils import split_list, parse_bool

MIN_PRIORITY = -5
MAX_PRIORITY = 5


class FunctionSpec(object):
    """ Everything the supervisor and the workers need to know about one job function.

        Rebuilt from scratch every time the code is loaded, never updated in place.
    """

    def __init__(self, name, code_path, desired_count=1, dedicated_only=False,
                 dedicated_count=0, priority=0, timeout=None):
        self.name = name
        self.code_path = code_path
        self.desired_count = desired_count
        self.dedicated_only = dedicated_only
        self.dedicated_count = dedicated_count
        self.priority = priority
        self.timeout = timeout

    def __repr__(self):
        return "<FunctionSpec %s count=%s dedicated=%s%s priority=%s>" % (
            self.name, self.desired_count, self.dedicated_count,
            " (only)" if self.dedicated_only else "", self.priority
        )


def int_option(override, key, name):
    """ Returns the integer value of a per-function option, or None if it is not set.
        Values from .ini files are strings. """

    value = override.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError("Invalid value for %s of function %s: %r" % (key, name, value))


def clamp_priority(value, name=None):
    priority = int_option({"priority": value}, "priority", name) or 0
    return max(MIN_PRIORITY, min(MAX_PRIORITY, priority))


def find_worker_files(worker_dirs):
    """ Returns an ordered {name: path} of the worker files found in the given directories.
        The first directory defining a name wins. """

    found = OrderedDict()
    for worker_dir in worker_dirs:
        if not os.path.isdir(worker_dir):
            raise ConfigError("Worker dir %s not found" % worker_dir)

        for path in sorted(glob.glob(os.path.join(worker_dir, "*.py"))):
            name = os.path.basename(path)[:-3]
            if name.startswith("_"):
                continue
            if name in found:
                log.debug("Function %s in %s is shadowed by %s" % (name, path, found[name]))
                continue
            found[name] = os.path.abspath(path)

    return found


def load_functions(worker_dirs, include=None, exclude=None, overrides=None, do_all_count=0,
                   dedicated_count=0, default_timeout=0):
    """ Computes the function table: which functions exist and how many workers each one needs. """

    worker_dirs = split_list(worker_dirs)
    include = split_list(include)
    exclude = split_list(exclude)
    overrides = overrides or {}
    do_all_count = int(do_all_count or 0)

    candidates = find_worker_files(worker_dirs)

    # Overrides can point to code outside of the worker dirs
    for name, override in overrides.items():
        if (override or {}).get("path") and name not in candidates:
            candidates[name] = os.path.abspath(override["path"])

    for name in overrides:
        if name not in candidates:
            log.debug("Ignoring configuration of unknown function %s" % name)

    if include:
        candidates = OrderedDict((k, v) for k, v in candidates.items() if k in include)

    candidates = OrderedDict((k, v) for k, v in candidates.items() if k not in exclude)

    if not candidates:
        raise NoWorkersFound("No workers found in %s" % ", ".join(worker_dirs))

    functions = OrderedDict()

    for name, code_path in candidates.items():

        override = overrides.get(name) or {}

        function_dedicated_count = int_option(override, "dedicated_count", name)
        if function_dedicated_count is None:
            function_dedicated_count = int(dedicated_count or 0)

        dedicated_only = parse_bool(override.get("dedicated_only", False))

        if dedicated_only:
            if function_dedicated_count <= 0:
                raise ConfigError("Invalid configuration for dedicated_count for function %s" % name)
            desired_count = function_dedicated_count
        else:
            shared_min_count = int_option(override, "count", name)
            if shared_min_count is None:
                shared_min_count = max(do_all_count, 1)
            desired_count = max(shared_min_count, do_all_count + function_dedicated_count)

        timeout = int_option(override, "timeout", name)
        if timeout is None:
            timeout = int(default_timeout or 0)

        functions[name] = FunctionSpec(
            name,
            code_path,
            desired_count=desired_count,
            dedicated_only=dedicated_only,
            dedicated_count=function_dedicated_count,
            priority=clamp_priority(override.get("priority"), name=name),
            timeout=timeout or None
        )

    return functions


def load_functions_from_config(config):
    return load_functions(
        config["worker_dir"],
        include=config["include"],
        exclude=config["exclude"],
        overrides=config.get("functions"),
        do_all_count=config["count"],
        dedicated_count=config["dedicated_count"],
        default_timeout=config["timeout"]
    )


def serve_all_names(functions):
    """ Names of the functions a "serve-all" worker binds to """
    return [name for name, spec in functions.items() if not spec.dedicated_only]


def order_functions(names, functions, rnd=None):
    """ Orders function names for registration with the job server.

        Job servers tend to hand out jobs for the functions registered first, so higher
        priorities go first. Equal priorities are shuffled to avoid starving the same
        function in every worker. This is a hint, not a guarantee.
    """

    names = list(names)
    if len(names) > 1:
        (rnd or random).shuffle(names)
        names.sort(key=lambda name: -functions[name].priority)
    return names
