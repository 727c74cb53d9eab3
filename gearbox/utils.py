import re
import os
import sys
import importlib
import importlib.util
import pprint
#
# Utils are functions that should be independent from the rest of Gearbox's codebase
#


def memoize_single_argument(f):
    """ Memoization decorator for a function taking a single argument """
    class memodict(dict):

        def __missing__(self, key):
            ret = self[key] = f(key)
            return ret
    return memodict().__getitem__


@memoize_single_argument
def load_class_by_path(classpath):
    """ Given a dotted path, returns the class (or any module attribute). """

    return getattr(
        importlib.import_module(
            re.sub(
                r"\.[^.]+$",
                "",
                classpath)),
        re.sub(
            r"^.*\.",
            "",
            classpath))


def load_module_from_path(name, path):
    """ Imports a python file as a fresh module. Raises whatever the module raises. """

    module_name = "gearbox_workers.%s" % name
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None:
        raise ImportError("Can't import %s" % path)

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        del sys.modules[module_name]
        raise
    return module


def split_list(value):
    """ Accepts "a,b, c", ["a", "b,c"] or None and returns ["a", "b", "c"] """

    if not value:
        return []

    if isinstance(value, str):
        value = [value]

    items = []
    for part in value:
        items.extend([x.strip() for x in str(part).split(",") if x.strip()])
    return items


def parse_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def camelize(name):
    """ reverse_string => ReverseString """
    return "".join(part[:1].upper() + part[1:] for part in re.split(r"[_\-]+", name) if part)


def truncate_lines(value, max_length=256):
    """ Turns any value into a list of log-friendly lines.

        Scalars longer than max_length are cut, anything else is pretty-printed
        and split on newlines.
    """

    if isinstance(value, bytes):
        value = value.decode("utf-8", "replace")

    if value is None or isinstance(value, (str, int, float, bool)):
        value = str(value)
        if len(value) > max_length:
            value = value[:max_length] + "...(truncated)"
        return [value]

    return pprint.pformat(value).strip().split("\n")


def file_mtimes(paths):
    """ Returns {path: mtime} for the paths that still exist """

    mtimes = {}
    for path in paths:
        try:
            mtimes[path] = os.path.getmtime(path)
        except OSError:
            continue
    return mtimes
