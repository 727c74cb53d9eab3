import inspect
from .exceptions import ValidationError, ConfigError
from .utils import load_module_from_path, camelize


class WorkerAdapter(object):
    """ Knows how to find, validate and call the job code of one worker convention. """

    name = None

    def __init__(self, prefix=""):
        self.prefix = prefix or ""
        self._modules = {}
        self._handlers = {}

    def entry_point_name(self, spec):
        raise NotImplementedError

    def is_valid_entry_point(self, obj):
        raise NotImplementedError

    def make_handler(self, entry_point):
        return entry_point

    def call(self, handler, payload, context):
        raise NotImplementedError

    def load_module(self, spec):
        if spec.name not in self._modules:
            try:
                self._modules[spec.name] = load_module_from_path(spec.name, spec.code_path)
            except Exception as e:  # pylint: disable=broad-except
                raise ValidationError("Couldn't load %s: %s: %s" % (spec.code_path, e.__class__.__name__, e))
        return self._modules[spec.name]

    def find_entry_point(self, spec):
        module = self.load_module(spec)
        entry_point_name = self.entry_point_name(spec)
        entry_point = getattr(module, entry_point_name, None)
        if entry_point is None or not self.is_valid_entry_point(entry_point):
            raise ValidationError("Function %s not found in %s" % (entry_point_name, spec.code_path))
        return entry_point

    def validate(self, spec):
        """ Raises ValidationError if the code of this function can't be run """
        self.find_entry_point(spec)

    def get_handler(self, spec):
        """ Returns the callable for this function, created on first use """
        if spec.name not in self._handlers:
            self._handlers[spec.name] = self.make_handler(self.find_entry_point(spec))
        return self._handlers[spec.name]

    def run(self, spec, payload, context):
        return self.call(self.get_handler(spec), payload, context)


class FunctionAdapter(WorkerAdapter):
    """ Job code is a plain function named like the file: def reverse(payload, context) """

    name = "function"

    def entry_point_name(self, spec):
        return self.prefix + spec.name

    def is_valid_entry_point(self, obj):
        return callable(obj) and not inspect.isclass(obj)

    def call(self, handler, payload, context):
        return handler(payload, context)


class TaskAdapter(WorkerAdapter):
    """ Job code is a class with a run() method: reverse_string.py => class ReverseString """

    name = "task"

    def entry_point_name(self, spec):
        return self.prefix + camelize(spec.name)

    def is_valid_entry_point(self, obj):
        return inspect.isclass(obj) and callable(getattr(obj, "run", None))

    def make_handler(self, entry_point):
        return entry_point()

    def call(self, handler, payload, context):
        if hasattr(handler, "run_wrapped"):
            return handler.run_wrapped(payload, context)
        return handler.run(payload, context)


ADAPTERS = {
    FunctionAdapter.name: FunctionAdapter,
    TaskAdapter.name: TaskAdapter
}


def get_adapter(name, prefix=""):
    if name not in ADAPTERS:
        raise ConfigError("Unknown adapter %s, use one of: %s" % (name, ", ".join(sorted(ADAPTERS))))
    return ADAPTERS[name](prefix=prefix)
