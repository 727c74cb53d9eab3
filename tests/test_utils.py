import os

from gearbox.job import JobContext
from gearbox.utils import split_list, parse_bool, camelize, truncate_lines, file_mtimes, load_class_by_path
from .fixtures.clients import FakeJob


def test_split_list():

    assert split_list(None) == []
    assert split_list("") == []
    assert split_list("a, b,,c ") == ["a", "b", "c"]
    assert split_list(["a", "b,c"]) == ["a", "b", "c"]


def test_parse_bool():

    assert parse_bool("true")
    assert parse_bool("Yes")
    assert parse_bool("1")
    assert not parse_bool("0")
    assert not parse_bool("false")
    assert parse_bool(True)
    assert not parse_bool(None)


def test_camelize():

    assert camelize("reverse_string") == "ReverseString"
    assert camelize("fetch-url") == "FetchUrl"
    assert camelize("sum") == "Sum"


def test_truncate_lines():

    assert truncate_lines("short") == ["short"]
    assert truncate_lines(b"bytes") == ["bytes"]
    assert truncate_lines(None) == ["None"]
    assert truncate_lines(42) == ["42"]

    lines = truncate_lines("a" * 300)
    assert lines == ["a" * 256 + "...(truncated)"]

    assert truncate_lines("a" * 256) == ["a" * 256]
    assert truncate_lines("abcdef", max_length=3) == ["abc...(truncated)"]

    # Non-scalars are pretty-printed, one line per item if needed
    assert truncate_lines({"a": 1}) == ["{'a': 1}"]
    lines = truncate_lines([str(i) * 30 for i in range(5)])
    assert len(lines) == 5


def test_job_context():

    context = JobContext(FakeJob("H:1", "sum", "[1, 2]"))
    assert context.handle == "H:1"
    assert context.function_name == "sum"

    context.log("Adding")
    context.log("x" * 500)
    context.log(["a", "b"])

    assert context.log_lines() == ["Adding", "x" * 256 + "...(truncated)", "['a', 'b']"]

    # Each job has its own context
    assert JobContext(FakeJob("H:2", "sum", "[]")).log_lines() == []


def test_file_mtimes(tmpdir):

    path = str(tmpdir.join("a.py"))
    with open(path, "w") as f:
        f.write("")

    mtimes = file_mtimes([path, str(tmpdir.join("missing.py"))])
    assert mtimes == {path: os.path.getmtime(path)}


def test_load_class_by_path():

    assert load_class_by_path("gearbox.adapters.TaskAdapter").name == "task"
    assert load_class_by_path("os.path.join") is os.path.join
