"""Tests for CLI output helpers."""

import json

from dynashard.cli import _exitcodes as ec
from dynashard.cli._output import print_error, print_items, print_object, print_table


def test_print_table_json(capsys):
    print_table(["id", "name"], [["1", "Alice"], ["2", "Bob"]], json_mode=True)
    out = capsys.readouterr().out
    data = json.loads(out)
    assert len(data) == 2
    assert data[0] == {"id": "1", "name": "Alice"}


def test_print_table_text(capsys):
    print_table(["id", "name"], [["1", "Alice"]], json_mode=False)
    out = capsys.readouterr().out
    assert "id" in out
    assert "Alice" in out


def test_print_table_empty(capsys):
    print_table(["id"], [], json_mode=False)
    assert capsys.readouterr().out == ""


def test_print_object_sets(capsys):
    print_object({"ids": {"b", "a"}}, json_mode=True)
    assert json.loads(capsys.readouterr().out) == {"ids": ["a", "b"]}
    print_object({"ids": {"b", "a"}}, json_mode=False)
    assert capsys.readouterr().out == "ids: {a, b}\n"


def test_print_items_puts_id_first(capsys):
    print_items([{"name": "Ann", "id": "u1"}, {"id": "u2", "city": "Oslo"}])
    header = capsys.readouterr().out.splitlines()[0].split()
    assert header == ["id", "name", "city"]


def test_print_error(capsys):
    print_error("bad thing")
    assert capsys.readouterr().err == "Error: bad thing\n"


def test_exit_codes_are_distinct_and_nonzero():
    codes = [ec.USAGE_ERROR, ec.DATABASE_ERROR, ec.EXECUTION_FAILURE, ec.CONDITION_FAILED]
    assert len(set(codes)) == len(codes)
    assert 0 not in codes
