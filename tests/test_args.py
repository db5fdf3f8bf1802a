import pytest

from mosfs.args import ArgumentMissing, parse_args


def test_flags_and_value():
    options, rest = parse_args(["-a", "-b", "val", "file"], "b")
    assert options == [("a", None), ("b", "val")]
    assert rest == ["file"]


def test_combined_flags_with_attached_value():
    options, rest = parse_args(["-xyzvalue", "tail"], "z")
    assert options == [("x", None), ("y", None), ("z", "value")]
    assert rest == ["tail"]


def test_double_dash_ends_options():
    options, rest = parse_args(["-a", "--", "-b"], "")
    assert options == [("a", None)]
    assert rest == ["-b"]


def test_lone_dash_is_not_an_option():
    options, rest = parse_args(["-", "-a"], "")
    assert options == []
    assert rest == ["-", "-a"]


def test_stops_at_first_operand():
    options, rest = parse_args(["file", "-a"], "")
    assert options == []
    assert rest == ["file", "-a"]


def test_value_may_look_like_option():
    options, rest = parse_args(["-o", "-q"], {"o"})
    assert options == [("o", "-q")]
    assert rest == []


def test_missing_value_raises():
    with pytest.raises(ArgumentMissing) as info:
        parse_args(["-a", "-o"], "o")
    assert info.value.option == "o"