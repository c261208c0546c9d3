from hypothesis import given
import hypothesis.strategies as hs
from pytest import raises

from ebookledger import CallContext, ErrorKind, LedgerError
from ebookledger.records import (
    MAX_SIZE,
    check_categories,
    check_fields,
    check_size,
    check_title,
)


def kind_of(f, *args) -> ErrorKind:
    with raises(LedgerError) as e:
        f(*args)
    return e.value.kind


def test_title_bounds():
    check_title("x" * 63)
    check_title("x")
    assert kind_of(check_title, "x" * 64) == ErrorKind.invalid_title
    assert kind_of(check_title, "") == ErrorKind.invalid_title


def test_size_bounds():
    check_size(1)
    check_size(MAX_SIZE)
    assert kind_of(check_size, 1_000_000_000) == ErrorKind.invalid_size
    assert kind_of(check_size, 0) == ErrorKind.invalid_size
    assert kind_of(check_size, -5) == ErrorKind.invalid_size


def test_categories_bounds():
    assert check_categories(["a"] * 8) == ("a",) * 8
    assert check_categories(["x" * 31]) == ("x" * 31,)
    assert kind_of(check_categories, []) == ErrorKind.invalid_title
    assert kind_of(check_categories, ["a"] * 9) == ErrorKind.invalid_title
    assert kind_of(check_categories, ["ok", ""]) == ErrorKind.invalid_title
    assert kind_of(check_categories, ["x" * 32]) == ErrorKind.invalid_title
    with raises(TypeError):
        check_categories("fiction")


def test_first_failure_wins():
    # everything is wrong, the title is checked first
    assert kind_of(check_fields, "", 0, "", []) == ErrorKind.invalid_title
    assert kind_of(check_fields, "ok", 0, "", []) == ErrorKind.invalid_size
    assert kind_of(check_fields, "ok", 1, "", ["c"]) == ErrorKind.invalid_title
    assert kind_of(check_fields, "ok", 1, "s" * 256, ["c"]) == ErrorKind.invalid_title


@given(
    title=hs.text(min_size=1, max_size=63),
    size=hs.integers(min_value=1, max_value=MAX_SIZE),
    summary=hs.text(min_size=1, max_size=255),
    categories=hs.lists(hs.text(min_size=1, max_size=31), min_size=1, max_size=8),
)
def test_valid_fields_pass(title, size, summary, categories):
    assert check_fields(title, size, summary, categories) == tuple(categories)


@given(size=hs.one_of(hs.integers(max_value=0), hs.integers(min_value=MAX_SIZE + 1)))
def test_invalid_sizes_fail(size):
    assert kind_of(check_size, size) == ErrorKind.invalid_size


def test_call_context_height():
    assert CallContext("alice").height == 0
    with raises(ValueError):
        CallContext("alice", height=-1)


def test_error_codes_are_distinct():
    codes = [k.value for k in ErrorKind]
    assert len(codes) == len(set(codes))
    e = LedgerError(ErrorKind.not_found, "nope", 3)
    assert e.code == 101
    assert str(e) == "not_found: nope"


def test_call_context_height_type():
    with raises(TypeError):
        CallContext("alice", height=True)
    with raises(TypeError):
        CallContext("alice", height=1.0)
