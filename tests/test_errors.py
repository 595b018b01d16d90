"""Cause chain walking and the failure taxonomy."""

from __future__ import annotations

from api_scaffold.errors import (
    BadRequestError,
    ConstraintViolationError,
    NotAllowedError,
    NotAuthorizedError,
    NotFoundError,
    WebApplicationError,
    contains_exception,
    unwrap_exception,
)


def _chain(depth: int) -> tuple[Exception, list[Exception]]:
    links = [ValueError(f"level {i}") for i in range(depth + 1)]
    for outer, inner in zip(links, links[1:]):
        outer.__cause__ = inner
    return links[0], links


def test_unwrap_without_cause_returns_input():
    exc = RuntimeError("alone")
    assert unwrap_exception(exc) is exc


def test_unwrap_returns_deepest_cause():
    top, links = _chain(3)
    assert unwrap_exception(top) is links[3]


def test_unwrap_follows_raise_from():
    try:
        try:
            raise KeyError("root")
        except KeyError as inner:
            raise RuntimeError("wrapper") from inner
    except RuntimeError as exc:
        assert isinstance(unwrap_exception(exc), KeyError)


def test_unwrap_stops_on_self_reference():
    exc = RuntimeError("loop")
    exc.__cause__ = exc
    assert unwrap_exception(exc) is exc


def test_unwrap_stops_on_longer_cycle():
    a, b = RuntimeError("a"), RuntimeError("b")
    a.__cause__ = b
    b.__cause__ = a
    assert unwrap_exception(a) is b


def test_cause_keyword_sets_cause():
    root = OSError("disk")
    exc = BadRequestError("outer", cause=root)
    assert exc.__cause__ is root
    assert unwrap_exception(exc) is root


def test_status_codes_per_class():
    assert BadRequestError("x").status_code == 400
    assert NotAuthorizedError("Basic").status_code == 401
    assert NotFoundError("x").status_code == 404
    assert NotAllowedError("x").status_code == 405
    assert WebApplicationError("x").status_code == 500
    assert WebApplicationError("x", 503).status_code == 503


def test_not_authorized_keeps_challenges_in_order():
    exc = NotAuthorizedError("Basic", "Bearer", message="login required")
    assert exc.challenges == ("Basic", "Bearer")
    assert exc.message == "login required"


def test_constraint_violation_message_joins_violations():
    exc = ConstraintViolationError(["a must not be blank", "b must be positive"])
    assert exc.violations == ["a must not be blank", "b must be positive"]
    assert str(exc) == "a must not be blank, b must be positive"


def test_contains_exception_matches_exact_type_in_chain():
    top, _ = _chain(2)
    wrapper = RuntimeError("outer")
    wrapper.__cause__ = top
    assert contains_exception(wrapper, ValueError)
    assert contains_exception(wrapper, KeyError, RuntimeError)
    assert not contains_exception(wrapper, Exception)
    assert not contains_exception(None, ValueError)
