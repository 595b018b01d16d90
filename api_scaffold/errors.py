"""Failure taxonomy for request handlers.

Application code and the dispatch layer raise these to signal a specific
HTTP outcome. The classifier in ``mappers`` turns them into envelopes.

Every constructor accepts ``cause=`` which is chained through ``__cause__``
(the same link ``raise ... from ...`` sets), so ``unwrap_exception`` can walk
down to the root failure.
"""

from __future__ import annotations

from typing import Any, Iterable


class WebApplicationError(Exception):
    """A failure that carries an explicit HTTP status code."""

    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        *,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(*([message] if message is not None else []))
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if cause is not None:
            self.__cause__ = cause


class BadRequestError(WebApplicationError):
    status_code = 400


class NotAuthorizedError(WebApplicationError):
    """401 with the authentication challenges the client may answer."""

    status_code = 401

    def __init__(
        self,
        *challenges: Any,
        message: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.challenges = tuple(challenges)


class NotAllowedError(WebApplicationError):
    """The matched resource does not implement the request method."""

    status_code = 405

    def __init__(
        self,
        message: str | None = None,
        *,
        allowed: Iterable[str] = (),
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.allowed = tuple(allowed)


class NotFoundError(WebApplicationError):
    status_code = 404


class ValidationFailure(Exception):
    """Validation went wrong without producing individual violations."""

    def __init__(self, message: str | None = None, *, cause: BaseException | None = None) -> None:
        super().__init__(*([message] if message is not None else []))
        self.message = message
        if cause is not None:
            self.__cause__ = cause


class ConstraintViolationError(ValidationFailure):
    """Validation failure carrying one message per violated constraint."""

    def __init__(
        self,
        violations: Iterable[str],
        message: str | None = None,
        *,
        cause: BaseException | None = None,
    ) -> None:
        self.violations = [str(v) for v in violations]
        super().__init__(message if message is not None else ", ".join(self.violations), cause=cause)


def unwrap_exception(exc: BaseException) -> BaseException:
    """Return the deepest exception in the ``__cause__`` chain.

    Stops at an exception without a cause, or whose cause points back to
    itself or to an exception already visited.
    """

    seen = {id(exc)}
    while exc.__cause__ is not None and exc.__cause__ is not exc:
        if id(exc.__cause__) in seen:
            break
        exc = exc.__cause__
        seen.add(id(exc))
    return exc


def contains_exception(exc: BaseException | None, *types: type[BaseException]) -> bool:
    """True if ``exc`` or any exception in its cause chain is exactly one of ``types``."""

    seen: set[int] = set()
    current = exc
    while current is not None and id(current) not in seen:
        if type(current) in types:
            return True
        seen.add(id(current))
        current = current.__cause__
    return False
