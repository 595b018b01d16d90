"""Failure classification: exception -> envelope + HTTP status + log action.

The registry is an ordered tuple of mappers evaluated top-down; the first
whose ``matches`` accepts the exception builds the envelope. More specific
categories come first and the catch-all comes last:

  1. malformed body (codec structural error)   400  no log
  2. bad request                               400  message only
  3. validation                                400  joined violations
                                               500  unstructured, full log
  4. not authorized                            401  message only
  5. method not allowed                        405  no log
  6. not found                                 404  no log, never unwrapped
  7. web application error with a status       n    full log unless 404
  8. anything else                             500  full log

Policy: classification never raises. If a mapper fails, or the codec cannot
encode the envelope, the client gets a fixed 500 envelope. A failure carrying
a non-error status (below 400) is answered with its category default
instead, so ``success=false`` always comes with a 4xx or 5xx code.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .codec import InvalidFormatError, JsonCodec, format_violation, structural_message
from .errors import (
    BadRequestError,
    ConstraintViolationError,
    NotAllowedError,
    NotAuthorizedError,
    NotFoundError,
    ValidationFailure,
    WebApplicationError,
    unwrap_exception,
)
from .responses import Message, exception_message, failure, failure_from_exception, message_response


logger = logging.getLogger(__name__)

NOT_ALLOWED_PREFIX = "The method you used on this resource or path is not implemented: "
INTERNAL_ERROR_MESSAGE = "An unexpected error occurred"


@dataclass(frozen=True, slots=True)
class ExceptionMapper:
    """One failure category: a predicate and the envelope it produces."""

    name: str
    matches: Callable[[BaseException], bool]
    to_message: Callable[[BaseException], Message]


def _log(method: Callable[..., Any], msg: str, *args: Any, **kwargs: Any) -> None:
    """Logging must never take the error path down with it."""

    try:
        method(msg, *args, **kwargs)
    except Exception:  # noqa: BLE001
        pass


def _http_status(exc: BaseException) -> int | None:
    """The failure's own status, if it names an error status (4xx or 5xx)."""

    if isinstance(exc, (WebApplicationError, StarletteHTTPException)):
        status_code = int(exc.status_code)
        if status_code >= 400:
            return status_code
    return None


def _unwrapped(exc: BaseException, status_code: int) -> Message:
    return failure_from_exception(unwrap_exception(exc), status_code)


def _errors_of(exc: BaseException) -> list[Mapping[str, Any]]:
    if isinstance(exc, (RequestValidationError, ValidationError)):
        return list(exc.errors())
    return []


# -- 1. malformed body -------------------------------------------------------

def _is_malformed_body(exc: BaseException) -> bool:
    if isinstance(exc, (InvalidFormatError, json.JSONDecodeError)):
        return True
    return structural_message(_errors_of(exc)) is not None


def _malformed_body(exc: BaseException) -> Message:
    if isinstance(exc, InvalidFormatError):
        text = exc.original_message
    elif isinstance(exc, json.JSONDecodeError):
        # .msg is the message without the line/column suffix
        text = exc.msg
    else:
        text = structural_message(_errors_of(exc))
    return failure(text, 400)


# -- 2. bad request ----------------------------------------------------------

def _bad_request(exc: BaseException) -> Message:
    _log(logger.warning, "%s", exception_message(exc))
    return _unwrapped(exc, _http_status(exc) or 400)


# -- 3. validation -----------------------------------------------------------

def _is_validation(exc: BaseException) -> bool:
    return isinstance(exc, (ValidationFailure, RequestValidationError, ValidationError))


def _violations(exc: BaseException) -> list[str]:
    if isinstance(exc, ConstraintViolationError):
        return list(exc.violations)
    return [format_violation(error) for error in _errors_of(exc)]


def _validation(exc: BaseException) -> Message:
    violations = _violations(exc)
    if violations:
        joined = ", ".join(violations)
        _log(logger.warning, "Validation failed: %s", joined)
        return failure(joined, 400)
    _log(logger.error, "%s", exception_message(exc), exc_info=exc)
    return _unwrapped(exc, 500)


# -- 4. not authorized -------------------------------------------------------

def _not_authorized(exc: BaseException) -> Message:
    challenges = ", ".join(str(c) for c in getattr(exc, "challenges", ()))
    _log(logger.warning, "%s %s", exception_message(exc), challenges)
    return failure(challenges, 401)


# -- 5. not allowed ----------------------------------------------------------

def _is_not_allowed(exc: BaseException) -> bool:
    return isinstance(exc, NotAllowedError) or (
        isinstance(exc, StarletteHTTPException) and exc.status_code == 405
    )


def _not_allowed(exc: BaseException) -> Message:
    return failure(NOT_ALLOWED_PREFIX + (exception_message(exc) or ""), 405)


# -- 6. not found ------------------------------------------------------------

def _is_not_found(exc: BaseException) -> bool:
    return isinstance(exc, NotFoundError) or (
        isinstance(exc, StarletteHTTPException) and exc.status_code == 404
    )


def _not_found(exc: BaseException) -> Message:
    return failure_from_exception(exc, 404)


# -- 7. web application error ------------------------------------------------

def _web_application(exc: BaseException) -> Message:
    status_code = _http_status(exc) or 500
    if status_code != 404:
        _log(logger.error, "%s", exception_message(exc), exc_info=exc)
    return _unwrapped(exc, status_code)


# -- 8. anything else --------------------------------------------------------

def _other(exc: BaseException) -> Message:
    _log(logger.error, "Unhandled %s: %s", type(exc).__name__, exc, exc_info=exc)
    return _unwrapped(exc, 500)


def default_registry() -> tuple[ExceptionMapper, ...]:
    return (
        ExceptionMapper("malformed_body", _is_malformed_body, _malformed_body),
        ExceptionMapper("bad_request", lambda e: isinstance(e, BadRequestError), _bad_request),
        ExceptionMapper("validation", _is_validation, _validation),
        ExceptionMapper("not_authorized", lambda e: isinstance(e, NotAuthorizedError), _not_authorized),
        ExceptionMapper("not_allowed", _is_not_allowed, _not_allowed),
        ExceptionMapper("not_found", _is_not_found, _not_found),
        ExceptionMapper(
            "web_application",
            lambda e: isinstance(e, (WebApplicationError, StarletteHTTPException)),
            _web_application,
        ),
        ExceptionMapper("other", lambda e: True, _other),
    )


DEFAULT_REGISTRY = default_registry()


def internal_error() -> Message:
    return failure(INTERNAL_ERROR_MESSAGE, 500)


def classify(exc: BaseException, registry: tuple[ExceptionMapper, ...] = DEFAULT_REGISTRY) -> Message:
    """Map ``exc`` to exactly one envelope. Never raises."""

    try:
        for mapper in registry:
            if mapper.matches(exc):
                return mapper.to_message(exc)
    except Exception:  # noqa: BLE001
        _log(logger.error, "Failed to build error response for %s", type(exc).__name__, exc_info=True)
    return internal_error()


def failure_headers(exc: BaseException) -> dict[str, str]:
    """Headers the failure asks the transport to send along with the envelope."""

    headers: dict[str, str] = {}
    if isinstance(exc, StarletteHTTPException) and exc.headers:
        headers.update(exc.headers)
    if isinstance(exc, NotAllowedError) and exc.allowed:
        headers["Allow"] = ", ".join(exc.allowed)
    if isinstance(exc, NotAuthorizedError) and exc.challenges:
        headers["WWW-Authenticate"] = ", ".join(str(c) for c in exc.challenges)
    return headers


def failure_response(
    exc: BaseException,
    *,
    codec: JsonCodec | None = None,
    registry: tuple[ExceptionMapper, ...] = DEFAULT_REGISTRY,
) -> Response:
    message = classify(exc, registry)
    try:
        headers = failure_headers(exc)
    except Exception:  # noqa: BLE001
        headers = {}
    try:
        return message_response(message, codec, headers=headers)
    except Exception:  # noqa: BLE001
        _log(logger.error, "Failed to encode error response with %r", codec, exc_info=True)
        return message_response(internal_error())


def _codec_of(request: Request) -> JsonCodec | None:
    return getattr(request.app.state, "codec", None)


class ExceptionGuardMiddleware(BaseHTTPMiddleware):
    """Ensure exceptions escaping the router never reach the transport raw."""

    def __init__(self, app: Any, registry: tuple[ExceptionMapper, ...] = DEFAULT_REGISTRY) -> None:
        super().__init__(app)
        self.registry = registry

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001
            return failure_response(exc, codec=_codec_of(request), registry=self.registry)


def install_exception_mappers(app: FastAPI, registry: tuple[ExceptionMapper, ...] = DEFAULT_REGISTRY) -> None:
    """Route every failure raised while handling a request through ``classify``.

    HTTPException and RequestValidationError are caught by the framework's
    own exception middleware, so they get handlers; everything else is caught
    by the guard middleware wrapped around the router.
    """

    async def _handle(request: Request, exc: Exception) -> Response:
        return failure_response(exc, codec=_codec_of(request), registry=registry)

    app.add_exception_handler(StarletteHTTPException, _handle)
    app.add_exception_handler(RequestValidationError, _handle)
    app.add_middleware(ExceptionGuardMiddleware, registry=registry)
