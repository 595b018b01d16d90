"""Scaffold for JSON-over-HTTP services.

Every response, success or failure, is written as the same envelope
(``responses.Message``); every failure raised while handling a request is
classified by ``mappers.classify``. ``Server.builder()`` assembles the
application and its listener.
"""

from __future__ import annotations

from .codec import InvalidFormatError, JsonCodec
from .config import ServerSettings
from .errors import (
    BadRequestError,
    ConstraintViolationError,
    NotAllowedError,
    NotAuthorizedError,
    NotFoundError,
    ValidationFailure,
    WebApplicationError,
    contains_exception,
    unwrap_exception,
)
from .mappers import classify
from .responses import Message, failure, success
from .server import BuilderUsedError, Server, ServerBuilder

__all__ = [
    "__version__",
    "BadRequestError",
    "BuilderUsedError",
    "ConstraintViolationError",
    "InvalidFormatError",
    "JsonCodec",
    "Message",
    "NotAllowedError",
    "NotAuthorizedError",
    "NotFoundError",
    "Server",
    "ServerBuilder",
    "ServerSettings",
    "ValidationFailure",
    "WebApplicationError",
    "classify",
    "contains_exception",
    "failure",
    "success",
    "unwrap_exception",
]
__version__ = "0.1.0"
