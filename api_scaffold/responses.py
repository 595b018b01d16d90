"""Response envelope helpers.

Every response body written by the scaffold, success or failure, has the
same shape:

    {"success": bool, "message": str, "statusCode": int, "reasonPhrase": str}

``message`` and ``reasonPhrase`` are omitted when absent. The HTTP status of
the transport response always equals ``statusCode``.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import Response

from .codec import JsonCodec


JsonObject = dict[str, Any]

_DEFAULT_CODEC = JsonCodec()


def reason_phrase(status_code: int) -> str | None:
    """Standard reason phrase for a status code, or None for unknown codes."""

    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return None


class Message(BaseModel):
    """The envelope. Built fresh per request and never shared.

    Python names are snake_case; the wire names are ``statusCode`` and
    ``reasonPhrase``.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str | None = None
    status_code: int = Field(default=200, alias="statusCode")
    reason_phrase: str | None = Field(default=None, alias="reasonPhrase")

    def to_dict(self) -> JsonObject:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        return cls.model_validate(dict(data))


def success(message: str | None = None) -> Message:
    """Build a successful envelope (200)."""

    return Message(success=True, message=message, status_code=int(HTTPStatus.OK))


def failure(message: str | None, status_code: int) -> Message:
    """Build a failure envelope with the status's standard reason phrase."""

    return Message(
        success=False,
        message=message,
        status_code=int(status_code),
        reason_phrase=reason_phrase(status_code),
    )


def exception_message(exc: BaseException) -> str | None:
    """The message field of a raw failure, without looking at its causes.

    Empty messages count as absent.
    """

    text: Any
    if hasattr(exc, "original_message"):
        text = getattr(exc, "original_message")
    elif hasattr(exc, "detail"):
        # starlette HTTPException
        text = getattr(exc, "detail")
    elif hasattr(exc, "message"):
        text = getattr(exc, "message")
    else:
        text = str(exc)
    if text is None:
        return None
    text = str(text)
    return text or None


def failure_from_exception(exc: BaseException, status_code: int) -> Message:
    return failure(exception_message(exc), status_code)


def message_response(
    message: Message,
    codec: JsonCodec | None = None,
    *,
    headers: Mapping[str, str] | None = None,
) -> Response:
    """Serialize an envelope; the HTTP status mirrors ``message.status_code``."""

    codec = codec or _DEFAULT_CODEC
    return Response(
        content=codec.encode(message.to_dict()),
        status_code=message.status_code,
        headers=dict(headers) if headers else None,
        media_type="application/json",
    )


def ok_response(payload: Any = None, codec: JsonCodec | None = None) -> Response:
    """200 response: a plain string becomes a success envelope, anything else is sent as-is."""

    if payload is None or isinstance(payload, str):
        return message_response(success(payload), codec)
    codec = codec or _DEFAULT_CODEC
    return Response(content=codec.encode(payload), status_code=int(HTTPStatus.OK), media_type="application/json")
