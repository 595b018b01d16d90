"""JSON codec used for request bodies and every response the scaffold writes.

Configuration contract:
  - omit_none: fields whose value is None are not emitted on serialization.
  - ignore_unknown_fields: input JSON may carry fields the target model does
    not declare (forward-compatible clients).
  - structural problems (bad syntax, a field of the wrong type) surface as
    InvalidFormatError whose ``original_message`` carries no parser position.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, TypeVar

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from starlette.requests import Request

from .errors import ConstraintViolationError


ModelT = TypeVar("ModelT", bound=BaseModel)

# pydantic error types that mean "the value has the wrong shape", as opposed
# to a well-typed value violating a constraint.
_FORMAT_ERROR_SUFFIXES = ("_type", "_parsing")
_FORMAT_ERROR_TYPES = {"enum", "json_invalid"}


class InvalidFormatError(ValueError):
    """The input could not be mapped onto the target structure."""

    def __init__(
        self,
        original_message: str,
        *,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        self.original_message = original_message
        self.line = line
        self.column = column
        text = original_message
        if line is not None:
            text = f"{text} (line {line}, column {column})"
        super().__init__(text)


def _loc(error: Mapping[str, Any]) -> str:
    return ".".join(str(part) for part in error.get("loc", ()))


def _is_format_error(error: Mapping[str, Any]) -> bool:
    kind = str(error.get("type", ""))
    return kind in _FORMAT_ERROR_TYPES or kind.endswith(_FORMAT_ERROR_SUFFIXES)


def format_violation(error: Mapping[str, Any]) -> str:
    """One pydantic error as a "field: message" line."""

    loc = _loc(error)
    return f"{loc}: {error['msg']}" if loc else str(error["msg"])


def structural_message(errors: Iterable[Mapping[str, Any]]) -> str | None:
    """Message for the first wrong-shape error in ``errors``, or None.

    JSON syntax errors reported by the framework carry the parser offset in
    their location; only the parser's own message is kept.
    """

    for error in errors:
        if error.get("type") == "json_invalid":
            ctx = error.get("ctx") or {}
            return str(ctx.get("error") or error["msg"])
        if _is_format_error(error):
            return f"Cannot deserialize value of field '{_loc(error)}': {error['msg']}"
    return None


class JsonCodec:
    def __init__(self, *, omit_none: bool = True, ignore_unknown_fields: bool = True) -> None:
        self.omit_none = omit_none
        self.ignore_unknown_fields = ignore_unknown_fields
        self.response_class = self._make_response_class()

    def __repr__(self) -> str:
        return (
            f"JsonCodec(omit_none={self.omit_none!r}, "
            f"ignore_unknown_fields={self.ignore_unknown_fields!r})"
        )

    def encode(self, obj: Any) -> bytes:
        data = jsonable_encoder(obj, exclude_none=self.omit_none)
        return json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    def decode(self, raw: bytes | str, model: type[ModelT] | None = None) -> Any:
        """Parse ``raw`` and, when ``model`` is given, validate into it.

        Raises:
            InvalidFormatError: malformed JSON, or a value of the wrong type.
            ConstraintViolationError: well-formed values failing model constraints,
                missing fields, or unknown fields when those are not tolerated.
        """

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InvalidFormatError(exc.msg, line=exc.lineno, column=exc.colno) from exc

        if model is None:
            return data

        if not self.ignore_unknown_fields and isinstance(data, dict):
            unknown = [key for key in data if key not in self._known_fields(model)]
            if unknown:
                raise ConstraintViolationError([f'Unrecognized field "{key}"' for key in unknown])

        try:
            return model.model_validate(data)
        except ValidationError as exc:
            errors = exc.errors()
            message = structural_message(errors)
            if message is not None:
                raise InvalidFormatError(message) from exc
            raise ConstraintViolationError([format_violation(error) for error in errors]) from exc

    @staticmethod
    def _known_fields(model: type[BaseModel]) -> set[str]:
        names: set[str] = set()
        for name, info in model.model_fields.items():
            names.add(name)
            if info.alias:
                names.add(info.alias)
        return names

    def _make_response_class(self) -> type[JSONResponse]:
        codec = self

        class CodecJSONResponse(JSONResponse):
            def render(self, content: Any) -> bytes:
                return codec.encode(content)

        return CodecJSONResponse


def request_body_model(route: Any) -> type[BaseModel] | None:
    """The pydantic model a FastAPI route reads its JSON body into, if any."""

    body_field = getattr(route, "body_field", None)
    model = getattr(body_field, "type_", None)
    if isinstance(model, type) and issubclass(model, BaseModel):
        return model
    return None


def _is_json(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return not media_type or media_type == "application/json" or media_type.endswith("+json")


async def decode_request_body(request: Request) -> None:
    """Route dependency: read the request body through the app's codec.

    FastAPI validates bodies against the route's model on its own, which
    always tolerates unknown fields. When the installed codec does not, the
    body is decoded by the codec first so its errors win.
    """

    codec = getattr(request.app.state, "codec", None)
    if codec is None or codec.ignore_unknown_fields:
        return
    model = request_body_model(request.scope.get("route"))
    if model is None or not _is_json(request.headers.get("content-type", "")):
        return
    raw = await request.body()
    if raw:
        codec.decode(raw, model)
