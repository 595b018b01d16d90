"""Shared fixtures: a router raising every failure kind, and a server factory."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from fastapi import APIRouter
from fastapi.testclient import TestClient
from pydantic import BaseModel

from api_scaffold.errors import (
    BadRequestError,
    ConstraintViolationError,
    NotAuthorizedError,
    NotFoundError,
    WebApplicationError,
)
from api_scaffold.responses import Message, success
from api_scaffold.server import Server, ServerBuilder


class Widget(BaseModel):
    name: str
    count: int = 0


def make_router() -> APIRouter:
    router = APIRouter()

    @router.get("/hello")
    async def hello() -> Message:
        return success("Hello")

    @router.get("/big")
    async def big() -> dict:
        return {"data": "x" * 4000}

    @router.post("/widgets")
    async def create_widget(widget: Widget) -> dict:
        return {"name": widget.name, "count": widget.count, "note": None}

    @router.get("/fail/bad-request")
    async def bad_request() -> None:
        raise BadRequestError("outer", cause=ValueError("name is required"))

    @router.get("/fail/constraints")
    async def constraints() -> None:
        raise ConstraintViolationError(["a must not be blank", "b must be positive"])

    @router.get("/fail/unauthorized")
    async def unauthorized() -> None:
        raise NotAuthorizedError("Basic", "Bearer")

    @router.get("/fail/not-found")
    async def not_found() -> None:
        raise NotFoundError("widget 7 not found", cause=RuntimeError("db offline"))

    @router.get("/fail/unavailable")
    async def unavailable() -> None:
        raise WebApplicationError("maintenance", 503)

    @router.get("/fail/boom")
    def boom() -> None:
        try:
            {}["missing"]
        except KeyError as exc:
            raise RuntimeError("lookup failed") from exc

    return router


@pytest.fixture
def home_dir(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture
def builder(home_dir: Path) -> ServerBuilder:
    return Server.builder().home_dir(home_dir).host("127.0.0.1").port(8099).register(make_router())


@pytest.fixture
def client_for() -> Callable[[Server], TestClient]:
    def _client(server: Server) -> TestClient:
        return TestClient(server.app)

    return _client
