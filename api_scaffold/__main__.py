"""Module entrypoint: ``python -m api_scaffold``.

Builds a server from ``ServerSettings`` (environment variables prefixed
``API_SCAFFOLD_`` and ``<home>/etc/config.txt``) with a single health route
and serves it in the foreground.
"""

from __future__ import annotations

import os

from fastapi import APIRouter

from .config import ENV_PREFIX, ServerSettings
from .responses import Message, success
from .server import Server


def health_router() -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health() -> Message:
        return success("ok")

    return router


def main() -> None:
    home_dir = os.getenv(f"{ENV_PREFIX}HOME_DIR", "./")
    settings = ServerSettings.load(home_dir)
    server = Server.builder().from_settings(settings).register(health_router()).build()
    server.serve()


if __name__ == "__main__":
    main()
