"""Server settings from environment variables and the home directory config file.

Precedence, highest first:
  1. keyword arguments passed to ``ServerSettings`` / ``ServerSettings.load``
  2. environment variables (``API_SCAFFOLD_PORT=9090``)
  3. ``<home>/etc/devconfig.txt`` then ``<home>/etc/config.txt``, key=value
     lines using the environment variable names
  4. the defaults below

The settings object is built explicitly and handed to the server builder;
there is no process-wide instance.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict


ENV_PREFIX = "API_SCAFFOLD_"
CONFIG_FILES = (Path("etc") / "config.txt", Path("etc") / "devconfig.txt")


class ServerSettings(BaseSettings):
    """Process configuration consumed by ``ServerBuilder.from_settings``."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="ignore",
    )

    home_dir: str = "./"
    host: str | None = None
    port: int = 8080
    cors: bool = False
    gzip: bool = True
    standard_exception_mappers: bool = True
    static_dir: str | None = None
    static_path: str | None = None
    service_context_path: str = "/"
    log_level: str = "INFO"

    @classmethod
    def load(cls, home_dir: str | Path = "./", **overrides: Any) -> "ServerSettings":
        """Read settings for a server rooted at ``home_dir``.

        Config files that do not exist are skipped; when both exist,
        devconfig.txt wins over config.txt.
        """

        home = Path(home_dir)
        env_files = tuple(str(home / name) for name in CONFIG_FILES)
        overrides.setdefault("home_dir", str(home))
        return cls(_env_file=env_files, **overrides)
