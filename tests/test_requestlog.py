"""Default request log: extended NCSA lines and asset exclusions."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from api_scaffold.requestlog import NcsaRequestLog, RequestLogEntry


@pytest.mark.parametrize(
    "path",
    ["/images/logo.png", "/img/a/b.gif", "/css/site.css", "/photo.jpg", "/PHOTO.JPG", "/favicon.ico", "/app.js"],
)
def test_assets_are_ignored(path):
    assert NcsaRequestLog().is_ignored(path)


@pytest.mark.parametrize("path", ["/api/widgets", "/index.html", "/site.Css", "/imagesx/a"])
def test_other_paths_are_logged(path):
    assert not NcsaRequestLog().is_ignored(path)


def _entry(**overrides) -> RequestLogEntry:
    fields = dict(
        method="GET",
        path="/api/widgets",
        query="page=2",
        status=200,
        remote_host="10.0.0.5",
        referer="http://ui.example/",
        user_agent="curl/8.0",
        bytes_sent=512,
        timestamp=datetime(2024, 3, 9, 14, 5, 7, tzinfo=timezone(timedelta(hours=1))),
    )
    fields.update(overrides)
    return RequestLogEntry(**fields)


def test_extended_ncsa_format():
    line = NcsaRequestLog().format(_entry())
    assert line == (
        '10.0.0.5 - - [09/Mar/2024:14:05:07 +0100] "GET /api/widgets?page=2 HTTP/1.1" '
        '200 512 "http://ui.example/" "curl/8.0"'
    )


def test_missing_values_render_as_dash():
    line = NcsaRequestLog().format(_entry(remote_host=None, referer=None, user_agent=None, query=""))
    assert line.startswith("- - - [")
    assert '"GET /api/widgets HTTP/1.1"' in line
    assert line.endswith('"-" "-"')


def test_log_writes_to_requestlog_logger(caplog):
    caplog.set_level(logging.INFO, logger="api_scaffold.requestlog")
    request_log = NcsaRequestLog()
    request_log.log(_entry())
    request_log.log(_entry(path="/static/app.js"))
    lines = [r.getMessage() for r in caplog.records if r.name == "api_scaffold.requestlog"]
    assert len(lines) == 1
    assert "/api/widgets" in lines[0]


def test_custom_ignore_patterns():
    request_log = NcsaRequestLog(ignore_paths=["/health"])
    assert request_log.is_ignored("/health")
    assert not request_log.is_ignored("/app.js")
