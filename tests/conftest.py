"""
conftest.py — shared pytest fixtures
Adds the repository root to sys.path so `agent_pulse.*` imports resolve
correctly regardless of where pytest is invoked from.
"""

import dataclasses
import json
import sys
from pathlib import Path

# This file lives at  <repo>/tests/conftest.py
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import pytest

from agent_pulse.config import Settings
from agent_pulse.services.http_client import HttpResponse
from agent_pulse.utils.store import AnalysisStore


class FakeHttpClient:
    """
    Stand-in for HttpClient. `routes` maps an absolute URL to an HttpResponse
    or to an exception instance to raise. Unrouted URLs answer 404.
    Every call is recorded in `calls` as (method, url).
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.posts = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    def _answer(self, url):
        outcome = self.routes.get(url)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            return HttpResponse(status=404, url=url, text="Not Found")
        if not outcome.url:
            outcome = dataclasses.replace(outcome, url=url)
        return outcome

    async def get(self, url, headers=None, timeout=10, params=None):
        self.calls.append(("GET", url))
        return self._answer(url)

    async def head(self, url, timeout=10):
        self.calls.append(("HEAD", url))
        return self._answer(url)

    async def post_json(self, url, payload, headers=None, timeout=30):
        self.calls.append(("POST", url))
        self.posts.append((url, payload, headers))
        return self._answer(url)

    async def close(self):
        self.closed = True

    def requested(self, url):
        return any(u == url for _, u in self.calls)


def html_response(text, status=200, content_type="text/html; charset=utf-8"):
    return HttpResponse(status=status, url="", text=text, headers={"content-type": content_type})


def json_response(payload, status=200):
    return HttpResponse(
        status=status, url="", text=json.dumps(payload), headers={"content-type": "application/json"},
    )


def build_page(*entities, body=""):
    """HTML document with one JSON-LD script per entity, padded past the render threshold."""
    scripts = "\n".join(
        f'<script type="application/ld+json">{json.dumps(e)}</script>' for e in entities
    )
    filler = "<p>" + "Quality goods for everyday life. " * 20 + "</p>"
    return (
        "<!DOCTYPE html><html><head><title>Shop</title>\n"
        f"{scripts}\n</head><body>{body}{filler}</body></html>"
    )


@pytest.fixture
def fake_http():
    return FakeHttpClient


@pytest.fixture
def page_html():
    return build_page


@pytest.fixture
def responses():
    """(html_response, json_response) builders."""
    return html_response, json_response


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        firecrawl_api_key=None,
        google_pagespeed_api_key=None,
        mongo_uri="mongodb://localhost:1",
    )


@pytest.fixture
def store():
    return AnalysisStore()


@pytest.fixture
def safe_url():
    return "https://shop.example.com"
