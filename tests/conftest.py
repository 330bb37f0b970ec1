"""Shared fixtures for Tuck tests."""

import asyncio
import json
import os
import sys
import tempfile
from pathlib import Path

import httpx
import pytest

# Add backend to path so we can import modules
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

# Keep main.py's import-time setup out of the real home directory
_session_dir = Path(tempfile.mkdtemp(prefix="tuck-tests-"))
(_session_dir / "config.json").write_text(json.dumps({
    "shared_container": str(_session_dir / "container"),
    "api_base_url": "https://api.tuck.test",
}))
os.environ["TUCK_CONFIG"] = str(_session_dir / "config.json")

API_BASE = "https://api.tuck.test"


def run(coro):
    return asyncio.run(coro)


class FakeServer:
    """Records requests and answers them from a route table."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], object] = {}

    def on(self, method: str, path: str, response):
        """response: (status, json) tuple, an exception, or a callable(request)."""
        self.routes[(method, path)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"error": True, "reason": "Not Found"})
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(request)
        status, body = response
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def container(tmp_path):
    path = tmp_path / "group.com.bookmarkapp.shared"
    path.mkdir()
    return path


@pytest.fixture
def defaults(container):
    from shared_store import SharedDefaults
    return SharedDefaults(container)


@pytest.fixture
def pending(defaults):
    from pending_store import PendingStore
    return PendingStore(defaults)


@pytest.fixture
def media(container):
    from media_store import SharedMediaStore
    return SharedMediaStore(container)


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def api(defaults, server):
    from tuck_api import TuckServerAPI
    return TuckServerAPI(API_BASE, defaults, transport=server.transport)


@pytest.fixture
def logged_in_api(api):
    api.token = "test-token"
    return api


def folder_json(name="Reading", folder_id="11111111-1111-1111-1111-111111111111", **extra):
    return {"id": folder_id, "name": name, **extra}


def bookmark_json(title="A page", bookmark_id="22222222-2222-2222-2222-222222222222", **extra):
    return {"id": bookmark_id, "title": title, **extra}


def analysis_json(**extra):
    return {"folders": ["Reading"], "summary": "Worth a read", **extra}
