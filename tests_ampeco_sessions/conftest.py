import asyncio
import json
import os
import pathlib
import sys
from unittest.mock import MagicMock

import pytest
from yarl import URL

try:
    import pytest_asyncio  # noqa: F401
except Exception:  # pragma: no cover - plugin optional
    PYTEST_ASYNCIO_AVAILABLE = False
    pytest_plugins = ()
else:
    PYTEST_ASYNCIO_AVAILABLE = True
    if os.environ.get("PYTEST_DISABLE_PLUGIN_AUTOLOAD") != "1":
        pytest_plugins = ("pytest_asyncio",)
    else:  # respect explicit disable while allowing fallback logic below
        pytest_plugins = ()

# Ensure repository root is on sys.path for imports like 'ampeco_sessions.*'
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ampeco_sessions.api import AmpecoClient, UpstreamResponseError  # noqa: E402

BASE = "https://ampeco.test"


@pytest.fixture
def load_fixture():
    def _load(name: str):
        p = pathlib.Path(__file__).parent / "fixtures" / name
        return json.loads(p.read_text())
    return _load


def paged(path: str, pages: list[list]):
    """Route handler serving ``pages`` through cursor links."""

    def _handler(url: URL):
        idx = int(url.query.get("cursor") or 0)
        nxt = f"{BASE}{path}?cursor={idx + 1}" if idx + 1 < len(pages) else None
        return {"data": pages[idx], "links": {"next": nxt}}

    return _handler


def fail(status: int, body: str = "boom"):
    def _handler(url: URL):
        raise UpstreamResponseError(status, str(url), body)

    return _handler


class RoutedClient(AmpecoClient):
    """AmpecoClient whose HTTP layer is replaced by a path -> handler table."""

    def __init__(self, routes: dict | None = None):
        self.calls: list[str] = []
        self.routes = dict(routes or {})
        super().__init__(MagicMock(), BASE, "TOKEN")

    def paths(self) -> list[str]:
        return [URL(u).path for u in self.calls]

    async def _json(self, method, url, **kwargs):
        self.calls.append(url)
        parsed = URL(url)
        handler = self.routes.get(parsed.path)
        if handler is None:
            raise UpstreamResponseError(404, url, "not found")
        if callable(handler):
            return handler(parsed)
        return handler


@pytest.fixture
def routed_client():
    return RoutedClient


@pytest.fixture(name="paged")
def paged_fixture():
    return paged


@pytest.fixture(name="fail")
def fail_fixture():
    return fail


class _DummyResponse:
    def __init__(self, *, body="", status=200):
        self._body = body if isinstance(body, str) else json.dumps(body)
        self.status = status
        self.headers = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def text(self):
        return self._body


class DummySession:
    """Stands in for aiohttp.ClientSession; responses keyed by URL path."""

    def __init__(self, responses: dict | None = None):
        self.requests = []
        self.responses = dict(responses or {})

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        status, body = self.responses.get(URL(url).path, (404, "missing"))
        return _DummyResponse(body=body, status=status)


@pytest.fixture
def dummy_session():
    return DummySession


@pytest.fixture(autouse=True)
def ensure_event_loop():
    if PYTEST_ASYNCIO_AVAILABLE and os.environ.get("PYTEST_DISABLE_PLUGIN_AUTOLOAD") != "1":
        yield
        return
    try:
        asyncio.get_running_loop()
        yield
        return
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    try:
        yield
    finally:
        asyncio.set_event_loop(None)
        loop.close()


if not PYTEST_ASYNCIO_AVAILABLE or os.environ.get("PYTEST_DISABLE_PLUGIN_AUTOLOAD") == "1":

    def pytest_configure(config):
        config.addinivalue_line(
            "markers",
            "asyncio: execute the test coroutine using a dedicated event loop",
        )

    def _wrap_async(func):
        def _sync_wrapper(*args, **kwargs):
            return asyncio.run(func(*args, **kwargs))

        return _sync_wrapper

    def pytest_collection_modifyitems(items):
        for item in items:
            if item.get_closest_marker("asyncio") and asyncio.iscoroutinefunction(item.obj):
                item.obj = _wrap_async(item.obj)
