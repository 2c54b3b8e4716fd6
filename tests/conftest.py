# --- keep this shim at the very top ---
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
# --------------------------------------

import asyncio
import json
import pathlib
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
import respx
from fastapi.testclient import TestClient

from character_screen.api import CharacterService
from character_screen.main import create_app
from character_screen.schemas import Character
from character_screen.settings import Settings

BASE = "https://rickandmortyapi.com/api"
FIXTURES = pathlib.Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> dict:
    return json.loads((FIXTURES / name).read_text())


RICK = Character(
    id=1,
    name="Rick Sanchez",
    status="Alive",
    species="Human",
    image="https://rickandmortyapi.com/api/character/avatar/1.jpeg",
)
MORTY = Character(
    id=2,
    name="Morty Smith",
    status="Alive",
    species="Human",
    image="https://rickandmortyapi.com/api/character/avatar/2.jpeg",
)


@pytest.fixture
def characters_page() -> dict:
    return load_fixture("characters_page.json")


# ---------------------------------------------------------------------
# Fetch service against a respx-mocked upstream
# ---------------------------------------------------------------------


@pytest.fixture
def upstream():
    """respx router scoped to the upstream base URL; unmatched calls fail loudly."""
    with respx.mock(base_url=BASE, assert_all_called=False) as mock:
        yield mock


@pytest_asyncio.fixture
async def service():
    async with httpx.AsyncClient() as client:
        yield CharacterService(client, BASE)


# ---------------------------------------------------------------------
# Controller against a hand-driven fake service
# ---------------------------------------------------------------------


class ScriptedService:
    """Fake fetch service whose calls stay pending until the test resolves them.

    Each call appends ``(query, future)`` to ``calls``; resolve with
    ``set_result([...])`` or ``set_exception(...)``.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[Optional[str], asyncio.Future]] = []

    async def fetch_characters(self, name: Optional[str] = None) -> List[Character]:
        fut = asyncio.get_running_loop().create_future()
        self.calls.append((name, fut))
        return await fut

    async def started(self, n: int) -> None:
        """Yield to the loop until ``n`` calls have been issued."""
        for _ in range(100):
            if len(self.calls) >= n:
                return
            await asyncio.sleep(0)
        raise AssertionError(f"expected {n} fetch calls, saw {len(self.calls)}")


@pytest.fixture
def scripted() -> ScriptedService:
    return ScriptedService()


# ---------------------------------------------------------------------
# Full app against an in-process fake upstream
# ---------------------------------------------------------------------


class FakeUpstream:
    """httpx.MockTransport handler imitating the Rick & Morty API.

    ``name`` filtering is a case-insensitive substring match; no matches -> 404,
    like the real API. Set ``fail_with`` to force a status code on every call.
    """

    def __init__(self, page: Dict[str, Any]) -> None:
        self.page = page
        self.fail_with: Optional[int] = None
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api":
            return httpx.Response(200, json={"characters": f"{BASE}/character"})
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": "boom"})
        if path in ("/api/character", "/api/character/"):
            name = request.url.params.get("name")
            if name is None:
                return httpx.Response(200, json=self.page)
            hits = [c for c in self.page["results"] if name.lower() in c["name"].lower()]
            if not hits:
                return httpx.Response(404, json={"error": "There is nothing here"})
            return httpx.Response(200, json={"info": {"next": None}, "results": hits})
        return httpx.Response(404, json={"error": "There is nothing here"})


@pytest.fixture
def fake_upstream(characters_page) -> FakeUpstream:
    return FakeUpstream(characters_page)


@pytest.fixture
def make_client(fake_upstream):
    """Factory: build the app with optional settings overrides and enter its lifespan."""
    clients = []

    def _make(**overrides) -> TestClient:
        cfg = Settings(API_BASE_URL=BASE, **overrides)
        app = create_app(cfg, transport=httpx.MockTransport(fake_upstream))
        c = TestClient(app)
        c.__enter__()
        clients.append(c)
        return c

    yield _make

    for c in clients:
        c.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    """App client whose startup fetch has already settled."""
    c = make_client()
    c.get("/screen?wait=true")
    return c
