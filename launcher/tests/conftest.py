"""
Shared fixtures for account tests.

Provides SQLite-backed stores under tmp_path, a frozen clock, and a fake
remote service served through httpx.MockTransport.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

# Load .env BEFORE any other imports
from dotenv import load_dotenv

_repo_root = Path(__file__).parent.parent.parent
load_dotenv(_repo_root / ".env")

import httpx
import pytest
import pytest_asyncio

from launcher.core.accounts.models import RemoteCredentials
from launcher.core.accounts.store import (
    InMemoryCredentialStore,
    SqlOfflineCredentialStore,
    SqlRemoteCredentialStore,
)
from launcher.core.config import Settings
from launcher.core.database.connection import Database
from launcher.core.fetch import FetchClient

API_URL = "https://api.example.test/"
SITE_URL = "https://site.example.test/"
EPOCH = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = EPOCH):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta):
        self.now = self.now + delta


class FakeRemoteService:
    """
    In-process stand-in for the remote API.

    refresh_responses maps a bearer token to what POST /session/refresh
    answers: a JSON-able dict, a raw httpx.Response, or an exception to raise.
    Tokens without an entry get HTTP 401. delays maps a token to its response
    latency, falling back to delay.
    """

    def __init__(self):
        self.refresh_responses: Dict[str, Union[dict, httpx.Response, Exception, List]] = {}
        self.user_responses: Dict[str, Union[dict, httpx.Response, Exception]] = {}
        self.requests: List[httpx.Request] = []
        self.delay = 0.0
        self.delays: Dict[str, float] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def refresh_calls(self, token: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.path.endswith("/session/refresh")
            and (token is None or r.headers.get("Authorization") == token)
        ]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            token = request.headers.get("Authorization")
            delay = self.delays.get(token, self.delay)
            if delay:
                await asyncio.sleep(delay)
            if request.method == "POST" and request.url.path.endswith("/session/refresh"):
                answer = self.refresh_responses.get(token)
            elif request.method == "GET" and request.url.path.endswith("/user"):
                answer = self.user_responses.get(token)
            else:
                return httpx.Response(404, request=request)

            # A list is consumed one answer per request
            if isinstance(answer, list):
                answer = answer.pop(0)
            if answer is None:
                return httpx.Response(401, json={"error": "unauthorized"}, request=request)
            if isinstance(answer, Exception):
                raise answer
            if isinstance(answer, httpx.Response):
                return answer
            return httpx.Response(200, json=answer, request=request)
        finally:
            self.in_flight -= 1

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the developer's environment."""
    return Settings(
        _env_file=None,
        modrinth_api_url=API_URL,
        modrinth_url=SITE_URL,
        launcher_settings_dir=str(tmp_path),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
        db_encryption_key=None,
        session_refresh_attempts=1,
        session_refresh_backoff=0.0,
    )


@pytest_asyncio.fixture
async def db(settings):
    database = Database(settings.database_url)
    await database.create_tables()
    yield database
    await database.dispose()


@pytest_asyncio.fixture(params=["sql", "memory"])
async def remote_store(request, db):
    if request.param == "sql":
        return SqlRemoteCredentialStore(db)
    return InMemoryCredentialStore()


@pytest_asyncio.fixture(params=["sql", "memory"])
async def offline_store(request, db):
    if request.param == "sql":
        return SqlOfflineCredentialStore(db)
    return InMemoryCredentialStore()


@pytest.fixture
def remote_api():
    return FakeRemoteService()


@pytest_asyncio.fixture
async def fetcher(remote_api):
    client = FetchClient(max_concurrent=4, timeout=5.0, transport=remote_api.transport())
    yield client
    await client.aclose()


@pytest.fixture
def make_remote(clock):
    """Factory for remote credentials expiring relative to the frozen clock."""

    def _make(
        user_id: str,
        expires_in: timedelta = timedelta(days=7),
        active: bool = False,
        session: Optional[str] = None,
    ) -> RemoteCredentials:
        return RemoteCredentials(
            session=session or f"token-{user_id}",
            user_id=user_id,
            expires=clock() + expires_in,
            active=active,
        )

    return _make
