from __future__ import annotations

import base64
import json
import os
import sys
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from urllib.parse import urlsplit

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# config reads these at import time
_SCRATCH = Path(tempfile.mkdtemp(prefix="roominate-tests-"))
os.environ["DATA_DIR"] = str(_SCRATCH / "data")
os.environ["LOGS_DIR"] = str(_SCRATCH / "logs")
os.environ["SUPABASE_URL"] = "https://example.supabase.co"
os.environ["SUPABASE_ANON_KEY"] = "anon-key"
os.environ.pop("TOKEN_ENCRYPTION_KEY", None)

from cryptography.fernet import Fernet  # noqa: E402

from auth.manager import AuthManager  # noqa: E402
from auth.profile_cache import ProfileCache  # noqa: E402
from auth.token_store import SECURE_PREFIX, TokenStore  # noqa: E402
from backend.client import BackendClient  # noqa: E402
from backend.request_builder import AuthenticatedRequestBuilder  # noqa: E402
from storage.kv_store import EncryptedKeyValueStore, KeyValueStore  # noqa: E402

BASE_URL = "https://example.supabase.co"
ANON_KEY = "anon-key"
T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Wall clock returning aware UTC datetimes; advanced by hand."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeMonotonic:
    """Monotonic seconds source for cooldown tests."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, text: str | None = None) -> None:
        self.status_code = status_code
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text
        self.content = text.encode("utf-8")

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """
    Stand-in for requests.Session.

    Responses are queued per (method, path); the last queued response for a
    route keeps answering once the queue is down to one. An Exception
    instance in the queue is raised instead of returned.
    """

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self._routes: dict[tuple[str, str], list] = {}

    def add(self, method: str, path: str, *responses) -> "FakeSession":
        self._routes.setdefault((method.upper(), path), []).extend(responses)
        return self

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append(
            {
                "method": method,
                "url": url,
                "path": path,
                "params": dict(params or {}),
                "json": json,
                "headers": dict(headers or {}),
                "timeout": timeout,
            }
        )
        queue = self._routes.get((method.upper(), path))
        if not queue:
            return FakeResponse(500, {"msg": f"unexpected request {method} {path}"})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    def calls_to(self, path: str, method: str | None = None) -> list[dict]:
        return [
            call
            for call in self.calls
            if call["path"] == path and (method is None or call["method"] == method.upper())
        ]


class BlockingSession(FakeSession):
    """Holds requests until released; only requests to *path* when one is given."""

    def __init__(self, path: str | None = None) -> None:
        super().__init__()
        self.path = path
        self.entered = threading.Event()
        self.release = threading.Event()

    def request(self, method, url, *args, **kwargs):
        if self.path is None or urlsplit(url).path == self.path:
            self.entered.set()
            self.release.wait(timeout=5)
        return super().request(method, url, *args, **kwargs)


def make_jwt(claims: dict) -> str:
    def _part(data: dict) -> str:
        raw = json.dumps(data).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{_part({'alg': 'HS256', 'typ': 'JWT'})}.{_part(claims)}.signature"


def auth_payload(access_token: str = "user-token", user_id: str = "user-1", role: str | None = None, **extra) -> dict:
    user: dict = {"id": user_id, "email": "ana@example.com"}
    if role:
        user["user_metadata"] = {"role": role}
    payload = {
        "access_token": access_token,
        "refresh_token": "refresh-1",
        "token_type": "bearer",
        "expires_in": 3600,
        "user": user,
    }
    payload.update(extra)
    return payload


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def kv(tmp_path) -> KeyValueStore:
    return KeyValueStore(tmp_path / "prefs.json")


@pytest.fixture
def secure_kv(tmp_path) -> EncryptedKeyValueStore:
    return EncryptedKeyValueStore(tmp_path / "secure_prefs.bin", Fernet.generate_key())


@pytest.fixture
def token_store(kv, clock) -> TokenStore:
    return TokenStore(kv, clock=clock)


@pytest.fixture
def secure_store(secure_kv, clock) -> TokenStore:
    return TokenStore(secure_kv, key_prefix=SECURE_PREFIX, clock=clock, name="secure")


@pytest.fixture
def builder(token_store, secure_store) -> AuthenticatedRequestBuilder:
    return AuthenticatedRequestBuilder(BASE_URL, ANON_KEY, [token_store, secure_store])


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(builder, fake_session):
    backend = BackendClient(builder, session=fake_session, timeout=5.0, max_workers=2)
    yield backend
    backend.shutdown()


@pytest.fixture
def profile_cache(kv) -> ProfileCache:
    return ProfileCache(kv)


@pytest.fixture
def manager(client, token_store, secure_store, profile_cache) -> AuthManager:
    return AuthManager(client, token_store=token_store, secure_store=secure_store, profile_cache=profile_cache)
