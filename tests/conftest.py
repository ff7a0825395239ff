import os
import tempfile

_tmp = tempfile.mkdtemp(prefix="qronos-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{os.path.join(_tmp, 'qronos.db')}")
os.environ.setdefault("ENABLE_NATS", "false")
os.environ.setdefault("ADMIN_IDENTITY", "0x02" + "ad" * 32)

import pytest
import httpx

from qronos.core.rotation import RotationScheduler
from qronos.core.signing import SignatureIssuer, generate_private_key
from qronos.db import async_session_maker, drop_db, engine, init_db
from qronos.services.ledger import Ledger

ADMIN = os.environ["ADMIN_IDENTITY"]


class FakeKV:
    """dict-backed stand-in for the redis client's get/set."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.writes: list[str] = []

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value
        self.writes.append(key)
        return True


@pytest.fixture
async def fresh_db():
    await drop_db()
    await init_db()
    yield
    await engine.dispose()


@pytest.fixture
def ledger(fresh_db):
    return Ledger(async_session_maker)


@pytest.fixture
def professor_issuer():
    return SignatureIssuer(generate_private_key())


@pytest.fixture
def professor(professor_issuer):
    return professor_issuer.identity


@pytest.fixture
def student():
    return SignatureIssuer(generate_private_key()).identity


@pytest.fixture
def other_student():
    return SignatureIssuer(generate_private_key()).identity


@pytest.fixture
def kv():
    return FakeKV()


@pytest.fixture
async def api(ledger, professor_issuer, kv):
    """ASGI client with collaborators wired by hand; `api.as_user(identity)` picks the caller."""
    from qronos.main import app
    from qronos.deps import get_claims, get_profiles
    from qronos.services.profiles import ProfileStore

    claims = {"sub": None, "role": "student"}
    app.state.ledger = ledger
    app.state.rotation = RotationScheduler(professor_issuer, interval=0.3, initial_delay=0.05, tick=0.05, window=15)
    app.dependency_overrides[get_claims] = lambda: dict(claims)
    app.dependency_overrides[get_profiles] = lambda: ProfileStore(kv)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        def as_user(identity, role="student"):
            claims["sub"] = identity
            claims["role"] = role
            return client
        client.as_user = as_user
        yield client

    await app.state.rotation.aclose()
    app.dependency_overrides.clear()
