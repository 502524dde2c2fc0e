"""
Shared fixtures: a controllable clock, a cheap password hasher, every
storage backend and an in-memory banking system.
"""

from datetime import datetime, timedelta, timezone

import pytest

from banking_api.config import BankingConfig
from banking_api.storage import InMemoryStorage, SQLiteStorage
from banking_api.system import BankingSystem
from banking_api.users import ScryptPasswordHasher

TEST_SECRET = "test-signing-secret-with-more-than-32-bytes"


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def fast_hasher():
    # Minimal scrypt cost keeps user creation fast in tests
    return ScryptPasswordHasher(n=16, r=1, p=1)


@pytest.fixture
def test_config():
    return BankingConfig(
        database_url="memory://",
        jwt_secret=TEST_SECRET,
        seed_demo_data=False,
        transfer_retry_backoff_seconds=0.0,
        log_format="text"
    )


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Each storage backend in turn"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(str(tmp_path / "transfers.db"))
    yield backend
    backend.close()


@pytest.fixture
def banking_system(test_config, clock, fast_hasher):
    system = BankingSystem(test_config, storage=InMemoryStorage(), clock=clock, hasher=fast_hasher)
    yield system
    system.close()
