import asyncio
import copy
from pathlib import Path

import pytest

from lead_enricher.models.domain.records import ContactRecord
from lead_enricher.services.infrastructure.redis_client import FastRedisClient
from lead_enricher.services.kv_store import RedisKeyValueStore

# 2025-10-09T08:53:20Z, far from a UTC day boundary
BASE_TIME_MS = 1_760_000_000_000


class FakeStore:
    """In-memory KeyValueStore. Values are deep-copied like a JSON round trip."""

    def __init__(self):
        self.data: dict = {}
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, keys):
        await asyncio.sleep(0)
        if self.fail_reads:
            raise ConnectionError("store unavailable")
        return {key: copy.deepcopy(self.data[key]) for key in keys if key in self.data}

    async def set(self, mapping):
        await asyncio.sleep(0)
        if self.fail_writes:
            raise ConnectionError("store unavailable")
        for key, value in mapping.items():
            self.data[key] = copy.deepcopy(value)
        return True

    async def remove(self, keys):
        for key in keys:
            self.data.pop(key, None)
        return True

    async def keys(self, prefix):
        return [key for key in self.data if key.startswith(prefix)]


class FlakyRedis:
    """In-memory stand-in for redis.asyncio.Redis whose next MGETs can be made to fail."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.failing_mgets = 0

    async def mget(self, keys):
        if self.failing_mgets:
            self.failing_mgets -= 1
            raise ConnectionError("Connection reset by peer")
        return [self.data.get(key) for key in keys]

    async def mset(self, mapping):
        self.data.update(mapping)
        return True

    async def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)
        return len(keys)

    async def scan_iter(self, match, count=None):
        prefix = match.rstrip("*")
        for key in list(self.data):
            if key.startswith(prefix):
                yield key


class ManualClock:
    """Epoch-millis clock; sleep() records the delay and advances time."""

    def __init__(self, start_ms: int = BASE_TIME_MS):
        self.now = start_ms
        self.sleeps: list[float] = []

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += int(round(seconds * 1000))


class FakeNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def notify(self, title: str, message: str) -> None:
        self.sent.append((title, message))

    @property
    def titles(self) -> list[str]:
        return [title for title, _ in self.sent]


class FakeExporter:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.contact_exports: list[dict] = []
        self.company_exports: list[dict] = []

    async def export_contacts(self, contacts, label, include_company_fields):
        if self.error:
            raise self.error
        self.contact_exports.append(
            {"contacts": contacts, "label": label, "include_company_fields": include_company_fields}
        )
        return Path(f"/tmp/{label}_contacts_enriched.xlsx")

    async def export_companies(self, companies, label):
        if self.error:
            raise self.error
        self.company_exports.append({"companies": companies, "label": label})
        return Path(f"/tmp/{label}_companies.xlsx")


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def fake_notifier():
    return FakeNotifier()


@pytest.fixture
def fake_exporter():
    return FakeExporter()


@pytest.fixture
def sample_contacts():
    return [
        ContactRecord.model_validate(
            {
                "personName": "Jane Doe",
                "jobTitle": "CTO",
                "companyName": "ACME",
                "filteredCompany": "Acme",
                "profileLink": "https://www.linkedin.com/in/janedoe",
            }
        ),
        ContactRecord.model_validate(
            {
                "personName": "John Smith",
                "jobTitle": "Founder",
                "companyName": "Ghost Corp",
                "filteredCompany": "Ghost",
            }
        ),
    ]


@pytest.fixture
def flaky_redis():
    return FlakyRedis()


@pytest.fixture
def redis_store(flaky_redis):
    """RedisKeyValueStore over a connected FastRedisClient backed by FlakyRedis."""
    client = FastRedisClient(url="redis://test")
    client.client = flaky_redis
    client._initialized = True
    return RedisKeyValueStore(client)
