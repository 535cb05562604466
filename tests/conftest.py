"""
tests/conftest.py — Shared Test Fixtures
=========================================

In-memory stand-ins for the three remote systems the synchronizer talks
to (Discord REST, the Discord CDN, the object store) plus factories for
messages, configs and a fully wired :class:`GallerySynchronizer`.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from gallerysync.config import GallerySyncConfig
from gallerysync.database.models import Base
from gallerysync.engine.retry import BatchRunner, RetryPolicy
from gallerysync.services.asset_service import AssetService
from gallerysync.services.discord_api import DiscordAPIError
from gallerysync.services.gallery_service import GallerySynchronizer
from gallerysync.storage.base import ObjectStore, StorageError, StoredBlob

CROWN = "\U0001f451"
MOD_ROLE = "5001"
STORE_URL = "https://cdn.test/gallery"
CDN = "https://cdn.discordapp.test/attachments"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    return asyncio.run(coro)


async def no_sleep(_seconds: float) -> None:
    return None


class FakeClock:
    """Manually advanced clock usable as both wall and monotonic time."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Message / attachment factories (Discord REST shapes)
# ---------------------------------------------------------------------------
def image_attachment(attachment_id: str, *, filename: str | None = None,
                     content_type: str = "image/png") -> dict:
    filename = filename or f"photo_{attachment_id}.png"
    return {
        "id": attachment_id,
        "filename": filename,
        "content_type": content_type,
        "url": f"{CDN}/{attachment_id}/{filename}",
        "width": 800,
        "height": 600,
    }


def make_message(message_id: str, *, attachments: list[dict] | None = None,
                 crowns: int = 0, content: str = "", author: str = "alice",
                 timestamp: str | None = None) -> dict:
    if attachments is None:
        attachments = [image_attachment(f"{message_id}0")]
    if timestamp is None:
        ts = datetime.fromtimestamp(1_690_000_000 + int(message_id), tz=timezone.utc)
        timestamp = ts.isoformat()
    return {
        "id": message_id,
        "channel_id": "900",
        "content": content,
        "timestamp": timestamp,
        "author": {"id": f"u-{author}", "username": author, "global_name": None},
        "attachments": attachments,
        "reactions": (
            [{"emoji": {"id": None, "name": CROWN}, "count": crowns}] if crowns else []
        ),
    }


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------
class FakeDiscord:
    """Scriptable replacement for :class:`DiscordClient`."""

    def __init__(self) -> None:
        self.messages: list[dict] = []
        self.reactors: dict[str, list[str]] = {}
        self.members: dict[str, list[str]] = {}
        self.list_error: Exception | None = None
        self.member_error: Exception | None = None
        self.reaction_errors: set[str] = set()
        self.list_calls = 0
        self.member_calls = 0
        self.reaction_calls = 0

    def post(self, message: dict, *, approvers: list[str] = ()) -> dict:
        """Add *message* to the channel, crowned by *approvers*."""
        if approvers:
            message["reactions"] = [
                {"emoji": {"id": None, "name": CROWN}, "count": len(approvers)}
            ]
            self.reactors[message["id"]] = list(approvers)
        self.messages.insert(0, message)
        return message

    def remove(self, message_id: str) -> None:
        self.messages = [m for m in self.messages if m["id"] != message_id]

    def uncrown(self, message_id: str) -> None:
        self.reactors.pop(message_id, None)
        for m in self.messages:
            if m["id"] == message_id:
                m["reactions"] = []

    async def list_messages(self, channel_id: str, limit: int = 100) -> list[dict]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return [dict(m) for m in self.messages[:limit]]

    async def get_message(self, channel_id: str, message_id: str) -> dict | None:
        for m in self.messages:
            if m["id"] == message_id:
                return dict(m)
        return None

    async def get_reaction_users(self, channel_id: str, message_id: str,
                                 emoji: str, limit: int = 100) -> list[str]:
        self.reaction_calls += 1
        if message_id in self.reaction_errors:
            raise DiscordAPIError(503, f"/reactions/{message_id}")
        return list(self.reactors.get(message_id, []))

    async def get_member(self, guild_id: str, user_id: str) -> dict | None:
        self.member_calls += 1
        if self.member_error is not None:
            raise self.member_error
        if user_id not in self.members:
            return None
        return {"user": {"id": user_id}, "roles": list(self.members[user_id])}


class MemoryObjectStore(ObjectStore):
    """Dict-backed :class:`ObjectStore` with switchable failures."""

    def __init__(self, base_url: str = STORE_URL) -> None:
        super().__init__(base_url, timeout=1.0)
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail_puts: set[str] = set()
        self.fail_all_puts = False
        self.fail_exists = False
        self.fail_list = False
        self.deleted: list[str] = []

    async def exists(self, name: str) -> bool:
        if self.fail_exists:
            raise StorageError("exists unavailable")
        return name in self.objects

    async def put(self, name: str, data: bytes, content_type: str) -> StoredBlob:
        self.check_name(name)
        if self.fail_all_puts or name in self.fail_puts:
            raise StorageError(f"put({name}) unavailable")
        self.objects[name] = (data, content_type)
        return StoredBlob(name=name, url=self.url_for(name), size=len(data), content_type=content_type)

    async def get(self, name: str) -> bytes | None:
        entry = self.objects.get(name)
        return None if entry is None else entry[0]

    async def delete(self, url: str) -> bool:
        name = self.name_for(url)
        if name is None:
            return False
        self.deleted.append(name)
        return self.objects.pop(name, None) is not None

    async def list_objects(self, limit: int = 1000) -> list[StoredBlob]:
        if self.fail_list:
            raise StorageError("list unavailable")
        return [
            StoredBlob(name=name, url=self.url_for(name), size=len(data), content_type=ctype)
            for name, (data, ctype) in sorted(self.objects.items())
        ][:limit]

    def image_names(self, cache_key: str = "gallery.json") -> set[str]:
        return {name for name in self.objects if name != cache_key}


class FakeCDN:
    """Serves attachment bytes through an ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.overrides: dict[str, httpx.Response] = {}
        self.flaky: dict[str, int] = {}
        self.requests: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if self.flaky.get(url, 0) > 0:
            self.flaky[url] -= 1
            return httpx.Response(503)
        if url in self.overrides:
            return self.overrides[url]
        if url.startswith(CDN):
            return httpx.Response(200, content=PNG, headers={"content-type": "image/png"})
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def make_config(**overrides) -> GallerySyncConfig:
    values = dict(
        guild_id="42",
        channel_id="900",
        approved_role_ids=frozenset({MOD_ROLE}),
        approval_emoji=CROWN,
        bot_token="test-token",
        batch_pause=0.0,
        public_base_url=STORE_URL,
    )
    values.update(overrides)
    return GallerySyncConfig(**values)


def make_assets(store: ObjectStore, cdn: FakeCDN, runner: BatchRunner | None = None) -> AssetService:
    return AssetService(
        store,
        cdn.client(),
        retry=RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=0.0),
        runner=runner or BatchRunner(5, 0.0),
        sleep=no_sleep,
    )


def make_synchronizer(cfg=None, discord=None, store=None, cdn=None, clock=None) -> GallerySynchronizer:
    cfg = cfg or make_config()
    discord = discord if discord is not None else FakeDiscord()
    store = store if store is not None else MemoryObjectStore()
    clock = clock or FakeClock()
    runner = BatchRunner(cfg.batch_size, 0.0)
    return GallerySynchronizer(
        cfg,
        discord,
        store,
        make_assets(store, cdn or FakeCDN(), runner),
        runner=runner,
        clock=clock,
        monotonic=clock,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def discord() -> FakeDiscord:
    d = FakeDiscord()
    d.members["mod"] = [MOD_ROLE]
    d.members["visitor"] = ["9999"]
    return d


@pytest.fixture
def store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def cdn() -> FakeCDN:
    return FakeCDN()


@pytest.fixture
def synchronizer(discord, store, cdn, clock) -> GallerySynchronizer:
    return make_synchronizer(discord=discord, store=store, cdn=cdn, clock=clock)


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with the ``stored_objects`` table.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine
