"""
Pytest configuration and fixtures for the order bot tests.

Every test that needs the store gets a fresh in-memory SQLite database
(aiosqlite, one shared connection through StaticPool) built from the ORM
metadata. The messaging platform is replaced by a recording fake.
"""

from collections.abc import AsyncGenerator
from typing import Dict, List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from orderbot.conversation.handler import ConversationHandler
from orderbot.db.session import build_session_factory, enable_sqlite_savepoints
from orderbot.models import Base, BindingRole, WorldStatus
from orderbot.schemas.catalog import CatalogEntry, ExcelMapping, ItemOption, VendorMap
from orderbot.schemas.messaging import LineEvent, ReplyPayload
from orderbot.services.world_service import WorldService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeMessenger:
    """Records replies and pushes instead of calling the platform."""

    def __init__(self, names: Optional[Dict[str, str]] = None, push_ok: bool = True) -> None:
        self.names = names or {}
        self.push_ok = push_ok
        self.replies: List[tuple] = []
        self.pushes: List[tuple] = []

    async def reply(self, reply_token: str, messages: ReplyPayload) -> None:
        self.replies.append((reply_token, messages))

    async def push(self, user_id: str, messages: ReplyPayload) -> bool:
        self.pushes.append((user_id, messages))
        return self.push_ok

    async def get_display_name(self, user_id: str) -> Optional[str]:
        return self.names.get(user_id)

    @property
    def last_reply(self) -> ReplyPayload:
        return self.replies[-1][1]

    @property
    def last_text(self) -> str:
        payload = self.last_reply
        if isinstance(payload, str):
            return payload
        return "\n".join(getattr(m, "text", "") for m in payload)


class FakeImporter:
    """CatalogImporter stand-in: returns canned results for any sheet."""

    def __init__(
        self,
        mapping: Optional[ExcelMapping],
        vendor_map: VendorMap,
        options: Optional[Dict[str, List[ItemOption]]] = None,
    ) -> None:
        self.mapping = mapping
        self.vendor_map = vendor_map
        self.options = options or {}
        self.used_mapping: Optional[ExcelMapping] = None

    def detect_mapping(self, sheet):
        return self.mapping

    def parse_to_vendor_map(self, sheet, mapping):
        self.used_mapping = mapping
        return self.vendor_map

    def parse_item_options(self, sheet, mapping):
        return self.options

    def preview(self, sheet):
        return [list(row) for row in sheet]


@pytest.fixture(scope="function")
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(test_engine)


@pytest.fixture(scope="function")
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A session for service-level tests; tests commit when they need to."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger(names={"U-owner": "老闆", "U-staff": "小明"})


@pytest.fixture
def handler(session_factory, messenger) -> ConversationHandler:
    return ConversationHandler(
        session_factory=session_factory,
        messenger=messenger,
        item_vendor_fallback={"紙杯": "包材行"},
    )


def text_event(user_id: str, text: str, reply_token: str = "rt") -> LineEvent:
    return LineEvent.model_validate(
        {
            "type": "message",
            "replyToken": reply_token,
            "source": {"type": "user", "userId": user_id},
            "message": {"type": "text", "id": "1", "text": text},
        }
    )


async def send(handler: ConversationHandler, user_id: str, text: str) -> str:
    """Feed one text message through the handler and return the reply text."""
    await handler.handle_event(text_event(user_id, text))
    return handler.messenger.last_text


async def make_active_world(
    db: AsyncSession,
    owner: str = "U-owner",
    vendor_map: Optional[VendorMap] = None,
    name: str = "測試店",
    employees: tuple = (),
) -> int:
    """Create an active world with a catalog; returns its id. Commits."""
    world = await WorldService.create_world(db, owner, status=WorldStatus.active)
    world.name = name
    world.vendor_map = {
        vendor: {item: entry.to_raw() for item, entry in items.items()}
        for vendor, items in (vendor_map or {"全聯": {"雞蛋": CatalogEntry(qty=10)}}).items()
    }
    await WorldService.bind_user(db, owner, world.id, BindingRole.owner)
    await WorldService.set_current_world(db, owner, world.id)
    for user_id in employees:
        await WorldService.bind_user(db, user_id, world.id, BindingRole.employee)
        await WorldService.set_current_world(db, user_id, world.id)
    await db.commit()
    return world.id
