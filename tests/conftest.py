"""
Shared fixtures for shelftrack tests.
"""

from datetime import datetime, timezone
from typing import List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shelftrack.errors import ItemNotFoundError
from shelftrack.models import Base
from shelftrack.schemas import MediaItem, MediaKind

ADDED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def make_item():
    def _make_item(**overrides) -> MediaItem:
        data = {
            "id": "item-1",
            "owner_id": "owner-1",
            "name": "Test item",
            "media_kind": MediaKind.BOOK,
            "date_added": ADDED_AT,
        }
        data.update(overrides)
        return MediaItem(**data)

    return _make_item


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


class FakeRepository:
    """In-memory MediaRepository test double that records calls."""

    def __init__(self, items=()) -> None:
        self.items = {item.id: item for item in items}
        self.calls: List[tuple] = []
        self.fail_with: Exception | None = None
        self.assign_id: str | None = None
        self.canonicalize = None

    async def list(self, owner_id: str) -> List[MediaItem]:
        self.calls.append(("list", owner_id))
        return [item for item in self.items.values() if item.owner_id == owner_id]

    async def create(self, item: MediaItem) -> str:
        self.calls.append(("create", item.id))
        if self.fail_with is not None:
            raise self.fail_with
        item_id = self.assign_id or item.id
        self.items[item_id] = item.model_copy(update={"id": item_id})
        return item_id

    async def replace(self, item_id: str, item: MediaItem) -> MediaItem:
        self.calls.append(("replace", item_id))
        if self.fail_with is not None:
            raise self.fail_with
        if item_id not in self.items:
            raise ItemNotFoundError(item_id)
        canonical = self.canonicalize(item) if self.canonicalize else item
        self.items[item_id] = canonical
        return canonical

    async def delete(self, item_id: str) -> None:
        self.calls.append(("delete", item_id))
        if self.fail_with is not None:
            raise self.fail_with
        if item_id not in self.items:
            raise ItemNotFoundError(item_id)
        del self.items[item_id]

    def writes(self) -> List[tuple]:
        return [call for call in self.calls if call[0] != "list"]


@pytest.fixture
def fake_repository_class():
    return FakeRepository
