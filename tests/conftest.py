"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

import pytest
import pytest_asyncio

from dal.image_dal import ImageDAL
from models.image_record import ImageRecord, InsertResult
from services.blob_reader import ReadbackError
from services.ingestion.keys import KeyGenerator
from services.ingestion.pipeline import IngestionPipeline
from services.object_store import StoreError
from services.openai.image_describer import DescriptionResult
from utils.database_init import AsyncDatabaseInitializer

MEDIA_BASE = "https://media.test"


class FakeObjectStore:
    """In-memory object store that records every call."""

    def __init__(self, fail_put: bool = False, fail_delete: bool = False) -> None:
        self.blobs: dict[str, tuple[bytes, str]] = {}
        self.put_calls: List[str] = []
        self.delete_calls: List[str] = []
        self.fail_put = fail_put
        self.fail_delete = fail_delete

    async def put(self, key: str, content: bytes, content_type: str) -> None:
        self.put_calls.append(key)
        if self.fail_put:
            raise StoreError(key, "bucket unavailable")
        self.blobs[key] = (content, content_type)

    async def delete(self, key: str) -> None:
        self.delete_calls.append(key)
        if self.fail_delete:
            raise StoreError(key, "delete refused")
        self.blobs.pop(key, None)

    def public_url(self, key: str) -> str:
        return f"{MEDIA_BASE}/{key}"


class FakeBlobReader:
    """Reads blobs straight out of a FakeObjectStore by public URL."""

    def __init__(self, store: FakeObjectStore, fail: bool = False) -> None:
        self.store = store
        self.fail = fail
        self.urls: List[str] = []

    async def fetch(self, url: str) -> bytes:
        self.urls.append(url)
        key = url[len(MEDIA_BASE) + 1:]
        if self.fail or key not in self.store.blobs:
            raise ReadbackError(url, "Failed to fetch uploaded image: 503 Service Unavailable")
        return self.store.blobs[key][0]


class FakeDescriber:
    def __init__(self, text: str = "A cat sitting on a windowsill", mode: str = "ok") -> None:
        self.text = text
        self.mode = mode
        self.calls: List[tuple[bytes, str]] = []

    async def describe(self, image_bytes: bytes, mime_type: str) -> DescriptionResult:
        self.calls.append((image_bytes, mime_type))
        if self.mode == "raise":
            raise RuntimeError("model exploded")
        if self.mode == "unavailable":
            return DescriptionResult.unavailable("timeout")
        return DescriptionResult.ok(self.text)


class FakeRepository:
    def __init__(
        self,
        ok: bool = True,
        rejected: bool = False,
        insert_error: Optional[Exception] = None,
        list_error: Optional[Exception] = None,
    ) -> None:
        self.ok = ok
        self.rejected = rejected
        self.insert_error = insert_error
        self.list_error = list_error
        self.inserts: List[dict] = []
        self.records: List[ImageRecord] = []

    async def insert_image(self, url: str, name: str, description: Optional[str]) -> InsertResult:
        self.inserts.append({"url": url, "name": name, "description": description})
        if self.insert_error is not None:
            raise self.insert_error
        if self.rejected:
            return InsertResult(ok=False, rejected=True, error="NOT NULL constraint failed: images.name")
        if not self.ok:
            return InsertResult(ok=False)
        record = ImageRecord(
            id=len(self.records) + 1,
            url=url,
            name=name,
            description=description,
            created_at=datetime(2024, 5, 1, 12, 0, len(self.records), tzinfo=timezone.utc),
        )
        self.records.append(record)
        return InsertResult(ok=True, id=record.id)

    async def list_images(self) -> List[ImageRecord]:
        if self.list_error is not None:
            raise self.list_error
        return sorted(self.records, key=lambda r: (r.created_at, r.id), reverse=True)


class StepClock:
    """Millisecond clock that returns the queued values, then keeps counting."""

    def __init__(self, *values: int) -> None:
        self.values = list(values) or [1_700_000_000_000]
        self.calls = 0

    def __call__(self) -> int:
        self.calls += 1
        if len(self.values) > 1:
            return self.values.pop(0)
        value = self.values[0]
        self.values[0] += 1
        return value


@pytest.fixture
def store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def reader(store: FakeObjectStore) -> FakeBlobReader:
    return FakeBlobReader(store)


@pytest.fixture
def describer() -> FakeDescriber:
    return FakeDescriber()


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def clock() -> StepClock:
    return StepClock(1_700_000_000_000)


@pytest.fixture
def pipeline(store, reader, describer, repository, clock) -> IngestionPipeline:
    return IngestionPipeline(
        store=store,
        reader=reader,
        describer=describer,
        repository=repository,
        keys=KeyGenerator(clock=clock),
    )


@pytest_asyncio.fixture
async def db_initializer(tmp_path) -> AsyncDatabaseInitializer:
    initializer = AsyncDatabaseInitializer(tmp_path / "db")
    await initializer.ensure_database()
    return initializer


@pytest.fixture
def image_dal(db_initializer) -> ImageDAL:
    return ImageDAL(db_initializer)
