"""Tests for the HTTP surface."""

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import FakeBlobReader, FakeDescriber, FakeObjectStore, FakeRepository, StepClock
from dal.image_dal import ImageDAL
from main import create_app
from services.blob_reader import HttpBlobReader
from services.ingestion.keys import KeyGenerator
from services.ingestion.pipeline import IngestionPipeline
from services.object_store import LocalObjectStore

PNG = ("cat.png", b"0123456789", "image/png")


def _fake_pipeline(store=None, repository=None, describer=None):
    store = store or FakeObjectStore()
    return IngestionPipeline(
        store=store,
        reader=FakeBlobReader(store),
        describer=describer or FakeDescriber(),
        repository=repository or FakeRepository(),
        keys=KeyGenerator(clock=StepClock(1_700_000_000_000)),
    )


@pytest_asyncio.fixture
async def app_client() -> AsyncGenerator[tuple, None]:
    """Create an app without running its lifespan, plus a client for it."""
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield app, client


@pytest.mark.asyncio
async def test_upload_success(app_client):
    app, client = app_client
    repository = FakeRepository()
    app.state.ingestion_pipeline = _fake_pipeline(repository=repository)

    resp = await client.post("/images", files={"image": PNG})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["id"] == 1
    assert body["url"].endswith("/images/1700000000000-cat.png")
    assert body["description"] == "A cat sitting on a windowsill"
    assert repository.inserts[0]["name"] == "cat.png"


@pytest.mark.asyncio
async def test_upload_empty_file_is_400(app_client):
    app, client = app_client
    store = FakeObjectStore()
    app.state.ingestion_pipeline = _fake_pipeline(store=store)

    resp = await client.post("/images", files={"image": ("cat.png", b"", "image/png")})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Uploaded image is empty."
    assert store.put_calls == []


@pytest.mark.asyncio
async def test_upload_without_file_is_422(app_client):
    app, client = app_client
    app.state.ingestion_pipeline = _fake_pipeline()

    resp = await client.post("/images", data={"other": "field"})

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_persistence_failure_is_500_and_cleans_up(app_client):
    app, client = app_client
    store = FakeObjectStore()
    app.state.ingestion_pipeline = _fake_pipeline(store=store, repository=FakeRepository(ok=False))

    resp = await client.post("/images", files={"image": PNG})

    assert resp.status_code == 500
    assert resp.json()["detail"] == "Failed to save image details to database"
    assert store.delete_calls == ["images/1700000000000-cat.png"]
    assert store.blobs == {}


@pytest.mark.asyncio
async def test_rejected_insert_is_409(app_client):
    app, client = app_client
    app.state.ingestion_pipeline = _fake_pipeline(repository=FakeRepository(rejected=True))

    resp = await client.post("/images", files={"image": PNG})

    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_upload_failure_is_500(app_client):
    app, client = app_client
    store = FakeObjectStore(fail_put=True)
    app.state.ingestion_pipeline = _fake_pipeline(store=store)

    resp = await client.post("/images", files={"image": PNG})

    assert resp.status_code == 500
    assert "bucket unavailable" in resp.json()["detail"]
    assert store.delete_calls == []


@pytest.mark.asyncio
async def test_list_images(app_client):
    app, client = app_client
    app.state.ingestion_pipeline = _fake_pipeline()

    for name in ("a.png", "b.png"):
        await client.post("/images", files={"image": (name, b"0123456789", "image/png")})

    resp = await client.get("/images")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "success"
    assert [img["name"] for img in body["images"]] == ["b.png", "a.png"]
    assert body["images"][0]["created_at"].startswith("2024-05-01T12:00:01")


@pytest.mark.asyncio
async def test_list_images_error_payload(app_client):
    app, client = app_client
    app.state.ingestion_pipeline = _fake_pipeline(repository=FakeRepository(list_error=RuntimeError("disk I/O error")))

    resp = await client.get("/images")

    assert resp.status_code == 200
    assert resp.json() == {"status": "error", "images": [], "message": "disk I/O error"}


@pytest.mark.asyncio
async def test_missing_pipeline_is_500(app_client):
    _, client = app_client

    resp = await client.get("/images")

    assert resp.status_code == 500


@pytest.mark.asyncio
async def test_health_without_lifespan(app_client):
    _, client = app_client

    resp = await client.get("/health")

    assert resp.json() == {"ok": True, "db_initialized": False, "openai_available": False, "object_store": None}


@pytest.mark.asyncio
async def test_end_to_end_with_local_store_and_sqlite(tmp_path, db_initializer):
    """Test a real upload is served back through /media and listed from SQLite."""
    app = create_app()
    transport = ASGITransport(app=app)
    store = LocalObjectStore(tmp_path / "objects", "http://test/media")
    store.ensure_root()
    app.state.object_store = store

    async with AsyncClient(transport=transport, base_url="http://test") as readback_client:
        app.state.ingestion_pipeline = IngestionPipeline(
            store=store,
            reader=HttpBlobReader(readback_client),
            describer=FakeDescriber(mode="raise"),
            repository=ImageDAL(db_initializer),
            keys=KeyGenerator(clock=StepClock(1_700_000_000_000)),
        )

        async with AsyncClient(transport=transport, base_url="http://test") as client:
            upload = await client.post("/images", files={"image": ("my cat.png", b"0123456789", "image/png")})
            assert upload.status_code == 200
            assert upload.json()["url"] == "http://test/media/images/1700000000000-my-cat.png"
            assert upload.json()["description"] == "Description unavailable"

            media = await client.get("/media/images/1700000000000-my-cat.png")
            assert media.status_code == 200
            assert media.content == b"0123456789"
            assert media.headers["content-type"] == "image/png"

            listing = (await client.get("/images")).json()
            assert listing["status"] == "success"
            assert [img["name"] for img in listing["images"]] == ["my cat.png"]

            missing = await client.get("/media/images/nope.png")
            assert missing.status_code == 404


@pytest.mark.asyncio
async def test_end_to_end_readback_failure_removes_blob(tmp_path, db_initializer):
    """Test a readback that cannot reach the media route leaves no blob or row behind."""
    app = create_app()
    store = LocalObjectStore(tmp_path / "objects", "http://test/media")
    store.ensure_root()
    dal = ImageDAL(db_initializer)

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with AsyncClient(transport=httpx.MockTransport(unreachable)) as readback_client:
        app.state.ingestion_pipeline = IngestionPipeline(
            store=store,
            reader=HttpBlobReader(readback_client),
            describer=FakeDescriber(),
            repository=dal,
            keys=KeyGenerator(clock=StepClock(1_700_000_000_000)),
        )
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.post("/images", files={"image": PNG})

    assert resp.status_code == 500
    assert "Failed to fetch uploaded image" in resp.json()["detail"]
    assert store.blob_path("images/1700000000000-cat.png") is None
    assert await dal.list_images() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "filename, url_tail",
    [
        ("photo #1.png", "photo-%231.png"),
        ("what?.png", "what%3F.png"),
        ("50% off.png", "50%25-off.png"),
        ("scan.meta.json", "scan.meta.json"),
    ],
)
async def test_end_to_end_unusual_filenames_resolve(tmp_path, db_initializer, filename, url_tail):
    """Test filenames with URL-reserved characters or metadata-like suffixes commit and resolve."""
    app = create_app()
    transport = ASGITransport(app=app)
    store = LocalObjectStore(tmp_path / "objects", "http://test/media")
    store.ensure_root()
    app.state.object_store = store

    async with AsyncClient(transport=transport, base_url="http://test") as readback_client:
        app.state.ingestion_pipeline = IngestionPipeline(
            store=store,
            reader=HttpBlobReader(readback_client),
            describer=FakeDescriber(),
            repository=ImageDAL(db_initializer),
            keys=KeyGenerator(clock=StepClock(1_700_000_000_000)),
        )

        async with AsyncClient(transport=transport, base_url="http://test") as client:
            upload = await client.post("/images", files={"image": (filename, b"0123456789", "image/png")})
            assert upload.status_code == 200
            url = upload.json()["url"]
            assert url == f"http://test/media/images/1700000000000-{url_tail}"

            media = await client.get(url)
            assert media.status_code == 200
            assert media.content == b"0123456789"

            listing = (await client.get("/images")).json()
            assert [img["url"] for img in listing["images"]] == [url]
            assert [img["name"] for img in listing["images"]] == [filename]
