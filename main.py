import inspect
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from openai import AsyncOpenAI

from dal.image_dal import ImageDAL
from routes.image_route import router as image_router
from services.blob_reader import HttpBlobReader, build_http_client
from services.ingestion.keys import KeyGenerator
from services.ingestion.pipeline import IngestionPipeline
from services.object_store import LocalObjectStore
from services.openai.image_describer import ImageDescriber
from utils.config import AppConfig
from utils.database_init import AsyncDatabaseInitializer

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


async def _close_quietly(client) -> None:
    """Close a client exposing `aclose` or `close`, logging instead of raising."""
    if client is None:
        return
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        if inspect.iscoroutinefunction(aclose):
            await aclose()
        else:
            result = aclose()
            if inspect.isawaitable(result):
                await result
    except Exception as exc:  # pylint: disable=broad-exception-caught
        LOGGER.warning("Error while closing %s: %s", type(client).__name__, exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the SQLite metadata database (at DATABASE_DIR/app.db, kept across restarts)
      - the local object store directory
      - the OpenAI async client and the readback HTTP client
    and attach them, wired into the ingestion pipeline, to `app.state`.
    """
    config = AppConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db_initializer = AsyncDatabaseInitializer(config.database_dir)
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    object_store = LocalObjectStore(config.object_store_dir, config.public_base_url)
    object_store.ensure_root()
    app.state.object_store = object_store

    try:
        openai_client = AsyncOpenAI(
            api_key=config.openai_api_key,
            timeout=config.openai_timeout,
            max_retries=0,
        )
    except Exception as exc:
        raise RuntimeError("Failed to initialize OpenAI Async client") from exc
    app.state.openai_client = openai_client

    http_client = build_http_client(config.readback_timeout)
    app.state.http_client = http_client

    app.state.ingestion_pipeline = IngestionPipeline(
        store=object_store,
        reader=HttpBlobReader(http_client),
        describer=ImageDescriber(openai_client, model=config.openai_model),
        repository=ImageDAL(db_initializer),
        keys=KeyGenerator(),
    )
    LOGGER.info("Gallery ready: objects at %s served from %s", object_store.root_dir, config.public_base_url)

    try:
        yield
    finally:
        await _close_quietly(getattr(app.state, "http_client", None))
        await _close_quietly(getattr(app.state, "openai_client", None))


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check reporting which shared resources are wired.
        """
        db_initializer = getattr(request.app.state, "db_initializer", None)
        store = getattr(request.app.state, "object_store", None)
        return {
            "ok": True,
            "db_initialized": bool(db_initializer and db_initializer.initialized),
            "openai_available": getattr(request.app.state, "openai_client", None) is not None,
            "object_store": str(store.root_dir) if isinstance(store, LocalObjectStore) else None,
        }

    app.include_router(image_router)

    return app


app = create_app()
