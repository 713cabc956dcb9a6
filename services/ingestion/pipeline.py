"""Image ingestion pipeline.

Drives one upload through upload -> fetch-back -> describe -> persist. The
object store and the metadata database share no transaction, so a failure
after the blob is written is handled by deleting the blob again before the
error is handed back to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from models.image_record import ImageRecord, InsertResult
from services.blob_reader import BlobReader
from services.ingestion.errors import (
    IngestError,
    InputError,
    PersistenceError,
    PersistenceRejectedError,
    StoreReadbackError,
    StoreWriteError,
)
from services.ingestion.keys import KeyGenerator
from services.ingestion.saga import Saga, SagaState
from services.object_store import ObjectStore
from services.openai.image_describer import DescriptionGenerator, DescriptionResult

LOGGER = logging.getLogger(__name__)

UNAVAILABLE_DESCRIPTION = "Description unavailable"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ImageRepository(Protocol):
    async def insert_image(self, url: str, name: str, description: Optional[str]) -> InsertResult: ...

    async def list_images(self) -> List[ImageRecord]: ...


@dataclass
class IngestOutcome:
    key: str
    url: str
    record_id: Optional[int]
    description: str
    state: SagaState = SagaState.COMMITTED


@dataclass
class ListResult:
    """Listing payload; on failure `status` is "error" and `images` is empty."""

    status: str
    images: List[ImageRecord] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


class IngestionPipeline:
    """Coordinate blob storage, captioning and metadata persistence.

    Args:
        store: Object store the blob is written to and deleted from.
        reader: Fetches the blob back through its public URL.
        describer: Best-effort caption generator.
        repository: Metadata repository for image records.
        keys: Source of unique store keys.
    """

    def __init__(
        self,
        store: ObjectStore,
        reader: BlobReader,
        describer: DescriptionGenerator,
        repository: ImageRepository,
        keys: Optional[KeyGenerator] = None,
    ) -> None:
        self.store = store
        self.reader = reader
        self.describer = describer
        self.repository = repository
        self.keys = keys or KeyGenerator()

    async def ingest(self, filename: str, content: bytes, content_type: Optional[str] = None) -> IngestOutcome:
        """Store one uploaded image and its metadata.

        Returns:
            IngestOutcome describing the committed record.

        Raises:
            InputError: Filename or content is empty; nothing was stored.
            StoreWriteError: The blob upload failed; nothing to undo.
            StoreReadbackError: The blob could not be fetched back; blob deleted.
            PersistenceError: The metadata insert failed; blob deleted.
        """
        if not filename or not filename.strip():
            raise InputError("An image file with a filename is required.")
        if not content:
            raise InputError("Uploaded image is empty.")
        content_type = content_type or DEFAULT_CONTENT_TYPE

        key = self.keys.next_key(filename)
        saga = Saga(label=key)

        try:
            await self.store.put(key, content, content_type)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            error = StoreWriteError(f"Failed to upload image: {exc}", key=key)
            error.saga = saga
            await saga.rollback(error)
            LOGGER.error("Upload error for %s: %s", key, exc)
            raise error from exc

        saga.advance(SagaState.BLOB_WRITTEN, undo=("delete blob", lambda: self.store.delete(key)))
        url = self.store.public_url(key)
        LOGGER.info("Stored blob %s at %s", key, url)

        try:
            image_bytes = await self.reader.fetch(url)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            error = StoreReadbackError(str(exc) or "Failed to fetch uploaded image", key=key)
            await self._abort(saga, error)
            raise error from exc

        description = await self._describe(image_bytes, content_type)
        saga.advance(SagaState.DESCRIBED)

        try:
            result = await self.repository.insert_image(url, filename, description)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            error = PersistenceError(f"Failed to save image details to database: {exc}", key=key)
            await self._abort(saga, error)
            raise error from exc

        if not result.ok:
            if result.rejected:
                error = PersistenceRejectedError(
                    f"Image details were rejected by the database: {result.error}", key=key
                )
            else:
                error = PersistenceError("Failed to save image details to database", key=key)
            await self._abort(saga, error)
            raise error

        saga.advance(SagaState.PERSISTED)
        saga.commit()
        LOGGER.info("Ingested %s as record %s", filename, result.id)
        return IngestOutcome(key=key, url=url, record_id=result.id, description=description, state=saga.state)

    async def list_images(self) -> ListResult:
        """Return every stored record newest-first; failures degrade to an empty list."""
        try:
            images = await self.repository.list_images()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.exception("Failed to load images")
            return ListResult(status="error", images=[], message=str(exc) or "Failed to load images")
        return ListResult(status="success", images=list(images))

    async def _describe(self, image_bytes: bytes, content_type: str) -> str:
        try:
            result = await self.describer.describe(image_bytes, content_type)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            result = DescriptionResult.unavailable(str(exc) or type(exc).__name__)
        if result.available and result.text:
            return result.text
        LOGGER.warning("Using fallback description: %s", result.reason)
        return UNAVAILABLE_DESCRIPTION

    async def _abort(self, saga: Saga, error: IngestError) -> None:
        error.saga = saga
        LOGGER.error("Ingestion of %s failed at %s: %s", saga.label, error.stage, error)
        state = await saga.rollback(error)
        if state is SagaState.ROLLED_BACK:
            LOGGER.info("Rolled back %s", saga.label)
