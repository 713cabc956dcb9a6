from fastapi import Request, UploadFile, HTTPException
from fastapi.responses import FileResponse
from typing import Dict, Any

from services.ingestion.errors import IngestError, InputError, PersistenceRejectedError
from services.ingestion.pipeline import IngestionPipeline
from services.object_store import LocalObjectStore, StoreError
from utils.media_validation import read_upload


def _get_pipeline(request: Request) -> IngestionPipeline:
    """Retrieve the shared ingestion pipeline from the app state."""
    pipeline = getattr(request.app.state, "ingestion_pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=500, detail="Ingestion pipeline not initialized.")
    return pipeline


def _status_for(error: IngestError) -> int:
    if isinstance(error, InputError):
        return 400
    if isinstance(error, PersistenceRejectedError):
        return 409
    return 500


async def upload_image(request: Request, file: UploadFile) -> Dict[str, Any]:
    """Run one uploaded file through the ingestion pipeline.

    Args:
        request: FastAPI Request object (used to access app.state for the pipeline).
        file: Uploaded image file.

    Returns:
        A dict containing: success, id, url, description.

    Raises:
        HTTPException: 400 for empty input, 409 for rejected metadata, 500 otherwise.
    """
    pipeline = _get_pipeline(request)
    filename, content, content_type = await read_upload(file)

    try:
        outcome = await pipeline.ingest(filename, content, content_type)
    except IngestError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=exc.message) from exc

    return {
        "success": True,
        "id": outcome.record_id,
        "url": outcome.url,
        "description": outcome.description,
    }


async def list_images(request: Request) -> Dict[str, Any]:
    """Return all stored images newest-first in the gallery payload shape."""
    pipeline = _get_pipeline(request)
    result = await pipeline.list_images()

    payload: Dict[str, Any] = {
        "status": result.status,
        "images": [record.to_dict() for record in result.images],
    }
    if result.message:
        payload["message"] = result.message
    return payload


async def get_media(request: Request, key: str) -> FileResponse:
    """Serve a stored blob with the content type it was uploaded with.

    Raises:
        HTTPException(404) if the key does not name a stored blob.
    """
    store = getattr(request.app.state, "object_store", None)
    if not isinstance(store, LocalObjectStore):
        raise HTTPException(status_code=404, detail="Media not found")

    try:
        path = store.blob_path(key)
    except StoreError:
        path = None
    if path is None:
        raise HTTPException(status_code=404, detail="Media not found")

    media_type = await store.content_type(key)
    return FileResponse(path, media_type=media_type)
