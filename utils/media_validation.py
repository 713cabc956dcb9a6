"""Validation helpers for uploaded image content."""

from typing import Tuple

from fastapi import HTTPException, UploadFile


async def read_upload(image: UploadFile) -> Tuple[str, bytes, str]:
    """Read an uploaded file into `(filename, bytes, content_type)`.

    Only transport-level problems are rejected here; emptiness checks
    belong to the ingestion pipeline so every caller gets the same rules.
    """
    try:
        content = await image.read()
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise HTTPException(status_code=400, detail="Unable to read uploaded image.") from exc

    content_type = (image.content_type or "").split(";", 1)[0].strip()
    return image.filename or "", content, content_type
