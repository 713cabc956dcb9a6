from typing import List, Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers.image_controller import get_media, list_images, upload_image

router = APIRouter()


class UploadResponse(BaseModel):
	success: bool
	id: Optional[int] = None
	url: str
	description: str


class ImageOut(BaseModel):
	id: int
	url: str
	name: str
	description: Optional[str] = None
	created_at: Optional[str] = None


class ImageListResponse(BaseModel):
	status: str
	images: List[ImageOut] = []
	message: Optional[str] = None


@router.post("/images", response_model=UploadResponse, summary="Upload an image to the gallery")
async def post_image(request: Request, image: UploadFile = File(...)):
	"""Store the uploaded image, generate its description and record its metadata."""
	try:
		return await upload_image(request, image)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc) or "An unexpected error occurred")


@router.get("/images", response_model=ImageListResponse)
async def get_images(request: Request):
	"""List every stored image, newest first."""
	return await list_images(request)


@router.get("/media/{key:path}", include_in_schema=False)
async def get_media_file(request: Request, key: str):
	"""Serve a stored blob by its object store key."""
	return await get_media(request, key)
