"""Serves uploaded audio clips and avatars from the blob store."""

from fastapi import APIRouter, Depends, HTTPException, Response

from radio.service import RadioService

from gateway.dependencies import get_service

router = APIRouter(prefix="/blobs", tags=["blobs"])


@router.get("/{path:path}")
async def get_blob(path: str, service: RadioService = Depends(get_service)) -> Response:
    blob = service.blobs.get(path)
    if blob is None:
        raise HTTPException(status_code=404, detail="Blob not found")
    return Response(content=blob.data, media_type=blob.content_type)
