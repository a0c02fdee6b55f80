"""File Routes - public access to stored onboarding uploads.

GET/HEAD /api/files/{bucket}/{path} - stream a stored object (menus, faqs, documents)
"""
from fastapi import APIRouter, HTTPException, Request, Response, status
from services.storage_adapter import BUCKETS, StoredFileNotFound, storage_adapter
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/files", tags=["files"])


@router.api_route("/{bucket}/{path:path}", methods=["GET", "HEAD"])
async def get_file(bucket: str, path: str, request: Request):
    if bucket not in BUCKETS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown bucket")
    try:
        content, content_type = await storage_adapter.download(bucket, path)
    except StoredFileNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    headers = {"Cache-Control": "public, max-age=86400", "Content-Length": str(len(content))}
    if request.method == "HEAD":
        return Response(status_code=status.HTTP_200_OK, media_type=content_type, headers=headers)
    return Response(content=content, media_type=content_type, headers=headers)
