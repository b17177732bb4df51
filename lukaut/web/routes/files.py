"""Signed downloads from local storage."""

from __future__ import annotations

from fastapi import APIRouter, Query
from fastapi.responses import Response

from lukaut.config import get_config
from lukaut.core.storage import get_storage, validate_key, verify_signature
from lukaut.errors import forbidden

router = APIRouter(tags=["files"])


@router.get("/files/{key:path}")
async def serve_file(key: str, expires: int = Query(0), sig: str = Query("")):
    """Serve a stored object if the link's signature is valid and unexpired.

    No session is required; the signature is the credential.
    """
    validate_key(key)
    if not verify_signature(get_config().secret_key, key, expires, sig):
        raise forbidden("Invalid or expired link", op="files.serve")

    data, info = await get_storage().get(key)
    return Response(
        content=data,
        media_type=info.content_type,
        headers={"Cache-Control": "private, max-age=300"},
    )
