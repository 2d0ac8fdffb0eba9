"""
File uploads: base64 payloads into object storage, metadata into the
caller's ``files`` collection.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import uuid

from archon_api.errors import BadRequest, NotFound
from archon_api.resources import utcnow
from archon_api.schemas import FileUploadRequest
from archon_api.storage import StorageClient
from archon_api.tenancy import TenantScope

logger = logging.getLogger(__name__)

FILES_COLLECTION = "files"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
DATA_URL_PREFIX = re.compile(r"^data:[^;,]*;base64,")


def decode_base64(data: str) -> bytes:
    try:
        return base64.b64decode(DATA_URL_PREFIX.sub("", data.strip()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise BadRequest("Invalid base64 data") from e


def _public_view(file_id: str, doc: dict) -> dict:
    created_at = doc["createdAt"]
    return {
        "id": file_id,
        "name": doc["name"],
        "contentType": doc["contentType"],
        "size": doc["size"],
        "url": doc["url"],
        "createdAt": created_at.isoformat()
        if hasattr(created_at, "isoformat")
        else str(created_at),
    }


def upload_file(
    scope: TenantScope,
    storage: StorageClient,
    payload: FileUploadRequest,
    max_bytes: int,
) -> dict:
    if not payload.name or not payload.data:
        raise BadRequest("Missing name or data")
    name = payload.name.strip()
    if not name or "/" in name or name in (".", ".."):
        raise BadRequest("Invalid file name")

    content = decode_base64(payload.data)
    if len(content) > max_bytes:
        raise BadRequest(f"File exceeds the {max_bytes} byte limit")

    content_type = payload.contentType or DEFAULT_CONTENT_TYPE
    file_id = uuid.uuid4().hex
    now = utcnow()
    path = f"users/{scope.user_id}/{FILES_COLLECTION}/{file_id}/{name}"
    url = storage.upload_bytes(
        path,
        content,
        content_type,
        metadata={"uploadedBy": scope.user_id, "uploadedAt": now.isoformat()},
    )

    doc = {
        "name": name,
        "contentType": content_type,
        "size": len(content),
        "url": url,
        "path": path,
        "userId": scope.user_id,
        "createdAt": now,
    }
    scope.collection(FILES_COLLECTION).set(file_id, doc)
    logger.info("Stored file %s (%d bytes) for user %s", file_id, len(content), scope.user_id)
    return _public_view(file_id, doc)


def get_file(scope: TenantScope, file_id: str) -> dict:
    doc = scope.collection(FILES_COLLECTION).get(file_id)
    if doc is None:
        raise NotFound("File not found")
    return _public_view(file_id, doc)


def delete_file(scope: TenantScope, storage: StorageClient, file_id: str) -> dict:
    files = scope.collection(FILES_COLLECTION)
    doc = files.get(file_id)
    if doc is None:
        raise NotFound("File not found")
    storage.delete(doc["path"])
    files.delete(file_id)
    logger.info("Deleted file %s for user %s", file_id, scope.user_id)
    return {"message": "File deleted successfully"}
