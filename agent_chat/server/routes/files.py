import binascii
from typing import Any

from fastapi import APIRouter, HTTPException, Response

from agent_chat.server.conversation_store import store
from agent_chat.server.route_utils import not_found
from agent_chat.shared.config import settings
from agent_chat.shared.models import FilePart, WireModel

router = APIRouter()


class UploadFileBody(WireModel):
    file: FilePart
    conversation_id: str | None = None
    metadata: dict[str, Any] | None = None


@router.post("/files", status_code=201)
async def upload_file(body: UploadFileBody):
    try:
        attachment = store.save_file(body.file, body.conversation_id)
    except binascii.Error:
        raise HTTPException(status_code=400, detail="File content is not valid base64")
    if attachment.size > settings.MAX_FILE_SIZE:
        store.delete_file(attachment.id)
        raise HTTPException(status_code=413, detail=f"File {attachment.name} exceeds maximum size")
    return {"file": attachment.to_wire()}

@router.get("/files/{file_id}")
async def get_file(file_id: str):
    stored = store.get_file(file_id)
    if stored is None:
        raise not_found("File", file_id)
    return {"file": stored.attachment.to_wire()}

@router.get("/files/{file_id}/content")
async def get_file_content(file_id: str):
    stored = store.get_file(file_id)
    if stored is None:
        raise not_found("File", file_id)
    return Response(content=stored.data, media_type=stored.attachment.mime_type)

@router.delete("/files/{file_id}", status_code=204)
async def delete_file(file_id: str):
    if not store.delete_file(file_id):
        raise not_found("File", file_id)
    return Response(status_code=204)
