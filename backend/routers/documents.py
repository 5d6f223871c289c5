"""
Document Center Router — files produced while working together
Grouped multi-format listing, public download links, upload into object
storage and row removal
"""

import os
import re
import logging
import uuid
from typing import Optional, Dict

from fastapi import APIRouter, Depends, HTTPException, Form, UploadFile, File
from fastapi.responses import RedirectResponse

from auth import get_current_user, CurrentUser
from database import DataService, BackendError, get_data_service
from document_groups import (
    DocumentGroup, group_documents, format_file_size, file_kind, guess_mime_type, split_extension,
)
from models import Document, User

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])
logger = logging.getLogger("hextask.documents")

DOCUMENTS_BUCKET = os.getenv("DOCUMENTS_BUCKET", "documents")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))


# ── Helpers ──────────────────────────────────────────────────

def _safe_file_name(file_name: str) -> str:
    name = os.path.basename(file_name or "").strip()
    return re.sub(r"[^A-Za-z0-9._ -]", "_", name) or "upload"


def _decorate(doc: Document, users: Dict[str, User], data: DataService) -> Document:
    return doc.model_copy(update={
        "creator": users.get(doc.created_by) if doc.created_by else None,
        "url": data.public_url(DOCUMENTS_BUCKET, doc.file_path),
    })


def _document_out(doc: Document) -> dict:
    out = doc.model_dump(mode="json")
    out["size_label"] = format_file_size(doc.file_size)
    out["kind"] = file_kind(doc.mime_type)
    return out


def _group_out(group: DocumentGroup) -> dict:
    return {
        "key": group.key,
        "name": group.name,
        "best": _document_out(group.best),
        "formats": [
            {"extension": f.extension, "label": f.label, "document": _document_out(f.document)}
            for f in group.formats
        ],
    }


async def _load_users(data: DataService, access_token: str) -> Dict[str, User]:
    try:
        rows = await data.select("users", access_token=access_token)
    except BackendError as e:
        logger.error(f"Error fetching users: {e}")
        return {}
    return {u.id: u for u in (User.model_validate(r) for r in rows)}


async def _remove_object(data: DataService, file_path: str, access_token: str) -> None:
    try:
        await data.remove(DOCUMENTS_BUCKET, [file_path], access_token=access_token)
    except BackendError as e:
        logger.warning(f"Stored object {file_path} not removed: {e}")


async def _get_document(document_id: str, data: DataService, access_token: str) -> Document:
    row = await data.select_one("documents", {"id": document_id}, access_token=access_token)
    if not row:
        raise HTTPException(status_code=404, detail="Document not found")
    return Document.model_validate(row)


# ── Documents ────────────────────────────────────────────────

@router.get("")
async def list_documents(
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    """Documents grouped by name, newest first, best format first"""
    users = await _load_users(data, user.access_token)
    try:
        rows = await data.select("documents", order=[("created_at", False)], access_token=user.access_token)
    except BackendError as e:
        logger.error(f"Error fetching documents: {e}")
        raise HTTPException(status_code=502, detail="Failed to load documents")
    docs = [_decorate(Document.model_validate(r), users, data) for r in rows]
    groups = group_documents(docs)
    return {"total": len(docs), "groups": [_group_out(g) for g in groups]}


@router.get("/{document_id}")
async def get_document(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    doc = await _get_document(document_id, data, user.access_token)
    users = await _load_users(data, user.access_token)
    return _document_out(_decorate(doc, users, data))


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    """Redirect to the object's public storage URL"""
    doc = await _get_document(document_id, data, user.access_token)
    return RedirectResponse(data.public_url(DOCUMENTS_BUCKET, doc.file_path), status_code=307)


@router.post("", status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    """Store a file and register it in the documents table"""
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large")

    file_name = _safe_file_name(file.filename)
    mime_type = file.content_type
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = guess_mime_type(file_name)
    file_path = f"{user.id}/{uuid.uuid4().hex}/{file_name}"

    await data.upload(DOCUMENTS_BUCKET, file_path, content, mime_type, access_token=user.access_token)
    try:
        rows = await data.insert("documents", {
            "name": name or split_extension(file_name)[0],
            "description": description,
            "file_name": file_name,
            "file_path": file_path,
            "file_size": len(content),
            "mime_type": mime_type,
            "created_by": user.id,
        }, access_token=user.access_token)
        if not rows:
            raise BackendError("Insert returned no row")
    except BackendError as e:
        logger.error(f"Error registering document {file_name}: {e}")
        await _remove_object(data, file_path, user.access_token)
        raise
    logger.info(f"Document uploaded: {file_name} ({len(content)} bytes) by {user.name}")

    doc = Document.model_validate(rows[0])
    return _document_out(_decorate(doc, {}, data))


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    user: CurrentUser = Depends(get_current_user),
    data: DataService = Depends(get_data_service),
):
    doc = await _get_document(document_id, data, user.access_token)
    try:
        await data.delete("documents", {"id": document_id}, access_token=user.access_token)
    except BackendError as e:
        logger.error(f"Error deleting document {document_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to delete document")

    # Row already removed; a failure here only leaves the object orphaned
    await _remove_object(data, doc.file_path, user.access_token)
    return {"status": "deleted", "document_id": document_id}
