"""Document endpoints: upload, versioning, signed downloads and archiving."""

import json
import logging
import mimetypes
import os
import time
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ledgerly import activity
from ledgerly.database import get_db
from ledgerly.errors import ExternalServiceError, ValidationError
from ledgerly.metadata import DOCUMENT_STATUSES, DOCUMENT_TYPES, Document
from ledgerly.organizations.context import Scope, get_scope, parse_uuid
from ledgerly.settings import settings
from ledgerly.storage import StorageError, StorageProvider, get_storage_provider


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])

ALLOWED_EXTENSIONS = (".pdf", ".doc", ".docx", ".xls", ".xlsx", ".txt")


def serialize_document(document: Document, signed_url: Optional[str] = None) -> dict:
    payload = {
        "id": str(document.id),
        "organization_id": str(document.organization_id) if document.organization_id else None,
        "user_id": str(document.user_id),
        "name": document.name,
        "type": document.type,
        "status": document.status,
        "version": document.version,
        "parent_id": str(document.parent_id) if document.parent_id else None,
        "file_url": document.file_url,
        "file_type": document.file_type,
        "file_size": document.file_size,
        "tags": document.tags or [],
        "metadata": document.extra or {},
        "is_template": bool(document.is_template),
        "template_category": document.template_category,
        "created_at": document.created_at.isoformat() if document.created_at else None,
        "updated_at": document.updated_at.isoformat() if document.updated_at else None,
    }
    if signed_url is not None:
        payload["signed_url"] = signed_url
    return payload


def content_disposition(name: Optional[str]) -> str:
    """Attachment header with an ASCII fallback and an RFC 5987 UTF-8 filename."""
    cleaned = "".join(ch for ch in (name or "") if ch not in "\"\\\r\n").strip() or "download"
    fallback = cleaned.encode("ascii", "ignore").decode("ascii").strip() or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(cleaned, safe='')}"


def get_document_in_scope(db: Session, scope: Scope, document_id) -> Document:
    document = db.query(Document).filter(
        Document.id == parse_uuid(document_id, "document id"),
        scope.filter(Document),
    ).first()
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return document


def _choice(value: Optional[str], allowed, label: str) -> Optional[str]:
    if value is None or value == "":
        return None
    normalized = value.strip().upper()
    if normalized not in allowed:
        raise ValidationError(f"Invalid document {label}: {value}")
    return normalized


def _parse_tags(raw: Optional[str]) -> Optional[List[str]]:
    """Tags arrive as a JSON array in a form field."""
    if raw is None or raw == "":
        return None
    try:
        tags = json.loads(raw)
    except ValueError:
        raise ValidationError("Tags must be a JSON array of strings")
    if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
        raise ValidationError("Tags must be a JSON array of strings")
    return tags


async def _store_upload(scope: Scope, file: UploadFile, storage: StorageProvider) -> dict:
    filename = os.path.basename((file.filename or "").strip())
    if not filename:
        raise ValidationError("No file uploaded", code="NO_FILE")
    if os.path.splitext(filename)[1].lower() not in ALLOWED_EXTENSIONS:
        raise ValidationError("Invalid file type", code="INVALID_FILE_TYPE")

    file_bytes = await file.read()
    if not file_bytes:
        raise ValidationError("Uploaded file is empty", code="NO_FILE")
    if len(file_bytes) > settings.document_max_bytes:
        raise ValidationError("File too large (max 10 MB)", code="FILE_TOO_LARGE")

    owner = scope.organization_id or scope.user.id
    key = f"documents/{owner}/{int(time.time() * 1000)}-{filename}"
    content_type = file.content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
    try:
        await run_in_threadpool(storage.upload, key, file_bytes, content_type)
    except StorageError as exc:
        logger.error("Document upload failed for %s: %s", key, exc)
        raise ExternalServiceError("Failed to upload document", code="STORAGE_ERROR")
    return {"file_url": key, "file_type": content_type, "file_size": len(file_bytes), "filename": filename}


@router.get("", response_model=dict)
async def list_documents(
    type: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    is_template: Optional[bool] = Query(None),
    search: Optional[str] = Query(None),
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
):
    """List documents in scope; archived documents are never returned."""
    query = db.query(Document).filter(scope.filter(Document), Document.status != "ARCHIVED")
    doc_type = _choice(type, DOCUMENT_TYPES, "type")
    if doc_type:
        query = query.filter(Document.type == doc_type)
    doc_status = _choice(status_filter, DOCUMENT_STATUSES, "status")
    if doc_status:
        query = query.filter(Document.status == doc_status)
    if is_template is not None:
        query = query.filter(Document.is_template.is_(is_template))
    if search:
        query = query.filter(Document.name.ilike(f"%{search.strip()}%"))
    documents = query.order_by(Document.created_at.desc()).all()
    return {"success": True, "data": [serialize_document(d) for d in documents]}


@router.get("/analytics", response_model=dict)
async def document_analytics(scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    in_scope = scope.filter(Document)
    total = db.query(func.count(Document.id)).filter(in_scope).scalar() or 0
    total_size = db.query(func.coalesce(func.sum(Document.file_size), 0)).filter(in_scope).scalar() or 0
    by_type = {
        doc_type: int(count)
        for doc_type, count in db.query(Document.type, func.count(Document.id)).filter(in_scope).group_by(Document.type)
    }
    return {
        "success": True,
        "data": {"total_documents": int(total), "total_size": int(total_size), "by_type": by_type},
    }


@router.post("/upload", response_model=dict, status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    name: Optional[str] = Form(None),
    type: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    is_template: bool = Form(False),
    template_category: Optional[str] = Form(None),
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
):
    doc_type = _choice(type, DOCUMENT_TYPES, "type") or "OTHER"
    parsed_tags = _parse_tags(tags) or []
    stored = await _store_upload(scope, file, storage)

    document = Document(
        organization_id=scope.organization_id,
        user_id=scope.user.id,
        name=(name or "").strip() or stored["filename"],
        type=doc_type,
        status="DRAFT",
        version=1,
        file_url=stored["file_url"],
        file_type=stored["file_type"],
        file_size=stored["file_size"],
        tags=parsed_tags,
        extra={},
        is_template=is_template,
        template_category=template_category,
    )
    db.add(document)
    db.flush()
    activity.record_activity(
        db,
        organization_id=scope.organization_id,
        event_type=activity.EVENT_DOCUMENT_UPLOADED,
        user_id=scope.user.id,
        entity_type="document",
        entity_id=document.id,
        description=f"Document {document.name} uploaded",
        details={"type": document.type, "version": 1},
    )
    db.commit()
    db.refresh(document)
    logger.info("Document %s uploaded to %s", document.id, document.file_url)
    return {"success": True, "data": serialize_document(document)}


@router.get("/{document_id}", response_model=dict)
async def get_document(
    document_id: str,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
):
    document = get_document_in_scope(db, scope, document_id)
    try:
        signed_url = await run_in_threadpool(storage.create_signed_url, document.file_url, settings.signed_url_expiry_seconds)
    except StorageError as exc:
        logger.error("Signing %s failed: %s", document.file_url, exc)
        raise ExternalServiceError("Failed to create document link", code="STORAGE_ERROR")
    return {"success": True, "data": serialize_document(document, signed_url=signed_url)}


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
):
    document = get_document_in_scope(db, scope, document_id)
    try:
        content = await run_in_threadpool(storage.download, document.file_url)
    except StorageError as exc:
        logger.error("Download of %s failed: %s", document.file_url, exc)
        raise ExternalServiceError("Failed to download document", code="STORAGE_ERROR")
    return Response(
        content=content,
        media_type=document.file_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(document.name)},
    )


@router.put("/{document_id}", response_model=dict)
async def update_document(
    document_id: str,
    name: Optional[str] = Form(None),
    status_value: Optional[str] = Form(None, alias="status"),
    tags: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
):
    """Update metadata, or upload a new file as the next version.

    A new file leaves the current row untouched and creates a new row with
    ``parent_id`` pointing at it and ``version`` incremented.
    """
    document = get_document_in_scope(db, scope, document_id)
    new_status = _choice(status_value, DOCUMENT_STATUSES, "status")
    parsed_tags = _parse_tags(tags)
    new_name = (name or "").strip() or None

    if file is not None:
        stored = await _store_upload(scope, file, storage)
        target = Document(
            organization_id=document.organization_id,
            user_id=scope.user.id,
            name=new_name or document.name,
            type=document.type,
            status=new_status or document.status,
            version=document.version + 1,
            parent_id=document.id,
            file_url=stored["file_url"],
            file_type=stored["file_type"],
            file_size=stored["file_size"],
            tags=parsed_tags if parsed_tags is not None else list(document.tags or []),
            extra=dict(document.extra or {}),
            is_template=document.is_template,
            template_category=document.template_category,
        )
        db.add(target)
        db.flush()
    else:
        target = document
        if new_name:
            target.name = new_name
        if new_status:
            target.status = new_status
        if parsed_tags is not None:
            target.tags = parsed_tags

    activity.record_activity(
        db,
        organization_id=scope.organization_id,
        event_type=activity.EVENT_DOCUMENT_UPDATED,
        user_id=scope.user.id,
        entity_type="document",
        entity_id=target.id,
        description=f"Document {target.name} updated",
        details={"version": target.version},
    )
    db.commit()
    db.refresh(target)
    return {"success": True, "data": serialize_document(target)}


@router.get("/{document_id}/versions", response_model=dict)
async def document_versions(document_id: str, scope: Scope = Depends(get_scope), db: Session = Depends(get_db)):
    document = get_document_in_scope(db, scope, document_id)
    versions = db.query(Document).filter(
        scope.filter(Document),
        or_(Document.id == document.id, Document.parent_id == document.id),
    ).order_by(Document.version.desc()).all()
    return {"success": True, "data": [serialize_document(v) for v in versions]}


@router.delete("/{document_id}", response_model=dict)
async def delete_document(
    document_id: str,
    scope: Scope = Depends(get_scope),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage_provider),
):
    """Archive the document and remove its stored file."""
    document = get_document_in_scope(db, scope, document_id)
    if document.file_url:
        try:
            await run_in_threadpool(storage.delete, document.file_url)
        except StorageError as exc:
            logger.error("Failed to delete %s from storage: %s", document.file_url, exc)
    document.status = "ARCHIVED"
    activity.record_activity(
        db,
        organization_id=scope.organization_id,
        event_type=activity.EVENT_DOCUMENT_ARCHIVED,
        user_id=scope.user.id,
        entity_type="document",
        entity_id=document.id,
        description=f"Document {document.name} archived",
    )
    db.commit()
    return {"success": True, "message": "Document archived successfully"}
