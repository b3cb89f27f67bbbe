"""
Document management API routes.
Handles document upload, listing, and deletion.
"""
import os
import shutil
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from ..container import Services
from ..errors import DocSearchError, ValidationFailure
from ..logging_config import logger
from ..schemas import UploadFailure, UploadResponse, UploadSuccess
from ..text_extraction import read_any
from .deps import get_services

router = APIRouter(prefix="/api", tags=["documents"])

INTERNAL_ERROR_CODE = "DOC_INTERNAL"


def _upload_size(f: UploadFile) -> int:
    if f.size is not None:
        return f.size
    f.file.seek(0, os.SEEK_END)
    size = f.file.tell()
    f.file.seek(0)
    return size


@contextmanager
def spooled_upload(f: UploadFile) -> Iterator[str]:
    """Copy an upload to a temp file and yield its path; the file is always removed."""
    tmp = tempfile.NamedTemporaryFile(delete=False, suffix=os.path.splitext(f.filename or "")[1])
    tmp_path = tmp.name
    try:
        with tmp:
            shutil.copyfileobj(f.file, tmp)
        yield tmp_path
    finally:
        try:
            os.remove(tmp_path)
        except FileNotFoundError:
            pass


async def _ingest_upload(f: UploadFile, services: Services) -> str:
    filename = f.filename or ""
    if not filename:
        raise ValidationFailure("Upload has no filename")

    size_bytes = _upload_size(f)
    limit = services.settings.max_file_size_bytes
    if size_bytes > limit:
        raise ValidationFailure(
            f"File is too large. Max size is {limit // (1024 * 1024)} MB.",
            context={"filename": filename, "size_bytes": size_bytes},
        )

    with spooled_upload(f) as tmp_path:
        try:
            doc_text = read_any(tmp_path, filename)
        except DocSearchError:
            raise
        except Exception as e:
            raise ValidationFailure(
                f"Failed to extract text: {e}",
                cause=e,
                context={"filename": filename},
            )

    metadata = {
        "size_bytes": size_bytes,
        "mime_type": f.content_type or "",
        "uploaded_at": datetime.now(timezone.utc).isoformat(),
    }
    return await services.pipeline.ingest(filename, doc_text, metadata)


# ==================== Document Upload ====================

@router.post("/documents/upload", response_model=UploadResponse)
async def upload_documents(
    files: List[UploadFile] = File(...),
    services: Services = Depends(get_services),
):
    """
    Upload one or more documents.

    Supported formats: PDF, DOCX, XLSX, PPTX, TXT, MD, CSV

    Each file is extracted and ingested on its own; one failing file does
    not stop the others.

    Returns:
        Itemized succeeded / failed lists and an overall status
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    succeeded: List[UploadSuccess] = []
    failed: List[UploadFailure] = []

    for f in files:
        logger.info("Processing file", filename=f.filename, content_type=f.content_type)
        try:
            doc_id = await _ingest_upload(f, services)
        except DocSearchError as e:
            logger.error("File ingestion failed", filename=f.filename, code=e.error_code, error=e.message)
            failed.append(UploadFailure(filename=f.filename or "", error=e.message, code=e.error_code))
            continue
        except Exception as e:
            logger.exception("Unexpected error ingesting file", filename=f.filename)
            failed.append(UploadFailure(filename=f.filename or "", error=f"Internal error: {e}", code=INTERNAL_ERROR_CODE))
            continue
        finally:
            await f.close()
        succeeded.append(UploadSuccess(filename=f.filename or "", document_id=doc_id))

    if not failed:
        status = "success"
    elif succeeded:
        status = "partial"
    else:
        status = "failed"

    logger.info("Upload batch finished", status=status, succeeded=len(succeeded), failed=len(failed))
    return UploadResponse(ok=not failed, status=status, succeeded=succeeded, failed=failed)


# ==================== Document Listing ====================

@router.get("/documents")
async def list_documents(services: Services = Depends(get_services)):
    """
    Returns all documents with chunk counts, newest first.
    """
    rows = services.store.list_documents()
    documents = []
    for r in rows:
        doc = dict(r)
        if doc.get("uploaded_at") is not None:
            doc["uploaded_at"] = doc["uploaded_at"].isoformat()
        doc["metadata"] = doc.get("metadata") or {}
        documents.append(doc)
    logger.info("Listed documents", count=len(documents))
    return documents


# ==================== Document Deletion ====================

@router.delete("/documents/{doc_id}")
async def delete_document(doc_id: str, services: Services = Depends(get_services)):
    """
    Deletes a document and all its chunks.

    Args:
        doc_id: The document UUID

    Returns:
        Success confirmation with deleted document ID
    """
    services.store.delete_document(doc_id)
    logger.info("Document deleted", doc_id=doc_id)
    return {"ok": True, "deleted": doc_id}
