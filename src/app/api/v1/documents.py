"""Document endpoints: metadata CRUD, multipart upload and download.

Files are written to UPLOAD_DIR under a uuid-prefixed name; the database
only holds their metadata.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any

import structlog
from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    UploadFile,
    status,
)
from fastapi.responses import FileResponse

from src.app.api.deps import (
    get_current_user,
    get_deal_repository,
    get_deal_service,
    require_permission,
)
from src.app.config import get_settings
from src.app.core.permissions import Action
from src.app.deals.schemas import DocumentCreate, DocumentRead, DocumentType, DocumentUpdate
from src.app.deals.service import DealService
from src.app.users.schemas import UserRead

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/documents", tags=["documents"])

_CHUNK_SIZE = 1024 * 1024


async def _get_document(repo: Any, document_id: int) -> DocumentRead:
    document = await repo.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return document


def _safe_name(file_name: str) -> str:
    return Path(file_name).name.replace(" ", "_") or "upload"


@router.get("/deal/{deal_id}", response_model=list[DocumentRead])
async def list_deal_documents(
    deal_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_deal_repository),
):
    return await repo.list_documents(deal_id)


@router.get("/deal/{deal_id}/type/{document_type}", response_model=list[DocumentRead])
async def list_deal_documents_by_type(
    deal_id: int,
    document_type: DocumentType,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_deal_repository),
):
    return await repo.list_documents(deal_id, document_type=document_type.value)


@router.post("/upload", response_model=DocumentRead, status_code=status.HTTP_201_CREATED)
async def upload_document(
    deal_id: int = Form(...),
    document_type: DocumentType = Form(DocumentType.OTHER),
    description: str | None = Form(None),
    file: UploadFile = File(...),
    current_user: UserRead = Depends(require_permission(Action.create, "documents")),
    service: DealService = Depends(get_deal_service),
):
    """Store the uploaded file and record its metadata (413 above the size limit)."""
    settings = get_settings()
    await service.get_deal(deal_id)

    upload_dir = Path(settings.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    original_name = file.filename or "upload"
    target = upload_dir / f"{uuid.uuid4().hex}_{_safe_name(original_name)}"

    size = 0
    try:
        with target.open("wb") as out:
            while chunk := await file.read(_CHUNK_SIZE):
                size += len(chunk)
                if size > settings.MAX_UPLOAD_BYTES:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=f"File exceeds the {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB limit",
                    )
                out.write(chunk)
        document = await service.record_document(
            DocumentCreate(
                deal_id=deal_id,
                file_name=original_name,
                file_type=file.content_type or "application/octet-stream",
                file_size=size,
                file_path=str(target),
                uploaded_by=current_user.id,
                description=description,
                document_type=document_type,
            ),
            current_user,
        )
    except Exception:
        # no file without a metadata row
        target.unlink(missing_ok=True)
        raise

    logger.info("document.uploaded", document_id=document.id, deal_id=deal_id, size=size)
    return document


@router.get("/{document_id}", response_model=DocumentRead)
async def get_document(
    document_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_deal_repository),
):
    return await _get_document(repo, document_id)


@router.get("/{document_id}/download")
async def download_document(
    document_id: int,
    current_user: UserRead = Depends(get_current_user),
    repo=Depends(get_deal_repository),
):
    document = await _get_document(repo, document_id)
    path = Path(document.file_path)
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return FileResponse(path, media_type=document.file_type, filename=document.file_name)


@router.patch("/{document_id}", response_model=DocumentRead)
async def update_document(
    document_id: int,
    body: DocumentUpdate,
    current_user: UserRead = Depends(require_permission(Action.edit, "documents")),
    repo=Depends(get_deal_repository),
):
    await _get_document(repo, document_id)
    return await repo.update_document(document_id, body)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: int,
    current_user: UserRead = Depends(require_permission(Action.delete, "documents")),
    repo=Depends(get_deal_repository),
):
    document = await _get_document(repo, document_id)
    await repo.delete_document(document_id)
    try:
        Path(document.file_path).unlink(missing_ok=True)
    except OSError:
        logger.warning("document.file_remove_failed", document_id=document_id, path=document.file_path)
