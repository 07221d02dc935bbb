# share_routes.py

import io
import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Body, Depends, File, Form, Header, HTTPException, Response, UploadFile
from fastapi.responses import StreamingResponse

from database import SessionLocal
from errors import ShareError, ValidationError
import file_service
from file_service import build_storage_key, check_upload_size, detect_mime
from identity import require_user_id
from schemas import (
    DEFAULT_EXPIRY_DAYS,
    EditDraft,
    FilePayload,
    ShareKind,
    ShareOut,
    ShareSummary,
    ShareUpdate,
    TextPayload,
    TextShareCreate,
    UnlockedShare,
    UnlockRequest,
    normalize_prior,
)
from share_repository import SqlShareRepository
from share_service import ShareService
from storage import StorageBackend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sharing"])

NOT_FOUND_DETAIL = "Invalid code or content has expired"


# ─── DEPENDENCIES ────────────────────────────────────────────

@lru_cache
def get_storage() -> StorageBackend:
    return StorageBackend()


def get_share_service(storage: StorageBackend = Depends(get_storage)) -> ShareService:
    return ShareService(SqlShareRepository(SessionLocal, blob_store=storage))


def _active_share(service: ShareService, code: str):
    record = service.get_by_access_code(code)
    if record is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND_DETAIL)
    return record


def _out(service: ShareService, record) -> ShareOut:
    return ShareOut.from_record(record, expired=service.is_expired(record))


# ─── OWNER: CREATE ───────────────────────────────────────────

@router.post("/shares/text", response_model=ShareOut, status_code=201)
def create_text_share(
    req: TextShareCreate,
    owner_id: str = Depends(require_user_id),
    service: ShareService = Depends(get_share_service),
):
    record = service.create_share(
        ShareKind.TEXT,
        TextPayload(content=req.content),
        owner_id,
        req.expiry_days,
        password=req.password,
        display_name=req.name,
    )
    return _out(service, record)


@router.post("/shares/file", response_model=ShareOut, status_code=201)
def create_file_share(
    file: UploadFile = File(...),
    expiry_days: int = Form(DEFAULT_EXPIRY_DAYS),
    use_password: bool = Form(False),
    password: str = Form(""),
    title: Optional[str] = Form(None),
    owner_id: str = Depends(require_user_id),
    service: ShareService = Depends(get_share_service),
    storage: StorageBackend = Depends(get_storage),
):
    limit = file_service.MAX_UPLOAD_BYTES
    if file.size is not None:
        check_upload_size(file.size, limit)
    # One byte past the limit is enough to reject an oversized stream
    data = file.file.read(limit + 1)
    check_upload_size(len(data), limit)
    # Reject bad form input before anything is written to storage
    if use_password and not password:
        raise ValidationError("Please enter a password or disable password protection")
    service.expiry_from_days(expiry_days)

    filename = file.filename or "file"
    mime_type = file.content_type
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = detect_mime(filename)

    key = build_storage_key(owner_id, filename)
    url = storage.store(data, key, mime_type)
    payload = FilePayload(
        file_name=filename,
        storage_key=key,
        url=url,
        mime_type=mime_type,
        size_bytes=len(data),
    )

    try:
        record = service.create_share(
            ShareKind.FILE,
            payload,
            owner_id,
            expiry_days,
            password=password if use_password else None,
            display_name=title or None,
        )
    except ShareError:
        # Blob stays for out-of-band orphan cleanup
        logger.warning(f"Share insert failed; stored blob left orphaned: {key}")
        raise
    return _out(service, record)


# ─── OWNER: DASHBOARD ────────────────────────────────────────

@router.get("/shares", response_model=list[ShareOut])
def list_my_shares(
    owner_id: str = Depends(require_user_id),
    service: ShareService = Depends(get_share_service),
):
    return [_out(service, record) for record in service.list_shares(owner_id)]


@router.get("/shares/{share_id}/edit", response_model=EditDraft)
def edit_draft(
    share_id: str,
    owner_id: str = Depends(require_user_id),
    service: ShareService = Depends(get_share_service),
):
    record = service.get_owned_share(share_id, owner_id)
    prior = _out(service, record).model_dump()
    prior["expires_at"] = record.expires_at or "never"
    return normalize_prior(prior, now=service.now())


@router.patch("/shares/{share_id}", response_model=ShareOut)
def update_share(
    share_id: str,
    update: ShareUpdate = Body(...),
    owner_id: str = Depends(require_user_id),
    service: ShareService = Depends(get_share_service),
):
    record = service.update_share(share_id, owner_id, update)
    return _out(service, record)


@router.delete("/shares/{share_id}", status_code=204)
def delete_share(
    share_id: str,
    owner_id: str = Depends(require_user_id),
    service: ShareService = Depends(get_share_service),
):
    service.delete_share(share_id, owner_id)
    return Response(status_code=204)


# ─── ANONYMOUS ACCESS ────────────────────────────────────────

@router.get("/access/{code}", response_model=ShareSummary)
def lookup_share(code: str, service: ShareService = Depends(get_share_service)):
    return ShareSummary.from_record(_active_share(service, code))


@router.post("/access/{code}/unlock", response_model=UnlockedShare)
def unlock_share(
    code: str,
    background_tasks: BackgroundTasks,
    req: Optional[UnlockRequest] = None,
    service: ShareService = Depends(get_share_service),
):
    record = _active_share(service, code)
    password = req.password if req is not None else ""
    if not service.verify_password(record, password):
        raise HTTPException(status_code=403, detail="Incorrect password")

    unlocked = UnlockedShare.from_record(record)
    if isinstance(record.payload, TextPayload):
        unlocked.content = record.payload.content
        background_tasks.add_task(service.record_access, record.id)
    else:
        unlocked.download_url = f"/access/{code}/download"
    return unlocked


@router.get("/access/{code}/download")
def download_shared_file(
    code: str,
    background_tasks: BackgroundTasks,
    password: str = Header("", alias="X-Share-Password"),
    service: ShareService = Depends(get_share_service),
    storage: StorageBackend = Depends(get_storage),
):
    record = _active_share(service, code)
    if not isinstance(record.payload, FilePayload):
        raise HTTPException(status_code=404, detail="This share has no file to download")
    if not service.verify_password(record, password):
        raise HTTPException(status_code=403, detail="Incorrect password")

    data = storage.get(record.payload.storage_key)
    if data is None:
        raise HTTPException(status_code=404, detail="File not found in storage.")

    background_tasks.add_task(service.record_access, record.id)
    return StreamingResponse(
        io.BytesIO(data),
        media_type=record.payload.mime_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(record.payload.file_name)}"
        },
        background=background_tasks,
    )
