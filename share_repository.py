"""
share_repository.py — Persistence for share records.

Two implementations of the same interface:

* ``InMemoryShareRepository`` — dict-backed, for tests and single-process use.
* ``SqlShareRepository``      — SQLAlchemy-backed, one session per call.

Both enforce access-code uniqueness (ConflictError), scope update/delete to
the owner (NotFoundError), release stored blobs on delete best-effort, and
treat access-count increments as non-critical.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import timezone
from typing import Optional

from sqlalchemy import select, update as sql_update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import models
from errors import ConflictError, NotFoundError, StoreError, ValidationError
from schemas import FilePayload, ShareKind, ShareRecord, TextPayload

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"display_name", "content", "has_password", "password_digest", "expires_at"})


def to_utc(value):
    """Aware UTC datetime; naive values are taken to be UTC already."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _check_fields(fields: dict):
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")


def _release_blob(blob_store, record: ShareRecord):
    """Delete the stored file behind a share. Failures are logged, never raised."""
    if blob_store is None or not isinstance(record.payload, FilePayload):
        return
    key = record.payload.storage_key
    try:
        blob_store.delete(key)
    except Exception as e:
        logger.error(f"Blob cleanup failed for share {record.id} (key={key}): {e}")


class ShareRepository(ABC):
    """Storage interface consumed by ShareService."""

    @abstractmethod
    def insert(self, record: ShareRecord) -> ShareRecord:
        """Persist a new record. ConflictError if its access code is taken."""

    @abstractmethod
    def find_by_access_code(self, code: str) -> Optional[ShareRecord]:
        ...

    @abstractmethod
    def find_by_id(self, share_id: str) -> Optional[ShareRecord]:
        ...

    @abstractmethod
    def list_by_owner(self, owner_id: str) -> list:
        """Owner's records, newest first."""

    @abstractmethod
    def update(self, share_id: str, owner_id: str, fields: dict) -> ShareRecord:
        """Merge ``fields`` into the record owned by ``owner_id``."""

    @abstractmethod
    def delete(self, share_id: str, owner_id: str) -> None:
        """Delete the record, then release its blob best-effort."""

    @abstractmethod
    def increment_access_count(self, share_id: str) -> None:
        """Atomically add one to access_count. Never raises."""


# ─── In-memory ───────────────────────────────────────────────────────────────

class InMemoryShareRepository(ShareRepository):

    def __init__(self, blob_store=None):
        self._records = {}
        self._lock = threading.Lock()
        self._blob_store = blob_store

    def insert(self, record: ShareRecord) -> ShareRecord:
        with self._lock:
            if record.id in self._records:
                raise ConflictError(f"Share id already exists: {record.id}")
            if any(r.access_code == record.access_code for r in self._records.values()):
                raise ConflictError(f"Access code already in use: {record.access_code}")
            self._records[record.id] = record
        return record

    def find_by_access_code(self, code: str) -> Optional[ShareRecord]:
        with self._lock:
            for record in self._records.values():
                if record.access_code == code:
                    return record
        return None

    def find_by_id(self, share_id: str) -> Optional[ShareRecord]:
        with self._lock:
            return self._records.get(share_id)

    def list_by_owner(self, owner_id: str) -> list:
        with self._lock:
            owned = [r for r in self._records.values() if r.owner_id == owner_id]
        return sorted(owned, key=lambda r: r.created_at, reverse=True)

    def update(self, share_id: str, owner_id: str, fields: dict) -> ShareRecord:
        _check_fields(fields)
        with self._lock:
            record = self._records.get(share_id)
            if record is None or record.owner_id != owner_id:
                raise NotFoundError(f"Share not found: {share_id}")
            changes = dict(fields)
            if changes.get("expires_at") is not None:
                changes["expires_at"] = to_utc(changes["expires_at"])
            if "content" in changes:
                if record.kind is not ShareKind.TEXT:
                    raise ValidationError("Only text shares have editable content")
                changes["payload"] = TextPayload(content=changes.pop("content"))
            updated = record.model_copy(update=changes)
            self._records[share_id] = updated
        return updated

    def delete(self, share_id: str, owner_id: str) -> None:
        with self._lock:
            record = self._records.get(share_id)
            if record is None or record.owner_id != owner_id:
                raise NotFoundError(f"Share not found: {share_id}")
            del self._records[share_id]
        _release_blob(self._blob_store, record)

    def increment_access_count(self, share_id: str) -> None:
        with self._lock:
            record = self._records.get(share_id)
            if record is None:
                logger.warning(f"Access count not recorded, share {share_id} is gone")
                return
            self._records[share_id] = record.model_copy(
                update={"access_count": record.access_count + 1}
            )


# ─── SQL ─────────────────────────────────────────────────────────────────────

def _to_record(row: models.Share) -> ShareRecord:
    if row.kind == ShareKind.FILE.value:
        payload = FilePayload(
            file_name=row.file_name or row.display_name,
            storage_key=row.storage_key,
            url=row.content,
            mime_type=row.mime_type or "application/octet-stream",
            size_bytes=row.size_bytes or 0,
        )
    else:
        payload = TextPayload(content=row.content)
    return ShareRecord(
        id=row.id,
        owner_id=row.owner_id,
        display_name=row.display_name,
        payload=payload,
        access_code=row.access_code,
        has_password=bool(row.has_password),
        password_digest=row.password_digest,
        expires_at=to_utc(row.expires_at),
        created_at=to_utc(row.created_at),
        access_count=row.access_count or 0,
    )


def _to_row(record: ShareRecord) -> models.Share:
    payload = record.payload
    row = models.Share(
        id=record.id,
        owner_id=record.owner_id,
        kind=payload.kind,
        display_name=record.display_name,
        access_code=record.access_code,
        has_password=record.has_password,
        password_digest=record.password_digest,
        # SQLite drops the offset on write
        expires_at=to_utc(record.expires_at),
        created_at=to_utc(record.created_at),
        access_count=record.access_count,
    )
    if isinstance(payload, FilePayload):
        row.content = payload.url
        row.file_name = payload.file_name
        row.storage_key = payload.storage_key
        row.mime_type = payload.mime_type
        row.size_bytes = payload.size_bytes
    else:
        row.content = payload.content
    return row


class SqlShareRepository(ShareRepository):
    """Backed by the ``shares`` table; ``session_factory`` is a sessionmaker."""

    def __init__(self, session_factory, blob_store=None):
        self._session_factory = session_factory
        self._blob_store = blob_store

    @contextmanager
    def _session(self):
        db = self._session_factory()
        try:
            yield db
        except IntegrityError as e:
            db.rollback()
            raise ConflictError(f"Share violates a uniqueness constraint: {e.orig}") from e
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Share store unavailable: {e}") from e
        finally:
            db.close()

    def _owned(self, db, share_id: str, owner_id: str) -> models.Share:
        row = db.execute(
            select(models.Share).where(
                models.Share.id == share_id,
                models.Share.owner_id == owner_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Share not found: {share_id}")
        return row

    def insert(self, record: ShareRecord) -> ShareRecord:
        with self._session() as db:
            db.add(_to_row(record))
            db.commit()
        return record

    def find_by_access_code(self, code: str) -> Optional[ShareRecord]:
        with self._session() as db:
            row = db.execute(
                select(models.Share).where(models.Share.access_code == code)
            ).scalar_one_or_none()
            return _to_record(row) if row is not None else None

    def find_by_id(self, share_id: str) -> Optional[ShareRecord]:
        with self._session() as db:
            row = db.get(models.Share, share_id)
            return _to_record(row) if row is not None else None

    def list_by_owner(self, owner_id: str) -> list:
        with self._session() as db:
            rows = db.execute(
                select(models.Share)
                .where(models.Share.owner_id == owner_id)
                .order_by(models.Share.created_at.desc())
            ).scalars().all()
            return [_to_record(row) for row in rows]

    def update(self, share_id: str, owner_id: str, fields: dict) -> ShareRecord:
        _check_fields(fields)
        with self._session() as db:
            row = self._owned(db, share_id, owner_id)
            if "content" in fields and row.kind != ShareKind.TEXT.value:
                raise ValidationError("Only text shares have editable content")
            for name, value in fields.items():
                if name == "expires_at":
                    value = to_utc(value)
                setattr(row, name, value)
            db.commit()
            db.refresh(row)
            return _to_record(row)

    def delete(self, share_id: str, owner_id: str) -> None:
        with self._session() as db:
            row = self._owned(db, share_id, owner_id)
            record = _to_record(row)
            db.delete(row)
            db.commit()
        _release_blob(self._blob_store, record)

    def increment_access_count(self, share_id: str) -> None:
        try:
            with self._session() as db:
                db.execute(
                    sql_update(models.Share)
                    .where(models.Share.id == share_id)
                    .values(access_count=models.Share.access_count + 1)
                )
                db.commit()
        except Exception as e:
            logger.error(f"Failed to increment access count for share {share_id}: {e}")
