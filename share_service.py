"""
share_service.py — Share lifecycle: creation, expiry, password gating, edits.

A share is Created → Active on insert, becomes Expired implicitly once
``now > expires_at`` (computed on read, never stored) and Deleted on an owner
delete. Expired and unknown codes look identical to callers.

Access-code allocation is check-then-insert. The lookup avoids most
collisions; the unique constraint on ``access_code`` catches concurrent
creators, and creation retries a bounded number of times on ConflictError.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import hashing
from access_codes import generate_access_code, is_access_code
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from schemas import FilePayload, NEVER_EXPIRES, ShareKind, ShareRecord, ShareUpdate, TextPayload
from share_repository import ShareRepository, to_utc

logger = logging.getLogger(__name__)

MAX_CREATE_ATTEMPTS = 5
CODE_LOOKUP_LIMIT = 100

# What a rich-text editor submits when the user typed nothing
_EMPTY_EDITOR_VALUES = ("", "<p><br></p>", "<p></p>")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_blank_text(content) -> bool:
    return content is None or content.strip() in _EMPTY_EDITOR_VALUES


class ShareService:

    def __init__(
        self,
        repository: ShareRepository,
        *,
        clock: Callable[[], datetime] = utcnow,
        code_generator: Callable[[], str] = generate_access_code,
        allow_plaintext_passwords: bool = hashing.ALLOW_LEGACY_PLAINTEXT_PASSWORDS,
    ):
        self.repository = repository
        self._clock = clock
        self._generate_code = code_generator
        self._allow_plaintext = allow_plaintext_passwords

    # ─── Expiry ──────────────────────────────────────────────────────────────

    def now(self) -> datetime:
        return self._clock()

    def expiry_from_days(self, expiry_days) -> Optional[datetime]:
        if isinstance(expiry_days, bool) or not isinstance(expiry_days, int):
            raise ValidationError("expiry_days must be an integer")
        if expiry_days == NEVER_EXPIRES:
            return None
        if expiry_days < 1:
            raise ValidationError("expiry_days must be -1 (never) or a positive number of days")
        return self._clock() + timedelta(days=expiry_days)

    def is_expired(self, record: ShareRecord) -> bool:
        return record.expires_at is not None and self._clock() > record.expires_at

    # ─── Creation ────────────────────────────────────────────────────────────

    def _allocate_code(self) -> str:
        for _ in range(CODE_LOOKUP_LIMIT):
            code = self._generate_code()
            if self.repository.find_by_access_code(code) is None:
                return code
        raise ConflictError("Could not find a free access code")

    def create_share(
        self,
        kind,
        payload,
        owner_id: str,
        expiry_days: int,
        password: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> ShareRecord:
        kind = ShareKind(kind)
        if not owner_id:
            raise ValidationError("User must be logged in")

        if kind is ShareKind.TEXT:
            if not isinstance(payload, TextPayload) or _is_blank_text(payload.content):
                raise ValidationError("Please enter some text to share")
            name = display_name
        else:
            if not isinstance(payload, FilePayload) or not payload.storage_key:
                raise ValidationError("Please select a file to share")
            name = display_name or payload.file_name

        if not name or not name.strip():
            raise ValidationError("Please enter a name for this share")
        if password is not None and password == "":
            raise ValidationError("Please enter a password or disable password protection")

        expires_at = self.expiry_from_days(expiry_days)
        password_digest = hashing.digest(password) if password is not None else None

        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            record = ShareRecord(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                display_name=name.strip(),
                payload=payload,
                access_code=self._allocate_code(),
                has_password=password_digest is not None,
                password_digest=password_digest,
                expires_at=expires_at,
                created_at=self._clock(),
                access_count=0,
            )
            try:
                created = self.repository.insert(record)
            except ConflictError:
                logger.warning(
                    f"Access code {record.access_code} taken on insert "
                    f"(attempt {attempt}/{MAX_CREATE_ATTEMPTS})"
                )
                continue
            logger.info(f"Share created: id={created.id} kind={kind.value} owner={owner_id}")
            return created

        raise ConflictError("Could not allocate a unique access code, please try again")

    # ─── Retrieval ───────────────────────────────────────────────────────────

    def get_by_access_code(self, code: str) -> Optional[ShareRecord]:
        """Active share for ``code``, or None if unknown, malformed or expired."""
        if not is_access_code(code):
            return None
        record = self.repository.find_by_access_code(code)
        if record is None or self.is_expired(record):
            return None
        return record

    def list_shares(self, owner_id: str) -> list:
        return self.repository.list_by_owner(owner_id)

    def verify_password(self, record: ShareRecord, candidate: str) -> bool:
        if not record.has_password:
            return True
        stored = record.password_digest
        if not hashing.verify(candidate, stored, allow_plaintext=self._allow_plaintext):
            return False
        if not hashing.is_digest(stored):
            self._upgrade_legacy_password(record, candidate)
        return True

    def _upgrade_legacy_password(self, record: ShareRecord, plaintext: str):
        try:
            self.repository.update(
                record.id, record.owner_id, {"password_digest": hashing.digest(plaintext)}
            )
            logger.info(f"Re-hashed legacy plaintext password for share {record.id}")
        except Exception as e:
            logger.warning(f"Legacy password re-hash failed for share {record.id}: {e}")

    def record_access(self, share_id: str) -> None:
        """Count one retrieval. Never raises."""
        try:
            self.repository.increment_access_count(share_id)
        except Exception as e:
            logger.error(f"Access count update failed for share {share_id}: {e}")

    # ─── Owner edits ─────────────────────────────────────────────────────────

    def get_owned_share(self, share_id: str, owner_id: str) -> ShareRecord:
        record = self.repository.find_by_id(share_id)
        if record is None:
            raise NotFoundError(f"Share not found: {share_id}")
        if record.owner_id != owner_id:
            raise ForbiddenError(f"Share {share_id} belongs to another user")
        return record

    def update_share(self, share_id: str, owner_id: str, update) -> ShareRecord:
        if not isinstance(update, ShareUpdate):
            update = ShareUpdate.model_validate(update)
        record = self.get_owned_share(share_id, owner_id)
        supplied = update.supplied()
        fields = {}

        if "display_name" in supplied:
            name = supplied["display_name"]
            if not name or not name.strip():
                raise ValidationError("Please enter a name for this share")
            fields["display_name"] = name.strip()

        if "content" in supplied:
            if record.kind is not ShareKind.TEXT:
                raise ValidationError("File content cannot be edited; create a new share instead")
            if _is_blank_text(supplied["content"]):
                raise ValidationError("Please enter some text to share")
            fields["content"] = supplied["content"]

        fields.update(self._password_changes(record, supplied))

        if "expires_at" in supplied:
            expires_at = supplied["expires_at"]
            if expires_at == "never" or expires_at is None:
                fields["expires_at"] = None
            else:
                fields["expires_at"] = to_utc(expires_at)
        elif supplied.get("expiry_days") is not None:
            fields["expires_at"] = self.expiry_from_days(supplied["expiry_days"])

        if not fields:
            return record
        updated = self.repository.update(share_id, owner_id, fields)
        logger.info(f"Share updated: id={share_id} fields={sorted(fields)}")
        return updated

    def _password_changes(self, record: ShareRecord, supplied: dict) -> dict:
        password = supplied.get("password")
        wants_password = supplied.get("has_password")

        if wants_password is False:
            return {"has_password": False, "password_digest": None}
        if password:
            return {"has_password": True, "password_digest": hashing.digest(password)}
        if wants_password and not record.password_digest:
            raise ValidationError("Please enter a password or disable password protection")
        if "password" in supplied and password is not None:
            # Empty string with protection still on
            raise ValidationError("Please enter a password or disable password protection")
        return {}

    def delete_share(self, share_id: str, owner_id: str) -> None:
        self.get_owned_share(share_id, owner_id)
        self.repository.delete(share_id, owner_id)
        logger.info(f"Share deleted: id={share_id} owner={owner_id}")
