import math
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, TypeAdapter

# Expiry choices offered by the share forms; -1 means never expire
EXPIRY_CHOICES = (1, 3, 7, 14, 30)
NEVER_EXPIRES = -1
DEFAULT_EXPIRY_DAYS = 7


# ─── Accounts ────────────────────────────────────────────────────────────────

class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str


class UserOut(BaseModel):
    id: str
    name: str
    email: str


# ─── Share records ───────────────────────────────────────────────────────────

class ShareKind(str, Enum):
    FILE = "file"
    TEXT = "text"


class TextPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    content: str


class FilePayload(BaseModel):
    """Reference to a blob that is already in the object store."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["file"] = "file"
    file_name: str
    storage_key: str
    url: str
    mime_type: str = "application/octet-stream"
    size_bytes: int = 0


Payload = Annotated[Union[TextPayload, FilePayload], Field(discriminator="kind")]


class ShareRecord(BaseModel):
    """A single share. expires_at=None means the share never expires."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    display_name: str
    payload: Payload
    access_code: str
    has_password: bool = False
    password_digest: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime
    access_count: int = 0

    @property
    def kind(self) -> ShareKind:
        return ShareKind(self.payload.kind)


class ShareUpdate(BaseModel):
    """Partial owner edit. Only fields the caller actually sent are applied.

    Accepts the camelCase / legacy names the web client sends
    (``title``, ``expiresAt``, ``expiry``, ``hasPassword``).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    display_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("display_name", "displayName", "title", "name")
    )
    content: Optional[str] = None
    has_password: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("has_password", "hasPassword")
    )
    password: Optional[str] = None
    expires_at: Optional[Union[Literal["never"], datetime]] = Field(
        default=None, validation_alias=AliasChoices("expires_at", "expiresAt", "expiry")
    )
    expiry_days: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("expiry_days", "expiresInDays")
    )

    def supplied(self) -> dict:
        return self.model_dump(include=self.model_fields_set)


# ─── Requests ────────────────────────────────────────────────────────────────

class TextShareCreate(BaseModel):
    name: str
    content: str
    expiry_days: int = DEFAULT_EXPIRY_DAYS
    password: Optional[str] = None


class UnlockRequest(BaseModel):
    password: str = ""


# ─── Responses ───────────────────────────────────────────────────────────────

class ShareOut(BaseModel):
    """Owner's view of a share. Never carries the password digest."""

    id: str
    kind: ShareKind
    display_name: str
    access_code: str
    has_password: bool
    expires_at: Optional[datetime]
    created_at: datetime
    access_count: int
    expired: bool
    content: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    url: Optional[str] = None

    @classmethod
    def from_record(cls, record: ShareRecord, expired: bool) -> "ShareOut":
        payload = record.payload
        extra = {}
        if isinstance(payload, TextPayload):
            extra["content"] = payload.content
        else:
            extra.update(
                file_name=payload.file_name,
                mime_type=payload.mime_type,
                size_bytes=payload.size_bytes,
                url=payload.url,
            )
        return cls(
            id=record.id,
            kind=record.kind,
            display_name=record.display_name,
            access_code=record.access_code,
            has_password=record.has_password,
            expires_at=record.expires_at,
            created_at=record.created_at,
            access_count=record.access_count,
            expired=expired,
            **extra,
        )


class ShareSummary(BaseModel):
    """What an anonymous visitor sees before unlocking."""

    kind: ShareKind
    display_name: str
    has_password: bool
    expires_at: Optional[datetime]
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None

    @classmethod
    def from_record(cls, record: ShareRecord) -> "ShareSummary":
        payload = record.payload
        summary = cls(
            kind=record.kind,
            display_name=record.display_name,
            has_password=record.has_password,
            expires_at=record.expires_at,
        )
        if isinstance(payload, FilePayload):
            summary.file_name = payload.file_name
            summary.mime_type = payload.mime_type
            summary.size_bytes = payload.size_bytes
        return summary


class UnlockedShare(ShareSummary):
    content: Optional[str] = None
    download_url: Optional[str] = None


# ─── Edit-form prefill ───────────────────────────────────────────────────────

class EditDraft(BaseModel):
    display_name: str = ""
    content: str = ""
    has_password: bool = False
    expiry_days: int = DEFAULT_EXPIRY_DAYS


_datetime_adapter = TypeAdapter(datetime)


def _first(data: Mapping, *keys):
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _bucket_expiry(expires_at: datetime, now: datetime) -> int:
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    remaining_days = math.ceil((expires_at - now).total_seconds() / 86400)
    for choice in EXPIRY_CHOICES:
        if remaining_days <= choice:
            return choice
    return EXPIRY_CHOICES[-1]


def normalize_prior(data: Mapping, now: Optional[datetime] = None) -> EditDraft:
    """Map a loosely-shaped prior share onto edit-form defaults.

    This is the only place that knows about the different spellings a prior
    record can arrive in (``title`` vs ``name``, ``expiresAt`` vs ``expiry``).
    Remaining lifetime is rounded up to the next offered expiry choice.
    """
    now = now or datetime.now(timezone.utc)

    expiry = _first(data, "expires_at", "expiresAt", "expiry")
    if expiry is None:
        expiry_days = DEFAULT_EXPIRY_DAYS
    elif expiry == "never":
        expiry_days = NEVER_EXPIRES
    else:
        expiry_days = _bucket_expiry(_datetime_adapter.validate_python(expiry), now)

    return EditDraft(
        display_name=_first(data, "display_name", "displayName", "title", "name") or "",
        content=data.get("content") or "",
        has_password=bool(_first(data, "has_password", "hasPassword")),
        expiry_days=expiry_days,
    )
