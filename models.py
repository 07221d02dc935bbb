import uuid

from sqlalchemy import Column, Integer, String, DateTime, BigInteger, Text, Boolean
from sqlalchemy.sql import func
from database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


# ─────────────────────────────────────────────────────────────
# User Model
# ─────────────────────────────────────────────────────────────
class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# ─────────────────────────────────────────────────────────────
# Share Model (file or text, addressed by a 6-digit access code)
# ─────────────────────────────────────────────────────────────
class Share(Base):
    __tablename__ = "shares"

    id = Column(String, primary_key=True, default=_new_id)
    owner_id = Column(String, nullable=False, index=True)
    kind = Column(String, nullable=False)  # file | text
    display_name = Column(String, nullable=False)
    content = Column(Text, nullable=False)  # text body, or public URL of the blob
    file_name = Column(String, nullable=True)
    storage_key = Column(String, nullable=True)
    mime_type = Column(String, nullable=True)
    size_bytes = Column(BigInteger, nullable=True)
    access_code = Column(String(6), unique=True, index=True, nullable=False)
    has_password = Column(Boolean, default=False, nullable=False)
    password_digest = Column(String, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)  # NULL = never
    created_at = Column(DateTime(timezone=True), nullable=False)
    access_count = Column(Integer, default=0, nullable=False)
