"""
migrate.py — Bring an existing CodeDrop database up to the current schema.

SQLAlchemy's create_all() only creates NEW tables — it never alters existing
ones. This script adds the columns older ``shares`` tables are missing using
ALTER TABLE ... ADD COLUMN IF NOT EXISTS (PostgreSQL syntax), then re-hashes
share passwords that were stored in plaintext by early releases.

Usage:
  python migrate.py

Safe to run multiple times. Once the re-hash step reports 0 rows in every
environment, ALLOW_LEGACY_PLAINTEXT_PASSWORDS can be turned off for good.
"""

import logging

from sqlalchemy import select, text
from sqlalchemy.orm import Session

import hashing
import models
from database import Base, SessionLocal, engine

logger = logging.getLogger(__name__)

# All migrations — each is idempotent (IF NOT EXISTS)
MIGRATIONS = [
    # ── shares: first-release column names (each fails harmlessly once renamed) ──
    "ALTER TABLE shares RENAME COLUMN user_id TO owner_id",
    "ALTER TABLE shares RENAME COLUMN type TO kind",
    "ALTER TABLE shares RENAME COLUMN name TO file_name",
    "ALTER TABLE shares RENAME COLUMN file_type TO mime_type",
    "ALTER TABLE shares RENAME COLUMN file_size TO size_bytes",
    "ALTER TABLE shares RENAME COLUMN file_path TO storage_key",
    "ALTER TABLE shares RENAME COLUMN password_hash TO password_digest",
    "ALTER TABLE shares RENAME COLUMN download_count TO access_count",
    "ALTER TABLE shares ADD COLUMN IF NOT EXISTS display_name VARCHAR",
    "UPDATE shares SET display_name = COALESCE(title, file_name) WHERE display_name IS NULL",

    # ── shares: columns added after the first release ──────────────────────
    "ALTER TABLE shares ADD COLUMN IF NOT EXISTS file_name VARCHAR",
    "ALTER TABLE shares ADD COLUMN IF NOT EXISTS storage_key VARCHAR",
    "ALTER TABLE shares ADD COLUMN IF NOT EXISTS mime_type VARCHAR",
    "ALTER TABLE shares ADD COLUMN IF NOT EXISTS size_bytes BIGINT",
    "ALTER TABLE shares ADD COLUMN IF NOT EXISTS has_password BOOLEAN DEFAULT FALSE",
    "ALTER TABLE shares ADD COLUMN IF NOT EXISTS password_digest VARCHAR",
    "ALTER TABLE shares ADD COLUMN IF NOT EXISTS expires_at TIMESTAMP WITH TIME ZONE",
    "ALTER TABLE shares ADD COLUMN IF NOT EXISTS access_count INTEGER DEFAULT 0",

    # ── uniqueness backstop for access-code allocation ─────────────────────
    "CREATE UNIQUE INDEX IF NOT EXISTS ix_shares_access_code ON shares (access_code)",
    "CREATE INDEX IF NOT EXISTS ix_shares_owner_id ON shares (owner_id)",
]


def rehash_legacy_passwords(session: Session) -> int:
    """Replace plaintext share passwords with their digest. Returns rows changed."""
    rows = session.execute(
        select(models.Share).where(
            models.Share.has_password.is_(True),
            models.Share.password_digest.is_not(None),
        )
    ).scalars().all()

    changed = 0
    for row in rows:
        if hashing.is_digest(row.password_digest):
            continue
        row.password_digest = hashing.digest(row.password_digest)
        changed += 1

    if changed:
        session.commit()
    return changed


def run_migrations():
    print("=" * 60)
    print("CodeDrop Database Migration")
    print("=" * 60)

    Base.metadata.create_all(bind=engine)

    with engine.connect() as conn:
        for i, sql in enumerate(MIGRATIONS, 1):
            clean = sql.strip().replace("\n", " ")[:80]
            try:
                conn.execute(text(sql))
                conn.commit()
                print(f"  [{i:02d}] {clean}...")
            except Exception as e:
                conn.rollback()
                # Non-fatal: column may already exist with different handling
                print(f"  [{i:02d}] Skipped (already exists or error): {e}")

    with SessionLocal() as session:
        changed = rehash_legacy_passwords(session)
    print(f"  Re-hashed {changed} legacy share password(s)")

    print()
    print("Migration complete! Now restart your server:")
    print("   uvicorn main:app --host 0.0.0.0 --port 8000 --reload")
    print("=" * 60)


if __name__ == "__main__":
    run_migrations()
