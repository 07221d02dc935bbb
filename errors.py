"""
errors.py — Failure taxonomy for the share lifecycle.

The HTTP layer maps these in main.py; nothing below the routes knows about
status codes.
"""


class ShareError(Exception):
    """Base class for all share lifecycle errors."""


class ValidationError(ShareError):
    """Caller input is malformed. Fix the input and retry."""


class NotFoundError(ShareError):
    """No share matches the given id (and owner)."""


class ForbiddenError(ShareError):
    """The share exists but belongs to someone else."""


class ConflictError(ShareError):
    """Access-code collision that survived every retry. Safe to retry the whole call."""


class StoreError(ShareError):
    """Transient failure of the backing store. Retry with backoff."""
