"""Tests for share password digests and the legacy plaintext shim."""

import hashlib

import hashing


def test_digest_is_sha256_hex():
    assert hashing.digest("secret") == hashlib.sha256(b"secret").hexdigest()
    assert len(hashing.digest("")) == 64


def test_digest_is_deterministic():
    assert hashing.digest("pässwörd") == hashing.digest("pässwörd")
    assert hashing.digest("a") != hashing.digest("b")


def test_verify_matches_only_the_same_plaintext():
    stored = hashing.digest("secret")
    assert hashing.verify("secret", stored)
    assert not hashing.verify("wrong", stored)
    assert not hashing.verify("", stored)


def test_verify_rejects_missing_digest():
    assert not hashing.verify("secret", None)
    assert not hashing.verify("secret", "")


def test_plaintext_branch_is_off_by_default():
    assert not hashing.verify("secret", "secret")


def test_plaintext_branch_when_enabled():
    assert hashing.verify("secret", "secret", allow_plaintext=True)
    assert not hashing.verify("other", "secret", allow_plaintext=True)
    # Digest comparison still works with the flag on
    assert hashing.verify("secret", hashing.digest("secret"), allow_plaintext=True)


def test_is_digest():
    assert hashing.is_digest(hashing.digest("x"))
    assert not hashing.is_digest("secret")
    assert not hashing.is_digest(hashing.digest("x").upper())
    assert not hashing.is_digest(None)
