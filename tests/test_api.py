"""End-to-end tests through the HTTP API."""

import pytest

import file_service


def register(client, email="alice@example.com", name="Alice", password="wonderland"):
    resp = client.post("/register", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def alice(client):
    return register(client)


@pytest.fixture
def bob(client):
    return register(client, email="bob@example.com", name="Bob", password="builder1")


def share_text(client, headers, **body):
    body.setdefault("name", "notes")
    body.setdefault("content", "<p>hello</p>")
    resp = client.post("/shares/text", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def share_file(client, headers, data=b"%PDF-1.4 report", filename="report.pdf", **form):
    resp = client.post(
        "/shares/file",
        files={"file": (filename, data, "application/pdf")},
        data={k: str(v).lower() if isinstance(v, bool) else str(v) for k, v in form.items()},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class TestAccounts:
    def test_register_login_me(self, client):
        register(client)
        resp = client.post("/login", json={"email": "ALICE@example.com", "password": "wonderland"})
        assert resp.status_code == 200
        headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
        me = client.get("/me", headers=headers).json()
        assert me["name"] == "Alice"
        assert me["email"] == "alice@example.com"

    def test_duplicate_email(self, client):
        register(client)
        resp = client.post(
            "/register", json={"name": "A2", "email": "alice@example.com", "password": "another1"}
        )
        assert resp.status_code == 400

    def test_short_password(self, client):
        resp = client.post("/register", json={"name": "A", "email": "a@example.com", "password": "123"})
        assert resp.status_code == 400

    def test_bad_credentials(self, client):
        register(client)
        resp = client.post("/login", json={"email": "alice@example.com", "password": "nope-nope"})
        assert resp.status_code == 401

    def test_me_requires_token(self, client):
        assert client.get("/me").status_code == 401
        assert client.get("/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


# ---------------------------------------------------------------------------
# Text shares
# ---------------------------------------------------------------------------


class TestTextShares:
    def test_create_requires_login(self, client):
        resp = client.post("/shares/text", json={"name": "n", "content": "c"})
        assert resp.status_code == 401

    def test_create_and_access(self, client, alice):
        share = share_text(client, alice)
        assert share["kind"] == "text"
        assert len(share["access_code"]) == 6
        assert share["has_password"] is False
        assert share["expired"] is False
        assert "password_digest" not in share

        summary = client.get(f"/access/{share['access_code']}")
        assert summary.status_code == 200
        assert summary.json()["display_name"] == "notes"
        assert "content" not in summary.json()

        unlocked = client.post(f"/access/{share['access_code']}/unlock", json={})
        assert unlocked.status_code == 200
        assert unlocked.json()["content"] == "<p>hello</p>"

        listed = client.get("/shares", headers=alice).json()
        assert [s["access_count"] for s in listed] == [1]

    def test_password_gate(self, client, alice):
        share = share_text(client, alice, password="secret")
        code = share["access_code"]
        assert client.get(f"/access/{code}").json()["has_password"] is True
        assert client.post(f"/access/{code}/unlock", json={"password": "wrong"}).status_code == 403
        assert client.post(f"/access/{code}/unlock").status_code == 403
        ok = client.post(f"/access/{code}/unlock", json={"password": "secret"})
        assert ok.status_code == 200
        assert ok.json()["content"] == "<p>hello</p>"

    def test_blank_text_is_400(self, client, alice):
        resp = client.post("/shares/text", json={"name": "n", "content": "<p><br></p>"}, headers=alice)
        assert resp.status_code == 400
        assert "text" in resp.json()["detail"]

    def test_unknown_and_malformed_codes(self, client):
        assert client.get("/access/123456").status_code == 404
        assert client.get("/access/12ab").status_code == 404

    def test_expired_is_indistinguishable(self, client, alice, clock):
        share = share_text(client, alice, expiry_days=1)
        clock.advance(days=2)
        resp = client.get(f"/access/{share['access_code']}")
        assert resp.status_code == 404
        assert resp.json()["detail"] == client.get("/access/123456").json()["detail"]
        assert client.get("/shares", headers=alice).json()[0]["expired"] is True


# ---------------------------------------------------------------------------
# File shares
# ---------------------------------------------------------------------------


class TestFileShares:
    def test_upload_and_download(self, client, alice, storage):
        share = share_file(client, alice, expiry_days=3, use_password=True, password="secret", title="Q1")
        assert share["display_name"] == "Q1"
        assert share["file_name"] == "report.pdf"
        assert share["size_bytes"] == len(b"%PDF-1.4 report")
        assert share["has_password"] is True
        code = share["access_code"]

        unlocked = client.post(f"/access/{code}/unlock", json={"password": "secret"}).json()
        assert unlocked["download_url"] == f"/access/{code}/download"

        assert client.get(f"/access/{code}/download", headers={"X-Share-Password": "wrong"}).status_code == 403
        resp = client.get(f"/access/{code}/download", headers={"X-Share-Password": "secret"})
        assert resp.status_code == 200
        assert resp.content == b"%PDF-1.4 report"
        assert resp.headers["content-type"].startswith("application/pdf")
        assert "report.pdf" in resp.headers["content-disposition"]

        listed = client.get("/shares", headers=alice).json()
        assert listed[0]["access_count"] == 1

    def test_password_checkbox_without_password(self, client, alice, storage):
        resp = client.post(
            "/shares/file",
            files={"file": ("a.txt", b"data", "text/plain")},
            data={"use_password": "true", "password": ""},
            headers=alice,
        )
        assert resp.status_code == 400
        assert not any((storage.local_dir).rglob("*.txt"))

    def test_oversized_file_rejected(self, client, alice, storage, monkeypatch):
        monkeypatch.setattr(file_service, "MAX_UPLOAD_BYTES", 8)
        resp = client.post(
            "/shares/file",
            files={"file": ("a.txt", b"123456789", "text/plain")},
            headers=alice,
        )
        assert resp.status_code == 400
        assert "too large" in resp.json()["detail"]
        assert not any((storage.local_dir).rglob("*.txt"))

    def test_upload_at_limit_accepted(self, client, alice, monkeypatch):
        monkeypatch.setattr(file_service, "MAX_UPLOAD_BYTES", 8)
        share = share_file(client, alice, data=b"12345678", filename="a.txt")
        assert share["size_bytes"] == 8

    def test_download_password_not_read_from_query(self, client, alice):
        share = share_file(client, alice, use_password=True, password="secret")
        code = share["access_code"]
        resp = client.get(f"/access/{code}/download", params={"password": "secret"})
        assert resp.status_code == 403

    def test_empty_file(self, client, alice):
        resp = client.post("/shares/file", files={"file": ("a.txt", b"", "text/plain")}, headers=alice)
        assert resp.status_code == 400

    def test_text_share_has_no_download(self, client, alice):
        share = share_text(client, alice)
        assert client.get(f"/access/{share['access_code']}/download").status_code == 404

    def test_owner_delete_removes_blob(self, client, alice, bob, storage):
        share = share_file(client, alice)
        assert len(list(storage.local_dir.rglob("*.pdf"))) == 1

        assert client.delete(f"/shares/{share['id']}", headers=bob).status_code == 404
        assert client.get(f"/access/{share['access_code']}").status_code == 200

        assert client.delete(f"/shares/{share['id']}", headers=alice).status_code == 204
        assert client.get(f"/access/{share['access_code']}").status_code == 404
        assert list(storage.local_dir.rglob("*.pdf")) == []


# ---------------------------------------------------------------------------
# Owner edits
# ---------------------------------------------------------------------------


class TestEdits:
    def test_patch_with_client_field_names(self, client, alice, clock):
        share = share_text(client, alice, expiry_days=1, password="secret")
        resp = client.patch(
            f"/shares/{share['id']}",
            json={"title": "renamed", "expiresAt": "never", "hasPassword": False, "content": "<p>new</p>"},
            headers=alice,
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["display_name"] == "renamed"
        assert body["expires_at"] is None
        assert body["has_password"] is False
        assert body["content"] == "<p>new</p>"

        clock.advance(days=400)
        unlocked = client.post(f"/access/{share['access_code']}/unlock").json()
        assert unlocked["content"] == "<p>new</p>"

    def test_patch_other_users_share(self, client, alice, bob):
        share = share_text(client, alice)
        resp = client.patch(f"/shares/{share['id']}", json={"title": "pwned"}, headers=bob)
        assert resp.status_code == 404
        assert client.get("/shares", headers=alice).json()[0]["display_name"] == "notes"

    def test_patch_file_content_is_400(self, client, alice):
        share = share_file(client, alice)
        resp = client.patch(f"/shares/{share['id']}", json={"content": "x"}, headers=alice)
        assert resp.status_code == 400

    def test_edit_draft(self, client, alice):
        share = share_text(client, alice, name="todo", expiry_days=14, password="pw")
        draft = client.get(f"/shares/{share['id']}/edit", headers=alice).json()
        assert draft == {
            "display_name": "todo",
            "content": "<p>hello</p>",
            "has_password": True,
            "expiry_days": 14,
        }

    def test_edit_draft_never(self, client, alice):
        share = share_text(client, alice, expiry_days=-1)
        draft = client.get(f"/shares/{share['id']}/edit", headers=alice).json()
        assert draft["expiry_days"] == -1

    def test_dashboard_lists_only_own_shares_newest_first(self, client, alice, bob, clock):
        first = share_text(client, alice, name="first")
        clock.advance(minutes=1)
        second = share_text(client, alice, name="second")
        share_text(client, bob, name="bobs")
        listed = client.get("/shares", headers=alice).json()
        assert [s["id"] for s in listed] == [second["id"], first["id"]]


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
