"""
Tests for elib Backend API endpoints.

Tests cover:
- Health check
- API key management (admin)
- Book creation, update and deletion with asset uploads
- Book listing and lookup
- Error body shape
"""

from unittest.mock import patch

from fastapi.testclient import TestClient

from conftest import PDF_BYTES, PNG_BYTES, stored_keys
from elib_backend.main import app


def staged_leftovers(upload_dir):
    return [path for path in upload_dir.rglob("*") if path.is_file()]


def create_book(client, headers, book_files, **fields):
    data = {"title": "Dune", "genre": "Science fiction", **fields}
    response = client.post("/api/books", files=book_files, data=data, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["id"]


class TestHealthCheck:
    """Tests for the /healthz endpoint."""

    def test_health_check_returns_ok(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestAPIKeyManagement:
    """Tests for the /admin/keys endpoints."""

    def test_create_api_key_requires_master_key(self, client):
        response = client.post("/admin/keys", json={"owner": "test"})
        assert response.status_code == 401
        assert response.json()["status"] == 401

    def test_create_api_key_with_invalid_master_key(self, client):
        response = client.post(
            "/admin/keys",
            json={"owner": "test"},
            headers={"X-API-Key": "invalid-key"},
        )
        assert response.status_code == 401

    def test_create_list_and_revoke(self, client, master_key):
        create_response = client.post(
            "/admin/keys",
            json={"owner": "test-owner"},
            headers={"X-API-Key": master_key},
        )
        assert create_response.status_code == 201
        data = create_response.json()
        assert data["api_key"].startswith("elib_")
        assert data["record"]["owner"] == "test-owner"

        listed = client.get("/admin/keys", headers={"X-API-Key": master_key}).json()
        assert [record["id"] for record in listed] == [data["record"]["id"]]

        revoke_response = client.delete(
            f"/admin/keys/{data['record']['id']}",
            headers={"X-API-Key": master_key},
        )
        assert revoke_response.status_code == 200
        assert revoke_response.json() == {"status": "revoked"}

    def test_revoke_unknown_key(self, client, master_key):
        response = client.delete("/admin/keys/nope", headers={"X-API-Key": master_key})
        assert response.status_code == 404


class TestCreateBook:
    def test_requires_api_key(self, client, book_files, upload_dir):
        response = client.post(
            "/api/books", files=book_files, data={"title": "Dune", "genre": "Science fiction"}
        )
        assert response.status_code == 401
        assert staged_leftovers(upload_dir) == []

    def test_creates_book(self, client, alice_headers, book_files, s3_client, upload_dir):
        book_id = create_book(client, alice_headers, book_files, description="Spice")

        book = client.get(f"/api/books/{book_id}").json()
        assert book["title"] == "Dune"
        assert book["description"] == "Spice"
        assert book["owner_id"] == "alice"
        assert book["cover_image"]["kind"] == "image"
        assert book["cover_image"]["url"].endswith(".png")
        assert book["document"]["kind"] == "document"
        assert book["document"]["url"].endswith(".pdf")
        assert len(stored_keys(s3_client)) == 2
        assert staged_leftovers(upload_dir) == []

    def test_missing_file_is_400_and_creates_nothing(self, client, alice_headers, s3_client, upload_dir):
        response = client.post(
            "/api/books",
            files={"coverImage": ("cover.png", PNG_BYTES, "image/png")},
            data={"title": "Dune", "genre": "Science fiction"},
            headers=alice_headers,
        )

        assert response.status_code == 400
        assert response.json() == {"status": 400, "message": "file is required"}
        assert client.get("/api/books").json() == []
        assert stored_keys(s3_client) == []
        assert staged_leftovers(upload_dir) == []

    def test_cover_must_be_image(self, client, alice_headers, upload_dir):
        response = client.post(
            "/api/books",
            files={
                "coverImage": ("cover.pdf", PDF_BYTES, "application/pdf"),
                "file": ("book.pdf", PDF_BYTES, "application/pdf"),
            },
            data={"title": "Dune", "genre": "Science fiction"},
            headers=alice_headers,
        )

        assert response.status_code == 400
        assert response.json()["message"] == "coverImage must be an image"
        assert staged_leftovers(upload_dir) == []

    def test_two_covers_rejected(self, client, alice_headers, upload_dir):
        response = client.post(
            "/api/books",
            files=[
                ("coverImage", ("a.png", PNG_BYTES, "image/png")),
                ("coverImage", ("b.png", PNG_BYTES, "image/png")),
                ("file", ("book.pdf", PDF_BYTES, "application/pdf")),
            ],
            data={"title": "Dune", "genre": "Science fiction"},
            headers=alice_headers,
        )

        assert response.status_code == 400
        assert staged_leftovers(upload_dir) == []

    def test_missing_title_is_400(self, client, alice_headers, book_files):
        response = client.post(
            "/api/books", files=book_files, data={"genre": "Science fiction"}, headers=alice_headers
        )

        assert response.status_code == 400
        assert response.json()["message"].startswith("title")

    def test_store_failure_is_generic_500(self, client, alice_headers, book_files, coordinator, upload_dir):
        coordinator.store.bucket = "no-such-bucket"

        response = client.post(
            "/api/books",
            files=book_files,
            data={"title": "Dune", "genre": "Science fiction"},
            headers=alice_headers,
        )

        assert response.status_code == 500
        assert response.json() == {"status": 500, "message": "Error while talking to the asset store."}
        assert staged_leftovers(upload_dir) == []


class TestUpdateBook:
    def test_other_owner_gets_403(self, client, alice_headers, bob_headers, book_files, s3_client):
        book_id = create_book(client, alice_headers, book_files)
        before = client.get(f"/api/books/{book_id}").json()
        keys_before = stored_keys(s3_client)

        response = client.patch(
            f"/api/books/{book_id}",
            files={"coverImage": ("new.png", PNG_BYTES, "image/png")},
            data={"title": "Stolen"},
            headers=bob_headers,
        )

        assert response.status_code == 403
        assert response.json() == {"status": 403, "message": "You can not update other book."}
        assert client.get(f"/api/books/{book_id}").json() == before
        assert stored_keys(s3_client) == keys_before

    def test_update_cover_only(self, client, alice_headers, book_files, upload_dir):
        book_id = create_book(client, alice_headers, book_files)
        before = client.get(f"/api/books/{book_id}").json()

        response = client.patch(
            f"/api/books/{book_id}",
            files={"coverImage": ("new.gif", PNG_BYTES, "image/gif")},
            data={"title": "Dune Messiah"},
            headers=alice_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Dune Messiah"
        assert body["genre"] == before["genre"]
        assert body["document"] == before["document"]
        assert body["cover_image"]["url"] != before["cover_image"]["url"]
        assert body["cover_image"]["url"].endswith(".gif")
        assert staged_leftovers(upload_dir) == []

    def test_update_missing_book(self, client, alice_headers):
        response = client.patch("/api/books/missing", data={"title": "x"}, headers=alice_headers)

        assert response.status_code == 404
        assert response.json() == {"status": 404, "message": "Book not found."}


class TestDeleteBook:
    def test_delete_removes_record_and_assets(self, client, alice_headers, book_files, s3_client):
        book_id = create_book(client, alice_headers, book_files)

        response = client.delete(f"/api/books/{book_id}", headers=alice_headers)

        assert response.status_code == 200
        assert response.json() == {"id": book_id, "message": "deleted"}
        assert client.get(f"/api/books/{book_id}").status_code == 404
        assert stored_keys(s3_client) == []

    def test_other_owner_gets_403(self, client, alice_headers, bob_headers, book_files):
        book_id = create_book(client, alice_headers, book_files)

        response = client.delete(f"/api/books/{book_id}", headers=bob_headers)

        assert response.status_code == 403
        assert client.get(f"/api/books/{book_id}").status_code == 200

    def test_revoked_key_is_rejected(self, client, key_manager, book_files):
        raw_key, record = key_manager.create_key("carol")
        headers = {"X-API-Key": raw_key}
        book_id = create_book(client, headers, book_files)
        key_manager.revoke_key(record["id"])

        response = client.delete(f"/api/books/{book_id}", headers=headers)

        assert response.status_code == 401


class TestReadBooks:
    def test_list_books(self, client, alice_headers, book_files):
        book_id = create_book(client, alice_headers, book_files)

        response = client.get("/api/books")

        assert response.status_code == 200
        assert [book["id"] for book in response.json()] == [book_id]

    def test_get_nonexistent_book(self, client):
        response = client.get("/api/books/nonexistent-book-id")
        assert response.status_code == 404
        assert response.json() == {"status": 404, "message": "Book not found."}


class TestServerErrors:
    """Failures outside the catalog taxonomy still answer with the error body."""

    def test_unexpected_error_is_json_500(self, client, alice_headers, book_files, s3_client):
        failing_client = TestClient(app, raise_server_exceptions=False)

        with patch(
            "elib_backend.staging.ensure_directory",
            side_effect=OSError("No space left on device"),
        ):
            response = failing_client.post(
                "/api/books",
                files=book_files,
                data={"title": "Dune", "genre": "Science fiction"},
                headers=alice_headers,
            )

        assert response.status_code == 500
        assert response.json() == {"status": 500, "message": "Internal server error."}
        assert stored_keys(s3_client) == []

    def test_key_store_failure_is_persistence_error(self, client, key_manager, book_files, tmp_path):
        key_manager.db_path = tmp_path

        response = client.post(
            "/api/books",
            files=book_files,
            data={"title": "Dune", "genre": "Science fiction"},
            headers={"X-API-Key": "elib_whatever"},
        )

        assert response.status_code == 500
        assert response.json() == {"status": 500, "message": "Error while accessing book records."}
