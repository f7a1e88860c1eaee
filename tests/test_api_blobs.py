"""Tests for imgstore blob routes.

Covers:
- POST /upload returns {id, size, name}; rejects wrong types (415) and
  oversized uploads (413)
- GET /static/{id} streams the exact bytes with x-timestamp and x-sent headers
- DELETE /removeupload/{id} answers 202 once, then 404
- GET /listuploads[/{name}] lists active blobs in upload order
- Error envelopes never leak physical paths
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from starlette.responses import PlainTextResponse
from starlette.types import Receive, Scope, Send

from imgstore.api.main import create_app
from imgstore.api.middleware.upload_limit import MULTIPART_OVERHEAD_BYTES, UploadLimitMiddleware
from imgstore.config import StoreConfig
from imgstore.storage.blob_store import BlobStore, build_blob_store


@pytest.fixture
def client(store: BlobStore, store_config: StoreConfig) -> TestClient:
    """Create a test client around the temp-directory blob store."""
    app = create_app(blob_store=store, config=store_config)
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def small_client(storage_dir: Path) -> TestClient:
    """Create a test client whose upload ceiling is 10 bytes."""
    config = StoreConfig(storage_dir=storage_dir, max_upload_bytes=10)
    app = create_app(blob_store=build_blob_store(config), config=config)
    return TestClient(app, raise_server_exceptions=False)


def upload(client: TestClient, name: str, data: bytes = b"abc") -> dict:
    """Upload data under name and return the JSON body."""
    response = client.post("/upload", files={"data": (name, data, "application/octet-stream")})
    assert response.status_code == 200, response.text
    return response.json()


BOUNDARY = "imgstore-test-boundary"
CHUNKED_HEADERS = {"Content-Type": f"multipart/form-data; boundary={BOUNDARY}"}


def chunked_multipart(
    filename: str, chunk_count: int, chunk_size: int = 64 * 1024
) -> Iterator[bytes]:
    """Yield a multipart body in pieces so it is sent without Content-Length."""
    yield (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="data"; filename="{filename}"\r\n'
        "Content-Type: application/octet-stream\r\n\r\n"
    ).encode()
    for _ in range(chunk_count):
        yield b"x" * chunk_size
    yield f"\r\n--{BOUNDARY}--\r\n".encode()


class TestUpload:
    """Tests for POST /upload."""

    def test_upload_returns_public_meta(self, client: TestClient) -> None:
        """A PNG upload answers 200 with id, size and original name only."""
        body = upload(client, "a.png")

        assert set(body) == {"id", "size", "name"}
        assert body["size"] == 3
        assert body["name"] == "a.png"

    def test_wrong_type_is_415(self, client: TestClient) -> None:
        """A .txt upload answers 415 INVALID_TYPE and stores nothing."""
        response = client.post("/upload", files={"data": ("a.txt", b"abc", "text/plain")})

        assert response.status_code == 415
        body = response.json()
        assert body["code"] == "INVALID_TYPE"
        assert body["details"]["allowed_extensions"] == [".jpg", ".png"]
        assert client.get("/listuploads").json() == []

    def test_oversized_upload_is_413(self, small_client: TestClient) -> None:
        """An upload above the ceiling answers 413 TOO_LARGE."""
        response = small_client.post(
            "/upload", files={"data": ("a.png", b"x" * 11, "image/png")}
        )

        assert response.status_code == 413
        assert response.json()["code"] == "TOO_LARGE"
        assert small_client.get("/listuploads").json() == []

    def test_upload_at_ceiling_is_accepted(self, small_client: TestClient) -> None:
        """An upload of exactly the ceiling is stored."""
        body = upload(small_client, "a.png", b"x" * 10)

        assert body["size"] == 10

    def test_oversized_body_rejected_before_parsing(self, small_client: TestClient) -> None:
        """A body far above the ceiling is refused before its type is checked."""
        response = small_client.post(
            "/upload", files={"data": ("a.txt", b"x" * 100_000, "text/plain")}
        )

        assert response.status_code == 413
        body = response.json()
        assert body["code"] == "TOO_LARGE"
        assert body["details"] == {"max_size_bytes": 10}
        assert response.headers["X-Request-Id"] == body["request_id"]

    def test_chunked_oversized_body_is_cut_off(
        self, small_client: TestClient, storage_dir: Path
    ) -> None:
        """A body without Content-Length is refused once it passes the cap."""
        response = small_client.post(
            "/upload", content=chunked_multipart("a.txt", 80), headers=CHUNKED_HEADERS
        )

        assert "content-length" not in {k.lower() for k in response.request.headers}
        assert response.status_code == 413
        body = response.json()
        assert body["code"] == "TOO_LARGE"
        assert body["details"] == {"max_size_bytes": 10}
        assert not storage_dir.exists() or list(storage_dir.iterdir()) == []

    def test_small_chunked_upload_is_stored(self, small_client: TestClient) -> None:
        """Chunked bodies under the cap reach the upload route."""
        response = small_client.post(
            "/upload",
            content=chunked_multipart("a.png", 2, chunk_size=5),
            headers=CHUNKED_HEADERS,
        )

        assert response.status_code == 200, response.text
        assert response.json()["size"] == 10

    def test_missing_file_field_is_422(self, client: TestClient) -> None:
        """A form without the data field fails validation."""
        response = client.post("/upload", files={"other": ("a.png", b"abc", "image/png")})

        assert response.status_code == 422
        assert response.json()["code"] == "REQUEST_VALIDATION_FAILED"

    def test_write_failure_is_500_without_paths(self, tmp_path: Path) -> None:
        """An unwritable storage directory answers 500 WRITE_FAILED, no paths."""
        blocker = tmp_path / "blocked"
        blocker.write_bytes(b"")
        config = StoreConfig(storage_dir=blocker)
        client = TestClient(create_app(config=config), raise_server_exceptions=False)

        response = client.post("/upload", files={"data": ("a.png", b"abc", "image/png")})

        assert response.status_code == 500
        assert response.json()["code"] == "WRITE_FAILED"
        assert str(tmp_path) not in response.text


class TestStatic:
    """Tests for GET /static/{file_id}."""

    def test_get_returns_uploaded_bytes(self, client: TestClient) -> None:
        """The served body is byte-identical to the upload."""
        blob_id = upload(client, "a.png", b"\x89PNG-bytes")["id"]

        response = client.get(f"/static/{blob_id}")

        assert response.status_code == 200
        assert response.content == b"\x89PNG-bytes"
        assert response.headers["content-type"] == "image/png"

    def test_get_sets_delivery_headers(self, client: TestClient) -> None:
        """x-timestamp is epoch milliseconds and x-sent is true."""
        blob_id = upload(client, "a.jpg")["id"]

        response = client.get(f"/static/{blob_id}")

        assert response.headers["x-sent"] == "true"
        assert response.headers["x-timestamp"].isdigit()
        assert int(response.headers["x-timestamp"]) > 1_500_000_000_000

    def test_unknown_id_is_404(self, client: TestClient) -> None:
        """An id that was never issued answers 404 NOT_FOUND."""
        response = client.get("/static/does-not-exist")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_stored_name_is_not_a_public_id(self, client: TestClient, store: BlobStore) -> None:
        """The stored file stem cannot be used to fetch the blob."""
        upload(client, "a.png")
        stem = store.index.load_all()[0].name

        assert client.get(f"/static/{stem}").status_code == 404


class TestRemove:
    """Tests for DELETE /removeupload/{file_id}."""

    def test_remove_is_202_then_404(self, client: TestClient) -> None:
        """Removal is accepted once; the blob is then gone everywhere."""
        blob_id = upload(client, "a.png")["id"]

        response = client.delete(f"/removeupload/{blob_id}")

        assert response.status_code == 202
        assert response.json() == {"id": blob_id}
        assert client.get(f"/static/{blob_id}").status_code == 404
        assert client.get("/listuploads").json() == []
        assert client.delete(f"/removeupload/{blob_id}").status_code == 404

    def test_remove_unknown_id_is_404(self, client: TestClient) -> None:
        """Removing an unknown id answers 404 NOT_FOUND."""
        response = client.delete("/removeupload/nope")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"


class TestListUploads:
    """Tests for GET /listuploads and /listuploads/{name}."""

    def test_list_all_in_upload_order(self, client: TestClient) -> None:
        """All active blobs are listed in upload order."""
        for name in ("cat.png", "dog.jpg", "cathedral.png"):
            upload(client, name)

        names = [item["name"] for item in client.get("/listuploads").json()]

        assert names == ["cat.png", "dog.jpg", "cathedral.png"]

    def test_list_filtered_by_name(self, client: TestClient) -> None:
        """Only names containing the segment are listed."""
        for name in ("cat.png", "dog.jpg", "cathedral.png"):
            upload(client, name)

        names = [item["name"] for item in client.get("/listuploads/cat").json()]

        assert names == ["cat.png", "cathedral.png"]

    def test_list_entries_have_no_paths(self, client: TestClient, store: BlobStore) -> None:
        """Listed entries carry only id, size and name."""
        upload(client, "a.png")

        response = client.get("/listuploads")

        assert all(set(item) == {"id", "size", "name"} for item in response.json())
        assert str(store.storage_dir) not in response.text

    def test_corrupt_index_is_generic_500(
        self, client: TestClient, store: BlobStore, store_config: StoreConfig
    ) -> None:
        """An unreadable snapshot answers a generic 500 without paths."""
        store_config.storage_dir.mkdir(parents=True)
        store_config.index_path.write_text("not json", encoding="utf-8")

        response = client.get("/listuploads")

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "INTERNAL_ERROR"
        assert body["message"] == "An internal error occurred"
        assert str(store.storage_dir) not in response.text


class TestCrossCutting:
    """Tests for middleware applied to every route."""

    def test_unknown_route_uses_error_envelope(self, client: TestClient) -> None:
        """Unknown routes answer 404 with the standard envelope."""
        response = client.get("/no/such/route")

        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "NOT_FOUND"
        assert body["request_id"] == response.headers["X-Request-Id"]

    def test_security_headers_present(self, client: TestClient) -> None:
        """Hardening headers are set on every response."""
        response = client.get("/listuploads")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert response.headers["Referrer-Policy"] == "no-referrer"

    def test_error_response_echoes_request_id(self, client: TestClient) -> None:
        """Error envelopes carry the caller's request id."""
        response = client.get("/static/nope", headers={"X-Request-Id": "req-123"})

        assert response.json()["request_id"] == "req-123"
        assert response.headers["X-Request-Id"] == "req-123"

    def test_cors_preflight_allows_configured_origin(self, client: TestClient) -> None:
        """Preflights from the configured origin are allowed."""
        response = client.options(
            "/upload",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"

    def test_cors_rejects_other_origins(self, client: TestClient) -> None:
        """Simple requests from other origins get no allow-origin header."""
        response = client.get("/listuploads", headers={"Origin": "http://evil.example"})

        assert "access-control-allow-origin" not in response.headers


class TestUploadLimitMiddleware:
    """Tests for the body cap applied before the upload route runs."""

    @pytest.fixture
    def consumed(self) -> list[int]:
        """Collect the body chunk sizes the wrapped app receives."""
        return []

    @pytest.fixture
    def guarded_client(self, consumed: list[int]) -> TestClient:
        """Wrap a body-reading app in a 10-byte upload cap."""

        async def read_body(scope: Scope, receive: Receive, send: Send) -> None:
            while True:
                message = await receive()
                if message["type"] == "http.disconnect":
                    break
                consumed.append(len(message.get("body", b"")))
                if not message.get("more_body", False):
                    break
            await PlainTextResponse("stored")(scope, receive, send)

        return TestClient(UploadLimitMiddleware(read_body, max_upload_bytes=10))

    def test_oversized_chunked_body_never_reaches_app(
        self, guarded_client: TestClient, consumed: list[int]
    ) -> None:
        """The app sees at most the cap before the body is cut off."""
        response = guarded_client.post(
            "/upload", content=chunked_multipart("a.png", 80), headers=CHUNKED_HEADERS
        )

        assert response.status_code == 413
        assert response.json()["code"] == "TOO_LARGE"
        assert sum(consumed) <= 10 + MULTIPART_OVERHEAD_BYTES

    def test_body_within_cap_passes_through(
        self, guarded_client: TestClient, consumed: list[int]
    ) -> None:
        """Bodies under the cap are delivered untouched."""
        response = guarded_client.post(
            "/upload", content=chunked_multipart("a.png", 1, chunk_size=10), headers=CHUNKED_HEADERS
        )

        assert response.status_code == 200
        assert response.text == "stored"
        assert sum(consumed) > 10

    def test_other_routes_are_not_capped(
        self, guarded_client: TestClient, consumed: list[int]
    ) -> None:
        """Only POST /upload is inspected."""
        response = guarded_client.post("/elsewhere", content=b"x" * 200_000)

        assert response.status_code == 200
        assert sum(consumed) == 200_000
