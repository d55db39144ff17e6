# mypy: ignore-errors
# tests/api/test_walrus_api.py
"""Tests for the Walrus upload and image endpoints."""

from __future__ import annotations

import httpx

PNG = b"\x89PNG\r\n\x1a\n" + b"\x02" * 40


def test_store_raw_image(client, walrus_transport) -> None:
    response = client.post(
        "/api/walrus/store",
        content=PNG,
        headers={"Content-Type": "image/png"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "data": {
            "blobId": "blob-new-1",
            "contentType": "image/png",
            "size": len(PNG),
            "newlyCreated": True,
        },
    }
    assert dict(walrus_transport.requests[0].url.params) == {"epochs": "5"}


def test_store_multipart_upload(client, walrus_transport) -> None:
    response = client.post(
        "/api/walrus/store?permanent=true",
        files={"file": ("art.webp", b"RIFF0000WEBPVP8 ", "image/webp")},
    )

    assert response.status_code == 200
    assert response.json()["data"]["contentType"] == "image/webp"
    upload = walrus_transport.requests[0]
    assert dict(upload.url.params) == {"permanent": "true"}
    assert upload.headers["content-type"] == "image/webp"


def test_epochs_win_over_other_flags(client, walrus_transport) -> None:
    client.post(
        "/api/walrus/store?deletable=true&epochs=8&permanent=true",
        content=PNG,
        headers={"Content-Type": "image/png"},
    )

    assert dict(walrus_transport.requests[0].url.params) == {"epochs": "8"}


def test_rejects_non_images(client, walrus_transport) -> None:
    response = client.post(
        "/api/walrus/store",
        content=b"%PDF-1.7",
        headers={"Content-Type": "application/pdf"},
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "only image uploads are supported"}
    assert walrus_transport.requests == []


def test_rejects_bad_epochs(client) -> None:
    response = client.post(
        "/api/walrus/store?epochs=forever",
        content=PNG,
        headers={"Content-Type": "image/png"},
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_rejects_oversized_upload(client, walrus_transport) -> None:
    response = client.post(
        "/api/walrus/store",
        content=b"\x00" * 2048,
        headers={"Content-Type": "image/png"},
    )

    assert response.status_code == 413
    assert walrus_transport.requests == []


def test_unavailable_publisher(client, walrus_transport) -> None:
    walrus_transport.responder = lambda request: httpx.Response(503)

    response = client.post(
        "/api/walrus/store",
        content=PNG,
        headers={"Content-Type": "image/png"},
    )

    assert response.status_code == 502
    assert response.json()["success"] is False
    assert len(walrus_transport.requests) == 3


def test_serve_blob_with_immutable_caching(client) -> None:
    response = client.get("/walrus/blobs/blob-new-1")

    assert response.status_code == 200
    assert response.content.startswith(b"\x89PNG")
    assert response.headers["content-type"] == "image/png"
    assert response.headers["cache-control"] == "public, max-age=31536000, immutable"
    assert response.headers["etag"] == '"blob-new-1"'
    assert response.headers["x-content-type-options"] == "nosniff"


def test_missing_blob(client, walrus_transport) -> None:
    walrus_transport.responder = lambda request: httpx.Response(404)

    response = client.get("/walrus/blobs/blob-gone")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "image not found"}


def test_public_config(client) -> None:
    response = client.get("/api/walrus/config")

    assert response.status_code == 200
    assert response.json() == {
        "publisherBase": "http://publisher.test",
        "aggregatorBase": "http://aggregator.test",
        "defaultEpochs": 5,
        "defaultPermanent": False,
        "maxBlobBytes": 1024,
        "uploadEnabled": True,
    }
