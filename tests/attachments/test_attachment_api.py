# -*- coding: utf-8 -*-
"""附件 HTTP 接口."""

import io

from extensions.database import db
from models.attachment import Attachment


def _upload(client, owner_post_id, *files):
    return client.post(
        f"/api/posts/{owner_post_id}/attachments",
        data={"files": [(io.BytesIO(content), name) for name, content in files]},
        content_type="multipart/form-data",
    )


def test_upload_multiple_files_returns_ordered_ids(client):
    resp = _upload(client, 42, ("report.pdf", b"pdf-bytes"), ("photo.png", b"png-bytes"))

    assert resp.status_code == 200, resp.get_json()
    ids = resp.get_json()["data"]["ids"]
    assert len(ids) == 2
    names = [db.session.get(Attachment, i).user_file_name for i in ids]
    assert names == ["report.pdf", "photo.png"]


def test_upload_without_files_is_rejected(client, object_store):
    resp = client.post("/api/posts/42/attachments", data={"note": "empty"}, content_type="multipart/form-data")

    assert resp.status_code == 400
    assert object_store.calls == []


def test_download_sets_binary_headers(client):
    ids = _upload(client, 1, ("my report.pdf", b"0123456789")).get_json()["data"]["ids"]

    resp = client.get(f"/api/attachments/{ids[0]}")

    assert resp.status_code == 200
    assert resp.data == b"0123456789"
    assert resp.headers["Content-Type"] == "application/octet-stream"
    assert resp.headers["Content-Length"] == "10"
    assert resp.headers["Content-Disposition"] == 'attachment; filename="my%20report.pdf"'


def test_download_unknown_attachment_returns_404_envelope(client):
    resp = client.get("/api/attachments/9999")

    assert resp.status_code == 404
    body = resp.get_json()
    assert body["code"] == 404
    assert "附件不存在" in body["message"]


def test_download_with_missing_object_returns_502(client, object_store):
    ids = _upload(client, 1, ("a.txt", b"a")).get_json()["data"]["ids"]
    object_store.objects.clear()

    resp = client.get(f"/api/attachments/{ids[0]}")

    assert resp.status_code == 502


def test_list_and_delete_post_attachments(client, object_store):
    _upload(client, 5, ("a.txt", b"a"), ("b.txt", b"b"))

    listed = client.get("/api/posts/5/attachments").get_json()["data"]
    assert listed["total"] == 2
    assert [item["user_file_name"] for item in listed["items"]] == ["a.txt", "b.txt"]

    resp = client.delete("/api/posts/5/attachments")
    assert resp.get_json()["data"] == {"deleted": 2}
    assert client.get("/api/posts/5/attachments").get_json()["data"]["total"] == 0
    assert object_store.keys() == []


def test_delete_single_attachment(client):
    ids = _upload(client, 1, ("a.txt", b"a")).get_json()["data"]["ids"]

    resp = client.delete(f"/api/attachments/{ids[0]}")
    assert resp.status_code == 200
    assert resp.get_json()["data"] == {"id": ids[0]}

    assert client.delete(f"/api/attachments/{ids[0]}").status_code == 404


def test_batch_delete(client):
    ids = _upload(client, 1, ("a.txt", b"a"), ("b.txt", b"b")).get_json()["data"]["ids"]

    resp = client.post("/api/attachments/batch-delete", json={"ids": ids})
    assert resp.get_json()["data"] == {"deleted": 2}

    empty = client.post("/api/attachments/batch-delete", json={"ids": []})
    assert empty.get_json()["data"] == {"deleted": 0}


def test_batch_delete_validates_ids(client):
    resp = client.post("/api/attachments/batch-delete", json={"ids": "1,2"})

    assert resp.status_code == 400
    assert "ids 必须为整数数组" in resp.get_json()["message"]


def test_exists_endpoint(client):
    ids = _upload(client, 1, ("a.txt", b"a")).get_json()["data"]["ids"]
    key = db.session.get(Attachment, ids[0]).storage_key

    assert client.get("/api/attachments/exists", query_string={"key": key}).get_json()["data"]["exists"] is True
    assert client.get("/api/attachments/exists", query_string={"key": "nope"}).get_json()["data"]["exists"] is False
    assert client.get("/api/attachments/exists").status_code == 400


def test_failed_batch_upload_reports_orphan_keys(client, object_store):
    object_store.fail("put", when=lambda key: key.endswith("_b.txt"))

    resp = _upload(client, 3, ("a.txt", b"a"), ("b.txt", b"b"))

    assert resp.status_code == 502
    orphans = resp.get_json()["data"]["orphan_keys"]
    assert len(orphans) == 1 and orphans[0].endswith("_a.txt")
    assert Attachment.query.count() == 0


def test_exists_keeps_key_whitespace(client, coordinator, object_store):
    object_store.objects[(coordinator.bucket, "k_a.txt ")] = (b"a", "private")

    resp = client.get("/api/attachments/exists", query_string={"key": "k_a.txt "})

    assert resp.get_json()["data"] == {"key": "k_a.txt ", "exists": True}
