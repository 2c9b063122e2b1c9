from __future__ import annotations

import threading
import uuid
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from library_api.main import create_app
from pydantic import ValidationError


def isbn13(n: int) -> str:
    """A checksum-valid ISBN-13 in the 978 range."""
    body = f"978{n:09d}"
    total = sum((1 if i % 2 == 0 else 3) * int(d) for i, d in enumerate(body))
    return body + str((10 - total % 10) % 10)


def _payload(n: int = 1, **overrides) -> dict:
    data = {
        "title": f"Title {n}",
        "author": f"Author {n}",
        "isbn": isbn13(n),
        "published_year": 1990 + n,
    }
    data.update(overrides)
    return data


def _create(client, n: int = 1, **overrides) -> dict:
    resp = client.post("/v1/books", json=_payload(n, **overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_create_returns_201_with_defaults(client):
    body = _create(client, isbn="978-3-16-148410-0")

    assert uuid.UUID(body["id"])
    assert body["isbn"] == "978-3-16-148410-0"
    assert body["status"] == "available"
    assert body["checked_out_at"] is None
    assert body["created_at"] and body["updated_at"]


def test_create_accepts_isbn10(client):
    body = _create(client, isbn="0-306-40615-2")
    assert body["isbn"] == "0-306-40615-2"


def test_create_missing_field_is_400(client):
    data = _payload()
    del data["author"]

    resp = client.post("/v1/books", json=data)

    assert resp.status_code == 400
    assert {"field": "author", "message": "Field required"} in resp.json()["errors"]


@pytest.mark.parametrize(
    "field,value",
    [
        ("isbn", "978-3-16-148410-1"),
        ("isbn", "not-an-isbn"),
        ("published_year", 999),
        ("published_year", 9999),
        ("title", "   "),
        ("title", "x" * 256),
    ],
)
def test_create_rejects_invalid_values(client, field, value):
    resp = client.post("/v1/books", json=_payload(**{field: value}))

    assert resp.status_code == 400
    assert [e["field"] for e in resp.json()["errors"]] == [field]


def test_create_malformed_json_is_400(client):
    resp = client.post(
        "/v1/books",
        content=b'{"title": "broken",',
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Malformed JSON in request body"}


def test_create_duplicate_isbn_is_409(client):
    _create(client, 1)

    resp = client.post("/v1/books", json=_payload(2, isbn=isbn13(1)))

    assert resp.status_code == 409
    assert resp.json() == {"error": "A book with this ISBN already exists"}
    assert client.get("/v1/books").json()["pagination"]["total"] == 1


def test_get_one(client):
    created = _create(client)

    resp = client.get(f"/v1/books/{created['id']}")

    assert resp.status_code == 200
    assert resp.json() == created


def test_get_unknown_is_404(client):
    resp = client.get(f"/v1/books/{uuid.uuid4()}")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Book not found"}


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/v1/books/not-a-uuid"),
        ("patch", "/v1/books/not-a-uuid"),
        ("get", "/v1/books/not-a-uuid/history"),
        ("post", "/v1/books/not-a-uuid/checkout"),
        ("post", "/v1/books/not-a-uuid/return"),
    ],
)
def test_malformed_id_is_400(client, method, path):
    kwargs = {"json": {"title": "x"}} if method == "patch" else {}
    resp = getattr(client, method)(path, **kwargs)

    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "book_id"


def test_list_paginates_newest_first(client):
    ids = [_create(client, n)["id"] for n in range(1, 6)]

    resp = client.get("/v1/books", params={"page": 2, "limit": 2})

    assert resp.status_code == 200
    body = resp.json()
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 5}
    # Same-second inserts may tie; the page still holds two of the five.
    assert len(body["data"]) == 2
    assert {b["id"] for b in body["data"]} <= set(ids)


@pytest.mark.parametrize(
    "query,expected",
    [
        ({}, {"page": 1, "limit": 20}),
        ({"page": "0", "limit": "0"}, {"page": 1, "limit": 20}),
        ({"page": "-3", "limit": "101"}, {"page": 1, "limit": 20}),
        ({"page": "abc", "limit": "xyz"}, {"page": 1, "limit": 20}),
        ({"page": "3", "limit": "100"}, {"page": 3, "limit": 100}),
    ],
)
def test_list_falls_back_to_default_paging(client, query, expected):
    resp = client.get("/v1/books", params=query)

    assert resp.status_code == 200
    assert resp.json()["pagination"] == {**expected, "total": 0}


def test_patch_updates_given_fields(client):
    created = _create(client)

    resp = client.patch(f"/v1/books/{created['id']}", json={"title": "Renamed"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Renamed"
    assert body["author"] == created["author"]
    assert body["created_at"] == created["created_at"]


def test_patch_cannot_set_status(client):
    created = _create(client)

    resp = client.patch(f"/v1/books/{created['id']}", json={"status": "checked_out"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "available"


def test_patch_unknown_is_404(client):
    resp = client.patch(f"/v1/books/{uuid.uuid4()}", json={"title": "x"})
    assert resp.status_code == 404


def test_patch_isbn_collision_is_409(client):
    _create(client, 1)
    second = _create(client, 2)

    resp = client.patch(f"/v1/books/{second['id']}", json={"isbn": isbn13(1)})

    assert resp.status_code == 409


def test_checkout_and_return_flow(client):
    book = _create(client)
    book_id = book["id"]

    resp = client.post(f"/v1/books/{book_id}/checkout")
    assert resp.status_code == 200
    assert resp.json()["status"] == "checked_out"
    assert resp.json()["checked_out_at"] is not None

    resp = client.post(f"/v1/books/{book_id}/checkout")
    assert resp.status_code == 409
    assert resp.json() == {"error": "Book is already checked out"}

    resp = client.post(f"/v1/books/{book_id}/return")
    assert resp.status_code == 200
    assert resp.json()["status"] == "available"
    assert resp.json()["checked_out_at"] is None

    resp = client.post(f"/v1/books/{book_id}/return")
    assert resp.status_code == 409
    assert resp.json() == {"error": "Book is not currently checked out"}

    resp = client.get(f"/v1/books/{book_id}/history")
    assert resp.status_code == 200
    body = resp.json()
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 2}
    assert sorted(e["action"] for e in body["data"]) == ["checked_out", "returned"]
    assert all(e["book_id"] == book_id for e in body["data"])


@pytest.mark.parametrize("action", ["checkout", "return"])
def test_transition_unknown_book_is_404(client, action):
    resp = client.post(f"/v1/books/{uuid.uuid4()}/{action}")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Book not found"}


def test_history_unknown_book_is_404(client):
    resp = client.get(f"/v1/books/{uuid.uuid4()}/history")
    assert resp.status_code == 404


def test_request_id_is_echoed_or_generated(client):
    resp = client.get("/health", headers={"X-Request-Id": "abc-123"})
    assert resp.headers["X-Request-Id"] == "abc-123"

    resp = client.get("/health")
    assert uuid.UUID(resp.headers["X-Request-Id"])
    assert "X-Process-Time" in resp.headers


def test_data_survives_restart(app_settings):
    with TestClient(create_app(app_settings)) as first:
        created = _create(first)

    with TestClient(create_app(app_settings)) as second:
        resp = second.get(f"/v1/books/{created['id']}")

    assert resp.status_code == 200
    assert resp.json()["title"] == created["title"]


def test_startup_aborts_when_a_migration_fails(tmp_path, make_settings):
    scripts = tmp_path / "scripts"
    scripts.mkdir()
    (scripts / "001_broken.sql").write_text("NOT VALID SQL;", encoding="utf-8")
    settings = make_settings(
        DATABASE_URL=f"sqlite+pysqlite:///{tmp_path / 'broken.db'}",
        MIGRATIONS_DIR=str(scripts),
    )

    with pytest.raises(Exception, match="001_broken.sql"):
        with TestClient(create_app(settings)):
            pass


def _utc_offset(stamp: str) -> timedelta | None:
    return datetime.fromisoformat(stamp.replace("Z", "+00:00")).utcoffset()


def test_timestamps_carry_utc_offset(client):
    book = _create(client)
    out = client.post(f"/v1/books/{book['id']}/checkout").json()
    entry = client.get(f"/v1/books/{book['id']}/history").json()["data"][0]

    assert _utc_offset(book["created_at"]) == timedelta(0)
    assert _utc_offset(book["updated_at"]) == timedelta(0)
    assert _utc_offset(out["checked_out_at"]) == timedelta(0)
    assert _utc_offset(entry["timestamp"]) == timedelta(0)


def test_concurrent_checkouts_over_http_have_one_winner_per_book(client):
    book_ids = [_create(client, n)["id"] for n in range(1, 5)]
    targets = book_ids * 2
    barrier = threading.Barrier(len(targets))
    codes: list[int] = []
    lock = threading.Lock()

    def post(book_id: str) -> None:
        barrier.wait()
        resp = client.post(f"/v1/books/{book_id}/checkout")
        with lock:
            codes.append(resp.status_code)

    threads = [threading.Thread(target=post, args=(b,)) for b in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(codes) == [200] * 4 + [409] * 4
    for book_id in book_ids:
        assert client.get(f"/v1/books/{book_id}").json()["status"] == "checked_out"
        history = client.get(f"/v1/books/{book_id}/history").json()
        assert history["pagination"]["total"] == 1


def test_app_refuses_in_memory_store(make_settings):
    with pytest.raises(ValidationError, match="in-memory"):
        create_app(make_settings(DATABASE_URL="sqlite+pysqlite:///:memory:"))
