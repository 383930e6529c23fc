"""HTTP-level tests for the dataset routes (in-memory store, auth overridden)."""

import json

import pytest
from fastapi.testclient import TestClient

from auth import dependencies as auth_dependencies
from core.db import StoreUnavailable
from datasets import events
from datasets.store import MemoryDatasetStore, get_store
from main import app


@pytest.fixture
def client(store, owner):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[auth_dependencies.get_current_owner_id] = lambda: owner
    # No `with`: the lifespan would try to open a Postgres pool.
    yield TestClient(app)
    app.dependency_overrides.clear()


def create(client: TestClient, *, name="Students", files=None, **form) -> dict:
    data = {"displayName": name, **form}
    response = client.post("/datasets", data=data, files=files)
    assert response.status_code == 201, response.text
    return response.json()["dataset"]


def test_create_from_csv_upload(client):
    files = {"file": ("students.csv", b"name,dept\nAda,CS\nAlan,EE\n", "text/csv")}

    response = client.post("/datasets", data={"displayName": "My Cool API"}, files=files)

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Dataset created successfully."
    dataset = body["dataset"]
    assert dataset["displayName"] == "My Cool API"
    assert dataset["servingURL"].startswith("http://testserver/serve/my-cool-api-")
    assert dataset["recordCount"] == 2
    assert dataset["visibility"] == "public"
    assert "records" not in dataset
    assert dataset["servingURL"] in dataset["exampleUsageSnippet"]


def test_create_from_inline_data(client):
    dataset = create(client, data=json.dumps([{"a": 1}, {"a": 2}]))

    response = client.get(dataset["servingURL"])

    assert response.status_code == 200
    assert response.json()["resultRecords"] == [{"a": 1}, {"a": 2}]


def test_create_requires_display_name(client):
    response = client.post("/datasets", data={"data": "[]"})

    assert response.status_code == 400
    assert response.json() == {"message": "displayName is required."}


def test_create_rejects_unsupported_format(client, store, owner):
    files = {"file": ("notes.txt", b"hello", "text/plain")}

    response = client.post("/datasets", data={"displayName": "Notes"}, files=files)

    assert response.status_code == 400
    assert "Unsupported file format" in response.json()["message"]


def test_create_rejects_malformed_json(client):
    files = {"file": ("broken.json", b"[{oops", "application/json")}

    response = client.post("/datasets", data={"displayName": "Broken"}, files=files)

    assert response.status_code == 422


@pytest.mark.parametrize("data", ['[{"a": NaN}]', '[{"a": 1e999}]'])
def test_create_rejects_non_finite_numbers(client, store, owner, data):
    response = client.post("/datasets", data={"displayName": "Numbers", "data": data})

    assert response.status_code == 422


def test_create_rejects_oversized_upload(client, monkeypatch):
    monkeypatch.setenv("MAX_UPLOAD_BYTES", "16")
    files = {"file": ("big.csv", b"a\n" + b"1\n" * 64, "text/csv")}

    response = client.post("/datasets", data={"displayName": "Big"}, files=files)

    assert response.status_code == 413


def test_create_publishes_event(client):
    seen = []

    async def on_created(event):
        seen.append(event)

    events.subscribe(events.CREATED, on_created)

    dataset = create(client)

    assert [e.dataset_id for e in seen] == [dataset["id"]]
    assert seen[0].kind == events.CREATED


def test_serve_with_filters_echo(client, student_records):
    dataset = create(client, data=json.dumps(student_records))
    address = dataset["servingURL"].rsplit("/", 1)[1]

    response = client.get(f"/serve/{address}", params={"dept": "cs", "year": "1"})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Data fetched successfully."
    assert body["matchedCount"] == 1
    assert body["filters"] == {"dept": "cs", "year": "1"}
    assert body["resultRecords"] == [{"dept": "CS", "year": "1"}]


def test_serve_repeated_filter_key_is_echoed_as_list(client, student_records):
    dataset = create(client, data=json.dumps(student_records))

    response = client.get(dataset["servingURL"] + "?year=1&year=2")

    body = response.json()
    assert body["filters"] == {"year": ["1", "2"]}
    assert body["matchedCount"] == 0


def test_serve_sub_path_and_index(client, student_records):
    dataset = create(client, data=json.dumps(student_records))
    url = dataset["servingURL"]

    whole = client.get(f"{url}/students").json()
    one = client.get(f"{url}/students/2").json()
    none = client.get(f"{url}/students/9").json()
    fallback = client.get(f"{url}/students/abc").json()

    assert whole["matchedCount"] == 3
    assert one["resultRecords"] == [{"dept": "EE", "year": "1"}]
    assert none == {"message": "Data fetched successfully.", "matchedCount": 0, "filters": {}, "resultRecords": []}
    assert fallback["matchedCount"] == 3


def test_serve_unknown_address_is_404(client):
    response = client.get("/serve/does-not-exist-000000")

    assert response.status_code == 404
    assert response.json() == {"message": "Dataset not found."}


def test_serve_needs_no_auth(store, owner, make_access_token):
    app.dependency_overrides[get_store] = lambda: store
    try:
        client = TestClient(app)
        authed = TestClient(app, headers={"Authorization": f"Bearer {make_access_token(owner)}"})
        dataset = create(authed, data='[{"a": 1}]')

        response = client.get(dataset["servingURL"])

        assert response.status_code == 200
        assert response.json()["matchedCount"] == 1
    finally:
        app.dependency_overrides.clear()


def test_management_requires_bearer_token(store):
    app.dependency_overrides[get_store] = lambda: store
    try:
        client = TestClient(app)

        assert client.post("/datasets", data={"displayName": "x"}).status_code == 401
        assert client.get("/datasets/mine").status_code == 401
        assert client.delete("/datasets/1").status_code == 401
        bad = client.get("/datasets/mine", headers={"Authorization": "Bearer not-a-jwt"})
        assert bad.status_code == 401
    finally:
        app.dependency_overrides.clear()


def test_get_dataset_by_id_includes_records(client):
    dataset = create(client, data='[{"a": 1}]', description="hello", category="Science")

    response = client.get(f"/datasets/{dataset['id']}")

    assert response.status_code == 200
    body = response.json()
    assert body["records"] == [{"a": 1}]
    assert body["description"] == "hello"
    assert body["category"] == "Science"
    assert body["version"] == "v1"
    assert body["sourceFormat"] == "json"
    assert body["owner"] == "user-1"


def test_get_unknown_dataset_is_404(client):
    assert client.get("/datasets/999").status_code == 404


def test_listings(client, store, other_owner):
    create(client, name="Open")
    create(client, name="Closed", visibility="private")

    public = client.get("/datasets/public").json()
    mine = client.get("/datasets/mine").json()

    assert [d["displayName"] for d in public["datasets"]] == ["Open"]
    assert public["datasets"][0]["records"] is None
    assert public["count"] == 1
    assert {d["displayName"] for d in mine["datasets"]} == {"Open", "Closed"}


def test_listing_pagination_params(client):
    for i in range(3):
        create(client, name=f"Set {i}")

    page = client.get("/datasets/public", params={"limit": 1, "offset": 1}).json()

    assert page["count"] == 1
    assert page["limit"] == 1
    assert page["offset"] == 1
    assert client.get("/datasets/public", params={"limit": 0}).status_code == 422


def test_update_keeps_address_on_rename(client):
    dataset = create(client, data='[{"a": 1}]')

    response = client.put(f"/datasets/{dataset['id']}", data={"displayName": "Renamed", "version": "v2"})

    assert response.status_code == 200
    updated = response.json()["dataset"]
    assert updated["displayName"] == "Renamed"
    assert updated["version"] == "v2"
    assert updated["servingURL"] == dataset["servingURL"]
    assert client.get(dataset["servingURL"]).json()["resultRecords"] == [{"a": 1}]


def test_update_with_new_file_replaces_records(client):
    dataset = create(client, data='[{"a": 1}, {"a": 2}]')
    files = {"file": ("new.csv", b"b\nx\n", "text/csv")}

    response = client.put(f"/datasets/{dataset['id']}", files=files)

    assert response.status_code == 200
    assert response.json()["dataset"]["recordCount"] == 1
    assert client.get(dataset["servingURL"]).json()["resultRecords"] == [{"b": "x"}]


def test_update_someone_elses_dataset_is_404(client, store, other_owner):
    dataset = create(client)
    app.dependency_overrides[auth_dependencies.get_current_owner_id] = lambda: other_owner

    response = client.put(f"/datasets/{dataset['id']}", data={"description": "mine now"})

    assert response.status_code == 404


def test_delete_then_serve_is_404(client):
    dataset = create(client, data='[{"a": 1}]')

    response = client.delete(f"/datasets/{dataset['id']}")

    assert response.status_code == 200
    assert response.json() == {"message": "Dataset deleted successfully.", "id": dataset["id"]}
    assert client.get(dataset["servingURL"]).status_code == 404
    assert client.get(f"/datasets/{dataset['id']}").status_code == 404


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


class UnreachableStore(MemoryDatasetStore):
    async def get_by_address(self, address):
        raise StoreUnavailable("Database is unavailable.")


def test_store_outage_is_503(client):
    app.dependency_overrides[get_store] = UnreachableStore

    response = client.get("/serve/anything-000000")

    assert response.status_code == 503
    assert response.json() == {"message": "Dataset store is unavailable."}
