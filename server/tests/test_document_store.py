import json

import httpx
import pytest

from agenda.config import Settings
from agenda.errors import NoStorageAvailable, StorageError
from agenda.storage import BackendError, DocumentStore, GistBackend, SqlBlobBackend, build_backends
from tests.helpers import record

GIST_API = "https://api.github.com/gists/abc123"
RAW_URL = "https://gist.githubusercontent.com/raw/appointments.json"


class FakeGist:
    """In-memory stand-in for the Gist REST API behind an httpx MockTransport."""

    def __init__(self, content: str | None = "[]", fail_status: int | None = None) -> None:
        self.content = content
        self.fail_status = fail_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status:
            return httpx.Response(self.fail_status)
        url = str(request.url)
        if url == GIST_API and request.method == "GET":
            files = {} if self.content is None else {"appointments.json": {"raw_url": RAW_URL}}
            return httpx.Response(200, json={"id": "abc123", "files": files})
        if url == GIST_API and request.method == "PATCH":
            self.content = json.loads(request.content)["files"]["appointments.json"]["content"]
            return httpx.Response(200, json={"id": "abc123"})
        if url == RAW_URL:
            return httpx.Response(200, text=self.content or "")
        return httpx.Response(404)


class BrokenBackend:
    name = "blob"

    def read(self):
        raise BackendError("down")

    def write(self, body):
        raise BackendError("down")


class ReadOnlyPrimary:
    """Primary whose reads keep working while every write is rejected."""

    name = "blob"

    def __init__(self, records: list[dict]) -> None:
        self.body = json.dumps(records)

    def read(self):
        return self.body

    def write(self, body):
        raise BackendError("read-only")


def gist_backend(fake: FakeGist) -> GistBackend:
    client = httpx.Client(transport=httpx.MockTransport(fake))
    return GistBackend(client, gist_id="abc123", token="tok", key="appointments.json")


def test_round_trip_on_primary_backend(store):
    records = [record("r1", "a@x.com"), record("r2", "b@x.com")]
    written = store.write(records)
    assert written.mode == "blob"
    assert written.confirmed is True
    result = store.read()
    assert result.mode == "blob"
    assert {r["id"] for r in result.records} == {"r1", "r2"}
    assert [r["id"] for r in result.records] == ["r1", "r2"]


def test_empty_primary_reads_as_empty_collection(store):
    result = store.read()
    assert result.records == []
    assert result.mode == "blob"


def test_blob_api_get_and_set(blob_backend):
    blob_backend.set("other.json", '{"a": 1}', content_type="application/json")
    assert blob_backend.get("other.json") == '{"a": 1}'
    assert blob_backend.get("other.json", type="json") == {"a": 1}
    assert blob_backend.get("missing.json", type="json") is None


def test_blob_set_overwrites_single_key(blob_backend):
    blob_backend.write("[1]")
    blob_backend.write("[2]")
    assert blob_backend.read() == "[2]"


def test_legacy_ndjson_in_primary_is_tolerated(blob_backend, store):
    blob_backend.set("appointments.json", json.dumps(record("r1", "a@x.com")) + "\ngarbage\n")
    assert [r["id"] for r in store.read().records] == ["r1"]


def test_read_falls_back_to_gist_when_primary_fails():
    fake = FakeGist(content=json.dumps([record("g1", "a@x.com")]))
    store = DocumentStore([BrokenBackend(), gist_backend(fake)])
    result = store.read()
    assert result.mode == "gist"
    assert [r["id"] for r in result.records] == ["g1"]


def test_write_falls_back_to_gist_when_primary_fails():
    fake = FakeGist()
    store = DocumentStore([BrokenBackend(), gist_backend(fake)])
    written = store.write([record("g2", "a@x.com")])
    assert written.mode == "gist"
    assert json.loads(fake.content)[0]["id"] == "g2"
    patch = next(r for r in fake.requests if r.method == "PATCH")
    assert patch.headers["Authorization"] == "Bearer tok"
    assert patch.headers["Accept"] == "application/vnd.github+json"


def test_gist_without_collection_file_reads_empty():
    store = DocumentStore([gist_backend(FakeGist(content=None))])
    result = store.read()
    assert result.records == []
    assert result.mode == "gist"


def test_failed_reads_degrade_to_empty():
    store = DocumentStore([BrokenBackend(), gist_backend(FakeGist(fail_status=502))])
    result = store.read()
    assert result.records == []
    assert result.mode == "gist-error"


def test_write_without_backends_raises_no_storage():
    with pytest.raises(NoStorageAvailable):
        DocumentStore([]).write([])


def test_read_without_backends_is_empty():
    result = DocumentStore([]).read()
    assert result.records == []
    assert result.mode == "none"


def test_write_failing_everywhere_raises_storage_error():
    store = DocumentStore([BrokenBackend(), gist_backend(FakeGist(fail_status=500))])
    with pytest.raises(StorageError):
        store.write([record("x", "a@x.com")])


def test_read_raw_preview_is_truncated(store):
    store.write([record(f"r{i}", "a@x.com") for i in range(20)])
    preview = store.read_raw()
    assert len(preview) == 400
    assert preview.startswith('[{"id": "r0"')


def test_build_backends_orders_primary_before_gist(session_factory):
    settings = Settings(_env_file=None, database_url="sqlite://", gist_id="abc", gist_token="tok")
    backends = build_backends(settings, session_factory, httpx.Client())
    assert [b.name for b in backends] == ["blob", "gist"]


def test_build_backends_skips_unconfigured(session_factory):
    assert build_backends(Settings(_env_file=None, database_url="", gist_id="abc"), session_factory) == []
    only_gist = build_backends(Settings(_env_file=None, database_url="", gist_id="abc", gist_token="tok"), None, httpx.Client())
    assert [b.name for b in only_gist] == ["gist"]
    assert isinstance(build_backends(Settings(_env_file=None, database_url="sqlite://"), session_factory)[0], SqlBlobBackend)


def test_failed_primary_write_is_not_diverted_to_gist():
    fake = FakeGist(content="[]")
    store = DocumentStore([ReadOnlyPrimary([record("old", "a@x.com")]), gist_backend(fake)])
    with pytest.raises(StorageError):
        store.write([record("old", "a@x.com"), record("new", "a@x.com")])
    assert fake.content == "[]"
    assert not any(r.method == "PATCH" for r in fake.requests)
    assert [r["id"] for r in store.read().records] == ["old"]


def test_write_lands_where_reads_are_served():
    fake = FakeGist(content=json.dumps([record("g1", "a@x.com")]))
    store = DocumentStore([BrokenBackend(), gist_backend(fake)])
    before = store.read()
    written = store.write(before.records + [record("g2", "a@x.com")])
    assert written.mode == before.mode == "gist"
    assert written.confirmed is True
    assert [r["id"] for r in store.read().records] == ["g1", "g2"]


def test_active_backend_prefers_first_readable(blob_backend):
    gist = gist_backend(FakeGist())
    assert DocumentStore([blob_backend, gist]).active_backend() is blob_backend
    assert DocumentStore([BrokenBackend(), gist]).active_backend() is gist
    assert DocumentStore([]).active_backend() is None
