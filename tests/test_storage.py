import json

import pytest

from app.models import DOCUMENTS
from app.storage import DocumentCorruptedError, JsonStore


@pytest.fixture
def store(tmp_path):
    return JsonStore(tmp_path / "data")


async def test_missing_document_reads_empty(store):
    assert await store.read("posts") == {}


async def test_write_then_read(store):
    assert await store.write("posts", {"a": {"title": "Derbi"}})
    assert await store.read("posts") == {"a": {"title": "Derbi"}}


async def test_write_is_pretty_printed_utf8(store):
    await store.write("posts", {"a": {"homeTeam": "Beşiktaş"}})
    text = store.path("posts").read_text(encoding="utf-8")
    assert text == json.dumps({"a": {"homeTeam": "Beşiktaş"}}, indent=2, ensure_ascii=False)


async def test_write_leaves_no_temp_files(store):
    await store.write("posts", {"a": 1})
    await store.write("posts", {"a": 2})
    assert [p.name for p in store.data_dir.iterdir()] == ["posts.json"]


async def test_corrupt_document_raises_in_strict_mode(store):
    store.data_dir.mkdir(parents=True)
    store.path("posts").write_text("{not json", encoding="utf-8")
    with pytest.raises(DocumentCorruptedError) as excinfo:
        await store.read("posts")
    assert excinfo.value.name == "posts"


async def test_non_object_document_is_corrupt(store):
    store.data_dir.mkdir(parents=True)
    store.path("posts").write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(DocumentCorruptedError):
        await store.read("posts")


async def test_corrupt_document_reads_empty_when_lenient(tmp_path):
    store = JsonStore(tmp_path, strict=False)
    store.path("posts").write_text("{not json", encoding="utf-8")
    assert await store.read("posts") == {}


async def test_write_failure_reports_false(tmp_path):
    blocker = tmp_path / "data"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    store = JsonStore(blocker)
    assert await store.write("posts", {"a": 1}) is False


async def test_unserializable_document_reports_false(store):
    assert await store.write("posts", {"a": object()}) is False
    assert await store.read("posts") == {}


def test_initialize_creates_every_document_once(store):
    assert store.initialize() == list(DOCUMENTS)
    assert store.initialize() == []
    for name in DOCUMENTS:
        assert json.loads(store.path(name).read_text(encoding="utf-8")) == {}
