import pytest

from traeusage.models import UsageStore
from traeusage.storage import (
    STORE_KEY,
    FileBlobStorage,
    MemoryBlobStorage,
    atomic_write,
    load_store,
    save_store,
)


class TestFileBlobStorage:
    def test_missing_key_reads_none(self, tmp_path) -> "None":
        assert FileBlobStorage(tmp_path).read_blob("nothing") is None

    def test_write_then_read(self, tmp_path) -> "None":
        blobs = FileBlobStorage(tmp_path / "nested")
        blobs.write_blob("usage_store", b"payload")
        assert blobs.read_blob("usage_store") == b"payload"

    def test_rejects_path_like_keys(self, tmp_path) -> "None":
        with pytest.raises(ValueError):
            FileBlobStorage(tmp_path).write_blob("../escape", b"x")

    def test_atomic_write_leaves_no_temp_files(self, tmp_path) -> "None":
        target = tmp_path / "store.json"
        atomic_write(target, b"one")
        atomic_write(target, b"two")

        assert target.read_bytes() == b"two"
        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]


class TestUsageStorePersistence:
    def test_missing_store_loads_empty(self) -> "None":
        store = load_store(MemoryBlobStorage())
        assert store == UsageStore()
        assert store.last_update_time == 0

    def test_unparseable_store_loads_empty(self) -> "None":
        blobs = MemoryBlobStorage()
        blobs.write_blob(STORE_KEY, b"{not json")
        assert load_store(blobs) == UsageStore()

    def test_structurally_broken_store_loads_empty(self) -> "None":
        blobs = MemoryBlobStorage()
        blobs.write_blob(STORE_KEY, b'{"records": {"x": {"usage_time": 1}}}')
        assert load_store(blobs) == UsageStore()

    @pytest.mark.parametrize(
        "payload",
        [
            b'{"records": [1, 2]}',
            b'{"records": {"x": 5}}',
            b'{"records": {"x": {"session_id": "x", "extra_info": [1]}}}',
        ],
    )
    def test_mistyped_records_load_empty(self, payload: "bytes") -> "None":
        blobs = MemoryBlobStorage()
        blobs.write_blob(STORE_KEY, payload)
        assert load_store(blobs) == UsageStore()

    def test_saved_store_reloads_with_bookkeeping(self, tmp_path, make_record) -> "None":
        blobs = FileBlobStorage(tmp_path)
        store = UsageStore(
            last_update_time=1234,
            covered_start=10,
            covered_end=20,
            records={"s1": make_record("s1", mode="Max")},
        )

        save_store(blobs, store)
        loaded = load_store(blobs)

        assert loaded == store
        assert loaded.records["s1"].tokens.cache_write == 1
