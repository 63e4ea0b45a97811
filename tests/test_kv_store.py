from driftguard.io.kv_store import TUTORIAL_SEEN, JsonFileStore, MemoryStore


class TestStores:
    def test_memory_store(self):
        s = MemoryStore()
        assert s.get(TUTORIAL_SEEN, False) is False
        s.set(TUTORIAL_SEEN, True)
        assert s.get(TUTORIAL_SEEN) is True

    def test_json_store_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "state" / "flags.json")
        JsonFileStore(path).set(TUTORIAL_SEEN, True)
        assert JsonFileStore(path).get(TUTORIAL_SEEN) is True

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "flags.json"
        path.write_text("{not json", encoding="utf-8")
        s = JsonFileStore(str(path))
        assert s.get(TUTORIAL_SEEN, "default") == "default"
        s.set("k", 1)
        assert s.get("k") == 1
