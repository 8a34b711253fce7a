"""
Tests for key-value stores.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-MS-N-01 | set then get | Equivalence – normal | Value returned | - |
| TC-MS-N-02 | Mutate after set | Equivalence – normal | Stored copy unchanged | - |
| TC-MS-A-01 | Unserializable value | Equivalence – abnormal | PersistenceError | - |
| TC-JS-N-01 | set then get (new instance) | Equivalence – normal | Value survives | - |
| TC-JS-N-02 | Missing parent directory | Equivalence – normal | Created | - |
| TC-JS-N-03 | delete | Equivalence – normal | Keys gone, others kept | - |
| TC-JS-B-01 | Missing file | Boundary – empty | get returns None | - |
| TC-JS-A-01 | Corrupt file | Equivalence – abnormal | PersistenceError | - |
| TC-JS-A-02 | Non-object document | Equivalence – abnormal | PersistenceError | - |
| TC-JS-A-03 | Unserializable value | Equivalence – abnormal | PersistenceError, file intact | - |
"""

import json

import pytest

from siterules.errors import PersistenceError
from siterules.storage.kv_store import JsonFileStore, MemoryStore


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_set_get_delete(self):
        """Test basic operations."""
        store = MemoryStore()

        store.set("usage_data", {"a.com": 3})
        assert store.get("usage_data") == {"a.com": 3}

        store.delete("usage_data", "missing")
        assert store.get("usage_data") is None

    def test_values_are_copied(self):
        """Test later mutation of the caller's object does not leak into the store."""
        store = MemoryStore()
        value = {"a.com": 1}

        store.set("usage_data", value)
        value["a.com"] = 99

        assert store.get("usage_data") == {"a.com": 1}

    def test_unserializable_value(self):
        """Test values that cannot be serialized raise PersistenceError."""
        store = MemoryStore()

        with pytest.raises(PersistenceError) as exc_info:
            store.set("promoted_sites", {"a.com"})

        assert exc_info.value.operation == "set"
        assert exc_info.value.key == "promoted_sites"


class TestJsonFileStore:
    """Tests for JsonFileStore."""

    def test_values_survive_new_instance(self, tmp_path):
        """Test data is read back by a fresh store on the same file."""
        # Given: A value written by one store
        path = tmp_path / "usage.json"
        JsonFileStore(path).set("usage_data", {"nytimes.com": 10})

        # When: Reading with another instance
        value = JsonFileStore(path).get("usage_data")

        # Then: Same value, file is plain JSON
        assert value == {"nytimes.com": 10}
        assert json.loads(path.read_text(encoding="utf-8")) == {"usage_data": {"nytimes.com": 10}}

    def test_parent_directory_created(self, tmp_path):
        """Test missing parent directories are created on write."""
        path = tmp_path / "data" / "nested" / "usage.json"

        JsonFileStore(path).set("promoted_sites", ["a.com"])

        assert path.exists()

    def test_missing_file_reads_as_empty(self, tmp_path):
        """Test get on a missing file returns None."""
        assert JsonFileStore(tmp_path / "none.json").get("usage_data") is None

    def test_delete(self, tmp_path):
        """Test delete removes only the given keys."""
        store = JsonFileStore(tmp_path / "usage.json")
        store.set("usage_data", {"a.com": 1})
        store.set("promoted_sites", ["a.com"])
        store.set("other", 1)

        store.delete("usage_data", "promoted_sites")

        assert store.get("usage_data") is None
        assert store.get("promoted_sites") is None
        assert store.get("other") == 1

    def test_corrupt_file(self, tmp_path):
        """Test an undecodable file raises PersistenceError."""
        path = tmp_path / "usage.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(PersistenceError, match="cannot read"):
            JsonFileStore(path).get("usage_data")

    def test_non_object_document(self, tmp_path):
        """Test a JSON document that is not an object raises PersistenceError."""
        path = tmp_path / "usage.json"
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(PersistenceError, match="does not hold a JSON object"):
            JsonFileStore(path).get("usage_data")

    def test_failed_write_leaves_file_intact(self, tmp_path):
        """Test a failed write keeps the previous document and leaves no temp file."""
        # Given: A stored value
        path = tmp_path / "usage.json"
        store = JsonFileStore(path)
        store.set("usage_data", {"a.com": 1})

        # When: Writing an unserializable value
        with pytest.raises(PersistenceError):
            store.set("promoted_sites", {"a.com"})

        # Then: Previous content intact, only the document remains
        assert store.get("usage_data") == {"a.com": 1}
        assert [p.name for p in tmp_path.iterdir()] == ["usage.json"]
