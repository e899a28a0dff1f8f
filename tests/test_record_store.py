"""Tests for the record store adapters."""

import json

import pytest

from presale.persistence.record_store import (
    DocumentNotFound,
    InMemoryRecordStore,
    JsonFileRecordStore,
    PreconditionFailed,
    StoreError,
    StoreQuery,
)


def _doc(doc_id: str, handle: str = "a", created: str = "2026-01-01", status: str = "PENDING") -> dict:
    return {"id": doc_id, "identity_handle": handle, "created_utc": created, "status": status}


@pytest.fixture
def store() -> InMemoryRecordStore:
    s = InMemoryRecordStore()
    s.put("subs", "1", _doc("1", created="2026-01-01"))
    s.put("subs", "2", _doc("2", created="2026-01-03", handle="b"))
    s.put("subs", "3", _doc("3", created="2026-01-02"))
    return s


class TestQuery:
    def test_filter_order_limit(self, store: InMemoryRecordStore) -> None:
        rows = store.query(StoreQuery("subs", order_by="created_utc", descending=True, limit=2))
        assert [r["id"] for r in rows] == ["2", "3"]

    def test_equality_filter(self, store: InMemoryRecordStore) -> None:
        rows = store.query(StoreQuery("subs", where=(("identity_handle", "a"),)))
        assert {r["id"] for r in rows} == {"1", "3"}

    def test_missing_order_field_sorts_last(self, store: InMemoryRecordStore) -> None:
        store.put("subs", "4", {"id": "4", "identity_handle": "a"})
        rows = store.query(StoreQuery("subs", order_by="created_utc", descending=True))
        assert rows[-1]["id"] == "4"

    def test_mixed_type_order_values(self, store: InMemoryRecordStore) -> None:
        store.put("subs", "4", {"id": "4", "identity_handle": "a", "created_utc": 12345})
        rows = store.query(StoreQuery("subs", order_by="created_utc", descending=True))
        assert {r["id"] for r in rows} == {"1", "2", "3", "4"}

    def test_unknown_collection_empty(self, store: InMemoryRecordStore) -> None:
        assert store.get_all("nothing") == []

    def test_reads_are_copies(self, store: InMemoryRecordStore) -> None:
        store.get("subs", "1")["status"] = "MUTATED"
        assert store.get("subs", "1")["status"] == "PENDING"


class TestWatch:
    def test_initial_snapshot_delivered(self, store: InMemoryRecordStore) -> None:
        seen: list = []
        store.watch(StoreQuery("subs"), seen.append)
        assert len(seen) == 1
        assert len(seen[0]) == 3

    def test_change_redelivers_full_set(self, store: InMemoryRecordStore) -> None:
        seen: list = []
        store.watch(StoreQuery("subs", where=(("status", "PENDING"),)), seen.append)
        store.update_fields("subs", "1", {"status": "APPROVED"})
        assert {d["id"] for d in seen[-1]} == {"2", "3"}

    def test_other_collection_not_notified(self, store: InMemoryRecordStore) -> None:
        seen: list = []
        store.watch(StoreQuery("subs"), seen.append)
        store.put("other", "x", {"id": "x"})
        assert len(seen) == 1

    def test_unsubscribe_stops_delivery(self, store: InMemoryRecordStore) -> None:
        seen: list = []
        unsubscribe = store.watch(StoreQuery("subs"), seen.append)
        unsubscribe()
        unsubscribe()
        store.put("subs", "9", _doc("9"))
        assert len(seen) == 1
        assert store.watch_count == 0

    def test_query_failure_goes_to_error_callback(self) -> None:
        class Broken(InMemoryRecordStore):
            def query(self, query):
                raise StoreError("boom")

        errors: list = []
        Broken().watch(StoreQuery("subs"), lambda rows: None, errors.append)
        assert isinstance(errors[0], StoreError)

    def test_failing_callback_isolated_from_writer(self, store: InMemoryRecordStore) -> None:
        errors: list = []
        later: list = []

        def fragile(rows: list) -> None:
            if len(rows) > 3:
                raise RuntimeError("render failed")

        store.watch(StoreQuery("subs"), fragile, errors.append)
        store.watch(StoreQuery("subs"), later.append)

        store.put("subs", "9", _doc("9"))
        assert store.get("subs", "9") is not None
        assert [str(e) for e in errors] == ["render failed"]
        assert len(later[-1]) == 4

    def test_failing_callback_without_error_handler(self, store: InMemoryRecordStore) -> None:
        def fragile(rows: list) -> None:
            raise RuntimeError("render failed")

        store.watch(StoreQuery("subs"), fragile)
        store.update_fields("subs", "1", {"status": "APPROVED"})
        assert store.get("subs", "1")["status"] == "APPROVED"

    def test_failing_error_handler_is_contained(self, store: InMemoryRecordStore) -> None:
        def fragile(rows: list) -> None:
            raise RuntimeError("render failed")

        def broken_handler(error: Exception) -> None:
            raise RuntimeError("handler failed")

        store.watch(StoreQuery("subs"), fragile, broken_handler)
        store.put("subs", "9", _doc("9"))
        assert store.get("subs", "9") is not None


class TestUpdateFields:
    def test_patch_keeps_other_fields(self, store: InMemoryRecordStore) -> None:
        store.update_fields("subs", "1", {"status": "REJECTED", "reviewer": "m"})
        doc = store.get("subs", "1")
        assert doc["status"] == "REJECTED"
        assert doc["created_utc"] == "2026-01-01"

    def test_missing_document(self, store: InMemoryRecordStore) -> None:
        with pytest.raises(DocumentNotFound):
            store.update_fields("subs", "nope", {"status": "APPROVED"})

    def test_precondition_mismatch(self, store: InMemoryRecordStore) -> None:
        store.update_fields("subs", "1", {"status": "APPROVED"})
        with pytest.raises(PreconditionFailed):
            store.update_fields(
                "subs", "1", {"status": "REJECTED"}, expected={"status": "PENDING"},
            )
        assert store.get("subs", "1")["status"] == "APPROVED"

    def test_missing_field_compares_as_none(self, store: InMemoryRecordStore) -> None:
        store.update_fields("subs", "1", {"reviewer": "m"}, expected={"reviewed_utc": None})

    def test_precondition_accepts_any_of_a_set(self, store: InMemoryRecordStore) -> None:
        store.put("subs", "5", {"id": "5", "identity_handle": "a"})
        allowed = frozenset({"PENDING", None})
        store.update_fields("subs", "5", {"status": "APPROVED"}, expected={"status": allowed})
        store.update_fields("subs", "1", {"status": "REJECTED"}, expected={"status": allowed})
        with pytest.raises(PreconditionFailed):
            store.update_fields("subs", "5", {"status": "REJECTED"}, expected={"status": allowed})
        assert store.get("subs", "5")["status"] == "APPROVED"


class TestReplacePartition:
    def test_replaces_only_matching_key(self, store: InMemoryRecordStore) -> None:
        store.replace_partition("subs", "identity_handle", "a", [_doc("5")])
        ids = {d["id"] for d in store.get_all("subs")}
        assert ids == {"2", "5"}

    def test_rejects_foreign_documents(self, store: InMemoryRecordStore) -> None:
        with pytest.raises(ValueError):
            store.replace_partition("subs", "identity_handle", "a", [_doc("5", handle="b")])
        assert len(store.get_all("subs")) == 3

    def test_rejects_documents_without_id(self, store: InMemoryRecordStore) -> None:
        with pytest.raises(ValueError):
            store.replace_partition("subs", "identity_handle", "a", [{"identity_handle": "a"}])


class TestJsonFileRecordStore:
    def test_round_trip_through_file(self, tmp_path) -> None:
        path = tmp_path / "store" / "records.json"
        store = JsonFileRecordStore(path)
        store.put("subs", "1", _doc("1"))
        store.update_fields("subs", "1", {"status": "APPROVED"})

        reopened = JsonFileRecordStore(path)
        assert reopened.get("subs", "1")["status"] == "APPROVED"
        assert json.loads(path.read_text())["subs"]["1"]["id"] == "1"

    def test_failed_write_changes_nothing(self, tmp_path) -> None:
        path = tmp_path / "records.json"
        store = JsonFileRecordStore(path)
        store.put("subs", "1", _doc("1"))
        # A directory where the temp file should go makes the write fail.
        (tmp_path / "records.json.tmp").mkdir()
        with pytest.raises(StoreError):
            store.put("subs", "2", _doc("2"))
        assert store.get("subs", "2") is None
        assert "2" not in json.loads(path.read_text())["subs"]

    def test_malformed_file_rejected(self, tmp_path) -> None:
        path = tmp_path / "records.json"
        path.write_text("[]")
        with pytest.raises(ValueError):
            JsonFileRecordStore(path)
