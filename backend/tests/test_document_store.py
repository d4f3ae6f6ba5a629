from pathlib import Path

import pytest

from ephemeral_notes.storage.document_store import DocumentStore, StorageError


@pytest.fixture()
def store(tmp_path):
    return DocumentStore(tmp_path)


def test_get_missing_returns_none(store):
    assert store.get("notes", "nope") is None


def test_create_is_exclusive(store):
    store.create("notes", "abc", {"content": "first"})

    with pytest.raises(StorageError) as err:
        store.create("notes", "abc", {"content": "second"})
    assert err.value.code == "already-exists"

    # nothing was overwritten
    assert store.get("notes", "abc") == {"content": "first"}


def test_set_overwrites_and_delete_removes(store):
    store.set("users", "u1", {"email": "a@example.com"})
    store.set("users", "u1", {"email": "b@example.com"})
    assert store.get("users", "u1") == {"email": "b@example.com"}

    assert store.delete("users", "u1") is True
    assert store.delete("users", "u1") is False
    assert store.get("users", "u1") is None


def test_query_is_an_equality_filter(store):
    store.create("notes", "n1", {"user_id": "a"})
    store.create("notes", "n2", {"user_id": "b"})
    store.create("notes", "n3", {"user_id": "a"})

    ids = sorted(d.id for d in store.query("notes", "user_id", "a"))
    assert ids == ["n1", "n3"]
    assert store.query("notes", "user_id", "zzz") == []
    assert store.query("empty", "user_id", "a") == []


@pytest.mark.parametrize("key", ["", "../escape", "a/b", "with space", "dots.json"])
def test_unsafe_keys_are_rejected(store, key):
    with pytest.raises(ValueError):
        store.get("notes", key)


def test_corrupted_documents_are_skipped_by_queries(store, tmp_path):
    store.create("notes", "good", {"user_id": "a"})
    (tmp_path / "collections" / "notes" / "bad.json").write_text("{not json", encoding="utf-8")

    assert [d.id for d in store.query("notes", "user_id", "a")] == ["good"]

    with pytest.raises(StorageError) as err:
        store.get("notes", "bad")
    assert err.value.code == "data-loss"


def test_subscription_gets_initial_snapshot_and_updates(store):
    store.create("notes", "n1", {"user_id": "a"})
    snapshots = []

    sub = store.subscribe("notes", "user_id", "a", lambda docs: snapshots.append(sorted(d.id for d in docs)))
    assert snapshots == [["n1"]]

    store.create("notes", "n2", {"user_id": "a"})
    assert snapshots[-1] == ["n1", "n2"]

    # writes that don't touch the query leave the subscriber alone
    store.create("notes", "n3", {"user_id": "b"})
    store.create("other", "n4", {"user_id": "a"})
    assert len(snapshots) == 2

    store.delete("notes", "n1")
    assert snapshots[-1] == ["n2"]

    sub.unsubscribe()
    sub.unsubscribe()
    store.create("notes", "n5", {"user_id": "a"})
    assert len(snapshots) == 3
    assert sub.active is False


def test_subscription_reports_query_errors(store, monkeypatch):
    errors = []
    updates = []
    store.subscribe("notes", "user_id", "a", updates.append, errors.append)

    def broken(*args, **kwargs):
        raise StorageError("unavailable", "disk went away")

    monkeypatch.setattr(store, "query", broken)
    store.create("notes", "n1", {"user_id": "a"})

    assert len(updates) == 1
    assert [e.code for e in errors] == ["unavailable"]


def test_failing_subscriber_does_not_fail_the_write(store):
    errors = []

    def explode(docs):
        if docs:
            raise KeyError("content")

    store.subscribe("notes", "user_id", "a", explode, errors.append)
    seen = []
    store.subscribe("notes", "user_id", "a", seen.append)

    doc = store.create("notes", "n1", {"user_id": "a"})

    assert doc.id == "n1"
    assert store.get("notes", "n1") == {"user_id": "a"}
    assert [e.code for e in errors] == ["internal"]
    # the other subscriber still got its snapshot
    assert [d.id for d in seen[-1]] == ["n1"]


def test_failing_error_callback_is_contained(store):
    def explode(_):
        raise RuntimeError("loop closed")

    store.subscribe("notes", "user_id", "a", lambda docs: explode(docs) if docs else None, explode)
    store.create("notes", "n1", {"user_id": "a"})
    assert store.get("notes", "n1") == {"user_id": "a"}


def test_document_removed_before_read_counts_as_missing(store, monkeypatch):
    store.create("notes", "n1", {"user_id": "a"})
    store.create("notes", "n2", {"user_id": "a"})
    store.create("notes", "n3", {"user_id": "b"})
    real_read_text = Path.read_text

    def deleted_underneath(self, *args, **kwargs):
        # a concurrent delete lands between locating the file and reading it
        if self.name in ("n1.json", "n3.json"):
            self.unlink(missing_ok=True)
        return real_read_text(self, *args, **kwargs)

    monkeypatch.setattr(Path, "read_text", deleted_underneath)

    assert store.get("notes", "n3") is None
    assert [d.id for d in store.scan("notes")] == ["n2"]
