from datetime import datetime, timedelta, timezone

import pytest

from ephemeral_notes.auth.identity import Identity
from ephemeral_notes.config import Settings
from ephemeral_notes.models.notes import NoteOut, PublicNoteOut
from ephemeral_notes.notes import service
from ephemeral_notes.notes.service import (
    EXPIRED_PLACEHOLDER,
    AuthenticationRequired,
    NoteContext,
    NoteValidationError,
)
from ephemeral_notes.storage.document_store import DocumentStore, StorageError
from ephemeral_notes.storage.notes_store import Note, NotesStore

NOW = datetime(2026, 5, 1, 9, 30, tzinfo=timezone.utc)


def _identity(uid):
    return Identity(uid=uid, display_name=uid, email=f"{uid}@example.com", provider="password")


@pytest.fixture()
def notes(tmp_path):
    return NotesStore(DocumentStore(tmp_path))


@pytest.fixture()
def settings(tmp_path):
    return Settings(APP_DATA_DIR=str(tmp_path), NOTE_MAX_LENGTH=20, PUBLIC_BASE_URL="http://notes.test/")


def ctx_for(notes, settings, uid="u1"):
    return NoteContext(identity=_identity(uid) if uid else None, notes=notes, settings=settings)


def test_create_stamps_owner_and_thirty_day_expiry(notes, settings):
    note = service.create_note(ctx_for(notes, settings), "  hello  ", now=NOW)

    assert note.content == "hello"
    assert note.user_id == "u1"
    assert note.created_at == NOW
    assert note.expires_at - note.created_at == timedelta(days=30)

    stored = notes.get_note(note.id)
    assert stored == note


@pytest.mark.parametrize("content", ["", "   ", "\n\t ", None])
def test_empty_content_is_rejected_even_without_identity(notes, settings, content):
    for uid in ("u1", None):
        with pytest.raises(NoteValidationError, match="cannot be empty"):
            service.create_note(ctx_for(notes, settings, uid), content)
    assert notes.all_notes() == []


def test_length_limit_is_inclusive(notes, settings):
    ctx = ctx_for(notes, settings)
    assert service.create_note(ctx, "x" * 20).content == "x" * 20

    with pytest.raises(NoteValidationError, match="too long"):
        service.create_note(ctx, "x" * 21)
    assert len(notes.all_notes()) == 1


def test_missing_identity_is_rejected(notes, settings):
    with pytest.raises(AuthenticationRequired, match="logged in"):
        service.create_note(ctx_for(notes, settings, None), "hello")
    assert notes.all_notes() == []


def test_id_collision_is_rejected_not_overwritten(notes, settings, monkeypatch):
    monkeypatch.setattr(service, "generate_short_id", lambda length: "FIXEDID123")
    first = service.create_note(ctx_for(notes, settings, "u1"), "first")

    with pytest.raises(StorageError) as err:
        service.create_note(ctx_for(notes, settings, "u2"), "second")
    assert err.value.code == "already-exists"
    assert notes.get_note(first.id).content == "first"


def test_storage_error_message_carries_code_and_message():
    text = service.describe_storage_error("Could not create note.", StorageError("permission-denied", "nope"))
    assert text == "Could not create note. Code: permission-denied. Message: nope"


def test_list_is_scoped_to_owner_and_newest_first(notes, settings):
    a = ctx_for(notes, settings, "userA")
    b = ctx_for(notes, settings, "userB")
    older = service.create_note(a, "older", now=NOW - timedelta(days=2))
    newer = service.create_note(a, "newer", now=NOW - timedelta(days=1))
    service.create_note(b, "not yours", now=NOW)

    views = service.list_notes(a, now=NOW)
    assert [v.note.id for v in views] == [newer.id, older.id]
    assert all(v.note.user_id == "userA" for v in views)
    assert views[0].url == f"http://notes.test/notes/{newer.id}"
    assert views[0].expires_label == "Expires in 29 days"

    assert [v.note.content for v in service.list_notes(b, now=NOW)] == ["not yours"]


def test_list_requires_identity(notes, settings):
    with pytest.raises(AuthenticationRequired):
        service.list_notes(ctx_for(notes, settings, None))


def test_public_view_withholds_expired_content(notes, settings):
    note = Note(
        id="old1",
        content="secret",
        user_id="u1",
        created_at=NOW - timedelta(days=30, seconds=1),
        expires_at=NOW - timedelta(seconds=1),
    )
    notes.create_note(note)

    view = service.get_public_note(notes, settings, "old1", now=NOW)
    assert view.expired is True
    body = view.to_dict()
    assert body["content"] is None
    assert body["placeholder"] == EXPIRED_PLACEHOLDER
    assert body["expires_label"] == "Expired"

    # read-time only: the document is still stored as written
    assert notes.get_note("old1").content == "secret"


def test_public_view_of_live_note(notes, settings):
    note = service.create_note(ctx_for(notes, settings), "hello", now=NOW)
    view = service.get_public_note(notes, settings, note.id, now=NOW + timedelta(days=1))
    assert view.expired is False
    assert view.to_dict()["content"] == "hello"
    assert view.to_dict()["placeholder"] is None


def test_public_view_of_missing_note(notes, settings):
    assert service.get_public_note(notes, settings, "doesnotexist", now=NOW) is None


def test_purge_removes_only_expired_notes(notes, settings):
    ctx = ctx_for(notes, settings)
    old = service.create_note(ctx, "old", now=NOW - timedelta(days=31))
    boundary = service.create_note(ctx, "boundary", now=NOW - timedelta(days=30))
    fresh = service.create_note(ctx, "fresh", now=NOW - timedelta(days=1))

    assert service.purge_expired_notes(notes, now=NOW) == 2
    assert notes.get_note(old.id) is None
    assert notes.get_note(boundary.id) is None
    assert notes.get_note(fresh.id) is not None


def test_note_missing_a_field_is_data_loss_and_skipped_in_listings(notes, settings):
    ctx = ctx_for(notes, settings)
    notes.documents.set("notes", "legacy1", {"content": "old", "user_id": "u1", "created_at": NOW.isoformat()})
    good = service.create_note(ctx, "ok", now=NOW)

    with pytest.raises(StorageError) as err:
        service.get_public_note(notes, settings, "legacy1", now=NOW)
    assert err.value.code == "data-loss"
    assert "expires_at" in err.value.message

    assert [v.note.id for v in service.list_notes(ctx, now=NOW)] == [good.id]

    # purge leaves what it cannot read alone
    assert service.purge_expired_notes(notes, now=NOW + timedelta(days=31)) == 1
    assert notes.documents.get("notes", "legacy1") is not None


def test_unparsable_timestamp_is_data_loss(notes, settings):
    notes.documents.set("notes", "bad1", {
        "content": "x", "user_id": "u1", "created_at": "yesterday", "expires_at": NOW.isoformat(),
    })
    with pytest.raises(StorageError) as err:
        notes.get_note("bad1")
    assert err.value.code == "data-loss"


def test_timestamps_without_offset_are_read_as_utc(notes, settings):
    notes.documents.set("notes", "naive1", {
        "content": "x",
        "user_id": "u1",
        "created_at": "2026-01-01T00:00:00",
        "expires_at": "2026-01-31T00:00:00",
    })

    view = service.get_public_note(notes, settings, "naive1", now=NOW)
    assert view.note.expires_at == datetime(2026, 1, 31, tzinfo=timezone.utc)
    assert view.expired is True
    assert service.purge_expired_notes(notes, now=NOW) == 1


def test_live_listing_skips_malformed_neighbour(notes, settings):
    notes.documents.set("notes", "broken", {"user_id": "u1"})
    snapshots = []
    notes.subscribe_user_notes("u1", snapshots.append)
    assert snapshots == [[]]

    note = service.create_note(ctx_for(notes, settings), "valid", now=NOW)
    assert [n.id for n in snapshots[-1]] == [note.id]


def test_public_view_omits_owner_only_in_public_model(notes, settings):
    note = service.create_note(ctx_for(notes, settings), "hello", now=NOW)
    body = service.get_public_note(notes, settings, note.id, now=NOW).to_dict()

    assert "user_id" not in PublicNoteOut(**body).model_dump()
    assert NoteOut(**body).user_id == "u1"
