from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ephemeral_notes.auth.identity import Identity
from ephemeral_notes.config import Settings
from ephemeral_notes.logging_setup import mask_user_id
from ephemeral_notes.notes.lifecycle import (
    compute_expiry,
    expiry_label,
    generate_short_id,
    is_expired,
    utc_now,
)
from ephemeral_notes.storage.document_store import StorageError
from ephemeral_notes.storage.notes_store import Note, NotesStore

logger = logging.getLogger("ephemeral_notes.notes")

EXPIRED_PLACEHOLDER = "This note has expired and is no longer available."


class NoteValidationError(Exception):
    pass


class AuthenticationRequired(Exception):
    pass


def describe_storage_error(prefix: str, exc: StorageError) -> str:
    return f"{prefix} Code: {exc.code or 'UNKNOWN'}. Message: {exc.message or 'An unexpected error occurred.'}"


@dataclass(frozen=True)
class NoteContext:
    """What a note flow may touch: the caller (if signed in) and the notes store."""

    identity: Optional[Identity]
    notes: NotesStore
    settings: Settings


@dataclass(frozen=True)
class NoteView:
    note: Note
    expired: bool
    expires_label: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        # expired content is withheld from every response; the stored document is untouched
        return {
            "id": self.note.id,
            "content": None if self.expired else self.note.content,
            "user_id": self.note.user_id,
            "created_at": self.note.created_at,
            "expires_at": self.note.expires_at,
            "expired": self.expired,
            "expires_label": self.expires_label,
            "placeholder": EXPIRED_PLACEHOLDER if self.expired else None,
            "url": self.url,
        }


def share_url(settings: Settings, note_id: str) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/notes/{note_id}"


def view_of(note: Note, settings: Settings, now: datetime) -> NoteView:
    return NoteView(
        note=note,
        expired=is_expired(note.expires_at, now),
        expires_label=expiry_label(note.expires_at, now),
        url=share_url(settings, note.id),
    )


def validate_content(content: Optional[str], max_length: int) -> str:
    text = (content or "").strip()
    if not text:
        raise NoteValidationError("Note content cannot be empty.")
    if len(text) > max_length:
        raise NoteValidationError("Note is too long.")
    return text


def create_note(ctx: NoteContext, content: Optional[str], now: Optional[datetime] = None) -> Note:
    text = validate_content(content, ctx.settings.NOTE_MAX_LENGTH)
    if ctx.identity is None:
        raise AuthenticationRequired("You must be logged in to create a note.")

    created_at = now or utc_now()
    note = Note(
        id=generate_short_id(ctx.settings.SHORT_ID_LENGTH),
        content=text,
        user_id=ctx.identity.uid,
        created_at=created_at,
        expires_at=compute_expiry(created_at, ctx.settings.NOTE_TTL_DAYS),
    )
    try:
        ctx.notes.create_note(note)
    except StorageError as exc:
        logger.error(
            "NOTE_CREATE_FAILED uid=%s code=%s message=%s",
            mask_user_id(ctx.identity.uid), exc.code, exc.message,
        )
        raise

    logger.info("NOTE_CREATED id=%s uid=%s", note.id, mask_user_id(ctx.identity.uid))
    return note


def sort_newest_first(notes: list[Note]) -> list[Note]:
    return sorted(notes, key=lambda n: n.created_at, reverse=True)


def list_notes(ctx: NoteContext, now: Optional[datetime] = None) -> list[NoteView]:
    if ctx.identity is None:
        raise AuthenticationRequired("You must be logged in to view your notes.")
    now = now or utc_now()
    notes = ctx.notes.list_notes(ctx.identity.uid)
    return [view_of(n, ctx.settings, now) for n in sort_newest_first(notes)]


def get_public_note(
    notes: NotesStore,
    settings: Settings,
    note_id: str,
    now: Optional[datetime] = None,
) -> Optional[NoteView]:
    note = notes.get_note(note_id)
    if note is None:
        return None
    return view_of(note, settings, now or utc_now())


def purge_expired_notes(notes: NotesStore, now: Optional[datetime] = None) -> int:
    now = now or utc_now()
    removed = 0
    for note in notes.all_notes():
        if is_expired(note.expires_at, now) and notes.delete_note(note.id):
            removed += 1
    logger.info("PURGE_EXPIRED removed=%d", removed)
    return removed
