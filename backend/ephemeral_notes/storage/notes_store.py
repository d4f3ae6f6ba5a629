import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ephemeral_notes.storage.document_store import (
    Document,
    DocumentStore,
    ErrorCallback,
    StorageError,
    Subscription,
)

logger = logging.getLogger("ephemeral_notes.storage")

NOTES = "notes"


def _parse_dt(s: str) -> datetime:
    dt = datetime.fromisoformat(s)
    # timestamps written without an offset are read as UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Note:
    id: str
    content: str
    user_id: Optional[str]
    created_at: datetime
    expires_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_document(cls, doc: Document) -> "Note":
        """Impose the note shape on a raw document.

        Raises ``StorageError("data-loss")`` when a field is missing or unreadable.
        """
        raw = doc.data
        try:
            content = raw["content"]
            created_at = _parse_dt(raw["created_at"])
            expires_at = _parse_dt(raw["expires_at"])
        except KeyError as exc:
            raise StorageError("data-loss", f"Malformed note {doc.id}: missing {exc.args[0]}") from exc
        except (TypeError, ValueError) as exc:
            raise StorageError("data-loss", f"Malformed note {doc.id}: {exc}") from exc
        if not isinstance(content, str):
            raise StorageError("data-loss", f"Malformed note {doc.id}: content is not text")
        return cls(
            id=doc.id,
            content=content,
            user_id=raw.get("user_id"),
            created_at=created_at,
            expires_at=expires_at,
        )


def _well_formed(docs: list[Document]) -> list[Note]:
    out: list[Note] = []
    for doc in docs:
        try:
            out.append(Note.from_document(doc))
        except StorageError as exc:
            logger.warning("STORE_SKIP_MALFORMED collection=%s key=%s reason=%s", NOTES, doc.id, exc.message)
    return out


class NotesStore:
    """Typed view over the ``notes`` collection.

    Listings skip documents that do not have the note shape; a single lookup
    reports them as ``data-loss``.
    """

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def create_note(self, note: Note) -> Note:
        self.documents.create(NOTES, note.id, note.to_dict())
        return note

    def get_note(self, note_id: str) -> Note | None:
        raw = self.documents.get(NOTES, note_id)
        if raw is None:
            return None
        return Note.from_document(Document(id=note_id, data=raw))

    def list_notes(self, user_id: str) -> list[Note]:
        return _well_formed(self.documents.query(NOTES, "user_id", user_id))

    def all_notes(self) -> list[Note]:
        return _well_formed(self.documents.scan(NOTES))

    def delete_note(self, note_id: str) -> bool:
        return self.documents.delete(NOTES, note_id)

    def subscribe_user_notes(
        self,
        user_id: str,
        on_update: Callable[[list[Note]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        return self.documents.subscribe(
            NOTES,
            "user_id",
            user_id,
            lambda docs: on_update(_well_formed(docs)),
            on_error,
        )
