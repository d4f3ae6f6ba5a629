from fastapi import APIRouter, Depends, HTTPException, Path, Response, status

from ephemeral_notes.api.deps import get_note_context
from ephemeral_notes.backend import Backend, get_backend
from ephemeral_notes.models.notes import NoteCreate, NoteOut, PublicNoteOut
from ephemeral_notes.notes import service
from ephemeral_notes.notes.lifecycle import utc_now
from ephemeral_notes.notes.service import (
    AuthenticationRequired,
    NoteContext,
    NoteValidationError,
    describe_storage_error,
)
from ephemeral_notes.storage.document_store import StorageError
from ephemeral_notes.storage.event_log import Event

router = APIRouter(prefix="/notes", tags=["notes"])

NOTE_ID_PATTERN = r"^[A-Za-z0-9]{1,64}$"


@router.post("", response_model=NoteOut, status_code=201)
def create_note(
    payload: NoteCreate,
    response: Response,
    ctx: NoteContext = Depends(get_note_context),
    backend: Backend = Depends(get_backend),
) -> NoteOut:
    now = utc_now()
    try:
        note = service.create_note(ctx, payload.content, now=now)
    except NoteValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except AuthenticationRequired as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=describe_storage_error("Could not create note.", exc),
        )

    backend.events.emit(Event(
        event_type="NOTE_CREATED",
        user_id=note.user_id,
        note_id=note.id,
        meta={"expires_at": note.expires_at.isoformat()},
    ))

    view = service.view_of(note, ctx.settings, now)
    response.headers["Location"] = f"/notes/{note.id}"
    return NoteOut(**view.to_dict())


@router.get("", response_model=list[NoteOut])
def list_notes(ctx: NoteContext = Depends(get_note_context)) -> list[NoteOut]:
    try:
        views = service.list_notes(ctx)
    except AuthenticationRequired as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=describe_storage_error("Could not load notes.", exc),
        )
    return [NoteOut(**v.to_dict()) for v in views]


@router.get("/{note_id}", response_model=PublicNoteOut)
def get_public_note(
    note_id: str = Path(pattern=NOTE_ID_PATTERN),
    backend: Backend = Depends(get_backend),
) -> PublicNoteOut:
    try:
        view = service.get_public_note(backend.notes, backend.settings, note_id)
    except StorageError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=describe_storage_error("Failed to load note.", exc),
        )
    if view is None:
        raise HTTPException(status_code=404, detail="Note not found")
    return PublicNoteOut(**view.to_dict())
