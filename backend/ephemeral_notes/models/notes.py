from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class NoteCreate(BaseModel):
    # length and emptiness are checked by the creation flow so each failure gets its own message
    content: str = ""


class PublicNoteOut(BaseModel):
    """What anyone holding the link sees; the owner is not disclosed."""

    id: str
    content: Optional[str]
    created_at: datetime
    expires_at: datetime
    expired: bool
    expires_label: str
    placeholder: Optional[str] = None
    url: str


class NoteOut(PublicNoteOut):
    user_id: Optional[str]
