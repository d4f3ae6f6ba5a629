"""Process-wide backend handle.

Built once, on first use, under a lock. Concurrent callers share the same
instance; nothing re-initialises it implicitly. ``reset_backend()`` exists for
tests and for reconfiguring a running process.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from ephemeral_notes.auth.federated import FederatedSignIn, GoogleOAuthClient
from ephemeral_notes.auth.identity import IdentityProvider
from ephemeral_notes.config import Settings, get_settings
from ephemeral_notes.storage.document_store import DocumentStore
from ephemeral_notes.storage.event_log import EventLog
from ephemeral_notes.storage.notes_store import NotesStore
from ephemeral_notes.storage.users_store import RevokedTokens, UsersStore

logger = logging.getLogger("ephemeral_notes")


@dataclass
class Backend:
    settings: Settings
    documents: DocumentStore
    notes: NotesStore
    identity: IdentityProvider
    google: FederatedSignIn
    events: EventLog
    _unsubscribe_events: Callable[[], None]

    def close(self) -> None:
        self._unsubscribe_events()


def build_backend(settings: Settings, oauth_client: Optional[GoogleOAuthClient] = None) -> Backend:
    documents = DocumentStore(settings.data_dir)
    identity = IdentityProvider(UsersStore(documents), RevokedTokens(documents))
    events = EventLog(settings.data_dir)
    unsubscribe = identity.subscribe(events.on_identity_event)
    google = FederatedSignIn(oauth_client or GoogleOAuthClient(settings), identity)
    logger.info("BACKEND_READY data_dir=%s", settings.data_dir)
    return Backend(
        settings=settings,
        documents=documents,
        notes=NotesStore(documents),
        identity=identity,
        google=google,
        events=events,
        _unsubscribe_events=unsubscribe,
    )


_backend: Optional[Backend] = None
_backend_lock = threading.Lock()


def get_backend() -> Backend:
    global _backend
    if _backend is None:
        with _backend_lock:
            if _backend is None:
                _backend = build_backend(get_settings())
    return _backend


def set_backend(backend: Backend) -> None:
    global _backend
    with _backend_lock:
        if _backend is not None and _backend is not backend:
            _backend.close()
        _backend = backend


def reset_backend() -> None:
    global _backend
    with _backend_lock:
        if _backend is not None:
            _backend.close()
        _backend = None
