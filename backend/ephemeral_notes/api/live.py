import asyncio
import logging
from typing import Any, Dict, Optional, Set

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.concurrency import run_in_threadpool

from ephemeral_notes.auth.errors import AuthError
from ephemeral_notes.backend import get_backend
from ephemeral_notes.logging_setup import mask_user_id
from ephemeral_notes.models.notes import NoteOut
from ephemeral_notes.notes.lifecycle import utc_now
from ephemeral_notes.notes.service import sort_newest_first, view_of
from ephemeral_notes.storage.document_store import StorageError

logger = logging.getLogger("ephemeral_notes.ws")

router = APIRouter(tags=["live"])

UNAUTHORIZED_CLOSE_CODE = 4401


class ConnectionManager:
    def __init__(self):
        self.active: Dict[str, Set[WebSocket]] = {}

    async def connect(self, uid: str, websocket: WebSocket):
        await websocket.accept()
        self.active.setdefault(uid, set()).add(websocket)

    def disconnect(self, uid: str, websocket: WebSocket):
        sockets = self.active.get(uid)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            self.active.pop(uid, None)

    def count(self) -> int:
        return sum(len(s) for s in self.active.values())


live_connections = ConnectionManager()


async def _pump(websocket: WebSocket, queue: "asyncio.Queue[dict[str, Any]]") -> None:
    while True:
        payload = await queue.get()
        await websocket.send_json(payload)


async def _drain(websocket: WebSocket) -> None:
    # client frames are ignored; this only notices the close
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws/notes")
async def live_notes(websocket: WebSocket, token: Optional[str] = Query(default=None)):
    backend = get_backend()
    try:
        identity, _ = await run_in_threadpool(backend.identity.resolve_token, token or "")
    except AuthError as exc:
        logger.warning("AUTH_DENY reason=%s channel=ws", exc.code)
        await websocket.close(code=UNAUTHORIZED_CLOSE_CODE)
        return

    await live_connections.connect(identity.uid, websocket)
    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[dict[str, Any]]" = asyncio.Queue()
    settings = backend.settings

    def on_update(notes) -> None:
        now = utc_now()
        views = [NoteOut(**view_of(n, settings, now).to_dict()) for n in sort_newest_first(notes)]
        payload = {"type": "snapshot", "notes": jsonable_encoder(views)}
        loop.call_soon_threadsafe(queue.put_nowait, payload)

    def on_error(exc: StorageError) -> None:
        payload = {"type": "error", "code": exc.code, "message": exc.message}
        loop.call_soon_threadsafe(queue.put_nowait, payload)

    subscription = await run_in_threadpool(
        backend.notes.subscribe_user_notes, identity.uid, on_update, on_error
    )
    logger.info("LIVE_SUBSCRIBED uid=%s", mask_user_id(identity.uid))
    tasks = {asyncio.create_task(_pump(websocket, queue)), asyncio.create_task(_drain(websocket))}
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = None if task.cancelled() else task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("LIVE_SEND_FAILED uid=%s error=%s", mask_user_id(identity.uid), exc)
    finally:
        # also reached when the handler itself is cancelled
        for task in tasks:
            task.cancel()
        subscription.unsubscribe()
        live_connections.disconnect(identity.uid, websocket)
        logger.info("LIVE_UNSUBSCRIBED uid=%s", mask_user_id(identity.uid))
        await asyncio.wait(tasks)
