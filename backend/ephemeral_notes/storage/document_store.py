"""File-backed document store.

Documents are untyped JSON objects grouped in collections and addressed by a
string key. The on-disk layout is::

    <base_dir>/collections/<collection>/<key>.json

Callers impose their own document shape; the store only guarantees atomic
single-document writes, exclusive creation and equality queries. Live
subscriptions re-run their query after every write that touches a matching
document and hand the fresh result to ``on_update``. A callback that raises is
logged and reported to its own ``on_error``; it never fails the write.
"""
import json
import logging
import os
import re
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

logger = logging.getLogger("ephemeral_notes.storage")

_NAME_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class StorageError(Exception):
    """A storage operation failed. ``code`` is a short machine-readable reason."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


def _from_os_error(exc: OSError) -> StorageError:
    if isinstance(exc, FileExistsError):
        return StorageError("already-exists", "Document already exists")
    if isinstance(exc, PermissionError):
        return StorageError("permission-denied", exc.strerror or str(exc))
    return StorageError("unavailable", exc.strerror or str(exc))


def _safe_name(name: str) -> str:
    # keys end up in file names; keep them to a path-safe alphabet
    if not name or not _NAME_RE.match(name):
        raise ValueError(f"Invalid document name: {name!r}")
    return name


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
        f.flush()
        os.fsync(f.fileno())
    tmp_path.replace(path)


def _exclusive_write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        # link() fails with FileExistsError when the target is already there
        os.link(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


@dataclass(frozen=True)
class Document:
    id: str
    data: dict[str, Any]


UpdateCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[StorageError], None]


class Subscription:
    """Handle returned by :meth:`DocumentStore.subscribe`."""

    def __init__(
        self,
        store: "DocumentStore",
        collection: str,
        field: str,
        value: Any,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
    ):
        self._store = store
        self.collection = collection
        self.field = field
        self.value = value
        self.on_update = on_update
        self.on_error = on_error
        self.active = True

    def matches(self, data: Optional[dict[str, Any]]) -> bool:
        return data is not None and data.get(self.field) == self.value

    def unsubscribe(self) -> None:
        self._store._remove_subscription(self)


class DocumentStore:
    def __init__(self, base_dir: Path):
        self.base_dir = base_dir
        # guards writes and subscriber bookkeeping; reentrant so callbacks may read
        self._lock = threading.RLock()
        self._subscriptions: list[Subscription] = []

    def _collection_dir(self, collection: str) -> Path:
        return self.base_dir / "collections" / _safe_name(collection)

    def _doc_path(self, collection: str, key: str) -> Path:
        return self._collection_dir(collection) / f"{_safe_name(key)}.json"

    def _read(self, path: Path, missing_ok: bool = False) -> Optional[dict[str, Any]]:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            # removed by a concurrent delete between lookup and read
            if missing_ok:
                return None
            raise _from_os_error(exc) from exc
        except json.JSONDecodeError as exc:
            raise StorageError("data-loss", f"Corrupted document {path.name}: {exc.msg}") from exc
        except OSError as exc:
            raise _from_os_error(exc) from exc
        if not isinstance(raw, dict):
            raise StorageError("data-loss", f"Corrupted document {path.name}: not an object")
        return raw

    def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        return self._read(self._doc_path(collection, key), missing_ok=True)

    def create(self, collection: str, key: str, data: dict[str, Any]) -> Document:
        """Write a new document; fails with ``already-exists`` instead of overwriting."""
        path = self._doc_path(collection, key)
        with self._lock:
            try:
                _exclusive_write_json(path, data)
            except OSError as exc:
                err = _from_os_error(exc)
                logger.error("STORE_CREATE_FAILED collection=%s key=%s code=%s", collection, key, err.code)
                raise err from exc
            self._notify(collection, None, data)
        return Document(id=key, data=dict(data))

    def set(self, collection: str, key: str, data: dict[str, Any]) -> Document:
        path = self._doc_path(collection, key)
        with self._lock:
            before = self.get(collection, key) if self._subscriptions else None
            try:
                _atomic_write_json(path, data)
            except OSError as exc:
                err = _from_os_error(exc)
                logger.error("STORE_SET_FAILED collection=%s key=%s code=%s", collection, key, err.code)
                raise err from exc
            self._notify(collection, before, data)
        return Document(id=key, data=dict(data))

    def delete(self, collection: str, key: str) -> bool:
        path = self._doc_path(collection, key)
        with self._lock:
            if not path.exists():
                return False
            before = self._read(path, missing_ok=True) if self._subscriptions else None
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise _from_os_error(exc) from exc
            self._notify(collection, before, None)
        return True

    def scan(self, collection: str) -> list[Document]:
        coll_dir = self._collection_dir(collection)
        if not coll_dir.exists():
            return []
        out: list[Document] = []
        for p in sorted(coll_dir.glob("*.json")):
            try:
                data = self._read(p, missing_ok=True)
            except StorageError as exc:
                if exc.code != "data-loss":
                    raise
                logger.warning("STORE_SKIP_CORRUPT collection=%s key=%s", collection, p.stem)
                continue
            if data is not None:
                out.append(Document(id=p.stem, data=data))
        return out

    def query(self, collection: str, field: str, value: Any) -> list[Document]:
        """Equality filter: every document whose ``field`` equals ``value``."""
        return [doc for doc in self.scan(collection) if doc.data.get(field) == value]

    def subscribe(
        self,
        collection: str,
        field: str,
        value: Any,
        on_update: UpdateCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        sub = Subscription(self, collection, field, value, on_update, on_error)
        with self._lock:
            self._subscriptions.append(sub)
            # first snapshot is delivered before subscribe() returns
            self._deliver(sub)
        return sub

    def _remove_subscription(self, sub: Subscription) -> None:
        with self._lock:
            sub.active = False
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def _deliver(self, sub: Subscription) -> None:
        if not sub.active:
            return
        try:
            docs = self.query(sub.collection, sub.field, sub.value)
        except StorageError as exc:
            logger.error("SUBSCRIPTION_QUERY_FAILED collection=%s code=%s", sub.collection, exc.code)
            self._report(sub, exc)
            return
        try:
            sub.on_update(docs)
        except Exception as exc:
            # runs inside the writer's call; the write itself already succeeded
            logger.exception("SUBSCRIPTION_CALLBACK_FAILED collection=%s", sub.collection)
            self._report(sub, StorageError("internal", f"Subscriber failed: {exc}"))

    def _report(self, sub: Subscription, err: StorageError) -> None:
        if sub.on_error is None:
            return
        try:
            sub.on_error(err)
        except Exception:
            logger.exception("SUBSCRIPTION_ERROR_CALLBACK_FAILED collection=%s", sub.collection)

    def _notify(
        self,
        collection: str,
        before: Optional[dict[str, Any]],
        after: Optional[dict[str, Any]],
    ) -> None:
        for sub in list(self._subscriptions):
            if sub.collection != collection:
                continue
            if sub.matches(before) or sub.matches(after):
                self._deliver(sub)
