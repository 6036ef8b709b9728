"""Lock-protected, atomically written session file."""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import time
from collections import OrderedDict
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, TextIO

from pydantic import ValidationError

from .models import SessionEntry

logger = logging.getLogger(__name__)


class SessionStoreError(RuntimeError):
    """Base class for session store errors."""


class SessionNotFoundError(SessionStoreError):
    """No session file exists for the project."""


class SessionCorruptError(SessionStoreError):
    """The session file was malformed and has been removed."""


class SessionBusyError(SessionStoreError):
    """Another workon process holds the session lock."""


class SessionWriteError(SessionStoreError):
    """The session file could not be written."""


class SessionLedger:
    """In-memory session entries keyed by ``(name, pid)``.

    Insertion order is preserved so that the serialized array follows spawn
    order; callback enrichments update entries in place.
    """

    def __init__(self, entries: Iterable[SessionEntry] = ()) -> None:
        self._entries: OrderedDict[tuple[str, int], SessionEntry] = OrderedDict()
        for entry in entries:
            self.upsert(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def _unenriched_key(self, name: str) -> tuple[str, int] | None:
        for key, existing in self._entries.items():
            if existing.name == name and not existing.has_window:
                return key
        return None

    def _pidless_window_key(self, name: str) -> tuple[str, int] | None:
        key = (name, 0)
        existing = self._entries.get(key)
        return key if existing is not None and existing.has_window else None

    def _rekey(self, old: tuple[str, int], entry: SessionEntry) -> SessionEntry:
        stored = self._entries[old].merged(entry)
        self._entries = OrderedDict(
            (stored.key, stored) if key == old else (key, value) for key, value in self._entries.items()
        )
        return stored

    def upsert(self, entry: SessionEntry) -> SessionEntry:
        """Insert ``entry`` or merge it into the record of the same process."""

        key = entry.key
        if key not in self._entries:
            if entry.pid == 0 and entry.has_window:
                # clients that expose no pid enrich the oldest bare record of the resource
                key = self._unenriched_key(entry.name) or key
            elif entry.pid > 0:
                # the pid may arrive after a pidless callback was already stored
                pending = self._pidless_window_key(entry.name)
                if pending is not None:
                    return self._rekey(pending, entry)

        existing = self._entries.get(key)
        stored = existing.merged(entry) if existing is not None else entry
        self._entries[key] = stored
        return stored

    def entries(self) -> list[SessionEntry]:
        return list(self._entries.values())


class SessionStore:
    """Durable session entries for one project root."""

    def __init__(self, path: Path, *, guard_timeout: float = 5.0) -> None:
        self._path = Path(path)
        self._guard_timeout = guard_timeout
        self._lock_held = False
        self._discard_lock = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._path.with_name(self._path.name + ".lock")

    @property
    def guard_path(self) -> Path:
        return self._path.with_name(self._path.name + ".wlock")

    def exists(self) -> bool:
        return self._path.is_file()

    def _parse(self, raw: str) -> list[SessionEntry]:
        if not raw.strip():
            return []
        document = json.loads(raw)
        if not isinstance(document, list):
            raise ValueError("session document is not an array")
        return [SessionEntry.model_validate(item) for item in document]

    def read(self) -> list[SessionEntry]:
        """Return all entries.

        Raises ``SessionNotFoundError`` when there is no session file and
        ``SessionCorruptError`` (after deleting the file) when its content is
        not a UTF-8 JSON array of entries.
        """

        try:
            raw = self._path.read_bytes()
        except FileNotFoundError as exc:
            raise SessionNotFoundError(f"No session file at {self._path}") from exc

        try:
            return self._parse(raw.decode("utf-8"))
        except (ValueError, ValidationError) as exc:
            logger.warning("Corrupted session file, removing: %s", self._path, extra={"error": str(exc)})
            self._path.unlink(missing_ok=True)
            raise SessionCorruptError(f"Corrupted session file removed: {self._path}") from exc

    def count(self) -> int:
        """Entry count for polling; never raises and never deletes."""

        try:
            return len(self._parse(self._path.read_text(encoding="utf-8")))
        except (OSError, ValueError, ValidationError):
            return 0

    def write_atomic(self, entries: Iterable[SessionEntry]) -> None:
        """Replace the session file with ``entries`` in a single rename."""

        payload = [entry.to_json() for entry in entries]
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SessionWriteError(f"Cannot create session directory: {self._path.parent}") from exc

        fd, temp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_name, self._path)
        except OSError as exc:
            Path(temp_name).unlink(missing_ok=True)
            raise SessionWriteError(f"Cannot write session file: {self._path}: {exc}") from exc

    @contextmanager
    def lock(self) -> Iterator["SessionStore"]:
        """Hold the exclusive session lock or fail fast with ``SessionBusyError``.

        When ``delete`` runs while the lock is held, the lock file is removed
        just before it is released.
        """

        self._path.parent.mkdir(parents=True, exist_ok=True)
        handle = _acquire(self.lock_path, timeout=0)
        if handle is None:
            raise SessionBusyError("Session file busy (another workon process may be running)")

        self._lock_held = True
        self._discard_lock = False
        try:
            yield self
        finally:
            self._lock_held = False
            _release(handle, self.lock_path, discard=self._discard_lock)

    @contextmanager
    def _mutation_guard(self, *, discard: bool = False) -> Iterator[None]:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        handle = _acquire(self.guard_path, timeout=self._guard_timeout)
        if handle is None:
            raise SessionBusyError(f"Timed out waiting to update {self._path}")
        try:
            yield
        finally:
            _release(handle, self.guard_path, discard=discard)

    def record(self, entry: SessionEntry) -> SessionEntry:
        """Merge ``entry`` into the session file and return the stored record."""

        with self._mutation_guard():
            try:
                entries = self.read()
            except SessionNotFoundError:
                entries = []
            except SessionCorruptError:
                entries = []

            ledger = SessionLedger(entries)
            before = len(ledger)
            stored = ledger.upsert(entry)
            self.write_atomic(ledger.entries())

        logger.info(
            "Session updated",
            extra={
                "resource": stored.name,
                "pid": stored.pid,
                "tracking_method": stored.tracking_method,
                "merged": len(ledger) == before,
            },
        )
        return stored

    def delete(self) -> None:
        """Remove the session file and its lock files.

        Lock files are only removed by their holder. The invocation lock file
        goes away when this store's ``lock`` is released, or right away when
        nobody holds it; a lock held by another process is left alone.
        """

        if not self._path.parent.is_dir():
            return
        with self._mutation_guard(discard=True):
            self._path.unlink(missing_ok=True)

        if self._lock_held:
            self._discard_lock = True
            return
        if self.lock_path.exists():
            handle = _acquire(self.lock_path, timeout=0)
            if handle is not None:
                _release(handle, self.lock_path, discard=True)


def _acquire(path: Path, *, timeout: float) -> TextIO | None:
    """Take an exclusive ``flock`` on ``path``; ``None`` once ``timeout`` passes."""

    deadline = time.monotonic() + timeout
    while True:
        handle = path.open("a+", encoding="utf-8")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            if time.monotonic() >= deadline:
                return None
            time.sleep(0.02)
            continue

        if _same_file(handle, path):
            return handle
        # the previous holder unlinked this file; lock its replacement instead
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        handle.close()


def _same_file(handle: TextIO, path: Path) -> bool:
    try:
        return os.fstat(handle.fileno()).st_ino == path.stat().st_ino
    except FileNotFoundError:
        return False


def _release(handle: TextIO, path: Path, *, discard: bool) -> None:
    try:
        if discard:
            path.unlink(missing_ok=True)
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    finally:
        handle.close()


def list_session_files(cache_dir: Path) -> list[Path]:
    """Return every session file in ``cache_dir``, sorted."""

    cache_dir = Path(cache_dir)
    if not cache_dir.is_dir():
        return []
    return sorted(path for path in cache_dir.glob("*.json") if path.is_file())


__all__ = [
    "SessionBusyError",
    "SessionCorruptError",
    "SessionLedger",
    "SessionNotFoundError",
    "SessionStore",
    "SessionStoreError",
    "SessionWriteError",
    "list_session_files",
]
