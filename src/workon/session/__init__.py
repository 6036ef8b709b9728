"""Session entries and the session store."""

from .models import CLIENT_CALLBACK, IMMEDIATE_PID, SessionEntry
from .store import (
    SessionBusyError,
    SessionCorruptError,
    SessionLedger,
    SessionNotFoundError,
    SessionStore,
    SessionStoreError,
    SessionWriteError,
    list_session_files,
)

__all__ = [
    "CLIENT_CALLBACK",
    "IMMEDIATE_PID",
    "SessionBusyError",
    "SessionCorruptError",
    "SessionEntry",
    "SessionLedger",
    "SessionNotFoundError",
    "SessionStore",
    "SessionStoreError",
    "SessionWriteError",
    "list_session_files",
]
