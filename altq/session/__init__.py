from altq.session.revalidation import RevalidationStatus, revalidate_session
from altq.session.store import (
    InMemorySessionPersistence,
    JsonFileSessionPersistence,
    SessionPersistence,
    SessionStore,
)

__all__ = [
    "SessionStore",
    "SessionPersistence",
    "InMemorySessionPersistence",
    "JsonFileSessionPersistence",
    "RevalidationStatus",
    "revalidate_session",
]
