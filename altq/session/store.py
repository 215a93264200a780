"""
Session store: single owner of the current identity and bearer token.

The session is persisted through an injected SessionPersistence so it
survives reloads. Identity and token are always written as one record,
so storage can never hold one without the other. A record that is
missing a field or cannot be parsed is treated as no session at all.

Usage:
    store = SessionStore(JsonFileSessionPersistence())   # SESSION_FILE
    store.set(identity, token)
    session = store.get()
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from pydantic import ValidationError as SchemaValidationError

from altq.auth.errors import Unauthenticated
from altq.config import settings
from altq.schemas.identity_schema import Identity, Session

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[Session]], None]


class SessionPersistence(Protocol):
    """Durable key-value boundary for the session record."""

    def load_session(self) -> Optional[dict[str, Any]]: ...

    def save_session(self, identity: dict[str, Any], token: str) -> None: ...

    def clear_session(self) -> None: ...


class InMemorySessionPersistence:
    """Process-local persistence. Used in tests and for ephemeral sessions."""

    def __init__(self, record: Optional[dict[str, Any]] = None) -> None:
        self.record = record

    def load_session(self) -> Optional[dict[str, Any]]:
        return None if self.record is None else dict(self.record)

    def save_session(self, identity: dict[str, Any], token: str) -> None:
        self.record = {"identity": identity, "token": token}

    def clear_session(self) -> None:
        self.record = None


class JsonFileSessionPersistence:
    """Stores the session as one JSON document, replaced atomically."""

    def __init__(self, path: Optional[str | Path] = None) -> None:
        self.path = Path(path or settings.session_file)

    def load_session(self) -> Optional[dict[str, Any]]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read session file %s: %s", self.path, exc)
            return None
        try:
            record = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Session file %s is not valid JSON", self.path)
            return None
        return record if isinstance(record, dict) else None

    def save_session(self, identity: dict[str, Any], token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"identity": identity, "token": token})
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".session-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def clear_session(self) -> None:
        self.path.unlink(missing_ok=True)


class SessionStore:
    """
    Holds the current Session and keeps persistence in step with it.

    Rehydration happens on the first ``get()``. No network calls originate
    here; see ``altq.session.revalidation`` for checking a rehydrated
    session against the API.
    """

    def __init__(self, persistence: Optional[SessionPersistence] = None) -> None:
        self._persistence: SessionPersistence = persistence or InMemorySessionPersistence()
        self._session: Optional[Session] = None
        self._loaded = False
        self._rehydrated = False
        self._listeners: list[SessionListener] = []

    @property
    def rehydrated(self) -> bool:
        """True when the current session came from persistence, not a sign-in."""
        return self._rehydrated and self._session is not None

    def _rehydrate(self) -> None:
        self._loaded = True
        record = self._persistence.load_session()
        if record is None:
            return
        try:
            session = Session(identity=record["identity"], token=record["token"])
        except (KeyError, TypeError, SchemaValidationError):
            logger.warning("Discarding unreadable persisted session")
            self._persistence.clear_session()
            return
        self._session = session
        self._rehydrated = True
        logger.info("Session rehydrated for identity %s", session.identity.id)

    def get(self) -> Optional[Session]:
        if not self._loaded:
            self._rehydrate()
        return self._session

    def set(self, identity: Identity, token: str) -> Session:
        session = Session(identity=identity, token=token)
        self._persistence.save_session(identity.model_dump(mode="json", by_alias=True), token)
        self._session = session
        self._loaded = True
        self._rehydrated = False
        logger.info("Session set for identity %s (%s)", identity.id, identity.role.value)
        self._notify()
        return session

    def update(self, identity: Identity) -> Session:
        """Replace the identity, keeping the existing token."""
        current = self.get()
        if current is None:
            raise Unauthenticated()
        session = Session(identity=identity, token=current.token)
        self._persistence.save_session(identity.model_dump(mode="json", by_alias=True), current.token)
        self._session = session
        logger.debug("Session identity updated for %s", identity.id)
        self._notify()
        return session

    def clear(self) -> None:
        self._persistence.clear_session()
        had_session = self._session is not None
        self._session = None
        self._loaded = True
        self._rehydrated = False
        if had_session:
            logger.info("Session cleared")
            self._notify()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._session)
