from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, List, Optional

from deptclient.logging import get_logger
from deptclient.storage.models import Identity, Session

logger = get_logger(__name__)

SessionListener = Callable[[Optional[Session]], None]


class SessionStore:
    """Single source of truth for the current session.

    The whole session is one immutable object swapped under a lock, so a
    reader sees either the previous session or the new one, never a mix of
    fields. Optionally persisted as JSON at ``persist_path``.
    """

    def __init__(self, persist_path: Optional[str] = None) -> None:
        self.persist_path = Path(persist_path) if persist_path else None
        self._lock = threading.Lock()
        self._session: Optional[Session] = None
        self._listeners: List[SessionListener] = []
        if self.persist_path is not None:
            self._session = self._load()

    @property
    def session(self) -> Optional[Session]:
        with self._lock:
            return self._session

    @property
    def access_token(self) -> Optional[str]:
        session = self.session
        return session.access_token if session else None

    @property
    def refresh_token(self) -> Optional[str]:
        session = self.session
        return session.refresh_token if session else None

    @property
    def identity(self) -> Optional[Identity]:
        session = self.session
        return session.identity if session else None

    def is_active(self) -> bool:
        return self.session is not None

    def set_session(
        self, access_token: str, refresh_token: str, identity: Identity
    ) -> Session:
        """Replace the entire session.

        Raises:
            ValueError: if any part is missing; the store is left unchanged.
        """
        session = Session(
            access_token=access_token, refresh_token=refresh_token, identity=identity
        )
        with self._lock:
            self._session = session
            if self.persist_path is not None:
                self._save(session)
        logger.info("session_set", user_id=identity.id)
        self._notify(session)
        return session

    def clear_session(self) -> None:
        """Drop the session. Clearing an empty store is a no-op."""
        with self._lock:
            if self._session is None:
                return
            user_id = self._session.identity.id
            self._session = None
            if self.persist_path is not None:
                self._remove_file()
        logger.info("session_cleared", user_id=user_id)
        self._notify(None)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call ``listener`` with the new session (or None) after each change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, session: Optional[Session]) -> None:
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception as exc:
                logger.warning(
                    "session_listener_failed",
                    listener=getattr(listener, "__name__", repr(listener)),
                    error_type=type(exc).__name__,
                    error=str(exc),
                )

    def _load(self) -> Optional[Session]:
        path = self.persist_path
        if path is None or not path.exists():
            return None
        try:
            data = json.loads(path.read_text())
            session = Session.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "session_file_unreadable",
                path=str(path),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return None
        logger.info("session_loaded", path=str(path), user_id=session.identity.id)
        return session

    def _save(self, session: Session) -> None:
        # Failures are logged only; the in-memory session stays authoritative
        path = self.persist_path
        tmp_path: Optional[str] = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write to a temp file then rename so readers never see half a file
            fd, tmp_path = tempfile.mkstemp(
                dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w") as fh:
                json.dump(session.to_dict(), fh)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, path)
        except OSError as exc:
            logger.error(
                "session_persist_failed",
                path=str(path),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            if tmp_path is not None and os.path.exists(tmp_path):
                try:
                    os.unlink(tmp_path)
                except OSError:
                    logger.warning("session_tmp_cleanup_failed", path=tmp_path)

    def _remove_file(self) -> None:
        try:
            self.persist_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error(
                "session_file_remove_failed", path=str(self.persist_path), error=str(exc)
            )
