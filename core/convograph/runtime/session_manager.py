"""
Session Manager - maps external conversation handles to checkpoint keys.

Sessions are bookkeeping only: the conversation itself lives in the
checkpoint the executor writes under ``session.checkpoint_key``. Deleting a
session forgets the handle and leaves the checkpoint untouched.
"""

import logging
import threading
import uuid
from datetime import datetime

from convograph.errors import UnknownSession
from convograph.schemas.session import Session

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Thread-safe in-memory registry of sessions.

    Identifiers are never reused for the lifetime of the registry, even after
    a session is deleted, so a stale id can never resume someone else's run.
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._issued: set[str] = set()
        self._lock = threading.Lock()

    def generate_session_id(self) -> str:
        """
        Generate session ID in format: session_YYYYMMDD_HHMMSS_{uuid}.

        Returns:
            Session ID string (e.g., "session_20260206_143022_abc12345")
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        short_uuid = uuid.uuid4().hex[:8]
        return f"session_{timestamp}_{short_uuid}"

    def create_session(self, label: str | None = None) -> Session:
        """Register a new session with a fresh, never-issued identifier."""
        with self._lock:
            session_id = self.generate_session_id()
            while session_id in self._issued:
                session_id = self.generate_session_id()
            session = Session(session_id=session_id, label=label)
            self._sessions[session_id] = session
            self._issued.add(session_id)
        logger.info(f"🆕 Created session {session_id}")
        return session

    def restore_session(self, session_id: str, label: str | None = None) -> Session | None:
        """
        Re-register a session whose checkpoint outlived an earlier registry.

        Only ids this registry never issued can be restored; a deleted
        session stays deleted.

        Returns:
            The restored (or already live) session, None if the id was deleted
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                return session
            if session_id in self._issued:
                return None
            session = Session(session_id=session_id, label=label)
            self._sessions[session_id] = session
            self._issued.add(session_id)
        logger.info(f"♻ Restored session {session_id} from its checkpoint")
        return session

    def get_session(self, session_id: str) -> Session | None:
        """Look up a session and refresh its last access time."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.touch()
            return session

    def require_session(self, session_id: str) -> Session:
        """
        Look up a session that must exist.

        Raises:
            UnknownSession: If no session is registered under ``session_id``
        """
        session = self.get_session(session_id)
        if session is None:
            raise UnknownSession(session_id)
        return session

    def record_message(self, session_id: str) -> Session:
        """
        Count one handled message against a session.

        Raises:
            UnknownSession: If no session is registered under ``session_id``
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise UnknownSession(session_id)
            session.message_count += 1
            session.touch()
            return session

    def delete_session(self, session_id: str) -> bool:
        """
        Forget a session. Its checkpoint is left in the store.

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed is not None:
            logger.info(f"🗑 Deleted session {session_id}")
        return removed is not None

    def list_sessions(self) -> list[Session]:
        """All live sessions, oldest first."""
        with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.created_at)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
