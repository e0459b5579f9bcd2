"""
Session Store
=============
Durable conversation transcripts, one JSON file per session. Survives restarts.

Storage layout:
    <state_dir>/
        sessions/
            {session_id}.json

Writes go to a temp file in the same directory and are moved into place with
os.replace, so a crash never leaves a half-written record behind. Saves are
full overwrites: last writer wins, nothing is merged.
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import List, Optional

from ..config import resolve_state_dir
from ..models import Session

log = logging.getLogger("tessera.sessions")

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


def is_valid_session_id(session_id: str) -> bool:
    return bool(session_id) and bool(_SAFE_ID.match(session_id)) and ".." not in session_id


class SessionStore:

    def __init__(self, state_dir: Optional[str] = None):
        self.state_dir = Path(state_dir).expanduser() if state_dir else resolve_state_dir()
        self.sessions_dir = self.state_dir / "sessions"

    def _path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    def save(self, session: Session):
        """Persist the full session record, replacing any previous version."""
        if not is_valid_session_id(session.id):
            raise ValueError(f"Invalid session id: {session.id!r}")

        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(session.to_dict(), indent=2, ensure_ascii=False, default=str)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{session.id}.", suffix=".tmp", dir=self.sessions_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path(session.id))
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
        log.debug(f"Saved session {session.id} ({len(session.messages)} messages)")

    def load(self, session_id: str) -> Optional[Session]:
        """Return the stored session, or None if missing or unreadable."""
        if not is_valid_session_id(session_id):
            log.warning(f"Rejected suspicious session id: {session_id!r}")
            return None

        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            session = Session.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            log.warning(f"Unreadable session {session_id}, treating as absent: {e}")
            return None

        if session.id != session_id:
            log.warning(f"Session file {path.name} holds id {session.id!r}, treating as absent")
            return None
        return session

    def exists(self, session_id: str) -> bool:
        return is_valid_session_id(session_id) and self._path(session_id).exists()

    def delete(self, session_id: str) -> bool:
        """Remove a session. Deleting a missing session is not an error."""
        if not is_valid_session_id(session_id):
            return False
        try:
            self._path(session_id).unlink()
        except FileNotFoundError:
            return False
        log.debug(f"Deleted session {session_id}")
        return True

    def list(self, agent_id: Optional[str] = None) -> List[str]:
        """Session ids, optionally only those owned by `agent_id`."""
        if not self.sessions_dir.exists():
            return []

        ids = sorted(p.stem for p in self.sessions_dir.glob("*.json") if is_valid_session_id(p.stem))
        if agent_id is None:
            return ids

        owned = []
        for session_id in ids:
            session = self.load(session_id)
            if session and session.agent_id == agent_id:
                owned.append(session_id)
        return owned
