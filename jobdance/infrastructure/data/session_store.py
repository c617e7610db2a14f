"""
File-backed interview persistence.

SessionStore keeps one JSON document per finished interview.
EphemeralReportStore holds a report that could not be saved so it can
still be shown for the rest of the process.
"""
import os
import json
import logging
import tempfile
from typing import Any, Dict, List, Optional

from .conversations import ConversationRecord, utc_now_iso
from ...config import TEMP_REPORT_KEY

logger = logging.getLogger("session_store")


class SessionStore:
    """Saves and loads ConversationRecords under a directory."""

    def __init__(self, sessions_dir: str):
        self.sessions_dir = sessions_dir

    def _get_session_path(self, session_id: str) -> str:
        if os.sep in session_id or (os.altsep and os.altsep in session_id) or session_id.startswith("."):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return os.path.join(self.sessions_dir, f"{session_id}.json")

    def _write(self, record: ConversationRecord) -> None:
        os.makedirs(self.sessions_dir, exist_ok=True)
        path = self._get_session_path(record.session_id)
        # Write then rename so a crash never leaves a half-written session
        fd, tmp_path = tempfile.mkstemp(dir=self.sessions_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(record.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def save_session(self, session_id: str, messages: List[Dict[str, str]],
                     report: Optional[Dict[str, Any]], duration_seconds: int,
                     current_question: Optional[str] = None) -> str:
        """
        Persist a finished interview.

        Returns:
            The session identifier

        Raises:
            OSError: The record could not be written
        """
        record = ConversationRecord(
            session_id=session_id,
            messages=list(messages),
            current_question=current_question,
            report=report,
            duration_seconds=duration_seconds,
        )
        self._write(record)
        logger.info("Saved session %s (%d messages, report=%s)",
                    session_id, len(messages), report is not None)
        return session_id

    def update_report(self, session_id: str, report: Dict[str, Any]) -> None:
        """
        Attach a report to an already-saved session.

        Raises:
            FileNotFoundError: No such session
        """
        record = self.load_session(session_id)
        if record is None:
            raise FileNotFoundError(f"No saved session {session_id}")
        record.report = report
        record.report_updated_at = utc_now_iso()
        self._write(record)
        logger.info("Updated report for session %s", session_id)

    def load_session(self, session_id: str) -> Optional[ConversationRecord]:
        path = self._get_session_path(session_id)
        if not os.path.exists(path):
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return ConversationRecord.from_dict(json.load(f))

    def list_sessions(self) -> List[ConversationRecord]:
        """All saved sessions, newest first. Unreadable files are skipped."""
        if not os.path.isdir(self.sessions_dir):
            return []

        records = []
        for filename in os.listdir(self.sessions_dir):
            if not filename.endswith('.json'):
                continue
            try:
                record = self.load_session(filename[:-5])
            except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning("Skipping unreadable session file %s: %s", filename, e)
                continue
            if record is not None:
                records.append(record)

        records.sort(key=lambda r: r.created_at, reverse=True)
        return records


class EphemeralReportStore:
    """
    In-memory key/value store that lives as long as the process.
    Holds the temporary report payload when persistence fails.
    """

    def __init__(self):
        self._items: Dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        self._items[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._items.get(key, default)

    def pop(self, key: str, default: Any = None) -> Any:
        return self._items.pop(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def stash_report(self, report: Dict[str, Any], messages: List[Dict[str, str]],
                     duration_seconds: int) -> None:
        self.set(TEMP_REPORT_KEY, {
            "report": report,
            "messages": list(messages),
            "timestamp": utc_now_iso(),
            "duration": duration_seconds,
        })

    def temporary_report(self) -> Optional[Dict[str, Any]]:
        return self.get(TEMP_REPORT_KEY)
