"""
Persisted interview records.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ConversationRecord:
    """Snapshot of a finished interview as stored on disk."""
    session_id: str
    created_at: str = field(default_factory=utc_now_iso)
    messages: List[Dict[str, str]] = field(default_factory=list)
    current_question: Optional[str] = None
    report: Optional[Dict[str, Any]] = None
    duration_seconds: int = 0
    report_updated_at: Optional[str] = None

    @property
    def question_count(self) -> int:
        return sum(1 for m in self.messages if m.get("role") == "user")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "createdAt": self.created_at,
            "sessionData": {
                "messages": self.messages,
                "currentQuestion": self.current_question,
            },
            "report": self.report,
            "duration": self.duration_seconds,
            "reportUpdatedAt": self.report_updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConversationRecord':
        session_data = data.get("sessionData") or {}
        return cls(
            session_id=data["sessionId"],
            created_at=data.get("createdAt") or utc_now_iso(),
            messages=list(session_data.get("messages") or []),
            current_question=session_data.get("currentQuestion"),
            report=data.get("report"),
            duration_seconds=int(data.get("duration") or 0),
            report_updated_at=data.get("reportUpdatedAt"),
        )
