"""
Data models for the interview coach.
"""
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


USER = "user"
ASSISTANT = "assistant"


@dataclass
class Message:
    """One entry of the conversation transcript."""
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        return cls(role=data["role"], content=data["content"])


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:12]}"


@dataclass
class InterviewSession:
    """Live state of one interview, owned by the turn controller."""
    id: str = field(default_factory=new_session_id)
    messages: List[Message] = field(default_factory=list)
    question_count: int = 0
    is_closing: bool = False
    started_at: float = field(default_factory=time.time)
    ended_at: Optional[float] = None
    ended: bool = False

    @property
    def duration_seconds(self) -> int:
        end = self.ended_at if self.ended_at is not None else time.time()
        return max(0, int(end - self.started_at))

    @property
    def current_question(self) -> Optional[str]:
        for message in reversed(self.messages):
            if message.role == ASSISTANT:
                return message.content
        return None

    def user_answers(self) -> List[str]:
        return [m.content for m in self.messages if m.role == USER]

    def transcript(self) -> List[Dict[str, str]]:
        return [m.to_dict() for m in self.messages]


@dataclass
class TranscriptEvent:
    """Interim or final text from the speech recognizer."""
    text: str
    is_interim: bool


class RecognitionErrorKind(str, Enum):
    PERMISSION_DENIED = "permission-denied"
    NO_SPEECH = "no-speech"
    AUDIO_CAPTURE = "audio-capture"
    OTHER = "other"


@dataclass
class RecognitionError:
    """Error surfaced by speech input."""
    kind: RecognitionErrorKind
    message: str = ""

    @property
    def fatal(self) -> bool:
        return self.kind == RecognitionErrorKind.PERMISSION_DENIED


class VoiceState(str, Enum):
    """Phase of the turn-taking loop."""
    IDLE = "idle"
    AWAITING_QUESTION = "awaiting_question"
    SPEAKING = "speaking"
    LISTENING = "listening"
    SUBMITTING = "submitting"
    CLOSING = "closing"
    ENDED = "ended"


class EndOutcome(str, Enum):
    """How end-of-session handling concluded."""
    REPORT_SAVED = "report_saved"
    REPORT_TEMPORARY = "report_temporary"
    SAVED_WITHOUT_REPORT = "saved_without_report"
    FAILED = "failed"
    EMPTY = "empty"


@dataclass
class WorkExperience:
    position: str = ""
    company: str = ""


@dataclass
class Education:
    degree: str = ""
    field: str = ""
    institution: str = ""


@dataclass
class UserProfile:
    """Candidate background used to personalise questions."""
    full_name: str = ""
    work_experience: List[WorkExperience] = field(default_factory=list)
    education: List[Education] = field(default_factory=list)
    skills: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserProfile':
        """Accepts both snake_case and the camelCase keys the web app stored."""
        work = data.get("work_experience", data.get("workExperience")) or []
        education = data.get("education") or []
        return cls(
            full_name=data.get("full_name", data.get("fullName")) or "",
            work_experience=[
                WorkExperience(position=w.get("position", ""), company=w.get("company", ""))
                for w in work if isinstance(w, dict)
            ],
            education=[
                Education(degree=e.get("degree", ""), field=e.get("field", ""),
                          institution=e.get("institution", ""))
                for e in education if isinstance(e, dict)
            ],
            skills=[str(s) for s in data.get("skills") or []],
        )

    def summary(self) -> str:
        """Short background block for prompts."""
        lines = []
        if self.full_name:
            lines.append(f"Name: {self.full_name}")
        if self.work_experience:
            roles = "; ".join(f"{w.position} at {w.company}" for w in self.work_experience)
            lines.append(f"Experience: {roles}")
        if self.education:
            studies = "; ".join(
                f"{e.degree} in {e.field} at {e.institution}".replace(" in  at", " at")
                for e in self.education
            )
            lines.append(f"Education: {studies}")
        if self.skills:
            lines.append(f"Skills: {', '.join(self.skills)}")
        return "\n".join(lines)
