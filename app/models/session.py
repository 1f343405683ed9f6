# app/models/session.py

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime, timezone


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"


class ParticipantKind(str, Enum):
    HUMAN = "human"
    SIMULATED = "simulated"


class Personality(str, Enum):
    CONFIDENT = "confident"
    EMOTIONAL = "emotional"
    DATA_DRIVEN = "data-driven"

    @classmethod
    def from_tag(cls, tag: Optional[str]) -> Optional["Personality"]:
        """Return the personality for a stored tag, or None if the tag is unknown."""
        try:
            return cls(tag)
        except ValueError:
            return None


class MessageChannel(str, Enum):
    TEXT = "text"
    VOICE = "voice"


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC; aware inputs (e.g. a trailing "Z") are converted."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ================= FEEDBACK =================

class ParticipantFeedback(BaseModel):
    """
    Scorecard for one speaker.
    All scores are on a 0-10 scale with one decimal.
    """
    name: str
    overall_score: float
    clarity: float
    engagement: float
    analysis: float
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)

    @field_validator("overall_score", "clarity", "engagement", "analysis")
    @classmethod
    def clamp_score(cls, value: float) -> float:
        return round(min(max(value, 0.0), 10.0), 1)


class FeedbackReport(BaseModel):
    overall_summary: str
    participant_feedback: List[ParticipantFeedback] = Field(default_factory=list)


class TranscriptEntry(BaseModel):
    """
    One line of the rendered transcript.
    timestamp: wall clock time of the message as HH:MM:SS
    """
    speaker: str
    message: str
    timestamp: str


# ================= PARTICIPANTS =================

class ParticipantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    kind: ParticipantKind = ParticipantKind.HUMAN
    personality: Optional[Personality] = None
    is_active: bool = True

    @model_validator(mode="after")
    def check_personality(self):
        if self.kind == ParticipantKind.SIMULATED and self.personality is None:
            raise ValueError("simulated participants need a personality")
        if self.kind == ParticipantKind.HUMAN and self.personality is not None:
            raise ValueError("human participants cannot have a personality")
        return self


class Participant(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: int
    session_id: str
    name: str
    kind: ParticipantKind
    personality: Optional[str] = None  # raw tag as stored
    joined_at: datetime = Field(default_factory=datetime.utcnow)
    is_active: bool = True

    @property
    def is_simulated(self) -> bool:
        return self.kind == ParticipantKind.SIMULATED


class ParticipantUpdate(BaseModel):
    is_active: bool


# ================= MESSAGES =================

class MessageCreate(BaseModel):
    speaker: str = Field(min_length=1, max_length=80)
    message: str = Field(min_length=1)
    channel: MessageChannel = MessageChannel.TEXT
    is_simulated: bool = False
    personality: Optional[Personality] = None


class Message(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: int
    session_id: str
    speaker: str
    message: str
    timestamp: datetime
    channel: MessageChannel = MessageChannel.TEXT
    is_simulated: bool = False
    personality: Optional[str] = None

    def as_context_line(self) -> str:
        return f"{self.speaker}: {self.message}"

    def to_transcript_entry(self) -> TranscriptEntry:
        return TranscriptEntry(
            speaker=self.speaker,
            message=self.message,
            timestamp=self.timestamp.strftime("%H:%M:%S"),
        )


# ================= SESSIONS =================

class SessionCreate(BaseModel):
    topic: str = Field(min_length=1, max_length=200)
    scheduled_at: datetime
    simulated_count: int = Field(default=2, ge=1, le=5)
    human_count: int = Field(default=3, ge=1, le=6)
    created_by: str = Field(min_length=1)

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, value):
        return to_naive_utc(value)


class SessionUpdate(BaseModel):
    topic: Optional[str] = Field(default=None, min_length=1, max_length=200)
    scheduled_at: Optional[datetime] = None
    status: Optional[SessionStatus] = None

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, value):
        return to_naive_utc(value)


class RosterEntry(BaseModel):
    """Snapshot of a participant kept on the session once it completes."""
    name: str
    kind: str
    personality: Optional[str] = None


class DiscussionSession(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    session_id: str
    topic: str
    scheduled_at: datetime
    simulated_count: int
    human_count: int
    join_link: str
    status: SessionStatus = SessionStatus.SCHEDULED
    created_by: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    participants: List[RosterEntry] = Field(default_factory=list)
    transcript: List[TranscriptEntry] = Field(default_factory=list)
    feedback: Optional[FeedbackReport] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration: Optional[int] = None  # seconds

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


# ================= REQUESTS =================

class SimulatedReplyRequest(BaseModel):
    personality: Personality
    context: str = ""


class SimulatedReplyResponse(BaseModel):
    response: str


class TurnStateResponse(BaseModel):
    session_id: str
    state: str
    pending_replies: int
