from datetime import datetime
from typing import List, Optional

from app.models.session import (
    DiscussionSession,
    Message,
    Participant,
    RosterEntry,
    SessionStatus,
)


def finalize_session(
    session: DiscussionSession,
    participants: List[Participant],
    messages: List[Message],
    completed_at: Optional[datetime] = None,
) -> DiscussionSession:
    """Return a completed copy of the session with timing and snapshots filled in."""

    ended_at = completed_at or datetime.utcnow()
    duration = None
    if session.started_at:
        duration = max(0, int((ended_at - session.started_at).total_seconds()))

    return session.model_copy(update={
        "status": SessionStatus.COMPLETED.value,
        "completed_at": ended_at,
        "duration": duration,
        "participants": [
            RosterEntry(name=p.name, kind=p.kind, personality=p.personality)
            for p in participants
        ],
        "transcript": [m.to_transcript_entry() for m in messages],
    })
