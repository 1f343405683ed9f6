# app/database/memory.py

from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional

from app.database.gateway import DiscussionGateway
from app.models.session import (
    DiscussionSession,
    Message,
    MessageCreate,
    Participant,
    ParticipantCreate,
)


class InMemoryGateway(DiscussionGateway):
    """Process-local storage. Used by the tests and by STORAGE_BACKEND=memory."""

    def __init__(self, clock: Callable[[], datetime] = datetime.utcnow):
        self.clock = clock
        self._sessions: Dict[str, DiscussionSession] = {}
        self._participants: Dict[str, List[Participant]] = defaultdict(list)
        self._messages: Dict[str, List[Message]] = defaultdict(list)
        self._next_participant_id = 1
        self._next_message_id = 1

    async def get_session(self, session_id: str) -> Optional[DiscussionSession]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def save_session(self, session: DiscussionSession) -> DiscussionSession:
        self._sessions[session.session_id] = session.model_copy(deep=True)
        return session

    def _apply(self, session_id: str, fields: dict) -> DiscussionSession:
        stored = self._sessions[session_id]
        updated = DiscussionSession.model_validate({**stored.model_dump(), **fields})
        self._sessions[session_id] = updated
        return updated.model_copy(deep=True)

    async def update_session_fields(self, session_id: str, fields: dict) -> Optional[DiscussionSession]:
        if session_id not in self._sessions:
            return None
        return self._apply(session_id, fields)

    async def transition_session(
        self, session_id: str, expected_status: str, fields: dict
    ) -> Optional[DiscussionSession]:
        stored = self._sessions.get(session_id)
        if stored is None or stored.status != expected_status:
            return None
        return self._apply(session_id, fields)

    async def delete_session(self, session_id: str) -> bool:
        self._participants.pop(session_id, None)
        self._messages.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    async def list_sessions(self, status: Optional[str] = None) -> List[DiscussionSession]:
        sessions = [s for s in self._sessions.values() if status is None or s.status == status]
        sessions.sort(key=lambda s: s.scheduled_at)
        return [s.model_copy(deep=True) for s in sessions]

    async def list_participants(self, session_id: str) -> List[Participant]:
        return [p.model_copy() for p in self._participants.get(session_id, [])]

    async def add_participant(self, session_id: str, participant: ParticipantCreate) -> Participant:
        record = Participant(
            id=self._next_participant_id,
            session_id=session_id,
            name=participant.name,
            kind=participant.kind,
            personality=participant.personality.value if participant.personality else None,
            joined_at=self.clock(),
            is_active=participant.is_active,
        )
        self._next_participant_id += 1
        self._participants[session_id].append(record)
        return record.model_copy()

    async def update_participant(self, session_id: str, participant_id: int, is_active: bool) -> Optional[Participant]:
        for index, participant in enumerate(self._participants.get(session_id, [])):
            if participant.id == participant_id:
                updated = participant.model_copy(update={"is_active": is_active})
                self._participants[session_id][index] = updated
                return updated.model_copy()
        return None

    async def list_messages(self, session_id: str, since: Optional[datetime] = None) -> List[Message]:
        messages = self._messages.get(session_id, [])
        if since is not None:
            messages = [m for m in messages if m.timestamp >= since]
        return [m.model_copy() for m in messages]

    async def append_message(self, session_id: str, message: MessageCreate) -> Message:
        history = self._messages[session_id]
        timestamp = self.clock()
        if history and history[-1].timestamp > timestamp:
            timestamp = history[-1].timestamp

        record = Message(
            id=self._next_message_id,
            session_id=session_id,
            speaker=message.speaker,
            message=message.message,
            timestamp=timestamp,
            channel=message.channel,
            is_simulated=message.is_simulated,
            personality=message.personality.value if message.personality else None,
        )
        self._next_message_id += 1
        history.append(record)
        return record.model_copy()
