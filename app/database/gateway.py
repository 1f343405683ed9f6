# app/database/gateway.py

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from app.models.session import (
    DiscussionSession,
    Message,
    MessageCreate,
    Participant,
    ParticipantCreate,
)


class DiscussionGateway(ABC):
    """
    Storage for sessions, participants and messages, keyed by session id.

    Backends hold no business rules. The only thing they decide is the
    message timestamp: it is stamped at append time and never goes backwards
    within one session.
    """

    async def init(self) -> None:
        """Prepare the backend (indexes, connections). Optional."""

    async def close(self) -> None:
        """Release backend resources. Optional."""

    # ---------- sessions ----------
    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[DiscussionSession]:
        ...

    @abstractmethod
    async def save_session(self, session: DiscussionSession) -> DiscussionSession:
        """Insert or replace the session record."""

    @abstractmethod
    async def update_session_fields(self, session_id: str, fields: dict) -> Optional[DiscussionSession]:
        """Set only the given fields. Returns the updated session, None if it does not exist."""

    @abstractmethod
    async def transition_session(
        self, session_id: str, expected_status: str, fields: dict
    ) -> Optional[DiscussionSession]:
        """
        Set the given fields only while the stored status is still
        `expected_status`. Returns None when nothing matched.
        """

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        """Delete the session with its participants and messages."""

    @abstractmethod
    async def list_sessions(self, status: Optional[str] = None) -> List[DiscussionSession]:
        ...

    # ---------- participants ----------
    @abstractmethod
    async def list_participants(self, session_id: str) -> List[Participant]:
        ...

    @abstractmethod
    async def add_participant(self, session_id: str, participant: ParticipantCreate) -> Participant:
        ...

    @abstractmethod
    async def update_participant(self, session_id: str, participant_id: int, is_active: bool) -> Optional[Participant]:
        ...

    # ---------- messages ----------
    @abstractmethod
    async def list_messages(self, session_id: str, since: Optional[datetime] = None) -> List[Message]:
        """Messages in append order, optionally only those at or after `since`."""

    @abstractmethod
    async def append_message(self, session_id: str, message: MessageCreate) -> Message:
        ...
