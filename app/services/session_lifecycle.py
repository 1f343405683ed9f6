import logging
import secrets
import string
from datetime import datetime
from typing import Callable, List, Optional, Union

from pydantic import ValidationError as SchemaError

from app.config import PUBLIC_BASE_URL
from app.database.gateway import DiscussionGateway
from app.errors import InvalidTransitionError, NotFoundError, ValidationError
from app.models.session import (
    DiscussionSession,
    FeedbackReport,
    Message,
    MessageCreate,
    Participant,
    ParticipantCreate,
    ParticipantKind,
    SessionCreate,
    SessionStatus,
    SessionUpdate,
    TranscriptEntry,
    to_naive_utc,
)
from app.services.session_finalizer import finalize_session
from dialogue.llm.personalities import PERSONALITY_TEMPLATES

logger = logging.getLogger(__name__)

SESSION_ID_ALPHABET = string.ascii_lowercase + string.digits
SESSION_ID_LENGTH = 8
SESSION_ID_ATTEMPTS = 5

# Forward-only: each status lists the statuses it may move to.
FORWARD_TRANSITIONS = {
    SessionStatus.SCHEDULED: (SessionStatus.ACTIVE, SessionStatus.COMPLETED),
    SessionStatus.ACTIVE: (SessionStatus.COMPLETED,),
    SessionStatus.COMPLETED: (),
}

# Written by the completion transition; everything else stays as stored.
FINALIZED_FIELDS = {"status", "completed_at", "duration", "participants", "transcript"}


def build_join_link(base_url: str, session_id: str) -> str:
    return f"{base_url.rstrip('/')}/join/{session_id}"


def _first_error(exc: SchemaError) -> str:
    err = exc.errors()[0]
    field = ".".join(str(part) for part in err.get("loc", ()))
    return f"{field}: {err.get('msg')}" if field else err.get("msg", "invalid input")


class SessionLifecycle:
    """
    Owns session state: creation with the simulated roster, forward-only
    status transitions, participants and the message log.
    """

    def __init__(
        self,
        gateway: DiscussionGateway,
        clock: Callable[[], datetime] = datetime.utcnow,
        base_url: Optional[str] = PUBLIC_BASE_URL,
    ):
        self.gateway = gateway
        self.clock = clock
        self.base_url = base_url or "http://localhost:8000"

    # ================= SESSIONS =================
    async def _new_session_id(self) -> str:
        for _ in range(SESSION_ID_ATTEMPTS):
            candidate = "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(SESSION_ID_LENGTH))
            if await self.gateway.get_session(candidate) is None:
                return candidate
        raise RuntimeError("Could not allocate a free session id")

    async def create_session(
        self,
        topic: str,
        scheduled_at: datetime,
        simulated_count: int,
        human_count: int,
        created_by: str,
        base_url: Optional[str] = None,
    ) -> DiscussionSession:
        try:
            data = SessionCreate(
                topic=topic,
                scheduled_at=scheduled_at,
                simulated_count=simulated_count,
                human_count=human_count,
                created_by=created_by,
            )
        except SchemaError as e:
            raise ValidationError(_first_error(e)) from e

        session_id = await self._new_session_id()
        session = DiscussionSession(
            session_id=session_id,
            topic=data.topic,
            scheduled_at=data.scheduled_at,
            simulated_count=data.simulated_count,
            human_count=data.human_count,
            join_link=build_join_link(base_url or self.base_url, session_id),
            created_by=data.created_by,
            created_at=self.clock(),
        )
        await self.gateway.save_session(session)

        # Never more simulated speakers than there are templates.
        for template in PERSONALITY_TEMPLATES[:data.simulated_count]:
            await self.gateway.add_participant(session_id, ParticipantCreate(
                name=template.name,
                kind=ParticipantKind.SIMULATED,
                personality=template.personality,
            ))

        logger.info(f"Session {session_id} scheduled: {data.topic!r} "
                    f"({min(data.simulated_count, len(PERSONALITY_TEMPLATES))} simulated)")
        return session

    async def get_session(self, session_id: str) -> DiscussionSession:
        session = await self.gateway.get_session(session_id)
        if not session:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    async def list_sessions(self, status: Optional[str] = None) -> List[DiscussionSession]:
        return await self.gateway.list_sessions(status)

    async def transition_status(self, session_id: str, target: Union[str, SessionStatus]) -> DiscussionSession:
        session = await self.get_session(session_id)
        try:
            target = SessionStatus(target)
        except ValueError:
            raise ValidationError(f"Unknown status: {target}")

        current = SessionStatus(session.status)
        if target not in FORWARD_TRANSITIONS[current]:
            raise InvalidTransitionError(current.value, target.value)

        now = self.clock()
        if target == SessionStatus.ACTIVE:
            fields = {"status": target.value, "started_at": now}
        else:
            participants = await self.gateway.list_participants(session_id)
            messages = await self.gateway.list_messages(session_id)
            finished = finalize_session(session, participants, messages, completed_at=now)
            fields = finished.model_dump(include=FINALIZED_FIELDS)

        # Only applies while the stored status is still the one checked above
        updated = await self.gateway.transition_session(session_id, current.value, fields)
        if updated is None:
            latest = await self.get_session(session_id)
            raise InvalidTransitionError(latest.status, target.value)

        logger.info(f"Session {session_id}: {current.value} -> {target.value}")
        return updated

    async def update_session(self, session_id: str, updates: SessionUpdate) -> DiscussionSession:
        # A rejected transition must leave the other fields untouched
        if updates.status is not None:
            session = await self.transition_status(session_id, updates.status)
        else:
            session = await self.get_session(session_id)

        changes = updates.model_dump(exclude_unset=True, exclude={"status"})
        changes = {k: v for k, v in changes.items() if v is not None}
        if changes:
            session = await self.gateway.update_session_fields(session_id, changes)
            if session is None:
                raise NotFoundError(f"Session {session_id} not found")
        return session

    async def delete_session(self, session_id: str) -> None:
        if not await self.gateway.delete_session(session_id):
            raise NotFoundError(f"Session {session_id} not found")
        logger.info(f"Session {session_id} deleted")

    async def store_feedback(self, session_id: str, report: FeedbackReport) -> DiscussionSession:
        session = await self.gateway.update_session_fields(session_id, {"feedback": report.model_dump()})
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    # ================= PARTICIPANTS =================
    async def list_participants(self, session_id: str) -> List[Participant]:
        await self.get_session(session_id)
        return await self.gateway.list_participants(session_id)

    async def add_participant(self, session_id: str, data: ParticipantCreate) -> Participant:
        session = await self.get_session(session_id)
        roster = await self.gateway.list_participants(session_id)

        same_kind = [p for p in roster if p.kind == data.kind and p.is_active]
        if data.kind == ParticipantKind.HUMAN:
            limit = session.human_count
        else:
            limit = min(session.simulated_count, len(PERSONALITY_TEMPLATES))
        if len(same_kind) >= limit:
            raise ValidationError(f"Session {session_id} already has {limit} {data.kind.value} participants")

        participant = await self.gateway.add_participant(session_id, data)
        logger.info(f"{participant.name} joined session {session_id}")
        return participant

    async def set_participant_active(self, session_id: str, participant_id: int, is_active: bool) -> Participant:
        await self.get_session(session_id)
        participant = await self.gateway.update_participant(session_id, participant_id, is_active)
        if not participant:
            raise NotFoundError(f"Participant {participant_id} not found in session {session_id}")
        return participant

    # ================= MESSAGES =================
    async def post_message(self, session_id: str, data: MessageCreate) -> Message:
        session = await self.get_session(session_id)
        if session.status == SessionStatus.COMPLETED:
            raise ValidationError(f"Session {session_id} is completed; the transcript is closed")
        return await self.gateway.append_message(session_id, data)

    async def list_messages(self, session_id: str, since: Optional[datetime] = None) -> List[Message]:
        await self.get_session(session_id)
        return await self.gateway.list_messages(session_id, to_naive_utc(since))

    async def get_transcript(self, session_id: str) -> List[TranscriptEntry]:
        messages = await self.list_messages(session_id)
        return [m.to_transcript_entry() for m in messages]
