import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile

from app.config import PUBLIC_BASE_URL
from app.errors import GenerationFailure, ValidationError
from app.models.session import (
    DiscussionSession,
    FeedbackReport,
    Message,
    MessageChannel,
    MessageCreate,
    Participant,
    ParticipantCreate,
    ParticipantUpdate,
    SessionCreate,
    SessionStatus,
    SessionUpdate,
    SimulatedReplyRequest,
    SimulatedReplyResponse,
    TranscriptEntry,
    TurnStateResponse,
)
from app.services.feedback_aggregator import FeedbackAggregator
from app.services.session_lifecycle import SessionLifecycle
from app.services.turn_scheduler import TurnScheduler
from dialogue.audio.stt import speech_to_text
from dialogue.llm.personalities import template_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["Sessions"])

# ================= HELPERS =================
def get_lifecycle(request: Request) -> SessionLifecycle:
    return request.app.state.lifecycle


def get_scheduler(request: Request) -> TurnScheduler:
    return request.app.state.scheduler


def get_aggregator(request: Request) -> FeedbackAggregator:
    return request.app.state.aggregator


def sync_watchdog(scheduler: TurnScheduler, session: DiscussionSession):
    if session.status == SessionStatus.ACTIVE:
        scheduler.start_watchdog(session.session_id)
    elif session.status == SessionStatus.COMPLETED:
        scheduler.stop_watchdog(session.session_id)


async def accept_message(request: Request, session_id: str, data: MessageCreate) -> Message:
    lifecycle = get_lifecycle(request)
    session = await lifecycle.get_session(session_id)
    message = await lifecycle.post_message(session_id, data)
    await get_scheduler(request).on_message(session, message)
    return message


# ================= SESSIONS =================
@router.post("", response_model=DiscussionSession)
async def create_session(req: SessionCreate, request: Request):
    return await get_lifecycle(request).create_session(
        topic=req.topic,
        scheduled_at=req.scheduled_at,
        simulated_count=req.simulated_count,
        human_count=req.human_count,
        created_by=req.created_by,
        base_url=PUBLIC_BASE_URL or str(request.base_url),
    )


@router.get("", response_model=List[DiscussionSession])
async def list_sessions(request: Request, status: Optional[SessionStatus] = None):
    return await get_lifecycle(request).list_sessions(status.value if status else None)


@router.get("/{session_id}", response_model=DiscussionSession)
async def get_session(session_id: str, request: Request):
    return await get_lifecycle(request).get_session(session_id)


@router.patch("/{session_id}", response_model=DiscussionSession)
async def patch_session(session_id: str, req: SessionUpdate, request: Request):
    session = await get_lifecycle(request).update_session(session_id, req)
    sync_watchdog(get_scheduler(request), session)
    return session


@router.delete("/{session_id}")
async def delete_session(session_id: str, request: Request):
    await get_lifecycle(request).delete_session(session_id)
    get_scheduler(request).cancel(session_id)
    return {"deleted": session_id}


# ================= PARTICIPANTS =================
@router.get("/{session_id}/participants", response_model=List[Participant])
async def list_participants(session_id: str, request: Request):
    return await get_lifecycle(request).list_participants(session_id)


@router.post("/{session_id}/participants", response_model=Participant)
async def add_participant(session_id: str, req: ParticipantCreate, request: Request):
    return await get_lifecycle(request).add_participant(session_id, req)


@router.patch("/{session_id}/participants/{participant_id}", response_model=Participant)
async def update_participant(session_id: str, participant_id: int, req: ParticipantUpdate, request: Request):
    return await get_lifecycle(request).set_participant_active(session_id, participant_id, req.is_active)


# ================= MESSAGES =================
@router.get("/{session_id}/messages", response_model=List[Message])
async def list_messages(session_id: str, request: Request, since: Optional[datetime] = None):
    return await get_lifecycle(request).list_messages(session_id, since)


@router.post("/{session_id}/messages", response_model=Message)
async def post_message(session_id: str, req: MessageCreate, request: Request):
    return await accept_message(request, session_id, req)


@router.post("/{session_id}/messages/voice", response_model=Message)
async def post_voice_message(
    session_id: str,
    request: Request,
    speaker: str = Form(...),
    file: UploadFile = File(...),
):
    await get_lifecycle(request).get_session(session_id)

    audio = await file.read()
    if not audio:
        raise ValidationError("Empty audio upload")

    text = await asyncio.to_thread(speech_to_text, audio)
    logger.info(f"Transcribed voice message from {speaker} in session {session_id}")

    return await accept_message(request, session_id, MessageCreate(
        speaker=speaker,
        message=text,
        channel=MessageChannel.VOICE,
    ))


# ================= SIMULATED REPLIES =================
@router.post("/{session_id}/ai-response", response_model=SimulatedReplyResponse)
async def simulated_reply(session_id: str, req: SimulatedReplyRequest, request: Request):
    lifecycle = get_lifecycle(request)
    scheduler = get_scheduler(request)

    session = await lifecycle.get_session(session_id)
    if session.status == SessionStatus.COMPLETED:
        raise ValidationError(f"Session {session_id} is completed; the transcript is closed")

    roster = await lifecycle.list_participants(session_id)
    speaker = next(
        (p.name for p in roster if p.is_simulated and p.personality == req.personality.value),
        template_for(req.personality).name,
    )

    messages = await lifecycle.list_messages(session_id)
    recent = [m.as_context_line() for m in messages[-scheduler.context_window:]]

    try:
        response = await scheduler.speak(session.topic, req.personality, recent, req.context)
    except GenerationFailure as e:
        logger.warning(f"Simulated reply failed for session {session_id}: {e}")
        raise HTTPException(502, "Failed to generate simulated reply")

    await lifecycle.post_message(session_id, MessageCreate(
        speaker=speaker,
        message=response,
        is_simulated=True,
        personality=req.personality,
    ))
    return SimulatedReplyResponse(response=response)


@router.get("/{session_id}/turn-state", response_model=TurnStateResponse)
async def turn_state(session_id: str, request: Request):
    await get_lifecycle(request).get_session(session_id)
    scheduler = get_scheduler(request)
    return TurnStateResponse(
        session_id=session_id,
        state=scheduler.state(session_id).value,
        pending_replies=scheduler.pending_count(session_id),
    )


# ================= FEEDBACK / TRANSCRIPT =================
@router.post("/{session_id}/feedback", response_model=FeedbackReport)
async def generate_feedback(session_id: str, request: Request):
    lifecycle = get_lifecycle(request)
    session = await lifecycle.get_session(session_id)
    participants = await lifecycle.list_participants(session_id)
    transcript = await lifecycle.get_transcript(session_id)

    report = await get_aggregator(request).generate_feedback(session.topic, transcript, participants)
    await lifecycle.store_feedback(session_id, report)
    return report


@router.get("/{session_id}/transcript", response_model=List[TranscriptEntry])
async def transcript(session_id: str, request: Request):
    return await get_lifecycle(request).get_transcript(session_id)
