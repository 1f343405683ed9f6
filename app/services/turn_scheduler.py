"""
Turn-taking for simulated participants.

While a session is active the scheduler reacts to two things:

- a human message: every simulated participant gets one reply, each after
  its own random delay. All replies of one round share the same snapshot of
  the recent conversation, so they never see each other.
- silence: a per-session watchdog wakes up periodically and, when the last
  message is human-authored and older than the idle threshold, asks one
  randomly picked simulated participant to speak. A tick is skipped while
  replies for the session are still in flight.

Replies run as independent asyncio tasks. A failed generation or write skips that
participant's turn only. A reply that finishes after the session left the
active state is dropped.
"""

import asyncio
import logging
import random
from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from app.config import (
    CONTEXT_WINDOW,
    IDLE_THRESHOLD_SECONDS,
    REPLY_DELAY_MAX_SECONDS,
    REPLY_DELAY_MIN_SECONDS,
    WATCHDOG_INTERVAL_SECONDS,
)
from app.database.gateway import DiscussionGateway
from app.errors import GenerationFailure
from app.models.session import (
    DiscussionSession,
    Message,
    MessageCreate,
    Participant,
    Personality,
)
from dialogue.llm.personalities import personality_prompt

logger = logging.getLogger(__name__)

IDLE_CONTEXT = "Continue the group discussion naturally"


class TurnState(str, Enum):
    IDLE = "idle"
    RESPONDING = "responding"


Speaker = Tuple[Participant, Personality]


class TurnScheduler:
    def __init__(
        self,
        gateway: DiscussionGateway,
        generator,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.utcnow,
        min_delay: float = REPLY_DELAY_MIN_SECONDS,
        max_delay: float = REPLY_DELAY_MAX_SECONDS,
        context_window: int = CONTEXT_WINDOW,
        idle_threshold: float = IDLE_THRESHOLD_SECONDS,
        watchdog_interval: float = WATCHDOG_INTERVAL_SECONDS,
    ):
        """
        Args:
            gateway: Persistence gateway for sessions, roster and messages
            generator: Object with a blocking generate_reply(topic, personality_prompt, recent_messages, context)
            rng: Random source for reply delays and idle speaker picks
            sleep: Coroutine used for reply delays and watchdog ticks
            clock: Current UTC time, compared against message timestamps
        """
        self.gateway = gateway
        self.generator = generator
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.clock = clock
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.context_window = context_window
        self.idle_threshold = idle_threshold
        self.watchdog_interval = watchdog_interval

        self._pending: Dict[str, Set[asyncio.Task]] = defaultdict(set)
        self._watchdogs: Dict[str, asyncio.Task] = {}

    # ================= STATE =================
    def state(self, session_id: str) -> TurnState:
        return TurnState.RESPONDING if self._pending.get(session_id) else TurnState.IDLE

    def pending_count(self, session_id: str) -> int:
        return len(self._pending.get(session_id, ()))

    def _spawn(self, session_id: str, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        pending = self._pending[session_id]
        pending.add(task)

        def _done(t: asyncio.Task):
            pending.discard(t)
            if not pending:
                self._pending.pop(session_id, None)

        task.add_done_callback(_done)
        return task

    async def drain(self, session_id: str) -> None:
        """Wait until no reply is in flight for the session."""
        while self._pending.get(session_id):
            await asyncio.gather(*list(self._pending[session_id]), return_exceptions=True)

    # ================= ROSTER / CONTEXT =================
    async def _simulated_speakers(self, session_id: str) -> List[Speaker]:
        speakers = []
        for participant in await self.gateway.list_participants(session_id):
            if not participant.is_simulated or not participant.is_active:
                continue
            personality = Personality.from_tag(participant.personality)
            if personality is None:
                logger.warning(f"Skipping {participant.name} in session {session_id}: "
                               f"unknown personality {participant.personality!r}")
                continue
            speakers.append((participant, personality))
        return speakers

    def _recent_lines(self, messages: List[Message]) -> List[str]:
        return [m.as_context_line() for m in messages[-self.context_window:]]

    def _draw_delay(self) -> float:
        return self.min_delay + self.rng.random() * (self.max_delay - self.min_delay)

    # ================= RESPONDING =================
    async def on_message(self, session: DiscussionSession, message: Message) -> List[asyncio.Task]:
        """React to a freshly persisted message. Only human messages in active sessions start a round."""
        if message.is_simulated or not session.is_active:
            return []
        return await self.schedule_round(session, context=f'{message.speaker} just said: "{message.message}"')

    async def schedule_round(self, session: DiscussionSession, context: str = "") -> List[asyncio.Task]:
        speakers = await self._simulated_speakers(session.session_id)
        if not speakers:
            return []

        # One snapshot for the whole round.
        recent = self._recent_lines(await self.gateway.list_messages(session.session_id))

        tasks = []
        for participant, personality in speakers:
            delay = self._draw_delay()
            tasks.append(self._spawn(
                session.session_id,
                self._delayed_turn(delay, session, participant, personality, recent, context),
            ))
        logger.info(f"Session {session.session_id}: scheduled {len(tasks)} simulated replies")
        return tasks

    async def _delayed_turn(self, delay, session, participant, personality, recent, context) -> Optional[Message]:
        await self.sleep(delay)
        return await self.take_turn(session, participant, personality, recent, context)

    async def take_turn(
        self,
        session: DiscussionSession,
        participant: Participant,
        personality: Personality,
        recent: List[str],
        context: str = "",
    ) -> Optional[Message]:
        """Generate and persist one reply. Returns None when the turn is skipped."""
        try:
            text = await self.speak(session.topic, personality, recent, context)
        except GenerationFailure as e:
            logger.warning(f"Skipping turn of {participant.name} in {session.session_id}: {e}")
            return None
        except Exception:
            logger.exception(f"Unexpected error generating reply for {participant.name} in {session.session_id}")
            return None

        try:
            return await self._persist_reply(session.session_id, participant, personality, text)
        except Exception:
            logger.exception(f"Could not store reply of {participant.name} in {session.session_id}")
            return None

    async def _persist_reply(
        self, session_id: str, participant: Participant, personality: Personality, text: str
    ) -> Optional[Message]:
        current = await self.gateway.get_session(session_id)
        if current is None or not current.is_active:
            logger.info(f"Dropping late reply of {participant.name}: session {session_id} is no longer active")
            return None

        message = await self.gateway.append_message(session_id, MessageCreate(
            speaker=participant.name,
            message=text,
            is_simulated=True,
            personality=personality,
        ))
        logger.info(f"💬 {participant.name} replied in session {session_id}")
        return message

    async def speak(self, topic: str, personality: Personality, recent: List[str], context: str = "") -> str:
        """Run the blocking generator off the event loop."""
        return await asyncio.to_thread(
            self.generator.generate_reply,
            topic,
            personality_prompt(personality),
            recent,
            context,
        )

    # ================= IDLE WATCHDOG =================
    async def check_idle(self, session_id: str) -> Optional[asyncio.Task]:
        """One watchdog tick. Returns the reply task if a reply was triggered."""
        if self.state(session_id) == TurnState.RESPONDING:
            return None

        session = await self.gateway.get_session(session_id)
        if session is None or not session.is_active:
            return None

        messages = await self.gateway.list_messages(session_id)
        if not messages:
            return None

        last = messages[-1]
        if last.is_simulated:
            return None

        age = (self.clock() - last.timestamp).total_seconds()
        if age <= self.idle_threshold:
            return None

        speakers = await self._simulated_speakers(session_id)
        if not speakers:
            return None

        participant, personality = self.rng.choice(speakers)
        logger.info(f"Session {session_id} idle for {age:.0f}s, nudging {participant.name}")
        return self._spawn(
            session_id,
            self.take_turn(session, participant, personality, self._recent_lines(messages), IDLE_CONTEXT),
        )

    def start_watchdog(self, session_id: str) -> None:
        running = self._watchdogs.get(session_id)
        if running and not running.done():
            return
        self._watchdogs[session_id] = asyncio.create_task(self._watch(session_id))
        logger.info(f"Watchdog started for session {session_id}")

    def stop_watchdog(self, session_id: str) -> None:
        task = self._watchdogs.pop(session_id, None)
        if task:
            task.cancel()
            logger.info(f"Watchdog stopped for session {session_id}")

    def has_watchdog(self, session_id: str) -> bool:
        task = self._watchdogs.get(session_id)
        return task is not None and not task.done()

    async def _watch(self, session_id: str) -> None:
        while True:
            await self.sleep(self.watchdog_interval)
            try:
                session = await self.gateway.get_session(session_id)
                if session is None or not session.is_active:
                    break
                await self.check_idle(session_id)
            except Exception:
                logger.exception(f"Idle check failed for session {session_id}")

        if self._watchdogs.get(session_id) is asyncio.current_task():
            self._watchdogs.pop(session_id, None)

    # ================= SHUTDOWN =================
    def cancel(self, session_id: str) -> None:
        """Stop the watchdog and every in-flight reply of a session."""
        self.stop_watchdog(session_id)
        for task in list(self._pending.get(session_id, ())):
            task.cancel()

    async def shutdown(self) -> None:
        tasks = list(self._watchdogs.values())
        for pending in self._pending.values():
            tasks.extend(pending)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._watchdogs.clear()
        self._pending.clear()
