import asyncio
import json
import random
from datetime import datetime, timedelta

import pytest

from app.database.memory import InMemoryGateway
from app.errors import GenerationFailure
from app.models.session import SessionStatus
from app.services.session_lifecycle import SessionLifecycle
from app.services.turn_scheduler import TurnScheduler
from dialogue.llm.personalities import personality_prompt

START = datetime(2026, 3, 2, 10, 0, 0)

VALID_FEEDBACK = {
    "overall_summary": "A focused discussion with good turn-taking.",
    "participant_feedback": [
        {
            "name": "Alice",
            "overall_score": 7.5,
            "clarity": 8,
            "engagement": 7,
            "analysis": 6.5,
            "strengths": ["Opened the discussion"],
            "improvements": ["Back claims with data"],
        }
    ],
}


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class FakeSleep:
    """Records requested delays and yields to the loop once instead of waiting."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)
        await asyncio.sleep(0)


class FakeGenerator:
    """Stands in for the Groq adapter. Blocking, like the real one."""

    def __init__(self, failing=(), feedback=None):
        self.failing = set(failing)
        self.feedback = json.dumps(VALID_FEEDBACK) if feedback is None else feedback
        self.calls = []
        self.feedback_prompts = []

    def generate_reply(self, topic, personality_prompt_text, recent_messages, context=""):
        self.calls.append({
            "topic": topic,
            "prompt": personality_prompt_text,
            "recent": list(recent_messages),
            "context": context,
        })
        if any(personality_prompt(p) == personality_prompt_text for p in self.failing):
            raise GenerationFailure("rate limited")
        return f"Reply number {len(self.calls)}"

    def generate_structured_feedback(self, prompt):
        self.feedback_prompts.append(prompt)
        if isinstance(self.feedback, Exception):
            raise self.feedback
        return self.feedback


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def gateway(clock):
    return InMemoryGateway(clock=clock)


@pytest.fixture
def lifecycle(gateway, clock):
    return SessionLifecycle(gateway, clock=clock, base_url="http://test")


@pytest.fixture
async def scheduler(gateway, generator, fake_sleep, clock):
    scheduler = TurnScheduler(
        gateway,
        generator,
        rng=random.Random(7),
        sleep=fake_sleep,
        clock=clock,
    )
    yield scheduler
    await scheduler.shutdown()


@pytest.fixture
def make_session(lifecycle):
    async def _make(simulated_count=2, human_count=3, active=True, topic="Climate Change Solutions"):
        session = await lifecycle.create_session(
            topic=topic,
            scheduled_at=START,
            simulated_count=simulated_count,
            human_count=human_count,
            created_by="host",
        )
        if active:
            session = await lifecycle.transition_status(session.session_id, SessionStatus.ACTIVE)
        return session

    return _make


class YieldingGateway(InMemoryGateway):
    """In-memory storage whose reads suspend the caller, like a network round trip."""

    async def get_session(self, session_id):
        await asyncio.sleep(0)
        return await super().get_session(session_id)

    async def list_participants(self, session_id):
        await asyncio.sleep(0)
        return await super().list_participants(session_id)

    async def list_messages(self, session_id, since=None):
        await asyncio.sleep(0)
        return await super().list_messages(session_id, since)
