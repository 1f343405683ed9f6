from datetime import datetime, timedelta

import pytest
from mongomock_motor import AsyncMongoMockClient

from app.database.memory import InMemoryGateway
from app.database.mongodb import MongoGateway
from app.models.session import (
    DiscussionSession,
    MessageChannel,
    MessageCreate,
    ParticipantCreate,
    ParticipantKind,
    Personality,
)
from conftest import START


@pytest.fixture(params=["memory", "mongo"])
async def backend(request):
    if request.param == "memory":
        gateway = InMemoryGateway()
    else:
        gateway = MongoGateway(client=AsyncMongoMockClient(), db_name="group_discussion_test")
    await gateway.init()
    yield gateway
    await gateway.close()


def new_session(session_id, status="scheduled", offset=0):
    return DiscussionSession(
        session_id=session_id,
        topic="Climate Change Solutions",
        scheduled_at=START + timedelta(hours=offset),
        simulated_count=2,
        human_count=3,
        join_link=f"http://test/join/{session_id}",
        status=status,
        created_by="host",
        created_at=START,
    )


async def test_save_is_an_upsert(backend):
    session = new_session("abc12345")
    await backend.save_session(session)
    await backend.save_session(session.model_copy(update={"topic": "Four-day work week"}))

    stored = await backend.get_session("abc12345")

    assert stored.topic == "Four-day work week"
    assert len(await backend.list_sessions()) == 1
    assert await backend.get_session("missing0") is None


async def test_list_sessions_filters_by_status(backend):
    await backend.save_session(new_session("late0001", status="active", offset=2))
    await backend.save_session(new_session("early001", status="active", offset=1))
    await backend.save_session(new_session("done0001", status="completed"))

    active = await backend.list_sessions("active")

    assert [s.session_id for s in active] == ["early001", "late0001"]
    assert len(await backend.list_sessions()) == 3


async def test_participants_get_ids_and_can_be_deactivated(backend):
    await backend.save_session(new_session("abc12345"))
    leader = await backend.add_participant("abc12345", ParticipantCreate(
        name="AI Leader", kind=ParticipantKind.SIMULATED, personality=Personality.CONFIDENT,
    ))
    alice = await backend.add_participant("abc12345", ParticipantCreate(name="Alice"))

    assert alice.id > leader.id
    assert leader.personality == "confident"
    assert alice.personality is None

    updated = await backend.update_participant("abc12345", alice.id, False)
    assert updated.is_active is False
    assert await backend.update_participant("abc12345", 999, False) is None
    assert [p.is_active for p in await backend.list_participants("abc12345")] == [True, False]


async def test_messages_are_append_only_and_reads_are_stable(backend):
    await backend.save_session(new_session("abc12345"))
    for speaker, text in [("Alice", "One"), ("Bob", "Two"), ("Alice", "Three")]:
        await backend.append_message("abc12345", MessageCreate(speaker=speaker, message=text))

    first = await backend.list_messages("abc12345")
    second = await backend.list_messages("abc12345")

    assert first == second
    assert [m.message for m in first] == ["One", "Two", "Three"]
    assert [m.id for m in first] == sorted(m.id for m in first)
    assert all(a.timestamp <= b.timestamp for a, b in zip(first, first[1:]))


async def test_message_fields_are_stored(backend):
    await backend.save_session(new_session("abc12345"))
    stored = await backend.append_message("abc12345", MessageCreate(
        speaker="AI Analyst",
        message="Emissions fell 4% last year.",
        channel=MessageChannel.VOICE,
        is_simulated=True,
        personality=Personality.DATA_DRIVEN,
    ))

    [read] = await backend.list_messages("abc12345")

    assert read == stored
    assert read.channel == "voice"
    assert read.personality == "data-driven"


async def test_delete_cascades(backend):
    await backend.save_session(new_session("abc12345"))
    await backend.add_participant("abc12345", ParticipantCreate(name="Alice"))
    await backend.append_message("abc12345", MessageCreate(speaker="Alice", message="Hi"))

    assert await backend.delete_session("abc12345") is True
    assert await backend.get_session("abc12345") is None
    assert await backend.list_participants("abc12345") == []
    assert await backend.list_messages("abc12345") == []
    assert await backend.delete_session("abc12345") is False


@pytest.mark.parametrize("kind", ["memory", "mongo"])
async def test_timestamps_never_go_backwards(kind):
    times = iter([START, START - timedelta(seconds=5), START + timedelta(seconds=1)])
    clock = lambda: next(times)
    if kind == "memory":
        gateway = InMemoryGateway(clock=clock)
    else:
        gateway = MongoGateway(client=AsyncMongoMockClient(), db_name="group_discussion_test", clock=clock)

    stamps = [
        (await gateway.append_message("abc12345", MessageCreate(speaker="Alice", message=str(i)))).timestamp
        for i in range(3)
    ]

    assert stamps == [START, START, START + timedelta(seconds=1)]
    assert [m.timestamp for m in await gateway.list_messages("abc12345")] == stamps


async def test_field_update_leaves_other_fields_alone(backend):
    await backend.save_session(new_session("abc12345", status="active"))

    updated = await backend.update_session_fields("abc12345", {"topic": "Four-day work week"})

    assert updated.topic == "Four-day work week"
    assert updated.status == "active"
    assert (await backend.get_session("abc12345")).topic == "Four-day work week"
    assert await backend.update_session_fields("missing0", {"topic": "x"}) is None


async def test_transition_only_applies_from_expected_status(backend):
    await backend.save_session(new_session("abc12345", status="active"))

    stale = await backend.transition_session("abc12345", "scheduled", {"status": "active", "started_at": START})
    assert stale is None
    assert (await backend.get_session("abc12345")).started_at is None

    done = await backend.transition_session(
        "abc12345", "active", {"status": "completed", "completed_at": START, "transcript": [
            {"speaker": "Alice", "message": "Hi", "timestamp": "10:00:00"},
        ]},
    )
    assert done.status == "completed"
    assert done.transcript[0].speaker == "Alice"
    assert done.topic == "Climate Change Solutions"


async def test_memory_since_filter():
    now = [START]
    gateway = InMemoryGateway(clock=lambda: now[0])
    await gateway.append_message("abc12345", MessageCreate(speaker="Alice", message="early"))
    now[0] = START + timedelta(minutes=1)
    await gateway.append_message("abc12345", MessageCreate(speaker="Bob", message="late"))

    recent = await gateway.list_messages("abc12345", since=datetime(2026, 3, 2, 10, 0, 30))

    assert [m.message for m in recent] == ["late"]
