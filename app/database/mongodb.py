# app/database/mongodb.py

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from app.config import MONGO_DB_NAME, MONGO_URL
from app.database.gateway import DiscussionGateway
from app.models.session import (
    DiscussionSession,
    Message,
    MessageCreate,
    Participant,
    ParticipantCreate,
)

logger = logging.getLogger(__name__)

NO_ID = {"_id": 0}


def _to_millis(value: datetime) -> datetime:
    # BSON dates keep milliseconds only
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


class MongoGateway(DiscussionGateway):
    """Durable storage on MongoDB through motor."""

    def __init__(
        self,
        client: Optional[AsyncIOMotorClient] = None,
        db_name: str = MONGO_DB_NAME,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.clock = clock
        self.client = client or AsyncIOMotorClient(MONGO_URL)
        self.db_name = db_name
        self.db = self.client[db_name]
        self.sessions = self.db["sessions"]
        self.participants = self.db["participants"]
        self.messages = self.db["messages"]
        self.counters = self.db["counters"]
        self._append_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def init(self) -> None:
        await self.sessions.create_index("session_id", unique=True)
        await self.sessions.create_index("status")
        await self.participants.create_index([("session_id", ASCENDING), ("id", ASCENDING)])
        await self.messages.create_index([("session_id", ASCENDING), ("id", ASCENDING)])
        logger.info(f"MongoDB indexes ready on {self.db_name}")

    async def close(self) -> None:
        self.client.close()

    async def _next_id(self, name: str) -> int:
        counter = await self.counters.find_one_and_update(
            {"_id": name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return counter["seq"]

    # ---------- sessions ----------
    async def get_session(self, session_id: str) -> Optional[DiscussionSession]:
        doc = await self.sessions.find_one({"session_id": session_id}, NO_ID)
        return DiscussionSession(**doc) if doc else None

    async def save_session(self, session: DiscussionSession) -> DiscussionSession:
        await self.sessions.replace_one(
            {"session_id": session.session_id},
            session.model_dump(),
            upsert=True,
        )
        return session

    async def update_session_fields(self, session_id: str, fields: dict) -> Optional[DiscussionSession]:
        doc = await self.sessions.find_one_and_update(
            {"session_id": session_id},
            {"$set": fields},
            projection=NO_ID,
            return_document=ReturnDocument.AFTER,
        )
        return DiscussionSession(**doc) if doc else None

    async def transition_session(
        self, session_id: str, expected_status: str, fields: dict
    ) -> Optional[DiscussionSession]:
        doc = await self.sessions.find_one_and_update(
            {"session_id": session_id, "status": expected_status},
            {"$set": fields},
            projection=NO_ID,
            return_document=ReturnDocument.AFTER,
        )
        return DiscussionSession(**doc) if doc else None

    async def delete_session(self, session_id: str) -> bool:
        result = await self.sessions.delete_one({"session_id": session_id})
        await self.participants.delete_many({"session_id": session_id})
        await self.messages.delete_many({"session_id": session_id})
        self._append_locks.pop(session_id, None)
        return result.deleted_count > 0

    async def list_sessions(self, status: Optional[str] = None) -> List[DiscussionSession]:
        query = {"status": status} if status else {}
        docs = await self.sessions.find(query, NO_ID).sort("scheduled_at", ASCENDING).to_list(length=None)
        return [DiscussionSession(**doc) for doc in docs]

    # ---------- participants ----------
    async def list_participants(self, session_id: str) -> List[Participant]:
        docs = await self.participants.find({"session_id": session_id}, NO_ID).sort("id", ASCENDING).to_list(length=None)
        return [Participant(**doc) for doc in docs]

    async def add_participant(self, session_id: str, participant: ParticipantCreate) -> Participant:
        record = Participant(
            id=await self._next_id("participants"),
            session_id=session_id,
            name=participant.name,
            kind=participant.kind,
            personality=participant.personality.value if participant.personality else None,
            joined_at=_to_millis(self.clock()),
            is_active=participant.is_active,
        )
        await self.participants.insert_one(record.model_dump())
        return record

    async def update_participant(self, session_id: str, participant_id: int, is_active: bool) -> Optional[Participant]:
        doc = await self.participants.find_one_and_update(
            {"session_id": session_id, "id": participant_id},
            {"$set": {"is_active": is_active}},
            projection=NO_ID,
            return_document=ReturnDocument.AFTER,
        )
        return Participant(**doc) if doc else None

    # ---------- messages ----------
    async def list_messages(self, session_id: str, since: Optional[datetime] = None) -> List[Message]:
        query = {"session_id": session_id}
        if since is not None:
            query["timestamp"] = {"$gte": since}
        docs = await self.messages.find(query, NO_ID).sort("id", ASCENDING).to_list(length=None)
        return [Message(**doc) for doc in docs]

    async def append_message(self, session_id: str, message: MessageCreate) -> Message:
        async with self._append_locks[session_id]:
            timestamp = _to_millis(self.clock())
            last = await self.messages.find_one(
                {"session_id": session_id}, NO_ID, sort=[("id", DESCENDING)]
            )
            if last and last["timestamp"] > timestamp:
                timestamp = last["timestamp"]

            record = Message(
                id=await self._next_id("messages"),
                session_id=session_id,
                speaker=message.speaker,
                message=message.message,
                timestamp=timestamp,
                channel=message.channel,
                is_simulated=message.is_simulated,
                personality=message.personality.value if message.personality else None,
            )
            await self.messages.insert_one(record.model_dump())
        return record
