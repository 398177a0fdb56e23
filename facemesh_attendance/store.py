from __future__ import annotations

import asyncio
from datetime import datetime
from typing import List, Optional, Protocol

from .database import AttendanceDatabase, AttendanceRecord, ProfileRecord


class RecordStore(Protocol):
    async def read_profile(self, user_id: str) -> Optional[ProfileRecord]: ...

    async def upsert_profile(self, user_id: str, encoded_descriptor: str, display_name: str) -> None: ...

    async def insert_attendance(
        self, user_id: str, display_name: str, timestamp: datetime
    ) -> AttendanceRecord: ...

    async def list_attendance(self, user_id: str, limit: int = 200) -> List[AttendanceRecord]: ...


class DatabaseRecordStore:
    """Awaitable facade over ``AttendanceDatabase``; each call is one suspension point."""

    def __init__(self, db: AttendanceDatabase):
        self.db = db

    async def read_profile(self, user_id: str) -> Optional[ProfileRecord]:
        return await asyncio.to_thread(self.db.read_profile, user_id)

    async def upsert_profile(self, user_id: str, encoded_descriptor: str, display_name: str) -> None:
        await asyncio.to_thread(self.db.upsert_profile, user_id, encoded_descriptor, display_name)

    async def insert_attendance(self, user_id: str, display_name: str, timestamp: datetime) -> AttendanceRecord:
        return await asyncio.to_thread(self.db.insert_attendance, user_id, display_name, timestamp)

    async def list_attendance(self, user_id: str, limit: int = 200) -> List[AttendanceRecord]:
        return await asyncio.to_thread(self.db.list_attendance, user_id, limit)
