import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .descriptor import from_transport
from .exceptions import DescriptorError, StoreError


@dataclass
class ProfileRecord:
    user_id: str
    display_name: str
    encoded_descriptor: Optional[str]
    descriptor_dim: int
    created_at: str
    updated_at: str

    @property
    def is_registered(self) -> bool:
        return bool(self.encoded_descriptor)


@dataclass(frozen=True)
class AttendanceRecord:
    id: int
    user_id: str
    display_name: str
    recorded_at: str


class AttendanceDatabase:
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _initialize(self) -> None:
        try:
            conn = self._connect()
            try:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS profiles (
                        user_id TEXT PRIMARY KEY,
                        display_name TEXT NOT NULL,
                        face_descriptor TEXT,
                        descriptor_dim INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );

                    -- Append-only; rows are never updated or deleted.
                    CREATE TABLE IF NOT EXISTS attendance_records (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        display_name TEXT NOT NULL,
                        recorded_at TEXT NOT NULL,
                        FOREIGN KEY (user_id) REFERENCES profiles(user_id)
                    );

                    CREATE INDEX IF NOT EXISTS idx_attendance_user_time
                        ON attendance_records (user_id, recorded_at);
                    """
                )
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to initialize database: {exc}") from exc

    def read_profile(self, user_id: str) -> Optional[ProfileRecord]:
        try:
            conn = self._connect()
            try:
                row = conn.execute(
                    """
                    SELECT user_id, display_name, face_descriptor, descriptor_dim, created_at, updated_at
                    FROM profiles
                    WHERE user_id = ?
                    """,
                    (user_id,),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to load profile {user_id}: {exc}") from exc

        if row is None:
            return None
        return ProfileRecord(
            user_id=row["user_id"],
            display_name=row["display_name"],
            encoded_descriptor=row["face_descriptor"],
            descriptor_dim=int(row["descriptor_dim"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def upsert_profile(self, user_id: str, encoded_descriptor: str, display_name: str) -> None:
        if not user_id.strip():
            raise StoreError("user_id cannot be empty.")
        try:
            dim = int(from_transport(encoded_descriptor).size)
        except DescriptorError as exc:
            raise StoreError(f"Refusing to store malformed descriptor for {user_id}: {exc}") from exc

        now = datetime.now().isoformat(timespec="seconds")
        try:
            conn = self._connect()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO profiles (
                            user_id, display_name, face_descriptor, descriptor_dim, created_at, updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?)
                        ON CONFLICT(user_id) DO UPDATE SET
                            display_name = excluded.display_name,
                            face_descriptor = excluded.face_descriptor,
                            descriptor_dim = excluded.descriptor_dim,
                            updated_at = excluded.updated_at
                        """,
                        (user_id, display_name, encoded_descriptor, dim, now, now),
                    )
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to save profile {user_id}: {exc}") from exc

    def insert_attendance(self, user_id: str, display_name: str, recorded_at: datetime) -> AttendanceRecord:
        timestamp = recorded_at.isoformat(timespec="seconds")
        try:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute(
                        """
                        INSERT INTO attendance_records (user_id, display_name, recorded_at)
                        VALUES (?, ?, ?)
                        """,
                        (user_id, display_name, timestamp),
                    )
                    record_id = int(cursor.lastrowid)
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to record attendance for {user_id}: {exc}") from exc

        return AttendanceRecord(id=record_id, user_id=user_id, display_name=display_name, recorded_at=timestamp)

    def list_attendance(self, user_id: str, limit: int = 200) -> List[AttendanceRecord]:
        safe_limit = max(1, min(10_000, int(limit)))
        return self._select_attendance(user_id, safe_limit)

    def all_attendance(self, user_id: str) -> List[AttendanceRecord]:
        """Every record for the user, newest first. Used for exports."""
        return self._select_attendance(user_id, None)

    def _select_attendance(self, user_id: str, limit: Optional[int]) -> List[AttendanceRecord]:
        query = """
            SELECT id, user_id, display_name, recorded_at
            FROM attendance_records
            WHERE user_id = ?
            ORDER BY recorded_at DESC, id DESC
        """
        params: tuple = (user_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (user_id, limit)

        try:
            conn = self._connect()
            try:
                rows = conn.execute(query, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to load attendance history for {user_id}: {exc}") from exc

        return [
            AttendanceRecord(
                id=row["id"],
                user_id=row["user_id"],
                display_name=row["display_name"],
                recorded_at=row["recorded_at"],
            )
            for row in rows
        ]
