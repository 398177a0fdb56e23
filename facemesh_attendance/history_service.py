from io import BytesIO
from typing import Any, List, Optional

import pandas as pd

from .database import AttendanceDatabase, AttendanceRecord
from .exceptions import AttendanceError


class HistoryService:
    def __init__(self, db: AttendanceDatabase):
        self.db = db

    def rows(self, user_id: str, limit: int = 200) -> List[AttendanceRecord]:
        if not user_id.strip():
            raise AttendanceError("user_id cannot be empty.")
        return self.db.list_attendance(user_id.strip(), limit=limit)

    def frame(self, user_id: str, limit: Optional[int] = None) -> pd.DataFrame:
        """Tabular history; ``limit=None`` exports every record."""
        if limit is None:
            records = self._all(user_id)
        else:
            records = self.rows(user_id, limit=limit)

        data: list[dict[str, Any]] = [
            {
                "Record ID": row.id,
                "User ID": row.user_id,
                "Name": row.display_name,
                "Recorded At": row.recorded_at,
            }
            for row in records
        ]
        return pd.DataFrame(data, columns=["Record ID", "User ID", "Name", "Recorded At"])

    def _all(self, user_id: str) -> List[AttendanceRecord]:
        if not user_id.strip():
            raise AttendanceError("user_id cannot be empty.")
        return self.db.all_attendance(user_id.strip())

    def excel(self, user_id: str) -> bytes:
        df = self.frame(user_id)
        output = BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Attendance")
            ws = writer.sheets["Attendance"]
            ws.freeze_panes = "A2"

        output.seek(0)
        return output.read()
