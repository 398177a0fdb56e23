from typing import Protocol

from .config import DEFAULT_USER_ID
from .exceptions import AttendanceError


class IdentityProvider(Protocol):
    def get_current_user_id(self) -> str: ...


class StaticIdentityProvider:
    """Identity fixed for the lifetime of the process (CLI flag or FACE_USER_ID)."""

    def __init__(self, user_id: str = DEFAULT_USER_ID):
        user_id = (user_id or "").strip()
        if not user_id:
            raise AttendanceError("A user id is required. Pass --user or set FACE_USER_ID.")
        self.user_id = user_id

    def get_current_user_id(self) -> str:
        return self.user_id
