import dataclasses
from dataclasses import dataclass
from typing import Optional

from servilink_bot.dto import AuthUser


@dataclass(frozen=True)
class Session:
    user: AuthUser
    access_token: str
    refresh_token: str

    @property
    def is_contractor(self) -> bool:
        return self.user.role == "contratista"


class SessionStore:
    """Authenticated sessions keyed by Telegram user id.

    Sessions are immutable; login, token refresh, profile refresh and logout
    swap the whole object so readers never observe a half-updated session.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, Session] = {}

    def get(self, user_id: int | None) -> Optional[Session]:
        if user_id is None:
            return None
        return self._sessions.get(user_id)

    def replace(self, user_id: int, session: Session) -> Session:
        self._sessions[user_id] = session
        return session

    def with_access_token(self, user_id: int, access_token: str) -> Optional[Session]:
        current = self._sessions.get(user_id)
        if current is None:
            return None
        return self.replace(user_id, dataclasses.replace(current, access_token=access_token))

    def with_user(self, user_id: int, user: AuthUser) -> Optional[Session]:
        current = self._sessions.get(user_id)
        if current is None:
            return None
        return self.replace(user_id, dataclasses.replace(current, user=user))

    def clear(self, user_id: int) -> Optional[Session]:
        return self._sessions.pop(user_id, None)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
