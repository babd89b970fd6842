import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from app.common.errors import AuthenticationError, NotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionUser:
    id: str
    email: str
    company_id: Optional[str] = None
    full_name: Optional[str] = None


# (event, session) where event is "signed_in" or "signed_out"
SessionListener = Callable[[str, "SessionState"], None]


class SessionState:
    """The signed-in principal of one client, with change notification."""

    def __init__(self) -> None:
        self._access_token: Optional[str] = None
        self._user: Optional[SessionUser] = None
        self._listeners: List[SessionListener] = []

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def user(self) -> Optional[SessionUser]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    def sign_in(self, access_token: str, user: SessionUser) -> None:
        self._access_token = access_token
        self._user = user
        self._notify("signed_in")

    def sign_out(self) -> None:
        self._access_token = None
        self._user = None
        self._notify("signed_out")

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def require_token(self) -> str:
        if self._access_token is None:
            raise AuthenticationError("User not authenticated")
        return self._access_token

    def require_company_id(self) -> str:
        self.require_token()
        if self._user is None or not self._user.company_id:
            raise NotFound("Profile or company not found")
        return self._user.company_id

    def _notify(self, event: str) -> None:
        logger.debug(f"Session {event}")
        for listener in list(self._listeners):
            listener(event, self)
