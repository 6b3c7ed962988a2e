"""Session capability consumed by the habits facade."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from ..logging_config import get_logger

logger = get_logger(__name__)

SessionListener = Callable[[Optional[str]], None]


class AuthProvider(Protocol):
    """Anything that knows who is signed in and announces changes."""

    def current_user_id(self) -> Optional[str]:
        """Return the signed-in user's id, or None when signed out."""
        ...

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call ``listener(user_id_or_none)`` on every sign-in / sign-out."""
        ...


class SessionState:
    """In-process session holder used by the CLI and tests."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id or None
        self._listeners: list[SessionListener] = []

    def current_user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_signed_in(self) -> bool:
        return self._user_id is not None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id is required to sign in")
        if user_id == self._user_id:
            return
        self._user_id = user_id
        logger.info("Signed in", extra={"user_id": user_id})
        self._emit()

    def sign_out(self) -> None:
        if self._user_id is None:
            return
        logger.info("Signed out", extra={"user_id": self._user_id})
        self._user_id = None
        self._emit()

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self._user_id)
