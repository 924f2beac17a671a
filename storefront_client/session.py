"""
Identity boundary.

The cart, discount validator and checkout ask an ``IdentityProvider`` for
the current user at call time; they never cache it.
"""

import logging
from typing import Callable, Optional, Protocol

from .types import User

logger = logging.getLogger("storefront-client-session")

AuthListener = Callable[[Optional[User]], None]


class IdentityProvider(Protocol):
    async def get_current_user(self) -> Optional[User]:
        ...

    async def get_access_token(self) -> Optional[str]:
        ...

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        ...

    async def sign_out(self) -> None:
        ...


class LocalIdentity:
    """Holds a user and bearer token obtained elsewhere."""

    def __init__(self, user: Optional[User] = None, token: Optional[str] = None) -> None:
        self._user = user
        self._token = token
        self._listeners: list[AuthListener] = []

    async def get_current_user(self) -> Optional[User]:
        return self._user

    async def get_access_token(self) -> Optional[str]:
        return self._token if self._user is not None else None

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._user)

    def sign_in(self, user: User, token: str) -> None:
        self._user = user
        self._token = token
        logger.info("Signed in as %s", user.id)
        self._notify()

    async def sign_out(self) -> None:
        if self._user is None:
            return
        logger.info("Signed out %s", self._user.id)
        self._user = None
        self._token = None
        self._notify()
