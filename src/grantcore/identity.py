"""Identity collaborator types.

grantcore does not authenticate anyone. An upstream identity provider has
already verified the caller and hands over a stable user id plus the
super-admin flag; these types are that hand-off.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from .exceptions import NotFoundError


class User(BaseModel):
    """Authenticated caller as seen by the engine."""

    model_config = {"frozen": True}

    id: str
    admin: bool = False


class IdentityProvider(ABC):
    """Resolves transport credentials to a :class:`User` on every call."""

    @abstractmethod
    def current_user(self, credentials: Any) -> User:
        raise NotImplementedError


class StaticIdentityProvider(IdentityProvider):
    """Identity provider backed by a fixed ``user_id -> User`` table.

    Credentials are the user id itself. Intended for tests and CLI tooling.
    """

    def __init__(self, users: dict[str, User] | None = None) -> None:
        self._users = dict(users or {})

    def add(self, user: User) -> None:
        self._users[user.id] = user

    def current_user(self, credentials: Any) -> User:
        try:
            return self._users[str(credentials)]
        except KeyError:
            raise NotFoundError("Unknown user", user_id=str(credentials)) from None


__all__ = ["IdentityProvider", "StaticIdentityProvider", "User"]
