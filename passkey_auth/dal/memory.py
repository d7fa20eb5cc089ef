"""In-memory credential repositories.

State lives on the instance, so each application (or test) gets its own
store. Reads hand out deep copies: changes only stick through
``update_user`` or ``add_credential``.
"""

import asyncio

from passkey_auth.dal.base import CredentialRepository, RemovableCredentialRepository
from passkey_auth.exceptions import RepositoryError, UsernameTaken
from passkey_auth.models import Credential, User


class _InMemoryRepositoryBase(CredentialRepository):
    """Shared storage and lookups for the in-memory repositories."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._username_index: dict[str, str] = {}  # username -> user id
        self._credential_index: dict[str, str] = {}  # credential id -> user id
        self._lock = asyncio.Lock()

    async def create_user(self, user_id: str, username: str, display_name: str) -> User:
        async with self._lock:
            if user_id in self._users:
                raise RepositoryError(f"User {user_id!r} already exists")
            owner = self._username_index.get(username)
            if owner is not None and owner != user_id:
                raise UsernameTaken(username)
            user = User(id=user_id, username=username, display_name=display_name)
            self._users[user_id] = user
            self._username_index[username] = user_id
            return user.model_copy(deep=True)

    async def get_user_by_id(self, user_id: str) -> User | None:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def get_user_by_username(self, username: str) -> User | None:
        user_id = self._username_index.get(username)
        if user_id is None:
            return None
        return await self.get_user_by_id(user_id)

    async def find_by_credential_id(self, credential_id: str) -> tuple[User, Credential] | None:
        user_id = self._credential_index.get(credential_id)
        if user_id is None:
            return None
        user = await self.get_user_by_id(user_id)
        if user is None:
            return None
        credential = user.find_credential(credential_id)
        if credential is None:
            return None
        return user, credential

    async def update_user(self, user: User) -> User:
        async with self._lock:
            previous = self._users.get(user.id)
            owner = self._username_index.get(user.username)
            if owner is not None and owner != user.id:
                raise UsernameTaken(user.username)
            for credential in user.credentials:
                bound_to = self._credential_index.get(credential.id)
                if bound_to is not None and bound_to != user.id:
                    raise RepositoryError("Credential id is bound to another user")

            if previous is not None:
                if previous.username != user.username:
                    self._username_index.pop(previous.username, None)
                for credential in previous.credentials:
                    self._credential_index.pop(credential.id, None)

            stored = user.model_copy(deep=True)
            self._users[user.id] = stored
            self._username_index[user.username] = user.id
            for credential in stored.credentials:
                self._credential_index[credential.id] = user.id
            return stored.model_copy(deep=True)

    async def add_credential(self, user_id: str, credential: Credential) -> None:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise RepositoryError(f"User {user_id!r} not found")
            if credential.id in self._credential_index:
                raise RepositoryError("Credential id is already registered")

            user.credentials.append(credential.model_copy(deep=True))
            self._credential_index[credential.id] = user_id

    async def list_users(self) -> list[User]:
        """All users, in creation order."""
        return [user.model_copy(deep=True) for user in self._users.values()]

    def clear(self) -> None:
        """Drop all users and credentials."""
        self._users.clear()
        self._username_index.clear()
        self._credential_index.clear()


class InMemoryCredentialRepository(_InMemoryRepositoryBase, RemovableCredentialRepository):
    """Full in-memory repository, including credential removal."""

    async def remove_credential(self, user_id: str, credential_id: str) -> None:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise RepositoryError(f"User {user_id!r} not found")
            remaining = [c for c in user.credentials if c.id != credential_id]
            if len(remaining) != len(user.credentials):
                self._credential_index.pop(credential_id, None)
            user.credentials = remaining


class AppendOnlyCredentialRepository(_InMemoryRepositoryBase):
    """In-memory repository without removal support."""
