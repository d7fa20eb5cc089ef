"""Credential repository contracts.

Two capability levels: every repository can create users and append
credentials; only a :class:`RemovableCredentialRepository` can delete
them. Callers check the capability with ``isinstance`` rather than
probing for a method.
"""

from abc import ABC, abstractmethod

from passkey_auth.models import Credential, User


class CredentialRepository(ABC):
    """Durable store of users and their bound credentials (append-only)."""

    @abstractmethod
    async def create_user(self, user_id: str, username: str, display_name: str) -> User:
        """Create a user with no credentials.

        Raises:
            UsernameTaken: username belongs to another user id
            RepositoryError: user id already exists
        """

    @abstractmethod
    async def get_user_by_id(self, user_id: str) -> User | None:
        """Get a user by id."""

    @abstractmethod
    async def get_user_by_username(self, username: str) -> User | None:
        """Get a user by exact (case-sensitive) username."""

    @abstractmethod
    async def find_by_credential_id(self, credential_id: str) -> tuple[User, Credential] | None:
        """Resolve the owning user and credential from a credential id."""

    @abstractmethod
    async def update_user(self, user: User) -> User:
        """Persist the user and the current state of its credentials."""

    @abstractmethod
    async def add_credential(self, user_id: str, credential: Credential) -> None:
        """Bind a new credential to a user. Existing credentials are never replaced.

        Raises:
            RepositoryError: unknown user, or credential id already registered
        """


class RemovableCredentialRepository(CredentialRepository):
    """Repository that also supports deleting credentials."""

    @abstractmethod
    async def remove_credential(self, user_id: str, credential_id: str) -> None:
        """Unbind a credential from a user.

        Raises:
            RepositoryError: unknown user
        """
