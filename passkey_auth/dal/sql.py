"""SQLAlchemy-backed credential repository.

Each call runs in its own session from the injected factory and commits
before returning. Rows are converted to domain models at the boundary;
nothing outside this module sees ORM objects.
"""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from passkey_auth.dal.base import RemovableCredentialRepository
from passkey_auth.exceptions import RepositoryError, UsernameTaken
from passkey_auth.models import Credential, User, utcnow
from passkey_auth.storage.entities import PasskeyCredential, PasskeyUser


class SQLCredentialRepository(RemovableCredentialRepository):
    """Repository over the passkey_user / passkey_credential tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_user(self, user_id: str, username: str, display_name: str) -> User:
        async with self.session_factory() as session:
            if await session.get(PasskeyUser, user_id) is not None:
                raise RepositoryError(f"User {user_id!r} already exists")
            if await self._get_by_username(session, username) is not None:
                raise UsernameTaken(username)

            row = PasskeyUser(id=user_id, username=username, display_name=display_name)
            session.add(row)
            await session.commit()
            return User(id=user_id, username=username, display_name=display_name)

    async def get_user_by_id(self, user_id: str) -> User | None:
        async with self.session_factory() as session:
            row = await session.get(PasskeyUser, user_id)
            return _to_user(row) if row else None

    async def get_user_by_username(self, username: str) -> User | None:
        async with self.session_factory() as session:
            row = await self._get_by_username(session, username)
            return _to_user(row) if row else None

    async def find_by_credential_id(self, credential_id: str) -> tuple[User, Credential] | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PasskeyCredential).where(PasskeyCredential.credential_id == credential_id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return None
            owner = await session.get(PasskeyUser, row.user_id)
            if owner is None:
                return None
            user = _to_user(owner)
            credential = user.find_credential(credential_id)
            if credential is None:
                return None
            return user, credential

    async def update_user(self, user: User) -> User:
        async with self.session_factory() as session:
            existing = await self._get_by_username(session, user.username)
            if existing is not None and existing.id != user.id:
                raise UsernameTaken(user.username)

            row = await session.get(PasskeyUser, user.id)
            owned = {c.credential_id for c in row.credentials} if row is not None else set()
            for credential in user.credentials:
                if credential.id in owned:
                    continue
                if await session.get(PasskeyCredential, credential.id) is not None:
                    raise RepositoryError("Credential id is bound to another user")

            if row is None:
                row = PasskeyUser(id=user.id, username=user.username, display_name=user.display_name)
                session.add(row)
            row.username = user.username
            row.display_name = user.display_name

            rows_by_id = {c.credential_id: c for c in row.credentials}
            wanted = {c.id for c in user.credentials}
            for credential in user.credentials:
                credential_row = rows_by_id.get(credential.id)
                if credential_row is None:
                    row.credentials.append(_to_row(user.id, credential))
                else:
                    _apply_mutable_fields(credential_row, credential)
            for credential_id, credential_row in rows_by_id.items():
                if credential_id not in wanted:
                    row.credentials.remove(credential_row)

            await session.commit()
            return _to_user(row)

    async def add_credential(self, user_id: str, credential: Credential) -> None:
        async with self.session_factory() as session:
            row = await session.get(PasskeyUser, user_id)
            if row is None:
                raise RepositoryError(f"User {user_id!r} not found")

            if await session.get(PasskeyCredential, credential.id) is not None:
                raise RepositoryError("Credential id is already registered")

            session.add(_to_row(user_id, credential))
            await session.commit()

    async def remove_credential(self, user_id: str, credential_id: str) -> None:
        async with self.session_factory() as session:
            if await session.get(PasskeyUser, user_id) is None:
                raise RepositoryError(f"User {user_id!r} not found")
            await session.execute(
                delete(PasskeyCredential).where(
                    PasskeyCredential.user_id == user_id,
                    PasskeyCredential.credential_id == credential_id,
                )
            )
            await session.commit()

    @staticmethod
    async def _get_by_username(session: AsyncSession, username: str) -> PasskeyUser | None:
        result = await session.execute(select(PasskeyUser).where(PasskeyUser.username == username))
        return result.scalar_one_or_none()


def _to_user(row: PasskeyUser) -> User:
    return User(
        id=row.id,
        username=row.username,
        display_name=row.display_name,
        credentials=[_to_credential(c) for c in row.credentials],
    )


def _to_credential(row: PasskeyCredential) -> Credential:
    return Credential(
        id=row.credential_id,
        public_key=row.public_key,
        sign_count=row.sign_count,
        device_type=row.device_type,
        backed_up=row.backed_up,
        transports=row.transports,
        aaguid=row.aaguid,
        name=row.name,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
    )


def _to_row(user_id: str, credential: Credential) -> PasskeyCredential:
    return PasskeyCredential(
        credential_id=credential.id,
        user_id=user_id,
        public_key=credential.public_key,
        sign_count=credential.sign_count,
        device_type=credential.device_type,
        backed_up=credential.backed_up,
        transports=credential.transports,
        aaguid=credential.aaguid,
        name=credential.name,
        created_at=credential.created_at or utcnow(),
        last_used_at=credential.last_used_at,
    )


def _apply_mutable_fields(row: PasskeyCredential, credential: Credential) -> None:
    """Copy the fields that may change after registration. Never the key."""
    row.sign_count = credential.sign_count
    row.device_type = credential.device_type
    row.backed_up = credential.backed_up
    row.transports = credential.transports
    row.name = credential.name
    row.last_used_at = credential.last_used_at
