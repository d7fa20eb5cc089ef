"""Credential repositories.

Usage:
    from passkey_auth.dal import InMemoryCredentialRepository

    repository = InMemoryCredentialRepository()
    user = await repository.create_user("u1", "alice", "Alice A")
"""

from passkey_auth.dal.base import CredentialRepository, RemovableCredentialRepository
from passkey_auth.dal.memory import AppendOnlyCredentialRepository, InMemoryCredentialRepository
from passkey_auth.dal.sql import SQLCredentialRepository

__all__ = [
    "AppendOnlyCredentialRepository",
    "CredentialRepository",
    "InMemoryCredentialRepository",
    "RemovableCredentialRepository",
    "SQLCredentialRepository",
]
