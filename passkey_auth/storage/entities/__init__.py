"""Database entities."""

from passkey_auth.storage.entities.passkey_credential import PasskeyCredential
from passkey_auth.storage.entities.passkey_user import PasskeyUser

__all__ = [
    "PasskeyCredential",
    "PasskeyUser",
]
