"""Passkey user entity model."""

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from passkey_auth.storage.models import Base, TimestampMixin

if TYPE_CHECKING:
    from passkey_auth.storage.entities.passkey_credential import PasskeyCredential


class PasskeyUser(Base, TimestampMixin):
    """A user that owns zero or more passkey credentials.

    The id is assigned by the host application, not generated here.
    """

    id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        doc="Externally assigned stable user id",
    )
    username: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        doc="Unique, case-sensitive login name",
    )
    display_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Name shown by the authenticator",
    )

    credentials: Mapped[list["PasskeyCredential"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PasskeyCredential.created_at",
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<PasskeyUser(id={self.id!r}, username={self.username!r})>"
