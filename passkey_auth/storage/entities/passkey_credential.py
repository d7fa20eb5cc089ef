"""Passkey credential entity model.

Stores WebAuthn credential public keys. Each row represents one
registered authenticator bound to one user.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, LargeBinary, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from passkey_auth.storage.models import Base

if TYPE_CHECKING:
    from passkey_auth.storage.entities.passkey_user import PasskeyUser


class PasskeyCredential(Base):
    """Stored WebAuthn credential."""

    credential_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        doc="Base64url WebAuthn credential ID (unique across all users)",
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("passkey_user.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    public_key: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
        doc="COSE public key bytes for signature verification",
    )
    sign_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Signature counter for clone detection",
    )
    device_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="singleDevice",
    )
    backed_up: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    transports: Mapped[list | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
        doc='Authenticator transports (e.g. ["internal", "hybrid"])',
    )
    aaguid: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # User-friendly metadata
    name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="User-friendly device label (e.g. 'iPhone 15')",
    )
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=True,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When this credential was last used to authenticate",
    )

    user: Mapped["PasskeyUser"] = relationship(back_populates="credentials")

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<PasskeyCredential(name={self.name!r}, user_id={self.user_id!r})>"
