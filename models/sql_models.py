"""
SQLAlchemy models for the credential store.

Only credential-ceremony state is persisted; timestamps are naive UTC. No birth
date, name, ID number or image is ever stored: a user row records only that an
age check passed, and when.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from services.db import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    age_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime())
    created_at: Mapped[datetime] = mapped_column(DateTime(), server_default=func.now())

    credentials: Mapped[List["Credential"]] = relationship(back_populates="user", cascade="all, delete-orphan")
    challenges: Mapped[List["Challenge"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class Credential(Base):
    __tablename__ = "credentials"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    # base64url credential id as sent by the authenticator
    credential_id: Mapped[str] = mapped_column(String(512), unique=True, nullable=False)
    # Opaque attestation material; not interpreted by this service
    public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    counter: Mapped[int] = mapped_column(Integer, default=0)
    transports: Mapped[list] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(), server_default=func.now())

    user: Mapped["User"] = relationship(back_populates="credentials")


class Challenge(Base):
    """Single-use, time-limited ceremony challenge."""
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    challenge: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # 'registration'
    expires_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(), server_default=func.now())

    user: Mapped["User"] = relationship(back_populates="challenges")

    __table_args__ = (
        Index("idx_challenges_user_type", "user_id", "type"),
    )
