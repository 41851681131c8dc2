"""
Energy reset voting

A reset session collects one vote per user. Once the number of distinct votes
reaches ``required_votes`` (the device's channel count) the session moves to
``executing`` and waits for the device to poll and acknowledge it.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, relationship

from energy_monitor.core.timeutils import utcnow

from . import Base

STATUS_VOTING = "voting"
STATUS_EXECUTING = "executing"
STATUS_COMPLETED = "completed"
STATUS_EXPIRED = "expired"


class ResetSession(Base):
    __tablename__ = "energy_reset_sessions"
    __table_args__ = (
        # One open ballot per device
        Index(
            "uq_energy_reset_sessions_device_voting",
            "device_id",
            unique=True,
            postgresql_where=text("status = 'voting'"),
            sqlite_where=text("status = 'voting'"),
        ),
    )

    id: Mapped[int] = Column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = Column(
        String(64),
        ForeignKey("devices.device_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    required_votes: Mapped[int] = Column(Integer, nullable=False)
    votes_received: Mapped[int] = Column(Integer, nullable=False, default=0)
    status: Mapped[str] = Column(String(16), nullable=False, default=STATUS_VOTING, index=True)
    created_at: Mapped[datetime] = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = Column(DateTime(timezone=True), nullable=False)
    reset_executed_at: Mapped[datetime | None] = Column(DateTime(timezone=True), nullable=True)

    votes: Mapped[list[ResetVote]] = relationship(
        "ResetVote",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return (
            f"<ResetSession(id={self.id}, device_id={self.device_id}, status={self.status}, "
            f"votes={self.votes_received}/{self.required_votes})>"
        )


class ResetVote(Base):
    __tablename__ = "energy_reset_votes"
    __table_args__ = (
        UniqueConstraint("session_id", "user_id", name="uq_energy_reset_votes_session_user"),
    )

    id: Mapped[int] = Column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = Column(
        Integer,
        ForeignKey("energy_reset_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    device_id: Mapped[str] = Column(
        String(64),
        ForeignKey("devices.device_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = Column(String(255), nullable=False)
    voted_at: Mapped[datetime] = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    session: Mapped[ResetSession] = relationship("ResetSession", back_populates="votes")
