"""
Resolution history model.

Entities:
- ResolutionHistoryEntry: Append-only record of a committed assignment change
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from expo_conflicts.models.base import GUID, Base, utcnow


class ResolutionHistoryEntry(Base):
    """
    One committed change to a stand assignment.

    Entries are insert-only: they have no update or tombstone columns and any
    attempt to flush a modified entry fails. A reversal is a new entry whose
    `reverts_entry_id` points at the entry it undoes. Entries are ordered by
    `recorded_at`, then id.
    """

    __tablename__ = "resolution_history"

    id: Mapped[uuid.UUID] = mapped_column(GUID, primary_key=True, default=uuid.uuid4)

    event_id: Mapped[uuid.UUID] = mapped_column(GUID, nullable=False, index=True)

    conflict_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("stand_conflicts.id"),
        nullable=True,
        index=True,
    )

    request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("assignment_requests.id"),
        nullable=True,
    )

    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    stand_before: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)
    stand_after: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    state_before: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    state_after: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")

    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(GUID, nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    reversible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    reverts_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("resolution_history.id"),
        nullable=True,
        unique=True,
        doc="Entry this one reverses (each entry can be reverted once)"
    )

    __table_args__ = (
        Index("idx_history_event_recorded", "event_id", "recorded_at"),
    )

    def __repr__(self) -> str:
        return f"<ResolutionHistoryEntry(id={self.id}, {self.state_before}->{self.state_after})>"


@event.listens_for(ResolutionHistoryEntry, "before_update")
def _reject_history_update(mapper, connection, target):
    raise ValueError("Resolution history entries are append-only")
