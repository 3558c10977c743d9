"""
Company and assignment request models.

Entities:
- Company: Exhibiting company with its participation history
- AssignmentRequest: A company's request for a stand at an event
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expo_conflicts.models.base import GUID, BaseModel, JSONType, utcnow


class Company(BaseModel):
    """
    Exhibiting company.

    The participation fields feed the priority score used to rank
    competing stand requests.
    """

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Company display name"
    )

    participation_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Number of past events the company exhibited at"
    )

    average_rating: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        doc="Average rating from past events (0-5)"
    )

    first_participation_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Date of the first participation"
    )

    requests: Mapped[list["AssignmentRequest"]] = relationship(
        "AssignmentRequest",
        back_populates="company",
    )


class AssignmentRequest(BaseModel):
    """
    A company's stand request for one event.

    States: requested -> in_review -> approved | rejected,
    approved -> assigned | cancelled, requested | in_review -> cancelled.

    At most one live (non-deleted) request exists per (company, event),
    enforced by a partial unique index.
    """

    __tablename__ = "assignment_requests"

    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id"),
        nullable=False,
        index=True,
    )

    event_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        nullable=False,
        index=True,
    )

    stand_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID,
        nullable=True,
        doc="Requested stand (NULL for automatic assignment)"
    )

    assigned_stand_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID,
        nullable=True,
        doc="Stand actually granted after resolution"
    )

    mode: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="direct_pick",
        doc="direct_pick, manual or automatic"
    )

    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="requested",
    )

    priority_score: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        doc="Score computed at submission (0-100)"
    )

    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    response_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    notification_log: Mapped[list] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        doc="Structured notification entries for the dispatcher"
    )

    company: Mapped["Company"] = relationship("Company", back_populates="requests")

    __table_args__ = (
        Index(
            "uq_request_live_company_event",
            "company_id",
            "event_id",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("idx_request_event_stand", "event_id", "stand_id"),
    )
