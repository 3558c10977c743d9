"""
Activity models.

Entities:
- Activity: A programmed session of an event (keynote, panel, workshop, ...)
- ActivitySpeaker: Ordered speaker assignment with role
- ActivityResource: Resource assignment with optional criticality flag
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expo_conflicts.models.base import GUID, BaseModel


class Activity(BaseModel):
    """
    A programmed activity of an event.

    Activities are owned by an event (referenced by id only; events live in
    another system). They are tombstoned, never hard-deleted, while a
    conflict record references them.

    States: draft, scheduled, confirmed, in_progress, completed, cancelled.
    Draft and cancelled activities take no part in detection or scheduling.
    """

    __tablename__ = "activities"

    event_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        nullable=False,
        index=True,
        doc="Event the activity belongs to"
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
        doc="Display title"
    )

    activity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="other",
        doc="keynote, conference, panel, workshop, demo, networking or other"
    )

    start_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Start of the time range (NULL while unscheduled)"
    )

    end_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="End of the time range, exclusive"
    )

    duration_minutes: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Required duration for unscheduled activities"
    )

    location: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Room or hall name"
    )

    modality: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="in_person",
        doc="in_person, virtual or hybrid"
    )

    track_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        GUID,
        nullable=True,
        doc="Thematic track"
    )

    registered_participants: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Number of registered attendees"
    )

    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="scheduled",
        doc="Lifecycle state"
    )

    speakers: Mapped[list["ActivitySpeaker"]] = relationship(
        "ActivitySpeaker",
        back_populates="activity",
        cascade="all, delete-orphan",
        order_by="ActivitySpeaker.position",
    )

    resources: Mapped[list["ActivityResource"]] = relationship(
        "ActivityResource",
        back_populates="activity",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_activity_event_state", "event_id", "state"),
        Index("idx_activity_time_range", "start_time", "end_time"),
        CheckConstraint(
            "duration_minutes IS NULL OR duration_minutes > 0",
            name="check_activity_duration_positive",
        ),
    )


class ActivitySpeaker(BaseModel):
    """Speaker assigned to an activity. Speakers are opaque ids."""

    __tablename__ = "activity_speakers"

    activity_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("activities.id"),
        nullable=False,
        index=True,
    )

    speaker_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        nullable=False,
        index=True,
    )

    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="speaker",
        doc="speaker, moderator, panelist, ..."
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Order of appearance"
    )

    activity: Mapped["Activity"] = relationship("Activity", back_populates="speakers")


class ActivityResource(BaseModel):
    """Resource (projector, booth, interpreter, ...) assigned to an activity."""

    __tablename__ = "activity_resources"

    activity_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("activities.id"),
        nullable=False,
        index=True,
    )

    resource_id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        nullable=False,
        index=True,
    )

    is_critical: Mapped[Optional[bool]] = mapped_column(
        Boolean,
        nullable=True,
        doc="Whether the activity cannot run without it (NULL = unknown, treated as not critical)"
    )

    activity: Mapped["Activity"] = relationship("Activity", back_populates="resources")
