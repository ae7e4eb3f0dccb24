import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Member(Base):
    __tablename__ = "members"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    display_name = Column(String, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    # purpose: cached ladder positions, recomputed by the approval workflow
    fish_level = Column(String, nullable=True)
    plant_level = Column(String, nullable=True)
    coral_level = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    submissions = relationship(
        "Submission",
        back_populates="member",
        foreign_keys="Submission.member_id",
    )
    awards = relationship(
        "Award",
        back_populates="member",
        cascade="all, delete-orphan",
        order_by="Award.date_awarded",
    )


class SpeciesNameGroup(Base):
    """Canonical species record an administrator links a submission to on approval."""

    __tablename__ = "species_name_groups"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    program = Column(String, nullable=False)
    species_type = Column(String, nullable=False)
    canonical_genus = Column(String, nullable=False)
    canonical_species_name = Column(String, nullable=False)

    __table_args__ = (
        sa.UniqueConstraint("canonical_genus", "canonical_species_name"),
    )


class Submission(Base):
    __tablename__ = "submissions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    member_id = Column(UUID(as_uuid=True), ForeignKey("members.id"), nullable=False)
    program = Column(String, nullable=True)

    species_type = Column(String, nullable=True)
    species_class = Column(String, nullable=True)
    species_common_name = Column(String, nullable=True)
    species_latin_name = Column(String, nullable=True)
    species_name_id = Column(
        UUID(as_uuid=True), ForeignKey("species_name_groups.id"), nullable=True
    )
    water_type = Column(String, nullable=True)
    count = Column(String, nullable=True)
    reproduction_date = Column(Date, nullable=True)
    # purpose: program-specific tank, food, lighting and supplement answers
    details = Column(JSON, default=dict)

    submitted_on = Column(DateTime, nullable=True)

    witness_verification_status = Column(String, default="pending", nullable=False)
    witnessed_by = Column(UUID(as_uuid=True), ForeignKey("members.id"), nullable=True)
    witnessed_on = Column(DateTime, nullable=True)

    changes_requested_on = Column(DateTime, nullable=True)
    changes_requested_by = Column(UUID(as_uuid=True), ForeignKey("members.id"), nullable=True)
    changes_requested_reason = Column(Text, nullable=True)

    approved_on = Column(DateTime, nullable=True)
    approved_by = Column(UUID(as_uuid=True), ForeignKey("members.id"), nullable=True)
    points = Column(Integer, nullable=True)
    article_points = Column(Integer, nullable=True)
    first_time_species = Column(Boolean, default=False, nullable=False)
    cares_species = Column(Boolean, default=False, nullable=False)
    flowered = Column(Boolean, default=False, nullable=False)
    sexual_reproduction = Column(Boolean, default=False, nullable=False)

    denied_on = Column(DateTime, nullable=True)
    denied_by = Column(UUID(as_uuid=True), ForeignKey("members.id"), nullable=True)
    denied_reason = Column(Text, nullable=True)

    created_on = Column(DateTime, default=_utcnow)
    updated_on = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    member = relationship("Member", back_populates="submissions", foreign_keys=[member_id])
    species_name = relationship("SpeciesNameGroup")
    notes = relationship(
        "SubmissionNote",
        back_populates="submission",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SubmissionNote.created_at",
    )

    @property
    def total_points(self) -> int | None:
        if self.points is None:
            return None
        total = self.points + (self.article_points or 0)
        if self.first_time_species:
            total += 5
        if self.flowered:
            total += self.points
        if self.sexual_reproduction:
            total += self.points
        return total


class SubmissionNote(Base):
    __tablename__ = "submission_notes"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(
        UUID(as_uuid=True),
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
    )
    admin_id = Column(UUID(as_uuid=True), ForeignKey("members.id"), nullable=False)
    note_text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    submission = relationship("Submission", back_populates="notes")


class Award(Base):
    __tablename__ = "awards"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    member_id = Column(UUID(as_uuid=True), ForeignKey("members.id"), nullable=False)
    award_name = Column(String, nullable=False)
    date_awarded = Column(DateTime, default=_utcnow, nullable=False)
    award_type = Column(String, default="species", nullable=False)

    member = relationship("Member", back_populates="awards")

    __table_args__ = (sa.UniqueConstraint("member_id", "award_name"),)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("members.id"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)
