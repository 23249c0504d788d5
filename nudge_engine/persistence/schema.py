"""Database schema definition and ORM models.

This module defines SQLAlchemy ORM models for jobs, member profiles, nudge
interactions and lifecycle events, plus conversions to and from the domain
models. Timestamps are stored as fixed-width ISO 8601 UTC strings so they sort
and compare lexicographically.
"""

import logging
from typing import List

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    inspect,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship

from nudge_engine.domain.models import (
    Job,
    JobTag,
    LifecycleEvent,
    MemberProfile,
    NudgeInteraction,
)
from nudge_engine.utils.timestamps import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

Base = declarative_base()


def to_db_timestamp(dt) -> str:
    """Format a datetime for storage (microsecond precision, Z suffix)."""
    return format_timestamp(dt, include_microseconds=True)


class JobModel(Base):
    """ORM model for the jobs table."""

    __tablename__ = "jobs"

    id = Column(String(64), primary_key=True, nullable=False)
    title = Column(Text, nullable=False, default="")
    company = Column(String(255), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    location = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(String(50), nullable=False)

    tags = relationship(
        "JobTagModel",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobTagModel.position",
        lazy="selectin",
    )

    __table_args__ = (Index("idx_jobs_active", "is_active"),)

    def to_domain(self) -> Job:
        return Job(
            id=self.id,
            title=self.title,
            company=self.company,
            description=self.description,
            location=self.location,
            is_active=self.is_active,
            tags=[JobTag(name=tag.name, category=tag.category) for tag in self.tags],
        )

    @staticmethod
    def build_tags(job: Job) -> List["JobTagModel"]:
        """Build tag rows for a job, dropping repeats of the same (name, category)."""
        rows = []
        seen = set()
        for tag in job.tags:
            identity = (tag.normalized_name, tag.category.value)
            if identity in seen:
                continue
            seen.add(identity)
            rows.append(
                JobTagModel(
                    name=tag.name,
                    normalized_name=tag.normalized_name,
                    category=tag.category.value,
                    position=len(rows),
                )
            )
        return rows


class JobTagModel(Base):
    """ORM model for the job_tags table. Tags are immutable once attached."""

    __tablename__ = "job_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(64), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    normalized_name = Column(String(255), nullable=False)
    category = Column(String(20), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    job = relationship("JobModel", back_populates="tags")

    __table_args__ = (
        UniqueConstraint("job_id", "normalized_name", "category", name="uq_job_tags_identity"),
        Index("idx_job_tags_lookup", "category", "normalized_name"),
    )


class MemberProfileModel(Base):
    """ORM model for the member_profiles table.

    Attribute sets are stored as sorted JSON lists.
    """

    __tablename__ = "member_profiles"

    member_id = Column(String(64), primary_key=True, nullable=False)
    name = Column(String(255), nullable=True)
    skills = Column(JSON, nullable=False, default=list)
    past_companies = Column(JSON, nullable=False, default=list)
    domains = Column(JSON, nullable=False, default=list)
    preferences = Column(JSON, nullable=False, default=dict)
    updated_at = Column(String(50), nullable=False)

    def to_domain(self) -> MemberProfile:
        return MemberProfile(
            member_id=self.member_id,
            name=self.name,
            skills=self.skills or [],
            past_companies=self.past_companies or [],
            domains=self.domains or [],
            preferences=self.preferences or {},
        )

    def apply(self, profile: MemberProfile) -> None:
        """Copy a domain profile's attributes onto this row."""
        self.name = profile.name
        self.skills = sorted(profile.skills)
        self.past_companies = sorted(profile.past_companies)
        self.domains = sorted(profile.domains)
        self.preferences = dict(profile.preferences)


class NudgeInteractionModel(Base):
    """ORM model for the append-only nudge_interactions table.

    ``seq`` is an autoincrement column that records append order.
    """

    __tablename__ = "nudge_interactions"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    interaction_id = Column(String(36), nullable=False, unique=True)
    member_id = Column(String(64), nullable=False)
    job_id = Column(String(64), nullable=False)
    nudge_id = Column(String(64), nullable=True)
    action = Column(String(32), nullable=False)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_interactions_member_job", "member_id", "job_id"),
        Index("idx_interactions_job_created", "job_id", "created_at"),
        Index("idx_interactions_created", "created_at"),
    )

    def to_domain(self) -> NudgeInteraction:
        return NudgeInteraction(
            interaction_id=self.interaction_id,
            member_id=self.member_id,
            job_id=self.job_id,
            nudge_id=self.nudge_id,
            action=self.action,
            metadata=self.meta or {},
            created_at=parse_timestamp(self.created_at),
        )

    @classmethod
    def from_domain(cls, interaction: NudgeInteraction) -> "NudgeInteractionModel":
        return cls(
            interaction_id=interaction.interaction_id,
            member_id=interaction.member_id,
            job_id=interaction.job_id,
            nudge_id=interaction.nudge_id,
            action=interaction.action.value,
            meta=dict(interaction.metadata),
            created_at=to_db_timestamp(interaction.created_at),
        )


class EventModel(Base):
    """ORM model for the append-only events table (generic lifecycle events)."""

    __tablename__ = "events"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(36), nullable=False, unique=True)
    type = Column(String(40), nullable=False)
    user_id = Column(String(64), nullable=True)
    job_id = Column(String(64), nullable=True)
    referral_id = Column(String(64), nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_events_job_type", "job_id", "type"),
        Index("idx_events_user", "user_id"),
        Index("idx_events_created", "created_at"),
    )

    def to_domain(self) -> LifecycleEvent:
        return LifecycleEvent(
            event_id=self.event_id,
            type=self.type,
            user_id=self.user_id,
            job_id=self.job_id,
            referral_id=self.referral_id,
            metadata=self.meta or {},
            created_at=parse_timestamp(self.created_at),
        )

    @classmethod
    def from_domain(cls, event: LifecycleEvent) -> "EventModel":
        return cls(
            event_id=event.event_id,
            type=event.type.value,
            user_id=event.user_id,
            job_id=event.job_id,
            referral_id=event.referral_id,
            meta=dict(event.metadata),
            created_at=to_db_timestamp(event.created_at),
        )


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent).

    Args:
        engine: SQLAlchemy engine instance
    """
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
