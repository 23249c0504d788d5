"""Data access layer (repositories) for persistence operations.

Repositories wrap one session each, return domain models rather than ORM rows
and translate SQLAlchemy errors into PersistenceError subclasses.
"""

import logging
import uuid
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from nudge_engine.domain.exceptions import NotFoundError
from nudge_engine.domain.models import (
    EventType,
    Job,
    LifecycleEvent,
    MemberProfile,
    NudgeInteraction,
)
from nudge_engine.utils.timestamps import utc_now

from .exceptions import DataIntegrityError, PersistenceError
from .schema import (
    EventModel,
    JobModel,
    MemberProfileModel,
    NudgeInteractionModel,
    to_db_timestamp,
)

logger = logging.getLogger(__name__)


class JobRepository:
    """Job provider backed by the jobs and job_tags tables."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, job_id: str) -> Optional[Job]:
        """Retrieve a job by id, or None if absent.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            job_model = self.session.get(JobModel, job_id)
            return job_model.to_domain() if job_model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve job: {e}") from e

    def get_job(self, job_id: str) -> Job:
        """Retrieve a job by id.

        Raises:
            NotFoundError: If the job does not exist
            PersistenceError: If database error occurs
        """
        job = self.get(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    def list_active(self) -> List[Job]:
        try:
            stmt = select(JobModel).where(JobModel.is_active.is_(True)).order_by(JobModel.id)
            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing active jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list jobs: {e}") from e

    def upsert(self, job: Job) -> Job:
        """Insert a job or replace its fields and tags.

        Raises:
            DataIntegrityError: On constraint violation
            PersistenceError: If database error occurs
        """
        try:
            existing = self.session.get(JobModel, job.id)
            if existing is None:
                existing = JobModel(id=job.id)
                self.session.add(existing)

            existing.title = job.title
            existing.company = job.company
            existing.description = job.description
            existing.location = job.location
            existing.is_active = job.is_active
            existing.updated_at = to_db_timestamp(utc_now())
            # Orphans must be deleted before re-inserting the same (name, category)
            existing.tags.clear()
            self.session.flush()
            existing.tags = JobModel.build_tags(job)

            self.session.flush()
            return existing.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error upserting job {job.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to upsert job due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error upserting job {job.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert job: {e}") from e


class MemberProfileRepository:
    """Member profile provider backed by the member_profiles table."""

    def __init__(self, session: Session):
        self.session = session

    def get_profile(self, member_id: str) -> Optional[MemberProfile]:
        """Retrieve a profile, or None if the member has none.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            row = self.session.get(MemberProfileModel, member_id)
            return row.to_domain() if row else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving profile {member_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve profile: {e}") from e

    def get_profiles(self, member_ids: Iterable[str]) -> Dict[str, MemberProfile]:
        """Retrieve several profiles at once, keyed by member id. Absent ids are skipped."""
        ids = list(dict.fromkeys(member_ids))
        if not ids:
            return {}
        try:
            stmt = select(MemberProfileModel).where(MemberProfileModel.member_id.in_(ids))
            rows = self.session.execute(stmt).scalars().all()
            return {row.member_id: row.to_domain() for row in rows}
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving {len(ids)} profiles: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve profiles: {e}") from e

    def upsert(self, profile: MemberProfile) -> MemberProfile:
        """Insert or replace a member profile.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            row = self.session.get(MemberProfileModel, profile.member_id)
            if row is None:
                row = MemberProfileModel(member_id=profile.member_id)
                self.session.add(row)
            row.apply(profile)
            row.updated_at = to_db_timestamp(utc_now())
            self.session.flush()
            return row.to_domain()
        except SQLAlchemyError as e:
            logger.error(f"Error upserting profile {profile.member_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert profile: {e}") from e


class InteractionRepository:
    """Append-only store for nudge interactions."""

    def __init__(self, session: Session):
        self.session = session

    def append(self, interaction: NudgeInteraction) -> NudgeInteraction:
        """Append one interaction and return it with its assigned id.

        Duplicates are stored as separate rows.

        Raises:
            DataIntegrityError: If the interaction id already exists
            PersistenceError: If database error occurs
        """
        if interaction.interaction_id is None:
            interaction = interaction.model_copy(update={"interaction_id": str(uuid.uuid4())})

        try:
            row = NudgeInteractionModel.from_domain(interaction)
            self.session.add(row)
            self.session.flush()
            return interaction
        except IntegrityError as e:
            logger.error(f"Integrity error appending interaction: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to append interaction: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error appending interaction: {e}", exc_info=True)
            raise PersistenceError(f"Failed to append interaction: {e}") from e

    def query(
        self,
        member_id: Optional[str] = None,
        job_id: Optional[str] = None,
        nudge_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[NudgeInteraction]:
        """Return matching interactions in append order.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = select(NudgeInteractionModel)
            if member_id is not None:
                stmt = stmt.where(NudgeInteractionModel.member_id == member_id)
            if job_id is not None:
                stmt = stmt.where(NudgeInteractionModel.job_id == job_id)
            if nudge_id is not None:
                stmt = stmt.where(NudgeInteractionModel.nudge_id == nudge_id)
            if since is not None:
                stmt = stmt.where(NudgeInteractionModel.created_at >= to_db_timestamp(since))
            if until is not None:
                stmt = stmt.where(NudgeInteractionModel.created_at < to_db_timestamp(until))
            stmt = stmt.order_by(NudgeInteractionModel.seq)

            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error querying interactions: {e}", exc_info=True)
            raise PersistenceError(f"Failed to query interactions: {e}") from e

    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete interactions created before cutoff. Returns the count deleted."""
        try:
            stmt = delete(NudgeInteractionModel).where(
                NudgeInteractionModel.created_at < to_db_timestamp(cutoff)
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error purging interactions: {e}", exc_info=True)
            raise PersistenceError(f"Failed to purge interactions: {e}") from e


class EventRepository:
    """Append-only store for lifecycle events."""

    def __init__(self, session: Session):
        self.session = session

    def append(self, event: LifecycleEvent) -> LifecycleEvent:
        """Append one event and return it with its assigned id.

        Raises:
            PersistenceError: If database error occurs
        """
        if event.event_id is None:
            event = event.model_copy(update={"event_id": str(uuid.uuid4())})

        try:
            self.session.add(EventModel.from_domain(event))
            self.session.flush()
            return event
        except IntegrityError as e:
            logger.error(f"Integrity error appending event: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to append event: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error appending event: {e}", exc_info=True)
            raise PersistenceError(f"Failed to append event: {e}") from e

    def query(
        self,
        job_id: Optional[str] = None,
        user_id: Optional[str] = None,
        types: Optional[Iterable[EventType]] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[LifecycleEvent]:
        """Return matching events in append order."""
        try:
            stmt = select(EventModel)
            if job_id is not None:
                stmt = stmt.where(EventModel.job_id == job_id)
            if user_id is not None:
                stmt = stmt.where(EventModel.user_id == user_id)
            if types is not None:
                stmt = stmt.where(EventModel.type.in_([t.value for t in types]))
            if since is not None:
                stmt = stmt.where(EventModel.created_at >= to_db_timestamp(since))
            if until is not None:
                stmt = stmt.where(EventModel.created_at < to_db_timestamp(until))
            stmt = stmt.order_by(EventModel.seq)

            return [row.to_domain() for row in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error querying events: {e}", exc_info=True)
            raise PersistenceError(f"Failed to query events: {e}") from e

    def count_by_type(self, job_id: str) -> Dict[EventType, int]:
        """Count a job's events per type. Types with no events are omitted."""
        try:
            stmt = (
                select(EventModel.type, func.count(EventModel.seq))
                .where(EventModel.job_id == job_id)
                .group_by(EventModel.type)
            )
            counts: Counter = Counter()
            for event_type, count in self.session.execute(stmt).all():
                counts[EventType(event_type)] = count
            return dict(counts)
        except SQLAlchemyError as e:
            logger.error(f"Error counting events for job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count events: {e}") from e

    def distinct_users(self, job_id: str, event_type: EventType) -> List[str]:
        """Distinct user ids with at least one event of a type for a job."""
        try:
            stmt = (
                select(distinct(EventModel.user_id))
                .where(
                    EventModel.job_id == job_id,
                    EventModel.type == event_type.value,
                    EventModel.user_id.is_not(None),
                )
                .order_by(EventModel.user_id)
            )
            return [user_id for user_id in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing users for job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list users: {e}") from e

    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete events created before cutoff. Returns the count deleted."""
        try:
            stmt = delete(EventModel).where(EventModel.created_at < to_db_timestamp(cutoff))
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error purging events: {e}", exc_info=True)
            raise PersistenceError(f"Failed to purge events: {e}") from e
