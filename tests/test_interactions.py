"""Tests for the nudge interaction log and its aggregation."""

from datetime import datetime, timedelta, timezone

import pytest

from nudge_engine.analytics import EventRecorder
from nudge_engine.config.models import InteractionsConfig
from nudge_engine.domain.exceptions import ValidationError
from nudge_engine.domain.models import InteractionAction, NudgeInteraction
from nudge_engine.interactions import InteractionFilter, NudgeInteractionLog, collapse_duplicates
from nudge_engine.persistence import (
    InteractionRepository,
    PersistenceError,
    close_database,
    get_session,
    init_database,
)

from tests.helpers import FakeClock, locked_commit_scope


@pytest.fixture(autouse=True)
def db(tmp_path):
    init_database(f"sqlite:///{tmp_path / 'test.db'}")
    yield
    close_database()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def log(clock):
    return NudgeInteractionLog(config=InteractionsConfig(dedup_window="10s"), clock=clock)


def submit(log, action, member_id="member-1", job_id="job-1", nudge_id="nudge-1", **extra):
    return log.record(
        {"member_id": member_id, "job_id": job_id, "nudge_id": nudge_id, "action": action, **extra}
    )


def stored_rows():
    with get_session() as session:
        return InteractionRepository(session).query()


class TestRecord:
    """Tests for validating and appending interactions."""

    def test_returns_interaction_id(self, log, clock):
        """Test a valid submission is stored with the clock's time."""
        interaction_id = submit(log, "viewed")

        (row,) = stored_rows()
        assert row.interaction_id == interaction_id
        assert row.action == InteractionAction.VIEWED
        assert row.created_at == clock()

    def test_accepts_model_instances(self, log):
        """Test a NudgeInteraction can be recorded directly, ignoring any preset id."""
        interaction = NudgeInteraction(
            interaction_id="caller-chosen", member_id="m", job_id="j", action=InteractionAction.CLICKED
        )

        interaction_id = log.record(interaction)

        assert interaction_id != "caller-chosen"

    def test_duplicates_are_stored(self, log):
        """Test identical submissions are each appended."""
        for _ in range(3):
            submit(log, "CLICKED")

        assert len(stored_rows()) == 3

    @pytest.mark.parametrize(
        "payload,field",
        [
            ({"job_id": "job-1", "action": "VIEWED"}, "member_id"),
            ({"member_id": "  ", "job_id": "job-1", "action": "VIEWED"}, "member_id"),
            ({"member_id": "m", "action": "VIEWED"}, "job_id"),
            ({"member_id": "m", "job_id": "job-1", "action": "LIKED"}, "action"),
            ({"member_id": "m", "job_id": "job-1"}, "action"),
        ],
    )
    def test_validation_rejects_before_write(self, log, payload, field):
        """Test malformed submissions raise ValidationError and write nothing."""
        with pytest.raises(ValidationError) as exc_info:
            log.record(payload)

        assert any(error.startswith(field) for error in exc_info.value.errors)
        assert "Invalid interaction" in str(exc_info.value)
        assert stored_rows() == []

    def test_non_mapping_rejected(self, log):
        """Test a non-mapping submission is a validation error."""
        with pytest.raises(ValidationError, match="must be a mapping"):
            log.record(["member-1", "job-1", "VIEWED"])

    def test_metadata_sanitized(self, log):
        """Test sensitive keys are dropped and long strings truncated before storage."""
        submit(
            log,
            "SHARE_EMAIL",
            metadata={"channel": "email", "authToken": "abc", "note": "x" * 1500},
        )

        (row,) = stored_rows()
        assert set(row.metadata) == {"channel", "note"}
        assert row.metadata["note"] == "x" * 1000 + "...[truncated]"

    def test_out_of_order_accepted(self, log, clock):
        """Test a submission timestamped in the past is still appended."""
        submit(log, "CLICKED")
        submit(log, "VIEWED", created_at=clock() - timedelta(minutes=5))

        assert [row.action for row in stored_rows()] == [InteractionAction.CLICKED, InteractionAction.VIEWED]

    def test_commit_failure_is_persistence_error(self, clock):
        """Test a lock at commit time is reported as a retryable PersistenceError."""
        log = NudgeInteractionLog(session_scope=locked_commit_scope, clock=clock)

        with pytest.raises(PersistenceError, match="database is locked"):
            submit(log, "CLICKED")

        assert stored_rows() == []


class TestListForMember:
    """Tests for reading a member's interactions."""

    def test_append_order_and_job_filter(self, log, clock):
        """Test interactions are listed in append order and can be limited to one job."""
        submit(log, "VIEWED")
        clock.advance(seconds=1)
        submit(log, "VIEWED", job_id="job-2")
        clock.advance(seconds=1)
        submit(log, "CLICKED")
        submit(log, "VIEWED", member_id="member-2")

        all_rows = log.list_for_member("member-1")
        job_rows = log.list_for_member("member-1", job_id="job-1")

        assert [row.job_id for row in all_rows] == ["job-1", "job-2", "job-1"]
        assert [row.action for row in job_rows] == [InteractionAction.VIEWED, InteractionAction.CLICKED]

    def test_blank_member_rejected(self, log):
        """Test member_id is required."""
        with pytest.raises(ValidationError):
            log.list_for_member(" ")


class TestAggregateStats:
    """Tests for NudgeStats aggregation."""

    def test_no_interactions_zero_rates(self, log):
        """Test zero shown nudges yields zero rates, not an error."""
        stats = log.aggregate_stats({"job_id": "job-1"})

        assert stats.total_shown == 0
        assert stats.click_rate == 0.0
        assert stats.conversion_rate == 0.0
        assert set(stats.action_counts) == {action.value for action in InteractionAction}
        assert all(count == 0 for count in stats.action_counts.values())

    def test_served_nudges_count_as_shown(self, log, clock):
        """Test nudges served without any interaction still count toward total_shown."""
        recorder = EventRecorder(clock=clock)
        recorder.track_nudges_shown(
            "member-1", "job-1", 2, ["company_overlap", "skills_overlap"], ["nudge-1", "nudge-2"]
        )
        recorder.track_nudges_shown("member-1", "job-2", 1, ["skills_overlap"], ["nudge-9"])
        submit(log, "CLICKED", nudge_id="nudge-1")

        stats = log.aggregate_stats({"job_id": "job-1"})

        assert stats.total_shown == 2
        assert stats.clicked == 1
        assert stats.click_rate == pytest.approx(0.5)
        assert stats.raw_events == 1

    def test_click_and_conversion_rates(self, log):
        """Test rates are computed over distinct nudges."""
        submit(log, "VIEWED", nudge_id="n-1")
        submit(log, "VIEWED", nudge_id="n-2")
        submit(log, "VIEWED", nudge_id="n-3")
        submit(log, "VIEWED", nudge_id="n-4")
        submit(log, "CLICKED", nudge_id="n-1")
        submit(log, "CLICKED", nudge_id="n-2")
        submit(log, "REFERRED", nudge_id="n-1")
        submit(log, "DISMISSED", nudge_id="n-4")

        stats = log.aggregate_stats()

        assert stats.total_shown == 4
        assert stats.clicked == 2
        assert stats.referred == 1
        assert stats.dismissed == 1
        assert stats.click_rate == pytest.approx(0.5)
        assert stats.conversion_rate == pytest.approx(0.25)

    def test_rapid_repeats_collapse(self, log, clock):
        """Test repeated clicks inside the dedup window count once."""
        submit(log, "VIEWED")
        for _ in range(3):
            submit(log, "CLICKED")
            clock.advance(seconds=2)

        stats = log.aggregate_stats()

        assert stats.raw_events == 4
        assert stats.logical_events == 2
        assert stats.duplicates_collapsed == 2
        assert stats.action_counts["CLICKED"] == 1
        assert stats.click_rate == 1.0

    def test_repeats_outside_window_are_distinct_events(self, log, clock):
        """Test a repeat after the window is a new logical event for the same nudge."""
        submit(log, "CLICKED")
        clock.advance(seconds=11)
        submit(log, "CLICKED")

        stats = log.aggregate_stats()

        assert stats.action_counts["CLICKED"] == 2
        assert stats.clicked == 1
        assert stats.total_shown == 1

    def test_filters(self, log, clock):
        """Test job, member and time filters."""
        submit(log, "VIEWED", job_id="job-1")
        submit(log, "VIEWED", job_id="job-2")
        submit(log, "VIEWED", member_id="member-2", job_id="job-1")
        clock.advance(hours=1)
        submit(log, "CLICKED", job_id="job-1")

        assert log.aggregate_stats({"job_id": "job-1"}).total_shown == 2
        assert log.aggregate_stats({"member_id": "member-1"}).total_shown == 2
        recent = log.aggregate_stats(InteractionFilter(since=clock() - timedelta(minutes=1)))
        assert recent.logical_events == 1
        assert recent.action_counts["CLICKED"] == 1

    def test_invalid_filter(self, log):
        """Test a reversed range is rejected."""
        since = datetime(2025, 11, 5, tzinfo=timezone.utc)
        until = datetime(2025, 11, 4, tzinfo=timezone.utc)

        with pytest.raises(ValidationError, match="Invalid interaction filter"):
            log.aggregate_stats({"since": since, "until": until})

    def test_to_dict(self, log):
        """Test the JSON-ready payload rounds rates."""
        submit(log, "VIEWED", nudge_id="n-1")
        submit(log, "VIEWED", nudge_id="n-2")
        submit(log, "VIEWED", nudge_id="n-3")
        submit(log, "CLICKED", nudge_id="n-1")

        payload = log.aggregate_stats({"job_id": " job-1 "}).to_dict()

        assert payload["job_id"] == "job-1"
        assert payload["click_rate"] == 0.3333
        assert payload["since"] is None


class TestCollapseDuplicates:
    """Tests for the dedup helper."""

    def make(self, seconds, action="CLICKED", nudge_id="n"):
        base = datetime(2025, 11, 4, 12, 0, 0, tzinfo=timezone.utc)
        return NudgeInteraction(
            member_id="m",
            job_id="j",
            nudge_id=nudge_id,
            action=action,
            created_at=base + timedelta(seconds=seconds),
        )

    def test_window_anchored_on_first_event(self):
        """Test a steady stream does not extend the window indefinitely."""
        events = [self.make(s) for s in (0, 6, 12, 18)]

        logical = collapse_duplicates(events, window_seconds=10)

        assert [e.created_at.second for e in logical] == [0, 12]

    def test_different_action_or_nudge_not_collapsed(self):
        """Test only identical (member, job, nudge, action) submissions collapse."""
        events = [self.make(0), self.make(1, action="VIEWED"), self.make(2, nudge_id="other")]

        assert len(collapse_duplicates(events, window_seconds=10)) == 3

    def test_sorted_by_created_at(self):
        """Test out-of-order input is evaluated in time order."""
        events = [self.make(5), self.make(0)]

        logical = collapse_duplicates(events, window_seconds=10)

        assert [e.created_at.second for e in logical] == [0]


class TestPurge:
    """Tests for retention purging."""

    def test_minimum_retention(self, log):
        """Test purging newer than 30 days is refused."""
        with pytest.raises(ValidationError):
            log.purge_older_than(29)

    def test_purges_old_rows(self, log, clock):
        """Test rows older than the retention window are deleted."""
        submit(log, "VIEWED", created_at=clock() - timedelta(days=45))
        submit(log, "VIEWED")

        assert log.purge_older_than(30) == 1
        assert len(stored_rows()) == 1
