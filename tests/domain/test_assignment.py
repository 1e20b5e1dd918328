"""
Tests for produce_batch.domain.assignment -- which batch an order joins.

Covers the three windows, their exact boundaries, batch numbering and the
window label shown to customers, plus property tests over arbitrary
instants.
"""

from datetime import date, datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from produce_batch.domain.assignment import BatchAssignmentPolicy
from produce_batch.domain.time_window import TimeWindowResolver
from produce_batch.domain.types import BatchType, format_batch_number
from tests.conftest import IST, local_instant

H1, H2 = 8, 12


@pytest.fixture
def policy():
    return BatchAssignmentPolicy(TimeWindowResolver(IST), H1, H2)


# =============================================================================
# Windows
# =============================================================================


class TestWindows:
    def test_before_first_cutoff(self, policy):
        a = policy.assign(local_instant(7, 0))
        assert a.batch_type is BatchType.FIRST
        assert a.local_date == date(2026, 1, 15)
        assert a.batch_number == "B260115-1"
        assert a.cutoff_time == local_instant(8, 0)
        assert a.auto_confirm_time == local_instant(8, 0)

    def test_between_cutoffs(self, policy):
        a = policy.assign(local_instant(10, 0))
        assert a.batch_type is BatchType.SECOND
        assert a.batch_number == "B260115-2"
        assert a.cutoff_time == local_instant(12, 0)
        assert a.auto_confirm_time is None

    def test_after_second_cutoff(self, policy):
        a = policy.assign(local_instant(15, 0))
        tomorrow = date(2026, 1, 16)
        assert a.batch_type is BatchType.FIRST
        assert a.local_date == tomorrow
        assert a.batch_number == "B260116-1"
        assert a.cutoff_time == local_instant(8, 0, day=tomorrow)
        assert a.auto_confirm_time == a.cutoff_time

    def test_date_is_local_midnight(self, policy):
        a = policy.assign(local_instant(7, 0))
        assert a.date == datetime(2026, 1, 14, 18, 30, tzinfo=timezone.utc)


class TestBoundaries:
    @pytest.mark.parametrize(
        "hour, minute, expected",
        [
            (0, 0, "B260115-1"),
            (7, 59, "B260115-1"),
            (8, 0, "B260115-2"),
            (11, 59, "B260115-2"),
            (12, 0, "B260116-1"),
            (23, 59, "B260116-1"),
        ],
    )
    def test_lower_inclusive_upper_exclusive(self, policy, hour, minute, expected):
        assert policy.assign(local_instant(hour, minute)).batch_number == expected

    def test_late_night_and_early_morning_share_a_batch(self, policy):
        late = policy.assign(local_instant(23, 59))
        early = policy.assign(local_instant(0, 1, day=date(2026, 1, 16)))
        assert late == early

    def test_year_rollover(self, policy):
        a = policy.assign(local_instant(13, 0, day=date(2026, 12, 31)))
        assert a.batch_number == "B270101-1"

    def test_uses_clock_when_no_instant(self, clock, resolver):
        policy = BatchAssignmentPolicy(resolver, H1, H2)
        assert policy.assign().batch_number == "B260115-1"

    def test_custom_cutoffs(self):
        policy = BatchAssignmentPolicy(TimeWindowResolver(IST), 6, 14)
        assert policy.assign(local_instant(7, 0)).batch_type is BatchType.SECOND
        assert policy.assign(local_instant(13, 59)).cutoff_time == local_instant(14, 0)

    @pytest.mark.parametrize("h1, h2", [(12, 8), (8, 8), (-1, 12), (8, 24)])
    def test_invalid_cutoffs_rejected(self, h1, h2):
        with pytest.raises(ValueError):
            BatchAssignmentPolicy(TimeWindowResolver(IST), h1, h2)


class TestBatchNumber:
    def test_format(self):
        assert format_batch_number(date(2026, 3, 7), BatchType.FIRST) == "B260307-1"
        assert format_batch_number(date(2026, 3, 7), BatchType.SECOND) == "B260307-2"

    def test_window_for_matches_assign(self, policy):
        assert policy.window_for(date(2026, 1, 15), BatchType.SECOND) == policy.assign(
            local_instant(9, 0)
        )


class TestWindowLabel:
    @pytest.mark.parametrize(
        "hour, label",
        [
            (6, "1st batch (closes at 08:00)"),
            (8, "2nd batch (closes at 12:00)"),
            (12, "Tomorrow's 1st batch"),
        ],
    )
    def test_labels(self, policy, hour, label):
        assert policy.describe_current_window(local_instant(hour)) == label


# =============================================================================
# Properties
# =============================================================================

instants = st.datetimes(
    min_value=datetime(2020, 1, 1),
    max_value=datetime(2035, 12, 31),
    timezones=st.just(timezone.utc),
)


class TestAssignmentProperties:
    @given(instant=instants)
    @settings(max_examples=300, deadline=None)
    def test_window_by_local_hour(self, instant):
        policy = BatchAssignmentPolicy(TimeWindowResolver(IST), H1, H2)
        local = instant.astimezone(IST)
        a = policy.assign(instant)

        if local.hour < H1:
            assert a.batch_type is BatchType.FIRST
            assert a.local_date == local.date()
        elif local.hour < H2:
            assert a.batch_type is BatchType.SECOND
            assert a.local_date == local.date()
            assert a.auto_confirm_time is None
        else:
            assert a.batch_type is BatchType.FIRST
            assert a.local_date == local.date() + timedelta(days=1)

    @given(instant=instants)
    @settings(max_examples=300, deadline=None)
    def test_order_instant_precedes_cutoff(self, instant):
        policy = BatchAssignmentPolicy(TimeWindowResolver(IST), H1, H2)
        a = policy.assign(instant)
        assert instant < a.cutoff_time
        assert a.cutoff_time - instant <= timedelta(hours=24 - (H2 - H1))

    @given(instant=instants)
    @settings(max_examples=100, deadline=None)
    def test_deterministic(self, instant):
        policy = BatchAssignmentPolicy(TimeWindowResolver(IST), H1, H2)
        assert policy.assign(instant) == policy.assign(instant)
