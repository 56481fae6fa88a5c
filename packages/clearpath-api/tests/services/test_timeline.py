"""Tests for clearpath.services.timeline."""

from datetime import datetime, timedelta, timezone

import pytest

from clearpath.models.enums import KitType
from clearpath.services.timeline import (
    compute_timeline,
    days_since_activation,
    expected_completion_date,
    is_retrieval_overdue,
    retrieval_due_at,
)

ACTIVATED = datetime(2026, 1, 15, 9, 30, tzinfo=timezone.utc)


class TestExpectedCompletionDate:
    def test_long_term_is_91_days(self):
        assert expected_completion_date(KitType.LONG_TERM, ACTIVATED) == datetime(
            2026, 4, 16, 9, 30, tzinfo=timezone.utc
        )

    def test_real_estate_short_is_4_days(self):
        assert expected_completion_date(
            KitType.REAL_ESTATE_SHORT, ACTIVATED
        ) == ACTIVATED + timedelta(days=4)

    def test_accepts_string_kit_type(self):
        assert expected_completion_date("long_term", ACTIVATED) == ACTIVATED + timedelta(
            days=91
        )

    def test_unknown_kit_type_raises(self):
        with pytest.raises(ValueError):
            expected_completion_date("short_term", ACTIVATED)


class TestRetrievalDueAt:
    def test_long_term_is_80_days(self):
        assert retrieval_due_at(KitType.LONG_TERM, ACTIVATED) == ACTIVATED + timedelta(
            days=80
        )

    def test_real_estate_short_is_2_days(self):
        assert retrieval_due_at(
            KitType.REAL_ESTATE_SHORT, ACTIVATED
        ) == ACTIVATED + timedelta(days=2)

    @pytest.mark.parametrize("kit_type", list(KitType))
    def test_due_date_precedes_completion(self, kit_type):
        timeline = compute_timeline(kit_type, ACTIVATED)
        assert ACTIVATED < timeline.retrieval_due_at < timeline.expected_completion_date


class TestComputeTimeline:
    def test_naive_activation_is_treated_as_utc(self):
        timeline = compute_timeline(KitType.LONG_TERM, datetime(2026, 1, 15, 9, 30))
        assert timeline.retrieval_due_at.tzinfo == timezone.utc
        assert timeline.retrieval_due_at == ACTIVATED + timedelta(days=80)

    def test_crosses_year_boundary(self):
        activated = datetime(2026, 12, 1, tzinfo=timezone.utc)
        timeline = compute_timeline(KitType.LONG_TERM, activated)
        assert timeline.expected_completion_date == datetime(
            2027, 3, 2, tzinfo=timezone.utc
        )


class TestDaysSinceActivation:
    def test_same_instant_is_zero(self):
        assert days_since_activation(ACTIVATED, ACTIVATED) == 0

    def test_partial_days_floor(self):
        assert days_since_activation(ACTIVATED, ACTIVATED + timedelta(days=3, hours=23)) == 3


class TestIsRetrievalOverdue:
    def test_not_overdue_before_due_date(self):
        due = ACTIVATED + timedelta(days=80)
        assert is_retrieval_overdue(due, None, due - timedelta(hours=1)) is False

    def test_overdue_after_due_date(self):
        due = ACTIVATED + timedelta(days=80)
        assert is_retrieval_overdue(due, None, due + timedelta(hours=1)) is True

    def test_retrieved_kit_is_never_overdue(self):
        due = ACTIVATED + timedelta(days=80)
        assert is_retrieval_overdue(due, due, due + timedelta(days=10)) is False
