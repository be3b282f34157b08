"""
Unit tests for the lead availability checker.
"""

from datetime import date, datetime, timedelta, timezone

from governor.leads.availability import (
    LeadCounts,
    LeadPolicy,
    LeadView,
    NoLeadsReason,
    check_lead_pool,
    classify,
)

TODAY = date(2026, 10, 19)
NOW = datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc)
YESTERDAY = TODAY - timedelta(days=1)


def pool(n: int, status: str = "new", **kwargs: object) -> list[LeadView]:
    return [LeadView(status=status, **kwargs) for _ in range(n)]  # type: ignore[arg-type]


class TestClassification:
    def test_callable_leads(self) -> None:
        leads = pool(3) + pool(2, last_attempt_date=TODAY)

        result = check_lead_pool(leads, sources_connected=1, today=TODAY, now=NOW)

        assert result.has_callable is True
        assert result.reason is None
        assert result.callable_count == 3
        assert result.potential_count == 5
        assert result.dialed_today == 2

    def test_all_forty_dialed_today(self) -> None:
        leads = pool(40, last_attempt_date=TODAY)

        result = check_lead_pool(leads, sources_connected=1, today=TODAY, now=NOW)

        assert result.has_callable is False
        assert result.reason == NoLeadsReason.ALL_DIALED_TODAY
        assert result.potential_count == 40
        assert result.dialed_today == 40
        assert result.message == "All 40 leads have been dialed today. Come back tomorrow!"

    def test_no_source_connected(self) -> None:
        result = check_lead_pool([], sources_connected=0, today=TODAY, now=NOW)

        assert result.reason == NoLeadsReason.NO_SOURCE

    def test_connected_source_without_rows(self) -> None:
        result = check_lead_pool([], sources_connected=1, today=TODAY, now=NOW)

        assert result.reason == NoLeadsReason.NO_LEADS

    def test_all_terminal_leads_are_exhausted(self) -> None:
        leads = pool(2, status="booked") + pool(1, status="do_not_call") + pool(1, status="dead_lead")

        result = check_lead_pool(leads, sources_connected=1, today=TODAY, now=NOW)

        assert result.reason == NoLeadsReason.ALL_EXHAUSTED
        assert result.potential_count == 0
        assert result.total_leads == 4

    def test_dead_lead_threshold_exhausts(self) -> None:
        leads = pool(3, total_calls_made=20)

        result = check_lead_pool(leads, sources_connected=1, today=TODAY, now=NOW)

        assert result.reason == NoLeadsReason.ALL_EXHAUSTED

    def test_attempted_yesterday_is_callable(self) -> None:
        result = check_lead_pool(
            pool(1, last_attempt_date=YESTERDAY), sources_connected=1, today=TODAY, now=NOW
        )

        assert result.has_callable is True

    def test_leads_of_inactive_sources_are_ignored(self) -> None:
        result = check_lead_pool(
            pool(5, source_active=False), sources_connected=1, today=TODAY, now=NOW
        )

        assert result.reason == NoLeadsReason.NO_LEADS


class TestAgeGate:
    def test_young_leads_wait(self) -> None:
        leads = pool(2, created_at=NOW - timedelta(hours=12))

        result = check_lead_pool(
            leads,
            sources_connected=1,
            today=TODAY,
            now=NOW,
            policy=LeadPolicy(min_lead_age_days=1),
        )

        assert result.has_callable is False
        assert result.reason == NoLeadsReason.ALL_DIALED_TODAY
        assert result.potential_count == 2
        assert result.dialed_today == 0
        assert "too new to call" in result.message
        assert "dialed today" not in result.message

    def test_mix_of_dialed_and_young_leads(self) -> None:
        leads = pool(3, last_attempt_date=TODAY) + pool(2, created_at=NOW - timedelta(hours=12))

        result = check_lead_pool(
            leads,
            sources_connected=1,
            today=TODAY,
            now=NOW,
            policy=LeadPolicy(min_lead_age_days=1),
        )

        assert result.reason == NoLeadsReason.ALL_DIALED_TODAY
        assert result.message == "No leads are ready to call: 3 dialed today, 2 too new to call yet."

    def test_old_enough_leads_are_callable(self) -> None:
        leads = pool(2, created_at=NOW - timedelta(days=3))

        result = check_lead_pool(
            leads,
            sources_connected=1,
            today=TODAY,
            now=NOW,
            policy=LeadPolicy(min_lead_age_days=1),
        )

        assert result.callable_count == 2


class TestClassifyCounts:
    def test_callable_wins_over_everything(self) -> None:
        counts = LeadCounts(sources_connected=0, total_leads=1, potential=1, dialed_today=0, callable=1)

        assert classify(counts).has_callable is True

    def test_as_dict_serializes_reason(self) -> None:
        counts = LeadCounts(sources_connected=1, total_leads=0, potential=0, dialed_today=0, callable=0)

        payload = classify(counts).as_dict()

        assert payload["has_callable"] is False
        assert payload["reason"] == "no_leads"
