"""Tests for the flow query builder, run against an in-memory SQLite database."""
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from intake.models import Base, UserFlow
from intake.queries import FlowFilters, QueryParameterError, build_query, day_window


def at(text: str) -> datetime:
    return datetime.fromisoformat(text).replace(tzinfo=timezone.utc)


FLOWS = {
    "early": dict(
        flow_type="bespoke-demo",
        tailored_questions={"plan": "pro", "region": "EU"},
        general_questions={"contact": "ana@acme.test"},
        submitted_at=at("2024-01-14T09:00:00"),
    ),
    "midnight": dict(
        flow_type="bespoke-demo",
        tailored_questions={"plan": "basic"},
        general_questions={"contact": "ben@acme.test"},
        submitted_at=at("2024-01-15T00:00:00"),
    ),
    "last_second": dict(
        flow_type="update-config",
        update_page_details={"page": "home"},
        submitted_at=at("2024-01-15T23:59:59"),
    ),
    "second_before": dict(
        flow_type="bespoke-demo",
        tailored_questions={"plan": "pro"},
        general_questions={"contact": "ana@acme.test"},
        submitted_at=at("2024-01-15T23:59:58"),
    ),
    "next_day": dict(
        flow_type="bespoke-demo",
        tailored_questions={"plan": "pro"},
        general_questions={"contact": "cy@acme.test"},
        submitted_at=at("2024-01-16T00:00:00"),
    ),
}


@pytest.fixture
def session():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        for name, values in FLOWS.items():
            session.add(UserFlow(bespoke_option=name, **values))
        session.commit()
        yield session
    engine.dispose()


def matching(session, **filters) -> list[str]:
    """Names (stored in bespoke_option) of the rows the filters select."""
    return [flow.bespoke_option for flow in session.scalars(build_query(FlowFilters(**filters)))]


class TestBuildQuery:
    """Tests for build_query."""

    def test_no_filters_returns_everything_in_submission_order(self, session):
        assert matching(session) == ["early", "midnight", "second_before", "last_second", "next_day"]

    def test_specific_date_excludes_last_second_of_day(self, session):
        assert matching(session, specific_date="2024-01-15") == ["midnight", "second_before"]

    def test_key_value_matches_tailored_question(self, session):
        assert matching(session, key="plan", value="pro") == ["early", "second_before", "next_day"]

    def test_key_without_value_is_ignored(self, session):
        assert len(matching(session, key="plan")) == len(FLOWS)

    def test_email_matches_contact(self, session):
        assert matching(session, email="ana@acme.test") == ["early", "second_before"]

    def test_start_date_is_inclusive(self, session):
        assert matching(session, start_date="2024-01-15T23:59:59") == ["last_second", "next_day"]

    def test_end_date_is_inclusive(self, session):
        assert matching(session, end_date="2024-01-15") == ["early", "midnight"]

    def test_date_range(self, session):
        assert matching(session, start_date="2024-01-15", end_date="2024-01-15T23:59:58") == [
            "midnight",
            "second_before",
        ]

    def test_filters_are_combined(self, session):
        assert matching(
            session,
            key="plan",
            value="pro",
            email="ana@acme.test",
            specific_date="2024-01-15",
        ) == ["second_before"]

    @pytest.mark.parametrize(
        "filters",
        [
            {"start_date": "yesterday"},
            {"end_date": "2024-13-01"},
            {"specific_date": "15/01/2024"},
        ],
    )
    def test_malformed_dates_raise(self, filters):
        with pytest.raises(QueryParameterError):
            build_query(FlowFilters(**filters))


def test_day_window_is_half_open_at_last_second():
    lower, upper = day_window("2024-01-15")

    assert lower == at("2024-01-15T00:00:00")
    assert upper == at("2024-01-15T23:59:59")
