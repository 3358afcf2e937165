"""Filtered reads over stored flows.

Turns the optional ``/get-flows`` query parameters into one SQLAlchemy
``Select``. All filters are combined with AND; no filters selects every row.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone

from sqlalchemy import Select, select

from .models import UserFlow

logger = logging.getLogger(__name__)

DAY_START = time(0, 0, 0)
# Upper bound of a ``specificDate`` day, exclusive: 23:59:59 itself is not matched
DAY_END = time(23, 59, 59)


class QueryParameterError(ValueError):
    """Raised when a filter parameter cannot be interpreted."""
    pass


@dataclass(frozen=True)
class FlowFilters:
    """Optional filters accepted by ``/get-flows``."""
    key: str | None = None
    value: str | None = None
    email: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    specific_date: str | None = None


def _as_utc(moment: datetime) -> datetime:
    return moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment


def parse_timestamp(raw: str, param: str) -> datetime:
    """Parse an ISO-8601 date or datetime; naive values are read as UTC."""
    try:
        return _as_utc(datetime.fromisoformat(raw))
    except ValueError as e:
        raise QueryParameterError(f"{param} must be an ISO-8601 date or datetime, got {raw!r}") from e


def day_window(raw: str) -> tuple[datetime, datetime]:
    """Bounds ``[day 00:00:00, day 23:59:59)`` for a ``YYYY-MM-DD`` string."""
    try:
        day = date.fromisoformat(raw)
    except ValueError as e:
        raise QueryParameterError(f"specificDate must be YYYY-MM-DD, got {raw!r}") from e
    return (
        datetime.combine(day, DAY_START, tzinfo=timezone.utc),
        datetime.combine(day, DAY_END, tzinfo=timezone.utc),
    )


def build_query(filters: FlowFilters) -> Select:
    """Compose the select statement for the given filters.

    Args:
        filters: Parsed query parameters

    Returns:
        Select over ``UserFlow`` ordered by submission time

    Raises:
        QueryParameterError: If a date parameter is malformed
    """
    query = select(UserFlow)

    # key/value only applies when both are given
    if filters.key and filters.value:
        query = query.where(UserFlow.tailored_questions[filters.key].as_string() == filters.value)

    if filters.email:
        query = query.where(UserFlow.general_questions["contact"].as_string() == filters.email)

    if filters.start_date:
        query = query.where(UserFlow.submitted_at >= parse_timestamp(filters.start_date, "startDate"))
    if filters.end_date:
        query = query.where(UserFlow.submitted_at <= parse_timestamp(filters.end_date, "endDate"))

    if filters.specific_date:
        lower, upper = day_window(filters.specific_date)
        query = query.where(UserFlow.submitted_at >= lower, UserFlow.submitted_at < upper)

    logger.debug(f"Built flow query with filters: {filters}")
    return query.order_by(UserFlow.submitted_at, UserFlow.id)
