"""Record shaping between the wire, the ``user_flows`` table and API responses.

Three transformations live here:

- ``build_insert_record``: submission -> column values for a new row.
- ``shape_created_row``: freshly inserted row -> response record, with the
  user list trimmed and ``general_questions`` filled with defaults.
- ``shape_listed_row``: row read back by ``/get-flows`` -> response record,
  decoding textual JSON only.

The create and list shapers intentionally differ; see DESIGN.md.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from .schemas import BespokeDemoSubmission, Submission, UpdateConfigSubmission

logger = logging.getLogger(__name__)

USER_FIELDS = ("firstName", "lastName", "email")

GENERAL_QUESTION_DEFAULTS: dict[str, Any] = {
    "website": "",
    "rpn": "no",
    "rpnInput": None,
    "carriers": "",
    "additionalInfo": "",
    "contact": "",
}

PASSTHROUGH_FIELDS = (
    "id",
    "flow_type",
    "bespoke_option",
    "landing_page_selection",
    "update_page_details",
    "submitted_at",
)


class ShapingError(Exception):
    """Raised when a stored value cannot be decoded."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_blank(value: Any) -> bool:
    """True for None, empty strings, False and zero.

    Empty containers are not blank: an empty mapping is still a submitted value.
    """
    if value is None or isinstance(value, (str, int, float)):
        return not value
    return False


def _or_none(value: Any) -> Any:
    return None if is_blank(value) else value


def _bespoke_demo_fields(submission: BespokeDemoSubmission) -> dict[str, Any]:
    fields: dict[str, Any] = {"bespoke_option": submission.bespoke_option}
    # Stored raw; the user list is only trimmed on the way out
    if not is_blank(submission.agency_counter_inputs):
        fields["agency_counter_inputs"] = submission.agency_counter_inputs
    fields["landing_page_selection"] = _or_none(submission.landing_page_selection)
    fields["tailored_questions"] = _or_none(submission.tailored_questions)
    fields["general_questions"] = _or_none(submission.general_questions)
    return fields


def _update_config_fields(submission: UpdateConfigSubmission) -> dict[str, Any]:
    return {"update_page_details": _or_none(submission.update_page_details)}


def build_insert_record(submission: Submission, *, now: datetime | None = None) -> dict[str, Any]:
    """Build the column values for a new ``user_flows`` row.

    Only the fields that belong to the submission's flow type are set; an
    unknown flow type yields just ``flow_type`` and ``submitted_at``.

    Args:
        submission: Parsed submission
        now: Timestamp used when the submission has none (defaults to UTC now)

    Returns:
        Mapping of column name to value
    """
    submitted_at = submission.submitted_at or now or utcnow()
    if submitted_at.tzinfo is None:
        submitted_at = submitted_at.replace(tzinfo=timezone.utc)

    record: dict[str, Any] = {
        "flow_type": submission.flow_type,
        "submitted_at": submitted_at,
    }

    if isinstance(submission, BespokeDemoSubmission):
        record.update(_bespoke_demo_fields(submission))
    elif isinstance(submission, UpdateConfigSubmission):
        record.update(_update_config_fields(submission))
    else:
        logger.warning(f"Unknown flow type {submission.flow_type!r}; storing base fields only")

    return record


def decode_json(value: Any, field: str) -> Any:
    """Parse ``value`` if the store handed it back as JSON text.

    Only text holding a JSON object or array is parsed; any other string is
    a plain stored value and is returned unchanged.
    """
    if not isinstance(value, str) or not value.lstrip().startswith(("{", "[")):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ShapingError(f"Stored {field} is not valid JSON: {e}") from e


def _project_user(user: Any) -> dict[str, Any]:
    if not isinstance(user, Mapping):
        return dict.fromkeys(USER_FIELDS)
    return {name: user.get(name) for name in USER_FIELDS}


def _project_users(container: Mapping[str, Any]) -> dict[str, Any]:
    shaped = dict(container)
    users = container.get("users")
    if isinstance(users, list):
        shaped["users"] = [_project_user(user) for user in users]
    return shaped


def _fill_general_questions(value: Any) -> dict[str, Any]:
    # Anything that is not a mapping counts as no answers at all
    if not isinstance(value, Mapping):
        value = {}
    filled = {}
    for name, default in GENERAL_QUESTION_DEFAULTS.items():
        answer = value.get(name)
        filled[name] = default if is_blank(answer) else answer
    return filled


def shape_created_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Shape an inserted row for the ``/save-selections`` response.

    Args:
        row: Column values as returned by the store

    Returns:
        Response record with users reduced to name/email and all six
        ``general_questions`` fields present

    Raises:
        ShapingError: If a textual JSON column cannot be parsed
    """
    shaped = {name: row.get(name) for name in PASSTHROUGH_FIELDS}

    container = decode_json(row.get("agency_counter_inputs"), "agency_counter_inputs")
    shaped["agency_counter_inputs"] = _project_users(container) if isinstance(container, Mapping) else None
    shaped["tailored_questions"] = decode_json(row.get("tailored_questions"), "tailored_questions")
    shaped["general_questions"] = _fill_general_questions(
        decode_json(row.get("general_questions"), "general_questions")
    )
    return shaped


def shape_listed_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Shape a stored row for the ``/get-flows`` response.

    JSON columns are decoded when stored as text but otherwise returned as-is:
    no user projection, no ``general_questions`` defaults.
    """
    shaped = {name: row.get(name) for name in PASSTHROUGH_FIELDS}
    for field in ("agency_counter_inputs", "tailored_questions", "general_questions"):
        shaped[field] = decode_json(row.get(field), field)
    return shaped
