"""Submission pipeline: request body -> stored row -> response record.

The Slack announcement is a separate step (``announce_submission``) that the
HTTP layer schedules only after the row has been stored.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from fastapi.encoders import jsonable_encoder

from intake.notifier import Notifier
from intake.schemas import Submission, parse_submission
from intake.shaping import build_insert_record, is_blank, shape_created_row
from intake.storage import FlowStore

logger = logging.getLogger(__name__)


@dataclass
class SavedSubmission:
    """Result of storing one submission."""
    records: list[dict[str, Any]]
    summary_text: str
    contact_email: str


def build_summary(submission: Submission) -> str:
    """Short human-readable description used in the Slack message."""
    bespoke_option = getattr(submission, "bespoke_option", None)
    return (
        f"\nFlow Type: {submission.flow_type}\n"
        f"Bespoke Option: {bespoke_option or 'N/A'}\n"
    )


def contact_for(payload: Mapping[str, Any], fallback: str) -> str:
    """Email to tag in Slack: ``generalQuestions.contact`` from the raw body, else ``fallback``.

    Any flow type may carry a contact.
    """
    general = payload.get("generalQuestions", payload.get("general_questions"))
    if isinstance(general, Mapping) and not is_blank(general.get("contact")):
        return general["contact"]
    return fallback


async def save_submission(
    store: FlowStore,
    payload: Any,
    *,
    fallback_contact_email: str,
) -> SavedSubmission:
    """Validate, store and shape one submission.

    Args:
        store: Flow store
        payload: Decoded request body
        fallback_contact_email: Contact used when the body has none

    Returns:
        SavedSubmission with the create-path response records

    Raises:
        SubmissionValidationError: If the body fails presence checks
        StorageError: If the insert fails
        ShapingError: If the stored row cannot be shaped
    """
    submission = parse_submission(payload)
    logger.info(f"Saving {submission.flow_type} submission")

    rows = await store.insert(build_insert_record(submission))
    records = [shape_created_row(row) for row in rows]

    return SavedSubmission(
        records=records,
        summary_text=build_summary(submission),
        contact_email=contact_for(payload, fallback_contact_email),
    )


async def announce_submission(notifier: Notifier, saved: SavedSubmission) -> None:
    """Post the saved submission to Slack; the outcome is logged and dropped."""
    outcome = await notifier.notify(
        saved.summary_text,
        jsonable_encoder(saved.records),
        saved.contact_email,
    )
    if outcome.delivered:
        logger.info(f"Slack notification posted (ts={outcome.message_ts})")
    else:
        logger.warning(f"Slack notification not delivered: {outcome.error or 'skipped'}")
