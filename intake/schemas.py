"""Pydantic models for inbound submissions and outbound flow records.

A submission is a tagged union keyed on ``flow_type``: each known tag has
its own model carrying only the fields that belong to that flow. Unknown
tags fall back to :class:`BaseSubmission`.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError


class FlowType(str, Enum):
    """Known flow discriminators."""
    BESPOKE_DEMO = "bespoke-demo"
    UPDATE_CONFIG = "update-config"


class SubmissionValidationError(Exception):
    """Raised when a submission body fails presence checks."""
    pass


def _alias(camel: str, snake: str) -> AliasChoices:
    return AliasChoices(camel, snake)


class BaseSubmission(BaseModel):
    """Fields shared by every flow."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    flow_type: str = Field(validation_alias=_alias("flowType", "flow_type"), min_length=1)
    submitted_at: datetime | None = Field(
        default=None,
        validation_alias=_alias("submittedAt", "submitted_at"),
    )


class BespokeDemoSubmission(BaseSubmission):
    """Bespoke demo request."""
    bespoke_option: Any = Field(default=None, validation_alias=_alias("bespokeOption", "bespoke_option"))
    agency_counter_inputs: Any = Field(
        default=None,
        validation_alias=_alias("agencyCounterInputs", "agency_counter_inputs"),
    )
    landing_page_selection: Any = Field(
        default=None,
        validation_alias=_alias("landingPageSelection", "landing_page_selection"),
    )
    tailored_questions: Any = Field(
        default=None,
        validation_alias=_alias("tailoredQuestions", "tailored_questions"),
    )
    general_questions: Any = Field(
        default=None,
        validation_alias=_alias("generalQuestions", "general_questions"),
    )


class UpdateConfigSubmission(BaseSubmission):
    """Landing page configuration update."""
    update_page_details: Any = Field(
        default=None,
        validation_alias=_alias("updatePageDetails", "update_page_details"),
    )


Submission = BespokeDemoSubmission | UpdateConfigSubmission | BaseSubmission

_SUBMISSION_MODELS: dict[str, type[BaseSubmission]] = {
    FlowType.BESPOKE_DEMO.value: BespokeDemoSubmission,
    FlowType.UPDATE_CONFIG.value: UpdateConfigSubmission,
}


def parse_submission(payload: Any) -> Submission:
    """Parse a raw request body into the submission model for its flow type.

    Args:
        payload: Decoded JSON body

    Returns:
        The variant matching ``flowType``; the base model for unknown tags

    Raises:
        SubmissionValidationError: If the body is not an object or lacks a
            flow type
    """
    if not isinstance(payload, Mapping):
        raise SubmissionValidationError("Submission body must be a JSON object")

    flow_type = payload.get("flowType", payload.get("flow_type"))
    if not flow_type:
        raise SubmissionValidationError("flowType is required")

    model = _SUBMISSION_MODELS.get(flow_type, BaseSubmission)
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise SubmissionValidationError(str(e)) from e


class FlowRecord(BaseModel):
    """Stored flow as returned to API callers.

    Every record carries the full set of fields regardless of flow type.
    """
    id: int
    flow_type: str
    bespoke_option: Any = None
    agency_counter_inputs: Any = None
    landing_page_selection: Any = None
    tailored_questions: Any = None
    general_questions: Any = None
    update_page_details: Any = None
    submitted_at: datetime | None = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    message: str
    error: Any = None
