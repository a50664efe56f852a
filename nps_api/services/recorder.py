"""Response Recorder: builds the canonical response and persists it.

Persistence always happens before any automation runs, so a respondent's
feedback is kept even when the webhook or redirect later fails.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from nps_api.models.campaign import Campaign, CampaignForm, Situation
from nps_api.models.response import NpsResponse
from nps_api.services.storage_api import StorageAPIError, submit_response

logger = logging.getLogger(__name__)

# Legacy free-text field predating the form builder
FEEDBACK_FIELD = "feedback"


class SubmissionValidationError(Exception):
    """Raised when the submitted answers cannot form a response."""

    def __init__(self, message: str, field_id: str | None = None):
        self.field_id = field_id
        super().__init__(message)


class PersistenceError(Exception):
    """Raised when the storage collaborator could not save the response."""


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_nps_score(value: Any) -> int:
    """Parse an NPS answer (int or numeric string) into 0-10."""
    if isinstance(value, bool) or _is_blank(value):
        raise SubmissionValidationError("An NPS score is required")
    try:
        score = int(str(value).strip(), 10)
    except ValueError:
        raise SubmissionValidationError(f"Invalid NPS score: {value!r}") from None
    if not 0 <= score <= 10:
        raise SubmissionValidationError(f"NPS score must be between 0 and 10: {score}")
    return score


def build_response(
    form_data: dict[str, Any],
    campaign: Campaign,
    form: CampaignForm,
    situations: list[Situation],
) -> NpsResponse:
    """Build a response from raw form answers and campaign defaults.

    Raises:
        SubmissionValidationError: The NPS answer is missing or out of range,
            or a required field was left empty.
    """
    nps_field = form.nps_field
    if nps_field is None:
        raise SubmissionValidationError("Survey form has no NPS field")
    try:
        score = parse_nps_score(form_data.get(nps_field.id))
    except SubmissionValidationError as e:
        e.field_id = nps_field.id
        raise

    for field in form.ordered_fields():
        if field.required and field.type != "nps" and _is_blank(form_data.get(field.id)):
            raise SubmissionValidationError(
                f"Field '{field.label or field.id}' is required", field_id=field.id
            )

    feedback = form_data.get(FEEDBACK_FIELD) or ""
    return NpsResponse(
        id=str(uuid.uuid4()),
        campaign_id=campaign.id,
        score=score,
        feedback=str(feedback),
        source_id=campaign.default_source_id,
        situation_id=situations[0].id if situations else None,
        group_id=campaign.default_group_id,
        created_at=datetime.now(timezone.utc),
        form_responses=dict(form_data),
    )


async def record_response(
    form_data: dict[str, Any],
    campaign: Campaign,
    form: CampaignForm,
    situations: list[Situation],
) -> NpsResponse:
    """Validate, build, and persist a response (one storage call).

    Returns the persisted response carrying the identity the store assigned.

    Raises:
        SubmissionValidationError: Before any network call.
        PersistenceError: The store rejected or could not receive the response.
    """
    response = build_response(form_data, campaign, form, situations)
    try:
        saved = await submit_response(response.to_storage_payload())
    except StorageAPIError as e:
        logger.error(
            "Failed to save response for campaign %s: %s", campaign.id, e
        )
        raise PersistenceError(str(e)) from e

    updates: dict[str, Any] = {}
    if saved.get("id"):
        updates["id"] = str(saved["id"])
    if saved.get("created_at"):
        try:
            updates["created_at"] = datetime.fromisoformat(
                str(saved["created_at"]).replace("Z", "+00:00")
            )
        except ValueError:
            logger.warning(
                "Storage API returned unparseable created_at %r for response %s",
                saved["created_at"],
                saved.get("id") or response.id,
            )
    if updates:
        response = response.model_copy(update=updates)

    logger.info(
        "Recorded response %s for campaign %s (score %d)",
        response.id,
        campaign.id,
        response.score,
    )
    return response
