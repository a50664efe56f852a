"""Public survey and survey-session wire models."""

from typing import Any

from pydantic import BaseModel

from nps_api.models.campaign import CampaignForm, PublicCampaign, Situation


class SurveyPage(BaseModel):
    """Everything the public survey page needs to render the form."""

    campaign: PublicCampaign
    form: CampaignForm
    situations: list[Situation]
    language: str
    messages: dict[str, str]


class SubmitRequest(BaseModel):
    """Answers keyed by form field id."""

    form_data: dict[str, Any]
    wait: bool = False  # block until the webhook dispatch settles


class RetryRequest(BaseModel):
    wait: bool = False


class ErrorBanner(BaseModel):
    """Dismissable warning shown after a failed webhook dispatch."""

    kind: str
    message: str
    detail: str
    fatal: bool
    can_retry: bool
    dismissed: bool = False


class SessionSnapshot(BaseModel):
    """Render state of one respondent's survey session."""

    session_id: str
    campaign_id: str
    language: str
    phase: str
    webhook_state: str
    form_data: dict[str, Any]
    response_id: str | None = None
    countdown: int
    countdown_total: int
    webhook_attempts: int = 0
    error: ErrorBanner | None = None
    form_error: str | None = None
    message: str | None = None
    location: str | None = None
