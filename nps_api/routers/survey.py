"""Public survey endpoints: survey page data and respondent sessions."""

import logging

from fastapi import APIRouter, Header, HTTPException, Query

from nps_api.config import get_settings
from nps_api.models.campaign import Campaign, CampaignForm, PublicCampaign, Situation
from nps_api.models.session import RetryRequest, SessionSnapshot, SubmitRequest, SurveyPage
from nps_api.services.i18n import messages_for, resolve_language
from nps_api.services.post_submit import InvalidTransitionError, SurveySession
from nps_api.services.recorder import PersistenceError, SubmissionValidationError
from nps_api.services.sessions import SessionRegistry
from nps_api.services.storage_api import (
    StorageAPIError,
    get_campaign,
    get_campaign_form,
    get_situations,
)

router = APIRouter(prefix="/survey", tags=["survey"])
logger = logging.getLogger(__name__)

# Lazy singleton, sized from settings on first use
_registry: SessionRegistry | None = None


def get_registry() -> SessionRegistry:
    global _registry
    if _registry is None:
        settings = get_settings()
        _registry = SessionRegistry(
            ttl=settings.session_ttl_seconds, max_size=settings.max_sessions
        )
    return _registry


async def _load_survey(
    campaign_id: str,
) -> tuple[Campaign, CampaignForm, list[Situation]]:
    try:
        campaign = await get_campaign(campaign_id)
        form = await get_campaign_form(campaign_id) if campaign else None
        situations = await get_situations() if form else []
    except StorageAPIError as e:
        logger.error("Failed to load survey %s: %s", campaign_id, e)
        raise HTTPException(
            status_code=502, detail="Survey could not be loaded. Please try again."
        )

    if campaign is None or form is None or not campaign.accepts_responses():
        raise HTTPException(status_code=404, detail="Survey not found")
    return campaign, form, situations


def _language(lang: str | None, accept_language: str | None) -> str:
    return resolve_language(lang or accept_language, get_settings().default_language)


def _get_session(session_id: str) -> SurveySession:
    session = get_registry().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Survey session not found")
    return session


@router.get("/{campaign_id}", response_model=SurveyPage)
async def get_survey(
    campaign_id: str,
    lang: str | None = Query(default=None, description="Override the browser language"),
    accept_language: str | None = Header(default=None),
):
    """Get the public survey: campaign, form fields, and localized texts."""
    campaign, form, situations = await _load_survey(campaign_id)
    language = _language(lang, accept_language)
    return SurveyPage(
        campaign=PublicCampaign(
            id=campaign.id, name=campaign.name, description=campaign.description
        ),
        form=CampaignForm(
            id=form.id, campaign_id=form.campaign_id, fields=form.ordered_fields()
        ),
        situations=situations,
        language=language,
        messages=messages_for(language),
    )


@router.post(
    "/{campaign_id}/sessions", response_model=SessionSnapshot, status_code=201
)
async def open_session(
    campaign_id: str,
    lang: str | None = Query(default=None),
    accept_language: str | None = Header(default=None),
):
    """Open a respondent session for a survey tab."""
    campaign, form, situations = await _load_survey(campaign_id)
    session = SurveySession(
        campaign, form, situations, language=_language(lang, accept_language)
    )
    get_registry().add(session)
    logger.info("Opened survey session %s for campaign %s", session.session_id, campaign.id)
    return session.snapshot()


@router.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str):
    """Current render state of a session (poll while dispatching or counting)."""
    return _get_session(session_id).snapshot()


@router.post("/sessions/{session_id}/submit", response_model=SessionSnapshot)
async def submit(session_id: str, body: SubmitRequest):
    """Submit answers. The response is saved before any automation runs."""
    session = _get_session(session_id)
    try:
        await session.submit(body.form_data, wait=body.wait)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SubmissionValidationError:
        raise HTTPException(status_code=422, detail=session.form_error)
    except PersistenceError:
        raise HTTPException(status_code=502, detail=session.form_error)
    return session.snapshot()


@router.post("/sessions/{session_id}/webhook/retry", response_model=SessionSnapshot)
async def retry_webhook(session_id: str, body: RetryRequest | None = None):
    """Retry a failed webhook for the response already saved."""
    session = _get_session(session_id)
    try:
        await session.retry_webhook(wait=body.wait if body else False)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return session.snapshot()


@router.post("/sessions/{session_id}/respond-again", response_model=SessionSnapshot)
async def respond_again(session_id: str):
    """Reset to a blank form for another response."""
    session = _get_session(session_id)
    try:
        session.respond_again()
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return session.snapshot()


@router.post("/sessions/{session_id}/dismiss-error", response_model=SessionSnapshot)
async def dismiss_error(session_id: str):
    session = _get_session(session_id)
    session.dismiss_error()
    return session.snapshot()


@router.post("/sessions/{session_id}/close", response_model=SessionSnapshot)
async def close_session(session_id: str):
    """Close the survey tab. Timers stop and the session is forgotten."""
    session = _get_session(session_id)
    session.close()
    snapshot = session.snapshot()
    get_registry().discard(session_id)
    return snapshot
