"""Storage/API collaborator client: campaigns, forms, situations, responses.

The storage API wraps payloads as ``{"success": true, "data": ...}``; the
helpers here unwrap it.  Reads return None on 404.  Nothing here retries:
persistence failures are surfaced to the respondent, who resubmits.
"""

import logging
from typing import Any

import httpx

from nps_api.models.campaign import Campaign, CampaignForm, Situation
from nps_api.services.http_client import get_shared_client, storage_headers, storage_url

logger = logging.getLogger(__name__)


class StorageAPIError(Exception):
    """Raised when the storage API fails or returns an unexpected reply."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def _unwrap(resp: httpx.Response, path: str) -> Any:
    try:
        body = resp.json()
    except ValueError as e:
        raise StorageAPIError(
            f"Invalid JSON from storage API for {path}", resp.status_code
        ) from e
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


async def _request(method: str, path: str, **kwargs: Any) -> httpx.Response:
    client = get_shared_client()
    try:
        return await client.request(
            method, storage_url(path), headers=storage_headers(), **kwargs
        )
    except httpx.HTTPError as e:
        logger.warning("Storage API %s %s failed: %s", method, path, e)
        raise StorageAPIError(f"Storage API unreachable: {e}") from e


async def _get(path: str, params: dict[str, str] | None = None) -> Any | None:
    resp = await _request("GET", path, params=params)
    if resp.status_code == 404:
        return None
    if resp.status_code != 200:
        logger.warning("Storage API %d for GET %s", resp.status_code, path)
        raise StorageAPIError(
            f"Storage API returned {resp.status_code} for {path}", resp.status_code
        )
    return _unwrap(resp, path)


async def submit_response(payload: dict[str, Any]) -> dict[str, Any]:
    """Persist a response. Returns ``{"id": ..., "created_at": ...}``."""
    resp = await _request("POST", "/responses/submit", json=payload)
    if resp.status_code not in (200, 201):
        detail = ""
        try:
            body = resp.json()
            detail = body.get("error", "") if isinstance(body, dict) else ""
        except ValueError:
            detail = resp.text[:200]
        logger.warning(
            "Storage API %d saving response for campaign %s: %s",
            resp.status_code,
            payload.get("campaign_id"),
            detail,
        )
        raise StorageAPIError(
            detail or f"Storage API returned {resp.status_code}", resp.status_code
        )
    data = _unwrap(resp, "/responses/submit")
    if not isinstance(data, dict):
        raise StorageAPIError("Storage API returned no response record")
    return data


async def get_campaign(campaign_id: str) -> Campaign | None:
    """Fetch a campaign by id (None if it does not exist)."""
    data = await _get(f"/campaigns/{campaign_id}")
    return Campaign.model_validate(data) if data else None


async def get_campaign_form(campaign_id: str) -> CampaignForm | None:
    """Fetch the survey form of a campaign (None if it has none)."""
    data = await _get(f"/forms/campaign/{campaign_id}")
    if not data:
        return None
    return CampaignForm.model_validate(data)


async def get_situations() -> list[Situation]:
    """Fetch the configured situations, in display order."""
    data = await _get("/entities/situations")
    return [Situation.model_validate(item) for item in data or []]
