"""Tests for the public survey endpoints.

The storage API readers are mocked at the router; sessions run for real.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from nps_api.models.campaign import AutomationAction, CampaignAutomation
from nps_api.services.storage_api import StorageAPIError
from nps_api.tests.factories import make_campaign, make_form

BASE = "/api/nps/survey"


@pytest.fixture
def mock_storage(mock_settings, mocker, situations):
    """Serve one active campaign and capture saved responses."""
    campaign = make_campaign()
    mocks = {
        "campaign": mocker.patch(
            "nps_api.routers.survey.get_campaign",
            new_callable=AsyncMock,
            return_value=campaign,
        ),
        "form": mocker.patch(
            "nps_api.routers.survey.get_campaign_form",
            new_callable=AsyncMock,
            return_value=make_form(),
        ),
        "situations": mocker.patch(
            "nps_api.routers.survey.get_situations",
            new_callable=AsyncMock,
            return_value=situations,
        ),
        "submit": mocker.patch(
            "nps_api.services.recorder.submit_response",
            new_callable=AsyncMock,
            return_value={"id": "db-42", "created_at": "2026-03-01T12:00:00Z"},
        ),
    }
    return mocks


@pytest.fixture
async def client():
    from nps_api.main import app

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c


async def _open(client, **kwargs) -> str:
    resp = await client.post(f"{BASE}/camp-1/sessions", **kwargs)
    assert resp.status_code == 201
    return resp.json()["session_id"]


async def test_survey_page_is_localized(client, mock_storage):
    resp = await client.get(
        f"{BASE}/camp-1", headers={"Accept-Language": "pt-BR,pt;q=0.9,en;q=0.8"}
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["campaign"] == {
        "id": "camp-1",
        "name": "Store checkout",
        "description": "Post-purchase survey",
    }
    assert [f["id"] for f in data["form"]["fields"]] == ["nps", "feedback"]
    assert data["language"] == "pt-BR"
    assert data["messages"]["survey.submitFeedback"] == "Enviar Feedback"
    assert len(data["situations"]) == 2


async def test_lang_query_overrides_header(client, mock_storage):
    resp = await client.get(
        f"{BASE}/camp-1", params={"lang": "en"}, headers={"Accept-Language": "pt-BR"}
    )
    assert resp.json()["language"] == "en"


async def test_survey_page_does_not_leak_automation(client, mock_storage):
    mock_storage["campaign"].return_value = make_campaign(
        CampaignAutomation(
            enabled=True,
            action=AutomationAction.WEBHOOK_RETURN,
            webhook_url="https://hooks.example.com/nps",
            webhook_headers={"Authorization": "Bearer secret"},
        )
    )
    resp = await client.get(f"{BASE}/camp-1")

    assert resp.status_code == 200
    assert "secret" not in resp.text
    assert "automation" not in resp.json()["campaign"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"active": False},
        {"end_date": datetime.now(timezone.utc) - timedelta(days=1)},
        {"start_date": datetime.now(timezone.utc) + timedelta(days=1)},
    ],
)
async def test_unavailable_campaign_is_not_found(client, mock_storage, overrides):
    mock_storage["campaign"].return_value = make_campaign(**overrides)

    resp = await client.get(f"{BASE}/camp-1")

    assert resp.status_code == 404


async def test_missing_campaign_is_not_found(client, mock_storage):
    mock_storage["campaign"].return_value = None

    resp = await client.post(f"{BASE}/camp-1/sessions")

    assert resp.status_code == 404
    mock_storage["form"].assert_not_called()


async def test_storage_outage_is_bad_gateway(client, mock_storage):
    mock_storage["campaign"].side_effect = StorageAPIError("down", status_code=503)

    resp = await client.get(f"{BASE}/camp-1")

    assert resp.status_code == 502


async def test_open_session_snapshot(client, mock_storage):
    resp = await client.post(f"{BASE}/camp-1/sessions", params={"lang": "pt-BR"})

    assert resp.status_code == 201
    data = resp.json()
    assert data["phase"] == "idle"
    assert data["webhook_state"] == "idle"
    assert data["language"] == "pt-BR"
    assert data["countdown"] == 10

    fetched = await client.get(f"{BASE}/sessions/{data['session_id']}")
    assert fetched.json()["session_id"] == data["session_id"]


async def test_unknown_session_is_not_found(client, mock_settings):
    resp = await client.get(f"{BASE}/sessions/nope")
    assert resp.status_code == 404


async def test_submit_then_respond_again(client, mock_storage):
    session_id = await _open(client)

    resp = await client.post(
        f"{BASE}/sessions/{session_id}/submit",
        json={"form_data": {"nps": "9", "feedback": "Fast delivery"}},
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["phase"] == "counting"
    assert data["response_id"] == "db-42"
    assert data["message"].startswith("Your feedback has been submitted")
    payload = mock_storage["submit"].call_args.args[0]
    assert payload["score"] == 9
    assert payload["campaign_id"] == "camp-1"

    again = await client.post(f"{BASE}/sessions/{session_id}/respond-again")
    assert again.json()["phase"] == "idle"
    assert again.json()["response_id"] is None

    await client.post(f"{BASE}/sessions/{session_id}/close")


async def test_submit_twice_conflicts(client, mock_storage):
    session_id = await _open(client)
    body = {"form_data": {"nps": "9"}}

    await client.post(f"{BASE}/sessions/{session_id}/submit", json=body)
    resp = await client.post(f"{BASE}/sessions/{session_id}/submit", json=body)

    assert resp.status_code == 409
    mock_storage["submit"].assert_awaited_once()
    await client.post(f"{BASE}/sessions/{session_id}/close")


async def test_submit_without_score_is_unprocessable(client, mock_storage):
    session_id = await _open(client)

    resp = await client.post(
        f"{BASE}/sessions/{session_id}/submit", json={"form_data": {"nps": ""}}
    )

    assert resp.status_code == 422
    assert resp.json()["detail"] == "Please select a score from 0 to 10."
    mock_storage["submit"].assert_not_called()


async def test_persistence_failure_is_bad_gateway(client, mock_storage):
    mock_storage["submit"].side_effect = StorageAPIError("insert failed", 500)
    session_id = await _open(client)

    resp = await client.post(
        f"{BASE}/sessions/{session_id}/submit",
        json={"form_data": {"nps": "3", "feedback": "slow"}},
    )

    assert resp.status_code == 502
    snapshot = (await client.get(f"{BASE}/sessions/{session_id}")).json()
    assert snapshot["phase"] == "idle"
    assert snapshot["form_data"] == {"nps": "3", "feedback": "slow"}
    assert snapshot["form_error"].startswith("We could not save")


async def test_failed_webhook_banner_and_retry(client, mock_storage, monkeypatch):
    monkeypatch.setattr("nps_api.services.webhook.RETRY_BASE_DELAY", 0.0)
    mock_storage["campaign"].return_value = make_campaign(
        CampaignAutomation(
            enabled=True,
            action=AutomationAction.WEBHOOK_RETURN,
            webhook_url="https://hooks.example.com/nps",
        )
    )
    statuses = iter([502, 502, 502, 200])
    hook_calls: list[str] = []
    real_post = httpx.AsyncClient.post

    async def mock_post(self, url, **kwargs):
        # The test client shares the class; only intercept the webhook
        if not str(url).startswith("https://hooks.example.com"):
            return await real_post(self, url, **kwargs)
        hook_calls.append(str(url))
        return httpx.Response(next(statuses))

    monkeypatch.setattr(httpx.AsyncClient, "post", mock_post)
    session_id = await _open(client)

    resp = await client.post(
        f"{BASE}/sessions/{session_id}/submit",
        json={"form_data": {"nps": "8"}, "wait": True},
    )

    data = resp.json()
    assert resp.status_code == 200
    assert data["phase"] == "counting"
    assert data["webhook_state"] == "failed"
    assert data["webhook_attempts"] == 3
    assert data["error"]["kind"] == "http_status"
    assert data["error"]["can_retry"] is True
    assert "HTTP 502" in data["error"]["message"]

    dismissed = await client.post(f"{BASE}/sessions/{session_id}/dismiss-error")
    assert dismissed.json()["error"]["dismissed"] is True

    retried = await client.post(
        f"{BASE}/sessions/{session_id}/webhook/retry", json={"wait": True}
    )
    assert retried.json()["webhook_state"] == "succeeded"
    assert retried.json()["error"] is None
    assert len(hook_calls) == 4
    mock_storage["submit"].assert_awaited_once()

    await client.post(f"{BASE}/sessions/{session_id}/close")


async def test_retry_without_failure_conflicts(client, mock_storage):
    session_id = await _open(client)

    resp = await client.post(f"{BASE}/sessions/{session_id}/webhook/retry")

    assert resp.status_code == 409


async def test_close_forgets_session(client, mock_storage):
    session_id = await _open(client)

    resp = await client.post(f"{BASE}/sessions/{session_id}/close")

    assert resp.status_code == 200
    assert resp.json()["phase"] == "closed"
    gone = await client.get(f"{BASE}/sessions/{session_id}")
    assert gone.status_code == 404


async def test_health(client, mock_settings):
    resp = await client.get("/api/nps/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["service"] == "nps-survey-api"
    assert data["checks"] == {"config": "ok"}
    assert data["sessions"] == 0


async def test_request_id_is_echoed(client, mock_settings):
    resp = await client.get("/api/nps/health", headers={"X-Request-ID": "abc-123"})
    assert resp.headers["X-Request-ID"] == "abc-123"
