"""Webhook Dispatcher: delivers a saved response to a campaign's endpoint.

Each attempt is one POST bounded by a 15-second timeout.  Failures are
classified instead of raised: configuration problems (bad URL, payload
template that is not JSON) are fatal and never retried; timeouts, non-2xx
replies and unreachable endpoints are recoverable and retried with a
linear backoff of ``2s * (attempt + 1)``.

A submission gets three automatic attempts.  The respondent may then retry
by hand, one attempt at a time, until six attempts in total have been made.
This is deliberately more than a flat three-attempt cap so the retry control
on the error banner stays usable after the automatic attempts run out.
"""

import asyncio
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from nps_api.models.campaign import CampaignAutomation
from nps_api.models.response import NpsResponse
from nps_api.services.http_client import get_shared_client

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = 15.0
USER_AGENT = "nps-api-webhook/0.1.0"

# Attempt indices 0, 1, 2 run automatically; manual retries continue the
# index up to the hard ceiling.
MAX_AUTOMATIC_ATTEMPTS = 3
MAX_TOTAL_ATTEMPTS = 6
RETRY_BASE_DELAY = 2.0

_TOKEN_RE = re.compile(r"\{\{(\w+)\}\}")


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"


class FailureKind(str, Enum):
    INVALID_URL = "invalid_url"
    INVALID_PAYLOAD = "invalid_payload"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    CORS = "cors"
    NETWORK = "network"


class WebhookConfigError(Exception):
    """Raised when a campaign's webhook settings cannot produce a request."""

    def __init__(self, message: str, kind: FailureKind):
        self.kind = kind
        super().__init__(message)


@dataclass
class WebhookAttempt:
    """Result of one try at delivering the webhook."""

    attempt: int
    outcome: AttemptOutcome
    kind: FailureKind | None = None
    error: str = ""
    status_code: int | None = None
    response_data: Any = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is AttemptOutcome.SUCCESS

    @property
    def fatal(self) -> bool:
        return self.outcome is AttemptOutcome.FATAL


@dataclass
class DispatchResult:
    """All attempts made by one dispatch run."""

    attempts: list[WebhookAttempt] = field(default_factory=list)

    @property
    def last_attempt(self) -> WebhookAttempt | None:
        return self.attempts[-1] if self.attempts else None

    @property
    def succeeded(self) -> bool:
        last = self.last_attempt
        return last is not None and last.succeeded

    @property
    def fatal(self) -> bool:
        last = self.last_attempt
        return last is not None and last.fatal

    @property
    def next_attempt(self) -> int:
        last = self.last_attempt
        return last.attempt + 1 if last else 0


def is_http_url(url: str | None) -> bool:
    """Return True for an absolute http(s) URL with a host."""
    if not url or not url.strip():
        return False
    try:
        parsed = httpx.URL(url.strip())
    except httpx.InvalidURL:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.host)


def validate_webhook_url(url: str | None) -> str:
    """Return *url* if it is an absolute http(s) URL.

    Raises:
        WebhookConfigError: The URL is empty, relative, or unparseable.
    """
    if not url or not url.strip():
        raise WebhookConfigError("Webhook URL is not configured", FailureKind.INVALID_URL)
    url = url.strip()
    if not is_http_url(url):
        raise WebhookConfigError(f"Invalid webhook URL {url!r}", FailureKind.INVALID_URL)
    return url


def render_payload_template(template: str, response: NpsResponse) -> str:
    """Substitute ``{{token}}`` placeholders with response fields.

    Recognized tokens: ``nps_score``, ``feedback``, ``campaign_id``,
    ``response_id``.  Unknown tokens are left untouched.
    """
    values = {
        "nps_score": response.score,
        "feedback": response.feedback,
        "campaign_id": response.campaign_id,
        "response_id": response.id,
    }

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        return str(values[name]) if name in values else match.group(0)

    return _TOKEN_RE.sub(_sub, template)


def default_payload(response: NpsResponse) -> dict[str, Any]:
    return {
        "campaign_id": response.campaign_id,
        "response_id": response.id,
        "nps_score": response.score,
        "feedback": response.feedback,
        "source_id": response.source_id,
        "situation_id": response.situation_id,
        "group_id": response.group_id,
        "created_at": response.created_at.isoformat(),
        "form_responses": response.form_responses,
    }


def build_payload(
    response: NpsResponse, automation: CampaignAutomation
) -> dict[str, Any]:
    """Default payload shallow-merged with the campaign's custom template.

    Raises:
        WebhookConfigError: The rendered template is not a JSON object.
    """
    payload = default_payload(response)
    template = automation.webhook_payload
    if not template or not template.strip():
        return payload

    rendered = render_payload_template(template, response)
    try:
        custom = json.loads(rendered)
    except json.JSONDecodeError as e:
        raise WebhookConfigError(
            f"Custom webhook payload is not valid JSON: {e}",
            FailureKind.INVALID_PAYLOAD,
        ) from e
    if not isinstance(custom, dict):
        raise WebhookConfigError(
            "Custom webhook payload must be a JSON object",
            FailureKind.INVALID_PAYLOAD,
        )
    return {**payload, **custom}


def build_headers(automation: CampaignAutomation) -> dict[str, str]:
    """Default headers, overridden by the campaign's custom headers."""
    return {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        **automation.webhook_headers,
    }


def _parse_body(resp: httpx.Response) -> Any:
    text = resp.text
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return {"message": text[:1000]}


async def send_webhook(
    response: NpsResponse,
    automation: CampaignAutomation,
    attempt: int = 0,
) -> WebhookAttempt:
    """Make one delivery attempt. Never raises for webhook failures."""
    try:
        url = validate_webhook_url(automation.webhook_url)
        payload = build_payload(response, automation)
    except WebhookConfigError as e:
        logger.error(
            "Webhook configuration error for campaign %s: %s",
            response.campaign_id,
            e,
        )
        return WebhookAttempt(attempt, AttemptOutcome.FATAL, e.kind, str(e))

    client = get_shared_client()
    try:
        resp = await client.post(
            url,
            content=json.dumps(payload),
            headers=build_headers(automation),
            timeout=WEBHOOK_TIMEOUT,
        )
    except httpx.TimeoutException:
        logger.warning(
            "Webhook timeout for response %s (attempt %d)", response.id, attempt
        )
        return WebhookAttempt(
            attempt, AttemptOutcome.RECOVERABLE, FailureKind.TIMEOUT, "Timeout"
        )
    except httpx.NetworkError as e:
        # No response at all: refused, reset, DNS, or blocked cross-origin
        logger.warning(
            "Webhook endpoint unreachable for response %s (attempt %d): %s",
            response.id,
            attempt,
            e,
        )
        return WebhookAttempt(
            attempt, AttemptOutcome.RECOVERABLE, FailureKind.CORS, str(e) or "CORS"
        )
    except httpx.RequestError as e:
        logger.warning(
            "Webhook request error for response %s (attempt %d): %s",
            response.id,
            attempt,
            e,
        )
        return WebhookAttempt(
            attempt, AttemptOutcome.RECOVERABLE, FailureKind.NETWORK, str(e)
        )

    data = _parse_body(resp)
    if not resp.is_success:
        logger.warning(
            "Webhook %d for response %s (attempt %d)",
            resp.status_code,
            response.id,
            attempt,
        )
        return WebhookAttempt(
            attempt,
            AttemptOutcome.RECOVERABLE,
            FailureKind.HTTP_STATUS,
            f"HTTP {resp.status_code}: {resp.reason_phrase}",
            status_code=resp.status_code,
            response_data=data,
        )

    logger.info(
        "Webhook delivered for response %s (attempt %d, HTTP %d)",
        response.id,
        attempt,
        resp.status_code,
    )
    return WebhookAttempt(
        attempt,
        AttemptOutcome.SUCCESS,
        status_code=resp.status_code,
        response_data=data,
    )


async def dispatch_webhook(
    response: NpsResponse,
    automation: CampaignAutomation,
    *,
    first_attempt: int = 0,
    auto_retry: bool = True,
    on_attempt: Callable[[WebhookAttempt], None] | None = None,
) -> DispatchResult:
    """Deliver the webhook, retrying recoverable failures.

    Args:
        response: The already-persisted response.
        automation: The campaign's automation settings.
        first_attempt: Index of the first attempt (manual retries continue
            where the previous run stopped).
        auto_retry: When False, make exactly one attempt.
        on_attempt: Called after every attempt, before any backoff sleep.

    Raises:
        ValueError: *first_attempt* is already past the attempt ceiling.
    """
    if first_attempt >= MAX_TOTAL_ATTEMPTS:
        raise ValueError(
            f"Webhook attempt budget exhausted ({MAX_TOTAL_ATTEMPTS} attempts)"
        )

    result = DispatchResult()
    attempt = first_attempt
    while True:
        outcome = await send_webhook(response, automation, attempt)
        result.attempts.append(outcome)
        if on_attempt is not None:
            on_attempt(outcome)

        if outcome.succeeded or outcome.fatal:
            break
        if (
            not auto_retry
            or attempt >= MAX_AUTOMATIC_ATTEMPTS - 1
            or attempt + 1 >= MAX_TOTAL_ATTEMPTS
        ):
            break

        delay = RETRY_BASE_DELAY * (attempt + 1)
        logger.info(
            "Retrying webhook for response %s in %.0fs (attempt %d/%d)",
            response.id,
            delay,
            attempt + 2,
            MAX_AUTOMATIC_ATTEMPTS,
        )
        await asyncio.sleep(delay)
        attempt += 1

    return result
