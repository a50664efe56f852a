"""Post-Submit Controller: what a respondent sees after pressing submit.

A :class:`SurveySession` is one respondent's survey tab.  Submitting runs
the recorder first; only a saved response reaches the automation half:

    idle -> submitting -> [dispatching_webhook] -> counting | redirecting

``counting`` returns to a blank form when its countdown expires and
``redirecting`` navigates to the campaign's redirect URL.  Webhook
failures never block that resolution; they only raise a dismissable banner
with an optional retry.

Every submission gets a generation number.  Background work (webhook
retries, countdown ticks) checks it before touching state, so work left
over from a reset or a closed session is dropped.
"""

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable
from enum import Enum
from typing import Any

from nps_api.models.campaign import (
    Campaign,
    CampaignAutomation,
    CampaignForm,
    Situation,
)
from nps_api.models.response import NpsResponse
from nps_api.models.session import ErrorBanner, SessionSnapshot
from nps_api.services.countdown import Countdown, cancel_task
from nps_api.services.i18n import translate
from nps_api.services.recorder import (
    PersistenceError,
    SubmissionValidationError,
    record_response,
)
from nps_api.services.webhook import (
    MAX_TOTAL_ATTEMPTS,
    AttemptOutcome,
    DispatchResult,
    FailureKind,
    WebhookAttempt,
    dispatch_webhook,
    is_http_url,
)

logger = logging.getLogger(__name__)

COUNTDOWN_SECONDS = 10


class Phase(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    DISPATCHING_WEBHOOK = "dispatching_webhook"
    COUNTING = "counting"
    REDIRECTING = "redirecting"
    CLOSED = "closed"


class WebhookState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class InvalidTransitionError(Exception):
    """Raised when a user action does not apply to the current phase."""


class SurveySession:
    """State machine for one respondent's survey tab."""

    def __init__(
        self,
        campaign: Campaign,
        form: CampaignForm,
        situations: list[Situation],
        *,
        language: str = "en",
        session_id: str | None = None,
        navigate: Callable[[str], None] | None = None,
        countdown_seconds: int = COUNTDOWN_SECONDS,
        tick_interval: float = 1.0,
    ) -> None:
        self.session_id = session_id or str(uuid.uuid4())
        self.campaign = campaign
        self.form = form
        self.situations = situations
        self.language = language
        self.countdown_seconds = countdown_seconds
        self._navigate = navigate
        self._tick_interval = tick_interval

        self.phase = Phase.IDLE
        self.webhook_state = WebhookState.IDLE
        self.form_data: dict[str, Any] = {}
        self.form_error: str | None = None
        self.response: NpsResponse | None = None
        self.attempts: list[WebhookAttempt] = []
        self.last_failure: WebhookAttempt | None = None
        self.banner_dismissed = False
        self.location: str | None = None

        self._generation = 0
        self._webhook_task: asyncio.Task[None] | None = None
        self._countdown = Countdown(countdown_seconds)

    # -- derived state ---------------------------------------------------

    @property
    def automation(self) -> CampaignAutomation | None:
        """The campaign's automation, or None when it is switched off."""
        automation = self.campaign.automation
        return automation if automation is not None and automation.enabled else None

    @property
    def countdown(self) -> int:
        return self._countdown.remaining

    @property
    def next_attempt(self) -> int:
        return self.attempts[-1].attempt + 1 if self.attempts else 0

    @property
    def can_retry(self) -> bool:
        return (
            self.webhook_state is WebhookState.FAILED
            and self.response is not None
            and self.phase is not Phase.CLOSED
            and self.next_attempt < MAX_TOTAL_ATTEMPTS
        )

    def redirect_target(self) -> str | None:
        """The URL a redirect action should navigate to, if usable."""
        automation = self.automation
        if automation is None or not automation.action.redirects:
            return None
        url = (automation.redirect_url or "").strip()
        if not is_http_url(url):
            logger.warning(
                "Campaign %s redirect URL %r unusable, returning to form instead",
                self.campaign.id,
                automation.redirect_url,
            )
            return None
        return url

    # -- user actions ----------------------------------------------------

    async def submit(self, form_data: dict[str, Any], *, wait: bool = False) -> NpsResponse:
        """Record the answers and start the post-submit flow.

        Args:
            form_data: Answers keyed by form field id.
            wait: Block until the webhook dispatch (if any) has settled.

        Raises:
            InvalidTransitionError: The form is not currently editable.
            SubmissionValidationError: No usable NPS answer; nothing was sent.
            PersistenceError: The response could not be saved; the form
                stays editable with its answers.
        """
        self._require_open()
        if self.phase is not Phase.IDLE:
            raise InvalidTransitionError("A response was already submitted")

        self.form_data = dict(form_data)
        self.form_error = None
        self.phase = Phase.SUBMITTING
        generation = self._generation

        try:
            response = await record_response(
                self.form_data, self.campaign, self.form, self.situations
            )
        except SubmissionValidationError as e:
            if generation == self._generation:
                self.phase = Phase.IDLE
                nps_field = self.form.nps_field
                key = (
                    "survey.scoreRequired"
                    if nps_field is None or e.field_id == nps_field.id
                    else "survey.fieldRequired"
                )
                self.form_error = translate(self.language, key)
            raise
        except PersistenceError:
            if generation == self._generation:
                self.phase = Phase.IDLE
                self.form_error = translate(self.language, "survey.saveError")
            raise
        except Exception as e:
            logger.exception(
                "Unexpected error saving response for campaign %s", self.campaign.id
            )
            if generation == self._generation:
                self.phase = Phase.IDLE
                self.form_error = translate(self.language, "survey.saveError")
            raise PersistenceError("Unexpected error while saving the response") from e

        if generation != self._generation:
            # Closed while the store was answering; the response is saved
            return response

        self.response = response
        automation = self.automation
        if automation is not None and automation.action.sends_webhook:
            self.phase = Phase.DISPATCHING_WEBHOOK
            self.webhook_state = WebhookState.DISPATCHING
            self._webhook_task = asyncio.get_running_loop().create_task(
                self._dispatch_then_resolve(generation)
            )
            if wait:
                await self.wait_for_webhook()
        else:
            self._resolve_post_action(generation)
        return response

    async def retry_webhook(self, *, wait: bool = False) -> None:
        """Manually retry a failed webhook with the response already saved.

        Makes a single attempt and leaves the countdown alone.

        Raises:
            InvalidTransitionError: Nothing failed, a dispatch is in flight,
                or the attempt ceiling is reached.
        """
        self._require_open()
        if self.webhook_state is WebhookState.DISPATCHING:
            raise InvalidTransitionError("The webhook is already being sent")
        if not self.can_retry:
            raise InvalidTransitionError("The webhook cannot be retried")

        generation = self._generation
        # Claim the dispatch slot before the task first runs
        self.webhook_state = WebhookState.DISPATCHING
        self._webhook_task = asyncio.get_running_loop().create_task(
            self._dispatch(generation, first_attempt=self.next_attempt, auto_retry=False)
        )
        if wait:
            await self.wait_for_webhook()

    def respond_again(self) -> None:
        """Return to a blank form for another response."""
        self._require_open()
        if self.phase is Phase.SUBMITTING:
            raise InvalidTransitionError("The response is still being saved")
        self._cancel_background()
        self._generation += 1
        self.phase = Phase.IDLE
        self.webhook_state = WebhookState.IDLE
        self.form_data = {}
        self.form_error = None
        self.response = None
        self.attempts = []
        self.last_failure = None
        self.banner_dismissed = False
        self.location = None
        self._countdown = Countdown(self.countdown_seconds)

    def close(self) -> None:
        """End the session; nothing fires afterwards."""
        if self.phase is Phase.CLOSED:
            return
        self._cancel_background()
        self._generation += 1
        self.phase = Phase.CLOSED

    def dismiss_error(self) -> None:
        """Hide the webhook error banner; retrying stays available."""
        self.banner_dismissed = True

    async def wait_for_webhook(self) -> None:
        """Wait for the current webhook dispatch, if any, to settle."""
        task = self._webhook_task
        if task is None:
            return
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def settle(self) -> None:
        """Wait for the webhook and then for the countdown to finish."""
        await self.wait_for_webhook()
        await self._countdown.wait()

    # -- rendering -------------------------------------------------------

    def error_banner(self) -> ErrorBanner | None:
        failure = self.last_failure
        if failure is None or self.webhook_state is not WebhookState.FAILED:
            return None
        kind = failure.kind or FailureKind.NETWORK
        automation = self.automation
        headline = (automation.error_message if automation else None) or translate(
            self.language, f"webhook.error.{kind.value}", detail=failure.error
        )
        return ErrorBanner(
            kind=kind.value,
            message=f"{headline} {translate(self.language, 'webhook.saved')}",
            detail=failure.error,
            fatal=failure.fatal,
            can_retry=self.can_retry,
            dismissed=self.banner_dismissed,
        )

    def snapshot(self) -> SessionSnapshot:
        message = None
        if self.response is not None:
            automation = self.automation
            message = (
                automation.success_message if automation else None
            ) or translate(self.language, "survey.submitted")
        return SessionSnapshot(
            session_id=self.session_id,
            campaign_id=self.campaign.id,
            language=self.language,
            phase=self.phase.value,
            webhook_state=self.webhook_state.value,
            form_data=self.form_data,
            response_id=self.response.id if self.response else None,
            countdown=self.countdown,
            countdown_total=self.countdown_seconds,
            webhook_attempts=len(self.attempts),
            error=self.error_banner(),
            form_error=self.form_error,
            message=message,
            location=self.location,
        )

    # -- internals -------------------------------------------------------

    def _require_open(self) -> None:
        if self.phase is Phase.CLOSED:
            raise InvalidTransitionError("The survey session is closed")

    def _cancel_background(self) -> None:
        self._countdown.cancel()
        cancel_task(self._webhook_task)
        self._webhook_task = None

    async def _dispatch_then_resolve(self, generation: int) -> None:
        await self._dispatch(generation, first_attempt=0, auto_retry=True)
        if generation == self._generation:
            self._resolve_post_action(generation)

    async def _dispatch(
        self, generation: int, *, first_attempt: int, auto_retry: bool
    ) -> None:
        automation = self.automation
        response = self.response
        if automation is None or response is None:
            return

        self.webhook_state = WebhookState.DISPATCHING

        def _record(attempt: WebhookAttempt) -> None:
            if generation == self._generation:
                self.attempts.append(attempt)

        try:
            result = await dispatch_webhook(
                response,
                automation,
                first_attempt=first_attempt,
                auto_retry=auto_retry,
                on_attempt=_record,
            )
        except Exception:
            logger.exception("Webhook dispatch crashed for response %s", response.id)
            failure = WebhookAttempt(
                first_attempt,
                AttemptOutcome.RECOVERABLE,
                FailureKind.NETWORK,
                "Unexpected error",
            )
            _record(failure)
            result = DispatchResult(attempts=[failure])

        if generation != self._generation:
            return
        if result.succeeded:
            self.webhook_state = WebhookState.SUCCEEDED
            self.last_failure = None
        else:
            self.webhook_state = WebhookState.FAILED
            self.last_failure = result.last_attempt
            self.banner_dismissed = False
            logger.warning(
                "Webhook for response %s failed after %d attempt(s): %s",
                response.id,
                len(self.attempts),
                self.last_failure.error if self.last_failure else "",
            )

    def _resolve_post_action(self, generation: int) -> None:
        target = self.redirect_target()
        self._countdown.cancel()
        self.phase = Phase.REDIRECTING if target else Phase.COUNTING
        self._countdown = Countdown(
            self.countdown_seconds,
            interval=self._tick_interval,
            on_expire=lambda: self._on_countdown_expired(generation),
        ).start()

    def _on_countdown_expired(self, generation: int) -> None:
        if generation != self._generation:
            return
        if self.phase is Phase.REDIRECTING:
            target = self.redirect_target()
            if target:
                self._go_to(target)
                return
        # Return flows resolve by handing back a blank form
        self.respond_again()

    def _go_to(self, url: str) -> None:
        cancel_task(self._webhook_task)
        self._generation += 1
        self.location = url
        logger.info("Session %s redirecting to %s", self.session_id, url)
        if self._navigate is not None:
            self._navigate(url)
