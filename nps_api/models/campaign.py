"""Campaign, survey form, and automation models.

The storage API returns camelCase keys from the web client's store and
snake_case keys from the SQL-backed routes, so every model accepts both.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AutomationAction(str, Enum):
    """What happens after a respondent submits."""

    RETURN_ONLY = "return_only"
    REDIRECT_ONLY = "redirect_only"
    WEBHOOK_RETURN = "webhook_return"
    WEBHOOK_REDIRECT = "webhook_redirect"

    @property
    def sends_webhook(self) -> bool:
        return self.value.startswith("webhook_")

    @property
    def redirects(self) -> bool:
        return self.value.endswith("_redirect")


class CampaignAutomation(BaseModel):
    """Post-submit automation settings embedded in a campaign."""

    model_config = _WIRE_CONFIG

    enabled: bool = False
    action: AutomationAction = AutomationAction.RETURN_ONLY
    webhook_url: str | None = None
    webhook_headers: dict[str, str] = {}
    webhook_payload: str | None = None
    redirect_url: str | None = None
    success_message: str | None = None
    error_message: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_null_headers(cls, data: Any) -> Any:
        """Campaigns saved before headers existed store null instead of {}."""
        if isinstance(data, dict):
            for key in ("webhookHeaders", "webhook_headers"):
                if key in data and data[key] is None:
                    data = {k: v for k, v in data.items() if k != key}
        return data


class Campaign(BaseModel):
    """A configured survey instance."""

    model_config = _WIRE_CONFIG

    id: str
    name: str = ""
    description: str = ""
    active: bool = True
    start_date: datetime | None = None
    end_date: datetime | None = None
    default_source_id: str | None = None
    default_group_id: str | None = None
    automation: CampaignAutomation | None = None

    def accepts_responses(self, now: datetime | None = None) -> bool:
        """Return True if the campaign is active and inside its date window."""
        if not self.active:
            return False
        now = now or datetime.now(timezone.utc)
        if self.start_date and now < _as_utc(self.start_date):
            return False
        if self.end_date and now > _as_utc(self.end_date):
            return False
        return True


def _as_utc(value: datetime) -> datetime:
    # Date-only values from the store come back naive
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class FormField(BaseModel):
    """A single field of a campaign's survey form."""

    model_config = _WIRE_CONFIG

    id: str
    type: str = "text"  # nps, text, select, radio
    label: str = ""
    required: bool = False
    options: list[str] = []
    order: int = 0


class CampaignForm(BaseModel):
    """The ordered field list rendered on the public survey page."""

    model_config = _WIRE_CONFIG

    id: str = ""
    campaign_id: str = ""
    fields: list[FormField] = []

    @property
    def nps_field(self) -> FormField | None:
        return next((f for f in self.fields if f.type == "nps"), None)

    def ordered_fields(self) -> list[FormField]:
        return sorted(self.fields, key=lambda f: f.order)


class Situation(BaseModel):
    """A campaign-configured classification dimension."""

    model_config = _WIRE_CONFIG

    id: str
    name: str = ""
    description: str | None = None
    color: str | None = None


class PublicCampaign(BaseModel):
    """Campaign fields safe to expose on the public survey page."""

    id: str
    name: str
    description: str
