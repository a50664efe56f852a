"""Builders for campaign, form, and response test data."""

from datetime import datetime, timezone

from nps_api.models.campaign import Campaign, CampaignAutomation, CampaignForm, FormField
from nps_api.models.response import NpsResponse


def make_campaign(automation: CampaignAutomation | None = None, **kwargs) -> Campaign:
    data = {
        "id": "camp-1",
        "name": "Store checkout",
        "description": "Post-purchase survey",
        "default_source_id": "src-1",
        "default_group_id": "grp-1",
        "automation": automation,
    }
    data.update(kwargs)
    return Campaign(**data)


def make_form(*extra_fields: FormField) -> CampaignForm:
    return CampaignForm(
        id="form-1",
        campaign_id="camp-1",
        fields=[
            FormField(id="nps", type="nps", label="How likely...", required=True, order=0),
            FormField(id="feedback", type="text", label="Why?", order=1),
            *extra_fields,
        ],
    )


def make_response(**kwargs) -> NpsResponse:
    data = {
        "id": "resp-1",
        "campaign_id": "camp-1",
        "score": 7,
        "feedback": "Great service",
        "source_id": "src-1",
        "situation_id": "sit-1",
        "group_id": "grp-1",
        "created_at": datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        "form_responses": {"nps": "7", "feedback": "Great service"},
    }
    data.update(kwargs)
    return NpsResponse(**data)
