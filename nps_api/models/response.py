"""NPS response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NpsResponse(BaseModel):
    """One respondent's submission. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    id: str
    campaign_id: str
    score: int = Field(..., ge=0, le=10)
    feedback: str = ""
    source_id: str | None = None
    situation_id: str | None = None
    group_id: str | None = None
    created_at: datetime
    form_responses: dict[str, Any] = {}

    def to_storage_payload(self) -> dict[str, Any]:
        """Body for ``POST /responses/submit`` on the storage API."""
        return {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "score": self.score,
            "feedback": self.feedback,
            "source_id": self.source_id,
            "situation_id": self.situation_id,
            "group_id": self.group_id,
            "form_responses": self.form_responses,
            "created_at": self.created_at.isoformat(),
        }
