from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from talentscore.types import HarvestReport, JobStatus, Phase, RunSummary, SubmitReport


class TriggerResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    phase: Phase
    timestamp: str
    harvest: HarvestReport
    new_jobs: SubmitReport = Field(alias="newJobs")

    @classmethod
    def from_summary(cls, summary: RunSummary) -> TriggerResponse:
        return cls(
            phase=summary.phase,
            timestamp=summary.timestamp,
            harvest=summary.harvest,
            new_jobs=summary.new_jobs,
        )


class ScoringJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    talent_id: int
    session_id: str
    status: JobStatus
    overall_score: int | None
    criteria_scores: list[dict[str, Any]]
    error_message: str | None
    created_at: datetime
    completed_at: datetime | None


class ScoringJobDetailResponse(ScoringJobResponse):
    raw_response: dict[str, Any]
