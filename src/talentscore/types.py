from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

JobStatus = Literal["pending", "completed", "failed"]
Phase = Literal["all", "harvest", "queue"]
ApiResultKind = Literal["ok", "transport_error", "api_error"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class CriterionScore(BaseModel):
    """One entry of the provider's per-criterion breakdown."""

    label: str = ""
    rating: str = ""
    score: float | None = None


class SessionStatus(BaseModel):
    status: str = ""
    overall_score: float | None = None
    criteria_scores: list[dict[str, Any]] = Field(default_factory=list)
    error_message: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed" and self.overall_score is not None

    @property
    def is_failed(self) -> bool:
        return self.status in {"failed", "error"}


class HarvestReport(BaseModel):
    checked: int = 0
    completed: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class SubmitReport(BaseModel):
    queued: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


class RunSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phase: Phase = "all"
    timestamp: str = ""
    harvest: HarvestReport = Field(default_factory=HarvestReport)
    new_jobs: SubmitReport = Field(default_factory=SubmitReport, alias="newJobs")
