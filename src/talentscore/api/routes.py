from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from talentscore.api.deps import get_db, get_scheduler
from talentscore.api.schemas import ScoringJobDetailResponse, ScoringJobResponse, TriggerResponse
from talentscore.core.errors import AuthorizationError
from talentscore.core.scheduler import ScoringScheduler
from talentscore.db.repositories import Repository
from talentscore.types import JobStatus

router = APIRouter(prefix="/api", tags=["api"])


@router.get("/cron/talent-scoring", response_model=TriggerResponse)
def run_talent_scoring(
    phase: str | None = Query(None),
    authorization: str | None = Header(None),
    scheduler: ScoringScheduler = Depends(get_scheduler),
) -> TriggerResponse:
    try:
        summary = scheduler.trigger(authorization, phase)
    except AuthorizationError as exc:
        raise HTTPException(status_code=401, detail="Unauthorized") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TriggerResponse.from_summary(summary)


@router.get("/scoring/jobs", response_model=list[ScoringJobResponse])
def list_scoring_jobs(
    talent_id: int | None = Query(None),
    status: JobStatus | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    authorization: str | None = Header(None),
    scheduler: ScoringScheduler = Depends(get_scheduler),
    db: Session = Depends(get_db),
) -> list[ScoringJobResponse]:
    _require_credential(scheduler, authorization)
    rows = Repository(db).list_jobs(talent_id=talent_id, status=status, limit=limit)
    return [ScoringJobResponse.model_validate(row) for row in rows]


@router.get("/scoring/jobs/{job_id}", response_model=ScoringJobDetailResponse)
def get_scoring_job(
    job_id: int,
    authorization: str | None = Header(None),
    scheduler: ScoringScheduler = Depends(get_scheduler),
    db: Session = Depends(get_db),
) -> ScoringJobDetailResponse:
    _require_credential(scheduler, authorization)
    job = Repository(db).get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Scoring job not found")
    return ScoringJobDetailResponse.model_validate(job)


def _require_credential(scheduler: ScoringScheduler, authorization: str | None) -> None:
    try:
        scheduler.authorize(authorization)
    except AuthorizationError as exc:
        raise HTTPException(status_code=401, detail="Unauthorized") from exc
