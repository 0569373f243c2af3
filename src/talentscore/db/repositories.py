from __future__ import annotations

from collections.abc import Collection
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from talentscore.core.errors import LedgerTransitionError
from talentscore.db.models import ScoringJob, TalentDocument, TalentProfile


class Repository:
    def __init__(self, session: Session):
        self.session = session

    # Subject profiles

    def create_talent(self, first_name: str, last_name: str = "") -> TalentProfile:
        talent = TalentProfile(first_name=first_name, last_name=last_name, criteria_met=[])
        self.session.add(talent)
        self.session.commit()
        self.session.refresh(talent)
        return talent

    def get_talent(self, talent_id: int) -> TalentProfile | None:
        return self.session.get(TalentProfile, talent_id)

    def update_talent_score(
        self,
        talent_id: int,
        *,
        score: int,
        criteria_met: list[str],
        scored_at: datetime | None = None,
    ) -> TalentProfile:
        talent = self.session.get(TalentProfile, talent_id)
        if not talent:
            raise ValueError(f"talent {talent_id} not found")

        talent.score = score
        talent.criteria_met = list(criteria_met)
        talent.score_updated_at = scored_at or datetime.now(UTC)
        self.session.commit()
        self.session.refresh(talent)
        return talent

    def select_talents_for_scoring(self, *, exclude_ids: Collection[int], limit: int) -> list[TalentProfile]:
        """Talents with evidence on file, never-scored first, then stalest score first."""
        with_documents = select(TalentDocument.talent_id).distinct()
        statement = select(TalentProfile).where(TalentProfile.id.in_(with_documents))
        if exclude_ids:
            statement = statement.where(TalentProfile.id.not_in(list(exclude_ids)))
        statement = statement.order_by(
            TalentProfile.score_updated_at.is_(None).desc(),
            TalentProfile.score_updated_at.asc(),
            TalentProfile.id.asc(),
        ).limit(limit)
        return list(self.session.scalars(statement).all())

    # Evidence documents

    def add_document(
        self,
        *,
        talent_id: int,
        file_url: str,
        file_name: str = "",
        file_type: str = "",
        title: str = "",
    ) -> TalentDocument:
        document = TalentDocument(
            talent_id=talent_id,
            file_url=file_url,
            file_name=file_name,
            file_type=file_type,
            title=title or file_name,
        )
        self.session.add(document)
        self.session.commit()
        self.session.refresh(document)
        return document

    def list_documents(self, talent_id: int) -> list[TalentDocument]:
        statement = (
            select(TalentDocument)
            .where(TalentDocument.talent_id == talent_id)
            .order_by(TalentDocument.created_at.asc(), TalentDocument.id.asc())
        )
        return list(self.session.scalars(statement).all())

    # Job ledger

    def create_job(
        self,
        *,
        talent_id: int,
        session_id: str,
        created_at: datetime | None = None,
    ) -> ScoringJob:
        job = ScoringJob(
            talent_id=talent_id,
            session_id=session_id,
            status="pending",
            criteria_scores=[],
            raw_response={},
        )
        if created_at is not None:
            job.created_at = created_at
        self.session.add(job)
        self.session.commit()
        self.session.refresh(job)
        return job

    def get_job(self, job_id: int) -> ScoringJob | None:
        return self.session.get(ScoringJob, job_id)

    def list_jobs(
        self,
        *,
        talent_id: int | None = None,
        status: str | None = None,
        limit: int = 50,
    ) -> list[ScoringJob]:
        statement = select(ScoringJob)
        if talent_id is not None:
            statement = statement.where(ScoringJob.talent_id == talent_id)
        if status is not None:
            statement = statement.where(ScoringJob.status == status)
        statement = statement.order_by(ScoringJob.created_at.desc(), ScoringJob.id.desc()).limit(limit)
        return list(self.session.scalars(statement).all())

    def list_pending_jobs(self, limit: int) -> list[ScoringJob]:
        statement = (
            select(ScoringJob)
            .where(ScoringJob.status == "pending")
            .order_by(ScoringJob.created_at.asc(), ScoringJob.id.asc())
            .limit(limit)
        )
        return list(self.session.scalars(statement).all())

    def pending_talent_ids(self) -> set[int]:
        statement = select(ScoringJob.talent_id).where(ScoringJob.status == "pending").distinct()
        return set(self.session.scalars(statement).all())

    def has_pending_job(self, talent_id: int) -> bool:
        statement = select(ScoringJob.id).where(
            and_(ScoringJob.talent_id == talent_id, ScoringJob.status == "pending")
        )
        return self.session.scalar(statement.limit(1)) is not None

    def complete_job(
        self,
        job_id: int,
        *,
        overall_score: int,
        criteria_scores: list[dict[str, Any]],
        raw_response: dict[str, Any],
    ) -> ScoringJob:
        job = self._pending_job(job_id, target="completed")
        job.status = "completed"
        job.overall_score = overall_score
        job.criteria_scores = criteria_scores
        job.raw_response = raw_response
        job.completed_at = datetime.now(UTC)
        self.session.commit()
        self.session.refresh(job)
        return job

    def fail_job(
        self,
        job_id: int,
        *,
        error_message: str,
        raw_response: dict[str, Any] | None = None,
    ) -> ScoringJob:
        job = self._pending_job(job_id, target="failed")
        job.status = "failed"
        job.error_message = error_message
        if raw_response is not None:
            job.raw_response = raw_response
        job.completed_at = datetime.now(UTC)
        self.session.commit()
        self.session.refresh(job)
        return job

    def _pending_job(self, job_id: int, *, target: str) -> ScoringJob:
        job = self.session.get(ScoringJob, job_id)
        if not job:
            raise ValueError(f"scoring job {job_id} not found")
        if job.status != "pending":
            raise LedgerTransitionError(
                f"scoring job {job_id} cannot move from {job.status} to {target}"
            )
        return job
