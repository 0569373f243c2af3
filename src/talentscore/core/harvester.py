from __future__ import annotations

import math
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from talentscore.config import Settings
from talentscore.core.criteria import map_criteria
from talentscore.core.errors import PermanentJobError, ProfileWriteError, TransientExternalError
from talentscore.core.events import ScoringObserver
from talentscore.db.models import ScoringJob
from talentscore.db.repositories import Repository
from talentscore.scoring.client import ScoringClient, parse_session_status
from talentscore.types import HarvestReport, SessionStatus

FALLBACK_FAILURE_MESSAGE = "Unknown error"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; they were written in UTC.
    return value if value.tzinfo else value.replace(tzinfo=UTC)


class ResultHarvester:
    """Phase A: poll pending ledger rows and settle the ones the provider has finished."""

    def __init__(
        self,
        repo: Repository,
        client: ScoringClient,
        *,
        settings: Settings,
        observer: ScoringObserver,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
    ):
        self.repo = repo
        self.client = client
        self.settings = settings
        self.observer = observer
        self.sleep = sleep
        self.clock = clock or (lambda: datetime.now(UTC))

    @property
    def stale_after(self) -> timedelta:
        return timedelta(hours=self.settings.stale_after_hours)

    def harvest(self, report: HarvestReport | None = None) -> HarvestReport:
        report = report if report is not None else HarvestReport()
        jobs = self.repo.list_pending_jobs(self.settings.pending_check_batch)
        if not jobs:
            self.observer.emit("harvest.idle")
            return report

        self.observer.emit("harvest.start", pending=len(jobs))
        for job in jobs:
            report.checked += 1
            # Plain values up front: a rollback below expires the ORM instance.
            job_id, talent_id, session_id = job.id, job.talent_id, job.session_id
            try:
                self._settle(job, report)
            except TransientExternalError as exc:
                self.observer.error("harvest.poll_failed", session_id=session_id, error=str(exc))
                report.errors.append(f"{session_id}: {exc}")
            except (SQLAlchemyError, ValueError) as exc:
                self.repo.session.rollback()
                self.observer.error("harvest.ledger_write_failed", job_id=job_id, talent_id=talent_id, error=str(exc))
                report.errors.append(f"{session_id}: {exc}")
            except Exception as exc:
                self.repo.session.rollback()
                self.observer.error("harvest.job_crashed", job_id=job_id, talent_id=talent_id, error=repr(exc))
                report.errors.append(f"{session_id}: {exc}")
        return report

    def _settle(self, job: ScoringJob, report: HarvestReport) -> None:
        result = self.client.get_session(job.session_id)
        self.sleep(self.settings.poll_delay_sec)
        if result.is_transport_error:
            raise TransientExternalError(result.error or "status check failed")
        if not result.ok:
            # A rejected poll still carries a body; classify it so dead sessions can age out.
            self.observer.error("harvest.poll_rejected", session_id=job.session_id, error=result.error)

        status = parse_session_status(result.payload)
        try:
            if status.is_completed:
                self._complete(job, status, result.payload, report)
                report.completed += 1
                return
            self._check_unfinished(job, status)
        except PermanentJobError as exc:
            self.repo.fail_job(
                job.id,
                error_message=str(exc),
                raw_response=result.payload if status.is_failed else None,
            )
            report.failed += 1

    def _check_unfinished(self, job: ScoringJob, status: SessionStatus) -> None:
        if status.is_failed:
            message = status.error_message or FALLBACK_FAILURE_MESSAGE
            self.observer.error(
                "harvest.failed", session_id=job.session_id, talent_id=job.talent_id, reason=message
            )
            raise PermanentJobError(message)

        age = self.clock() - _as_utc(job.created_at)
        if age > self.stale_after:
            self.observer.error(
                "harvest.timeout",
                session_id=job.session_id,
                talent_id=job.talent_id,
                age_hours=round(age.total_seconds() / 3600),
            )
            raise PermanentJobError(f"Scoring timed out after {self.settings.stale_after_hours} hours")

        self.observer.emit("harvest.pending", session_id=job.session_id, status=status.status or "unknown")

    def _complete(
        self, job: ScoringJob, status: SessionStatus, raw_response: dict, report: HarvestReport
    ) -> None:
        overall = round_half_up(status.overall_score)
        job_id, talent_id, session_id = job.id, job.talent_id, job.session_id
        try:
            self._write_profile(talent_id, overall, status)
        except ProfileWriteError as exc:
            # Ledger still settles; the profile keeps its previous score.
            self.observer.error("harvest.profile_write_failed", talent_id=talent_id, error=str(exc))
            report.errors.append(f"{talent_id}: talent update failed")

        self.repo.complete_job(
            job_id,
            overall_score=overall,
            criteria_scores=status.criteria_scores,
            raw_response=raw_response,
        )
        self.observer.emit("harvest.completed", session_id=session_id, talent_id=talent_id, score=overall)

    def _write_profile(self, talent_id: int, overall: int, status: SessionStatus) -> None:
        criteria = sorted(map_criteria(status.criteria_scores))
        try:
            self.repo.update_talent_score(
                talent_id,
                score=overall,
                criteria_met=criteria,
                scored_at=self.clock(),
            )
        except (SQLAlchemyError, ValueError) as exc:
            self.repo.session.rollback()
            raise ProfileWriteError(f"talent update failed: {exc}") from exc
