from __future__ import annotations

import hmac
import time
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from talentscore.config import Settings, get_settings
from talentscore.core.errors import AuthorizationError
from talentscore.core.events import ScoringObserver
from talentscore.core.harvester import ResultHarvester
from talentscore.core.runtime import get_observer
from talentscore.core.submitter import JobSubmitter
from talentscore.db.repositories import Repository
from talentscore.scoring.client import ScoringClient
from talentscore.scoring.documents import DocumentDownloader
from talentscore.types import HarvestReport, Phase, RunSummary, SubmitReport

PHASE_ALIASES: dict[str, Phase] = {
    "": "all",
    "all": "all",
    "harvest": "harvest",
    "queue": "queue",
    "submit": "queue",
}


def resolve_phase(value: str | None) -> Phase:
    key = (value or "").strip().lower()
    if key not in PHASE_ALIASES:
        raise ValueError(f"unknown phase '{value}'; expected one of all, harvest, queue")
    return PHASE_ALIASES[key]


class ScoringScheduler:
    """Decides which phase runs and folds their reports into one summary.

    Harvest runs before queueing so a talent whose job settles this run can be
    queued again in the same invocation.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        client: ScoringClient | None = None,
        downloader: DocumentDownloader | None = None,
        observer: ScoringObserver | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.observer = observer or get_observer()
        self.repo = Repository(session)
        self.client = client or ScoringClient(self.settings)
        self.downloader = downloader or DocumentDownloader(timeout_sec=self.settings.scoring_timeout_sec)
        self.harvester = ResultHarvester(
            self.repo,
            self.client,
            settings=self.settings,
            observer=self.observer,
            sleep=sleep,
            clock=clock,
        )
        self.submitter = JobSubmitter(
            self.repo,
            self.client,
            self.downloader,
            settings=self.settings,
            observer=self.observer,
            sleep=sleep,
        )

    def authorize(self, authorization: str | None) -> None:
        secret = self.settings.cron_secret
        if not secret or not authorization:
            self.observer.error("run.unauthorized", reason="missing credential")
            raise AuthorizationError("Unauthorized")
        if not hmac.compare_digest(authorization.encode("utf-8"), f"Bearer {secret}".encode("utf-8")):
            self.observer.error("run.unauthorized", reason="credential mismatch")
            raise AuthorizationError("Unauthorized")

    def trigger(self, authorization: str | None, phase: str | None = None) -> RunSummary:
        self.authorize(authorization)
        return self.run(resolve_phase(phase))

    def run(self, phase: Phase = "all") -> RunSummary:
        summary = RunSummary(phase=phase, timestamp=datetime.now(UTC).isoformat())
        self.observer.emit("run.start", phase=phase, api_base=self.settings.scoring_api_url)

        if phase != "queue":
            summary.harvest = self._run_harvest()
        if phase != "harvest":
            summary.new_jobs = self._run_submit()

        self._emit_summary(summary)
        return summary

    def _run_harvest(self) -> HarvestReport:
        # Counts gathered before a crash are kept; every ledger write is already committed.
        report = HarvestReport()
        try:
            self.harvester.harvest(report)
        except Exception as exc:
            self.session.rollback()
            self.observer.error("run.phase_aborted", phase="harvest", error=repr(exc))
            report.errors.append(f"harvest aborted: {exc}")
        return report

    def _run_submit(self) -> SubmitReport:
        report = SubmitReport()
        try:
            self.submitter.submit(report)
        except Exception as exc:
            self.session.rollback()
            self.observer.error("run.phase_aborted", phase="queue", error=repr(exc))
            report.errors.append(f"queue aborted: {exc}")
        return report

    def _emit_summary(self, summary: RunSummary) -> None:
        harvest, new_jobs = summary.harvest, summary.new_jobs
        self.observer.emit(
            "run.summary",
            phase=summary.phase,
            checked=harvest.checked,
            completed=harvest.completed,
            failed=harvest.failed,
            harvest_errors=len(harvest.errors),
            queued=new_jobs.queued,
            skipped=new_jobs.skipped,
            queue_errors=len(new_jobs.errors),
        )
        for error in harvest.errors:
            self.observer.error("run.harvest_error", error=error)
        for error in new_jobs.errors:
            self.observer.error("run.queue_error", error=error)
