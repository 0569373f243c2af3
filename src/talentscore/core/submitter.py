from __future__ import annotations

import time
from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError

from talentscore.config import Settings
from talentscore.core.errors import SubmissionError
from talentscore.core.events import ScoringObserver
from talentscore.db.models import TalentDocument, TalentProfile
from talentscore.db.repositories import Repository
from talentscore.scoring.client import ScoringClient, extract_session_id
from talentscore.scoring.documents import DocumentDownloader
from talentscore.types import SubmitReport


class JobSubmitter:
    """Phase B: open provider sessions for talents with evidence and no attempt in flight.

    Everything runs one call at a time. Only one evidence file is held in memory
    at once, and the provider's rate limit is respected with fixed sleeps.
    """

    def __init__(
        self,
        repo: Repository,
        client: ScoringClient,
        downloader: DocumentDownloader,
        *,
        settings: Settings,
        observer: ScoringObserver,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repo = repo
        self.client = client
        self.downloader = downloader
        self.settings = settings
        self.observer = observer
        self.sleep = sleep

    def submit(self, report: SubmitReport | None = None) -> SubmitReport:
        report = report if report is not None else SubmitReport()

        # Read-then-insert with no lock: overlapping runs can both pick the same talent.
        excluded = self.repo.pending_talent_ids()
        talents = self.repo.select_talents_for_scoring(
            exclude_ids=excluded,
            limit=self.settings.new_scoring_batch,
        )
        if not talents:
            self.observer.emit("submit.idle", excluded=len(excluded))
            return report

        self.observer.emit("submit.start", talents=len(talents), excluded=len(excluded))
        for talent in talents:
            talent_id = talent.id
            try:
                self._submit_one(talent, report)
            except SubmissionError as exc:
                self.observer.error("submit.skipped", talent_id=talent_id, reason=str(exc))
                report.errors.append(f"{talent_id}: {exc}")
                report.skipped += 1
            except SQLAlchemyError as exc:
                self.repo.session.rollback()
                self.observer.error("submit.skipped", talent_id=talent_id, reason=str(exc))
                report.errors.append(f"{talent_id}: {exc}")
                report.skipped += 1
            except Exception as exc:
                self.repo.session.rollback()
                self.observer.error("submit.skipped", talent_id=talent_id, reason=repr(exc))
                report.errors.append(f"{talent_id}: {exc}")
                report.skipped += 1
        return report

    def _submit_one(self, talent: TalentProfile, report: SubmitReport) -> None:
        talent_id, name = talent.id, talent.display_name
        documents = self.repo.list_documents(talent_id)
        if not documents:
            raise SubmissionError("no documents found")

        created = self.client.create_session(
            evaluation_type=self.settings.evaluation_type,
            bundle_type=self.settings.bundle_type,
            subject_name=name,
        )
        session_id = extract_session_id(created.payload) if created.ok else ""
        if not session_id:
            raise SubmissionError(f"session creation failed - {created.error or 'no session id returned'}")
        self.observer.emit("submit.session_created", talent_id=talent_id, session_id=session_id)

        uploaded = self._transfer_documents(talent_id, session_id, documents)
        if uploaded == 0:
            # The provider session is left behind; nothing cancels it.
            raise SubmissionError("all document uploads failed")

        triggered = self.client.trigger_scoring(session_id=session_id)
        if not triggered.ok:
            raise SubmissionError(f"scoring trigger failed - {triggered.error}")

        try:
            self.repo.create_job(talent_id=talent_id, session_id=session_id)
        except SQLAlchemyError as exc:
            # Scoring is already running at the provider, so this still counts as queued.
            self.repo.session.rollback()
            self.observer.error("submit.tracking_insert_failed", talent_id=talent_id, error=str(exc))
            report.errors.append(f"{talent_id}: tracking insert failed")

        report.queued += 1
        self.observer.emit(
            "submit.queued",
            talent_id=talent_id,
            session_id=session_id,
            uploaded=uploaded,
            documents=len(documents),
        )
        self.sleep(self.settings.subject_delay_sec)

    def _transfer_documents(self, talent_id: int, session_id: str, documents: list[TalentDocument]) -> int:
        uploaded = 0
        for document in documents:
            document_id = document.id
            try:
                if self._transfer_one(talent_id, session_id, document):
                    uploaded += 1
            except Exception as exc:
                self.observer.error(
                    "submit.transfer_failed",
                    talent_id=talent_id,
                    document_id=document_id,
                    error=repr(exc),
                )
        return uploaded

    def _transfer_one(self, talent_id: int, session_id: str, document: TalentDocument) -> bool:
        downloaded = self.downloader.fetch(document.file_url)
        if downloaded is None:
            self.observer.error("submit.download_failed", talent_id=talent_id, document_id=document.id)
            return False

        result = self.client.upload_document(
            session_id=session_id,
            filename=document.file_name or downloaded.filename,
            content=downloaded.content,
            content_type=downloaded.content_type,
        )
        self.sleep(self.settings.upload_delay_sec)
        if not result.ok:
            self.observer.error(
                "submit.upload_failed",
                talent_id=talent_id,
                document_id=document.id,
                error=result.error,
            )
            return False
        return True
