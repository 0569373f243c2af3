from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from talentscore.config import Settings, get_settings
from talentscore.core.scheduler import ScoringScheduler
from talentscore.db.session import get_db_session
from talentscore.scoring.client import ScoringClient
from talentscore.scoring.documents import DocumentDownloader


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


def get_app_settings() -> Settings:
    return get_settings()


def get_scoring_client(settings: Settings = Depends(get_app_settings)) -> ScoringClient:
    return ScoringClient(settings)


def get_document_downloader(settings: Settings = Depends(get_app_settings)) -> DocumentDownloader:
    return DocumentDownloader(timeout_sec=settings.scoring_timeout_sec)


def get_scheduler(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    client: ScoringClient = Depends(get_scoring_client),
    downloader: DocumentDownloader = Depends(get_document_downloader),
) -> ScoringScheduler:
    return ScoringScheduler(db, settings=settings, client=client, downloader=downloader)
