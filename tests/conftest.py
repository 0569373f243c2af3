from __future__ import annotations

import os
import tempfile
from pathlib import Path

_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="talentscore-tests-"))
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DATA_DIR / 'talentscore-test.db'}"
os.environ["DATA_DIR"] = str(_TEST_DATA_DIR)
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["SCORING_API_KEY"] = "test-api-key"
os.environ["SCORING_API_BASE"] = "https://scoring.test/api/v1"
os.environ["POLL_DELAY_SEC"] = "0"
os.environ["UPLOAD_DELAY_SEC"] = "0"
os.environ["SUBJECT_DELAY_SEC"] = "0"

import pytest  # noqa: E402

from talentscore.config import Settings, get_settings  # noqa: E402
from talentscore.core.events import MemoryObserver  # noqa: E402
from talentscore.db import models  # noqa: E402,F401
from talentscore.db.base import Base  # noqa: E402
from talentscore.db.session import SessionLocal, engine  # noqa: E402
from talentscore.scoring.client import ApiResult  # noqa: E402
from talentscore.scoring.documents import DownloadedDocument, filename_from_url  # noqa: E402


class FakeScoringClient:
    """Scripted stand-in for the provider. Unknown sessions report "processing"."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.created: list[tuple[str, str]] = []
        self.uploads: list[tuple[str, str]] = []
        self.triggered: list[str] = []
        self.polled: list[str] = []
        self.sessions: dict[str, dict] = {}
        self.fail_create_for: set[str] = set()
        self.fail_trigger = False
        self.fail_upload_names: set[str] = set()
        self.poll_errors: set[str] = set()
        self.rejected_polls: dict[str, dict] = {}
        self._counter = 0

    def create_session(self, *, evaluation_type: str, bundle_type: str, subject_name: str) -> ApiResult:
        self.calls.append("create_session")
        if subject_name in self.fail_create_for:
            return ApiResult(
                kind="api_error",
                payload={"success": False, "error": {"message": "quota exceeded"}},
                status_code=402,
                error="quota exceeded",
            )
        self._counter += 1
        session_id = f"sess-{self._counter}"
        self.created.append((session_id, subject_name))
        return ApiResult(kind="ok", payload={"success": True, "data": {"sessionId": session_id}}, status_code=201)

    def upload_document(
        self,
        *,
        session_id: str,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> ApiResult:
        self.calls.append("upload_document")
        if filename in self.fail_upload_names:
            return ApiResult(kind="api_error", payload={"success": False}, status_code=422, error="rejected")
        self.uploads.append((session_id, filename))
        return ApiResult(kind="ok", payload={"success": True}, status_code=200)

    def trigger_scoring(self, *, session_id: str) -> ApiResult:
        self.calls.append("trigger_scoring")
        if self.fail_trigger:
            return ApiResult(kind="transport_error", status_code=503, error="scoring API returned 503")
        self.triggered.append(session_id)
        return ApiResult(kind="ok", payload={"success": True}, status_code=202)

    def get_session(self, session_id: str) -> ApiResult:
        self.calls.append("get_session")
        self.polled.append(session_id)
        if session_id in self.poll_errors:
            return ApiResult(kind="transport_error", error="connection reset")
        if session_id in self.rejected_polls:
            payload = self.rejected_polls[session_id]
            return ApiResult(kind="api_error", payload=payload, status_code=404, error=str(payload.get("error", "")))
        payload = self.sessions.get(session_id, {"success": True, "data": {"status": "processing"}})
        return ApiResult(kind="ok", payload=payload, status_code=200)

    def complete(self, session_id: str, overall_score: float | None, criteria: list[dict] | None = None) -> None:
        results: dict = {"criteriaScores": criteria or []}
        if overall_score is not None:
            results["overallScore"] = overall_score
        self.sessions[session_id] = {"success": True, "data": {"status": "completed", "results": results}}

    def fail(self, session_id: str, message: str | None = None, status: str = "failed") -> None:
        data: dict = {"status": status}
        if message:
            data["errorMessage"] = message
        self.sessions[session_id] = {"success": True, "data": data}


class FakeDownloader:
    def __init__(self) -> None:
        self.fetched: list[str] = []
        self.failing_urls: set[str] = set()
        self.crashing_urls: set[str] = set()

    def fetch(self, file_url: str) -> DownloadedDocument | None:
        self.fetched.append(file_url)
        if file_url in self.crashing_urls:
            raise RuntimeError("storage client crashed")
        if file_url in self.failing_urls:
            return None
        return DownloadedDocument(
            content=b"%PDF-1.7 evidence",
            filename=filename_from_url(file_url),
            content_type="application/pdf",
        )


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    with SessionLocal() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def observer() -> MemoryObserver:
    return MemoryObserver()


@pytest.fixture
def fake_client() -> FakeScoringClient:
    return FakeScoringClient()


@pytest.fixture
def fake_downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
