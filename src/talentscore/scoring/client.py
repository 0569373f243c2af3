from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

import requests

from talentscore.config import Settings
from talentscore.types import ApiResultKind, SessionStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ApiResult:
    """Outcome of one provider call. Transport problems are values, never exceptions."""

    kind: ApiResultKind
    payload: dict[str, Any] = field(default_factory=dict)
    status_code: int | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.kind == "ok"

    @property
    def is_transport_error(self) -> bool:
        return self.kind == "transport_error"

    @property
    def data(self) -> dict[str, Any]:
        value = self.payload.get("data")
        return value if isinstance(value, dict) else {}


class ScoringClient:
    def __init__(self, settings: Settings, http: requests.Session | None = None):
        self.base_url = settings.scoring_api_url
        self.api_key = settings.scoring_api_key
        self.timeout_sec = settings.scoring_timeout_sec
        self.http = http or requests.Session()

    def create_session(self, *, evaluation_type: str, bundle_type: str, subject_name: str) -> ApiResult:
        return self._request(
            "POST",
            "/sessions",
            json={
                "visaType": evaluation_type,
                "documentType": bundle_type,
                "beneficiaryName": subject_name,
            },
        )

    def upload_document(
        self,
        *,
        session_id: str,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> ApiResult:
        result = self._request(
            "POST",
            "/sessions/upload",
            data={"sessionId": session_id},
            files={"document": (filename, content, content_type)},
        )
        if result.ok and not (result.payload.get("success") or result.payload.get("data")):
            return ApiResult(
                kind="api_error",
                payload=result.payload,
                status_code=result.status_code,
                error="upload not acknowledged",
            )
        return result

    def trigger_scoring(self, *, session_id: str) -> ApiResult:
        result = self._request("POST", "/sessions/score", json={"sessionId": session_id})
        if result.ok:
            return result
        # Any 2xx, or a body carrying success or data, means scoring was started.
        in_2xx = result.status_code is not None and 200 <= result.status_code < 300
        if in_2xx or result.payload.get("success") or result.payload.get("data"):
            return ApiResult(kind="ok", payload=result.payload, status_code=result.status_code)
        return result

    def get_session(self, session_id: str) -> ApiResult:
        return self._request("GET", f"/sessions/{session_id}")

    def _request(self, method: str, path: str, **kwargs: Any) -> ApiResult:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(
                method,
                url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout_sec,
                **kwargs,
            )
        except requests.RequestException as exc:
            logger.warning("Scoring API %s %s failed: %s", method, path, exc)
            return ApiResult(kind="transport_error", error=str(exc))

        try:
            body = response.json()
        except ValueError:
            body = {}
        payload = body if isinstance(body, dict) else {"data": body}

        if response.status_code >= 500:
            return ApiResult(
                kind="transport_error",
                payload=payload,
                status_code=response.status_code,
                error=f"scoring API returned {response.status_code}",
            )
        if payload.get("success") is False or response.status_code >= 400:
            return ApiResult(
                kind="api_error",
                payload=payload,
                status_code=response.status_code,
                error=error_message(payload) or f"scoring API returned {response.status_code}",
            )
        return ApiResult(kind="ok", payload=payload, status_code=response.status_code)


def extract_session_id(payload: dict[str, Any]) -> str:
    value = payload.get("sessionId")
    if not value:
        data = payload.get("data")
        if isinstance(data, dict):
            value = data.get("sessionId")
    return str(value) if value else ""


def error_message(payload: dict[str, Any]) -> str:
    data = payload.get("data")
    candidates: list[Any] = []
    if isinstance(data, dict):
        candidates.extend([data.get("errorMessage"), data.get("error")])
    candidates.extend([payload.get("error"), payload.get("message")])
    for value in candidates:
        if isinstance(value, dict):
            value = value.get("message")
        if isinstance(value, str) and value:
            return value
    return ""


def parse_session_status(payload: dict[str, Any]) -> SessionStatus:
    data = payload.get("data")
    data = data if isinstance(data, dict) else {}
    status = data.get("status") or payload.get("status") or ""
    results = data.get("results")
    results = results if isinstance(results, dict) else {}

    overall: float | None = None
    raw_overall = results.get("overallScore")
    if raw_overall is not None and not isinstance(raw_overall, bool):
        try:
            overall = float(raw_overall)
        except (TypeError, ValueError):
            overall = None
        if overall is not None and not math.isfinite(overall):
            overall = None

    criteria = results.get("criteriaScores")
    return SessionStatus(
        status=str(status),
        overall_score=overall,
        criteria_scores=[item for item in criteria if isinstance(item, dict)] if isinstance(criteria, list) else [],
        error_message=error_message(payload) or None,
    )
