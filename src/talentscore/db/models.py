from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from talentscore.db.base import Base, TimestampMixin


class TalentProfile(TimestampMixin, Base):
    __tablename__ = "talent_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    score_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    criteria_met: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class TalentDocument(TimestampMixin, Base):
    __tablename__ = "talent_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    talent_id: Mapped[int] = mapped_column(ForeignKey("talent_profiles.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    file_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    file_type: Mapped[str] = mapped_column(String(120), default="", nullable=False)


class ScoringJob(TimestampMixin, Base):
    """One scoring attempt. Rows are never deleted; a retry is a new row."""

    __tablename__ = "talent_scoring_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    talent_id: Mapped[int] = mapped_column(ForeignKey("talent_profiles.id", ondelete="CASCADE"), index=True)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)
    overall_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    criteria_scores: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    raw_response: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
