"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class SignalType(str, Enum):
    CONTRACT_AWARD = "contract_award"
    JOB_POSTING = "job_posting"
    AGENCY_MATCH = "agency_match"
    PLANNING_APPROVED = "planning_approved"
    PLANNING_SUBMITTED = "planning_submitted"
    FUNDING_ANNOUNCED = "funding_announced"
    COMPANY_EXPANSION = "company_expansion"
    LEADERSHIP_CHANGE = "leadership_change"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class SearchProfile(Base):
    """Saved search configuration owned by one user."""

    __tablename__ = "search_profiles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    industry: Mapped[str | None] = mapped_column(String(100))
    location: Mapped[str | None] = mapped_column(String(255))
    keywords: Mapped[list[str]] = mapped_column(JSON, default=list)
    excluded_keywords: Mapped[list[str]] = mapped_column(JSON, default=list)
    sources: Mapped[list[str]] = mapped_column(JSON, default=list)  # enabled source types
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    runs: Mapped[list[SearchRun]] = relationship(back_populates="search_profile")

    __table_args__ = (Index("ix_search_profiles_user_id", "user_id"),)


class SearchRun(Base):
    """Provenance record for one orchestrator invocation. Never updated after insert."""

    __tablename__ = "search_runs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    search_profile_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("search_profiles.id", ondelete="SET NULL")
    )
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    window_days: Mapped[int] = mapped_column(Integer, nullable=False)
    sources_searched: Mapped[list[str]] = mapped_column(JSON, default=list)
    signals_found: Mapped[int] = mapped_column(Integer, default=0)
    new_signals: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(30), nullable=False)  # completed/completed_with_errors/failed

    search_profile: Mapped[SearchProfile | None] = relationship(back_populates="runs")
    signals: Mapped[list[Signal]] = relationship(back_populates="search_run")

    __table_args__ = (Index("ix_search_runs_user_run_at", "user_id", "run_at"),)


class Signal(Base):
    """Canonical discovered signal."""

    __tablename__ = "signals"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    search_run_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("search_runs.id", ondelete="SET NULL"))
    identity_key: Mapped[str] = mapped_column(String(1200), nullable=False)  # Dedup key
    company_name: Mapped[str] = mapped_column(String(500), nullable=False)
    company_domain: Mapped[str | None] = mapped_column(String(255))
    signal_type: Mapped[str] = mapped_column(String(50), nullable=False)
    signal_title: Mapped[str] = mapped_column(String(500), nullable=False)
    signal_detail: Mapped[str | None] = mapped_column(Text)
    signal_url: Mapped[str | None] = mapped_column(String(1000))
    location: Mapped[str | None] = mapped_column(String(255))
    industry: Mapped[str | None] = mapped_column(String(100))
    source_type: Mapped[str] = mapped_column(String(50), nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_new: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    search_run: Mapped[SearchRun | None] = relationship(back_populates="signals")
    contacts: Mapped[list[SignalContact]] = relationship(
        back_populates="signal", cascade="all, delete-orphan", order_by="SignalContact.created_at"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "identity_key"),
        Index("ix_signals_user_detected_at", "user_id", "detected_at"),
    )


class SignalContact(Base):
    """Contact attached to a signal by the enrichment process."""

    __tablename__ = "signal_contacts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    signal_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("signals.id", ondelete="CASCADE"), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255))
    job_title: Mapped[str | None] = mapped_column(String(255))
    seniority: Mapped[str | None] = mapped_column(String(50))
    email: Mapped[str | None] = mapped_column(String(255))
    email_status: Mapped[str | None] = mapped_column(String(50))
    phone: Mapped[str | None] = mapped_column(String(50))
    linkedin_url: Mapped[str | None] = mapped_column(String(500))
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    signal: Mapped[Signal] = relationship(back_populates="contacts")
