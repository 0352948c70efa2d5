"""SQLAlchemy ORM models for biaswatch.

Three tables back the Storage interface: append-only fundamental
snapshots, one change detection cursor per (asset, data_type), and
append-only bias score history.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Naming convention for constraints and indexes
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# JSONB on PostgreSQL, plain JSON elsewhere
JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


# =============================================================================
# FUNDAMENTALS
# =============================================================================


class FundamentalSnapshotRow(Base):
    """One observation of a fundamental data point. Never updated."""
    __tablename__ = "fundamental_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset: Mapped[str] = mapped_column(String(16), nullable=False)
    data_type: Mapped[str] = mapped_column(String(32), nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    previous_value: Mapped[float | None] = mapped_column(Float)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source: Mapped[str] = mapped_column(String(128), nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    change_detected: Mapped[bool] = mapped_column(Boolean, default=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("asset", "data_type", "timestamp", name="uq_fundamental_snapshot"),
        Index("idx_fundamental_snapshots_asset_time", "asset", "timestamp"),
    )


class ChangeDetectionCursorRow(Base):
    """Change detection checkpoint, one live row per (asset, data_type)."""
    __tablename__ = "change_detection_cursors"

    asset: Mapped[str] = mapped_column(String(16), primary_key=True)
    data_type: Mapped[str] = mapped_column(String(32), primary_key=True)
    last_check_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_data_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    known_ids: Mapped[list] = mapped_column(JsonType, default=list)
    content_hash: Mapped[str | None] = mapped_column(String(64))
    check_frequency: Mapped[int] = mapped_column(Integer, default=240)
    next_scheduled_check: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_cursors_next_check", "next_scheduled_check"),
    )


# =============================================================================
# BIAS SCORES
# =============================================================================


class BiasScoreRow(Base):
    """Bias score history; latest per asset is the max timestamp."""
    __tablename__ = "bias_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset: Mapped[str] = mapped_column(String(16), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    earnings_growth_score: Mapped[int] = mapped_column(Integer, default=0)
    revenue_trend_score: Mapped[int] = mapped_column(Integer, default=0)
    profit_margin_score: Mapped[int] = mapped_column(Integer, default=0)
    debt_level_score: Mapped[int] = mapped_column(Integer, default=0)
    liquidity_score: Mapped[int] = mapped_column(Integer, default=0)
    roe_score: Mapped[int] = mapped_column(Integer, default=0)
    guidance_score: Mapped[int] = mapped_column(Integer, default=0)
    external_factors_score: Mapped[int] = mapped_column(Integer, default=0)

    total_score: Mapped[int] = mapped_column(Integer, default=0)
    weighted_score: Mapped[float] = mapped_column(Float, default=0.0)
    bias: Mapped[str] = mapped_column(String(20), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=0.5)
    bullish_factors: Mapped[list] = mapped_column(JsonType, default=list)
    bearish_factors: Mapped[list] = mapped_column(JsonType, default=list)

    __table_args__ = (
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="confidence_range"),
        Index("idx_bias_scores_asset_time", "asset", "timestamp"),
    )
