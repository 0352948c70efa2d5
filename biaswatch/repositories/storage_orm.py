"""Storage implementation on SQLAlchemy ORM.

Usage:
    from biaswatch.database import init_database
    from biaswatch.repositories.storage_orm import SqlAlchemyStorage

    storage = SqlAlchemyStorage(await init_database())
    await storage.put_snapshot(snapshot)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from biaswatch.core.exceptions import StorageError
from biaswatch.core.logging import get_logger
from biaswatch.database.orm import BiasScoreRow, ChangeDetectionCursorRow, FundamentalSnapshotRow
from biaswatch.domain import BiasScore, ChangeDetectionCursor, FundamentalSnapshot


logger = get_logger("repositories.storage_orm")


def _insert_for(session: AsyncSession):
    """Dialect-specific insert supporting ON CONFLICT clauses."""
    if session.bind.dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


class SqlAlchemyStorage:
    """Storage backed by the fundamental_snapshots, change_detection_cursors
    and bias_scores tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Storage operation {operation} failed: {e}")
                raise StorageError(
                    f"Storage operation {operation} failed",
                    details={"operation": operation, "error": str(e)},
                ) from e

    # =========================================================================
    # Cursors
    # =========================================================================

    async def get_cursor(self, asset: str, data_type: str) -> ChangeDetectionCursor | None:
        async with self._session("get_cursor") as session:
            row = await session.get(ChangeDetectionCursorRow, (asset.upper(), data_type))
            if row is None:
                return None
            return ChangeDetectionCursor.model_validate(row)

    async def put_cursor(self, cursor: ChangeDetectionCursor) -> None:
        """Replace the cursor row for (asset, data_type) in one statement."""
        values = cursor.model_dump()
        async with self._session("put_cursor") as session:
            insert = _insert_for(session)
            stmt = insert(ChangeDetectionCursorRow).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["asset", "data_type"],
                set_={
                    key: getattr(stmt.excluded, key)
                    for key in values
                    if key not in ("asset", "data_type")
                },
            )
            await session.execute(stmt)
            await session.commit()

    # =========================================================================
    # Snapshots
    # =========================================================================

    async def put_snapshot(self, snapshot: FundamentalSnapshot) -> bool:
        async with self._session("put_snapshot") as session:
            insert = _insert_for(session)
            stmt = insert(FundamentalSnapshotRow).values(**snapshot.model_dump())
            stmt = stmt.on_conflict_do_nothing(
                index_elements=["asset", "data_type", "timestamp"]
            )
            result = await session.execute(stmt)
            await session.commit()
            inserted = result.rowcount == 1
            if not inserted:
                logger.debug(f"Duplicate snapshot ignored: {snapshot.key}")
            return inserted

    async def get_latest_snapshots(
        self, asset: str, data_type: str | None = None, limit: int = 50
    ) -> list[FundamentalSnapshot]:
        async with self._session("get_latest_snapshots") as session:
            stmt = select(FundamentalSnapshotRow).where(
                FundamentalSnapshotRow.asset == asset.upper()
            )
            if data_type is not None:
                stmt = stmt.where(FundamentalSnapshotRow.data_type == data_type)
            stmt = stmt.order_by(
                FundamentalSnapshotRow.timestamp.desc(),
                FundamentalSnapshotRow.id.desc(),
            ).limit(limit)
            result = await session.execute(stmt)
            return [FundamentalSnapshot.model_validate(row) for row in result.scalars().all()]

    # =========================================================================
    # Bias scores
    # =========================================================================

    async def put_bias_score(self, score: BiasScore) -> None:
        values = score.model_dump()
        values["bias"] = score.bias.value
        async with self._session("put_bias_score") as session:
            session.add(BiasScoreRow(**values))
            await session.commit()

    async def get_latest_bias_score(self, asset: str) -> BiasScore | None:
        async with self._session("get_latest_bias_score") as session:
            result = await session.execute(
                select(BiasScoreRow)
                .where(BiasScoreRow.asset == asset.upper())
                .order_by(BiasScoreRow.timestamp.desc(), BiasScoreRow.id.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return BiasScore.model_validate(row) if row is not None else None

    async def get_all_latest_bias_scores(self) -> list[BiasScore]:
        async with self._session("get_all_latest_bias_scores") as session:
            latest = (
                select(
                    BiasScoreRow.asset,
                    func.max(BiasScoreRow.timestamp).label("max_ts"),
                )
                .group_by(BiasScoreRow.asset)
                .subquery()
            )
            result = await session.execute(
                select(BiasScoreRow)
                .join(
                    latest,
                    (BiasScoreRow.asset == latest.c.asset)
                    & (BiasScoreRow.timestamp == latest.c.max_ts),
                )
                .order_by(BiasScoreRow.asset, BiasScoreRow.id.desc())
            )
            scores: dict[str, BiasScore] = {}
            for row in result.scalars().all():
                # Equal timestamps: highest id wins
                scores.setdefault(row.asset, BiasScore.model_validate(row))
            return list(scores.values())
