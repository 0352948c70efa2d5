"""Storage interface shared by the detection, scheduling and scoring layers."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from biaswatch.domain import BiasScore, ChangeDetectionCursor, FundamentalSnapshot


@runtime_checkable
class Storage(Protocol):
    """Durable keyed store for snapshots, cursors and bias scores.

    Implementations raise StorageError on backend failures.
    """

    async def get_cursor(self, asset: str, data_type: str) -> ChangeDetectionCursor | None: ...

    async def put_cursor(self, cursor: ChangeDetectionCursor) -> None: ...

    async def put_snapshot(self, snapshot: FundamentalSnapshot) -> bool:
        """Insert a snapshot; False when (asset, data_type, timestamp) already exists."""
        ...

    async def get_latest_snapshots(
        self, asset: str, data_type: str | None = None, limit: int = 50
    ) -> list[FundamentalSnapshot]:
        """Snapshots for an asset, most recent first, capped at limit."""
        ...

    async def put_bias_score(self, score: BiasScore) -> None: ...

    async def get_latest_bias_score(self, asset: str) -> BiasScore | None: ...

    async def get_all_latest_bias_scores(self) -> list[BiasScore]: ...
