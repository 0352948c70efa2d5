"""Source descriptor model."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from biaswatch.domain.fundamentals import DataType, source_key


class SourceDescriptor(BaseModel):
    """Describes where one (asset, data type) series comes from.

    The declared fields decide which change detection strategy applies:
    timestamp_field first, then id_field, otherwise a content hash.
    """

    name: str
    asset: str
    data_type: DataType
    url: str | None = None
    extraction_method: Literal["api", "scraping"] = "api"
    timestamp_field: str | None = Field(None, description="Record key holding the observation time")
    id_field: str | None = Field(None, description="Record key holding a stable identifier")

    model_config = {"frozen": True}

    @field_validator("asset")
    @classmethod
    def upper_asset(cls, v: str) -> str:
        return v.upper()

    @property
    def key(self) -> str:
        return source_key(self.asset, self.data_type)
