from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from clustering.types import ClusterOptions


EngineName = Literal["in_memory", "duckdb"]
ProjectionName = Literal["mercator", "pyproj"]


class ClusterSettings(BaseModel):
    # Pixel radius at tile `extent`.
    radius: float = Field(default=75.0, gt=0.0)
    minPoints: int = Field(default=2, ge=1)
    minZoom: int = Field(default=0, ge=0, le=30)
    maxZoom: int = Field(default=16, ge=0, le=30)
    extent: int = Field(default=512, gt=0)
    nodeSize: int = Field(default=64, ge=2)
    projection: ProjectionName = "mercator"

    @model_validator(mode="after")
    def _zoom_range(self) -> "ClusterSettings":
        if self.minZoom > self.maxZoom:
            raise ValueError(f"minZoom ({self.minZoom}) > maxZoom ({self.maxZoom})")
        return self

    def to_options(self) -> ClusterOptions:
        return ClusterOptions(
            radius=self.radius,
            min_points=self.minPoints,
            min_zoom=self.minZoom,
            max_zoom=self.maxZoom,
            extent=self.extent,
            node_size=self.nodeSize,
        )


class DataSettings(BaseModel):
    engine: EngineName = "in_memory"
    # Repo-relative or absolute path to the listings file (.json / .geojson / .csv / .parquet).
    listingsPath: str | None = None


class ProfileConfig(BaseModel):
    id: str
    title: str = ""
    clustering: ClusterSettings = Field(default_factory=ClusterSettings)
    data: DataSettings = Field(default_factory=DataSettings)
    corsOrigins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
