from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, PositiveFloat, model_validator


class MeshConfig(BaseModel):
    path: Path
    use_trimesh: bool = True


class MinimumDistanceConfig(BaseModel):
    kind: Literal["minimum_distance"]
    min_dist: PositiveFloat = 0.1


class PerSqrUnitConfig(BaseModel):
    kind: Literal["per_sqr_unit"]
    density: PositiveFloat


SamplingConfig = Annotated[
    Union[MinimumDistanceConfig, PerSqrUnitConfig],
    Field(discriminator="kind"),
]


class IndexConfig(BaseModel):
    backend: Literal["kdtree", "numpy"] = "kdtree"
    allow_duplicates: bool = True
    leafsize: int = Field(16, ge=1)


class OutputConfig(BaseModel):
    path: Path
    format: Literal["obj", "ply", "npz", "las", "laz"] = "obj"
    compress: Optional[bool] = None
    point_format: int = 6

    @model_validator(mode="after")
    def _validate_format(self) -> "OutputConfig":
        if self.format == "laz" and self.compress is False:
            raise ValueError("format 'laz' implies compress=True")
        return self


class SurfaceConfig(BaseModel):
    mesh: Optional[MeshConfig] = None
    sampling: SamplingConfig = MinimumDistanceConfig(kind="minimum_distance")
    payload: Dict[str, Any] = Field(default_factory=dict)
    extra_points: List[tuple[float, float, float]] = Field(default_factory=list)
    index: IndexConfig = IndexConfig()
    output: Optional[OutputConfig] = None
    seed: Optional[int] = None

    @model_validator(mode="after")
    def _require_samples(self) -> "SurfaceConfig":
        if self.mesh is None and not self.extra_points:
            raise ValueError("Surface config needs a mesh or extra_points to sample from")
        return self


def load_config(path: str | Path) -> SurfaceConfig:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping.")
    cfg = SurfaceConfig.model_validate(data)
    if cfg.output is not None:
        cfg.output.path = (path.parent / cfg.output.path).resolve()
    if cfg.mesh is not None and not cfg.mesh.path.is_absolute():
        cfg.mesh.path = (path.parent / cfg.mesh.path).resolve()
    return cfg
