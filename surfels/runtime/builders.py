from __future__ import annotations

from functools import partial
from typing import Callable

from ..config import SurfaceConfig
from ..core.exporter import LasWriter, NpzWriter, ObjWriter, PlyWriter
from ..core.sampling import MinimumDistance, PerSqrUnit, SurfelSampling
from ..core.spatial import KdTreeIndex, NumpyIndex, SpatialIndex


def build_sampling(cfg: SurfaceConfig) -> SurfelSampling:
    sampling_cfg = cfg.sampling
    if sampling_cfg.kind == "minimum_distance":
        return MinimumDistance(sampling_cfg.min_dist)
    if sampling_cfg.kind == "per_sqr_unit":
        return PerSqrUnit(sampling_cfg.density)
    raise ValueError(f"Unsupported sampling kind: {sampling_cfg.kind}")


def build_index_factory(cfg: SurfaceConfig) -> Callable[[], SpatialIndex]:
    index_cfg = cfg.index
    if index_cfg.backend == "kdtree":
        return partial(KdTreeIndex, allow_duplicates=index_cfg.allow_duplicates, leafsize=index_cfg.leafsize)
    if index_cfg.backend == "numpy":
        return partial(NumpyIndex, allow_duplicates=index_cfg.allow_duplicates)
    raise ValueError(f"Unsupported index backend: {index_cfg.backend}")


def build_writer(cfg: SurfaceConfig):
    out_cfg = cfg.output
    if out_cfg is None:
        raise ValueError("Scenario has no output configuration")
    format_lower = out_cfg.format.lower()
    if format_lower in {"las", "laz"}:
        compress = out_cfg.compress
        if compress is None:
            compress = format_lower == "laz"
        return LasWriter(
            str(out_cfg.path),
            point_format=out_cfg.point_format,
            compress=compress,
        )
    if format_lower == "obj":
        return ObjWriter(str(out_cfg.path))
    if format_lower == "npz":
        return NpzWriter(str(out_cfg.path))
    if format_lower == "ply":
        return PlyWriter(str(out_cfg.path))
    raise ValueError(f"Unsupported output format: {out_cfg.format}")
