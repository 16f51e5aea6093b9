from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from surfels.config import SurfaceConfig, load_config
from surfels.config.schema import MinimumDistanceConfig, PerSqrUnitConfig
from surfels.runtime.builders import build_index_factory, build_sampling, build_writer
from surfels.core.exporter import LasWriter, ObjWriter
from surfels.core.sampling import MinimumDistance, PerSqrUnit
from surfels.core.spatial import KdTreeIndex, NumpyIndex


def _dump(path: Path, data: dict) -> Path:
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)
    return path


def test_load_config_resolves_relative_paths(tmp_path: Path) -> None:
    cfg_path = _dump(tmp_path / "surface.yaml", {
        "mesh": {"path": "meshes/torus.obj"},
        "sampling": {"kind": "minimum_distance", "min_dist": 0.05},
        "payload": {"prop": -1},
        "output": {"path": "out/surfels.ply", "format": "ply"},
    })
    cfg = load_config(cfg_path)
    assert cfg.mesh is not None
    assert cfg.mesh.path == (tmp_path / "meshes" / "torus.obj").resolve()
    assert cfg.output is not None
    assert cfg.output.path == (tmp_path / "out" / "surfels.ply").resolve()
    assert cfg.sampling == MinimumDistanceConfig(kind="minimum_distance", min_dist=0.05)
    assert cfg.payload == {"prop": -1}


def test_defaults() -> None:
    cfg = SurfaceConfig(extra_points=[(0.0, 0.0, 0.0)])
    assert cfg.sampling.kind == "minimum_distance"
    assert cfg.sampling.min_dist == 0.1
    assert cfg.index.backend == "kdtree"
    assert cfg.index.allow_duplicates
    assert cfg.output is None


def test_sampling_is_discriminated_by_kind() -> None:
    cfg = SurfaceConfig.model_validate({
        "extra_points": [[0, 0, 0]],
        "sampling": {"kind": "per_sqr_unit", "density": 40.0},
    })
    assert isinstance(cfg.sampling, PerSqrUnitConfig)
    assert build_sampling(cfg) == PerSqrUnit(40.0)


@pytest.mark.parametrize("data", [
    {},
    {"extra_points": [[0, 0, 0]], "sampling": {"kind": "minimum_distance", "min_dist": 0.0}},
    {"extra_points": [[0, 0, 0]], "sampling": {"kind": "hexagonal"}},
    {"extra_points": [[0, 0, 0]], "index": {"backend": "octree"}},
    {"extra_points": [[0, 0, 0]], "output": {"path": "a.laz", "format": "laz", "compress": False}},
])
def test_invalid_configs_are_rejected(data: dict) -> None:
    with pytest.raises(ValidationError):
        SurfaceConfig.model_validate(data)


def test_non_mapping_root_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_runtime_builders() -> None:
    cfg = SurfaceConfig.model_validate({
        "extra_points": [[0, 0, 0]],
        "index": {"backend": "numpy", "allow_duplicates": False},
        "output": {"path": "scan.laz", "format": "laz"},
    })
    assert build_sampling(cfg) == MinimumDistance(0.1)
    index = build_index_factory(cfg)()
    assert isinstance(index, NumpyIndex)
    assert not index.allow_duplicates
    writer = build_writer(cfg)
    assert isinstance(writer, LasWriter)
    assert writer.compress

    cfg = SurfaceConfig.model_validate({"extra_points": [[0, 0, 0]], "output": {"path": "s.obj"}})
    assert isinstance(build_index_factory(cfg)(), KdTreeIndex)
    assert isinstance(build_writer(cfg), ObjWriter)
