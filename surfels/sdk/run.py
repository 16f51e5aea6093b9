from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np

from ..config import SurfaceConfig, load_config
from ..config.schema import MinimumDistanceConfig, OutputConfig
from ..core.builder import SurfaceBuilder
from ..core.scene import MeshScene
from ..core.surface import Surface
from ..runtime.builders import build_index_factory, build_sampling, build_writer

_FORMATS = {".obj", ".ply", ".npz", ".las", ".laz"}


@dataclass(frozen=True)
class BuildResult:
    """Summary of a surface build driven by a configuration file."""

    surface: Surface
    stats: Dict[str, int]
    output_path: Optional[Path]
    config: SurfaceConfig


def _apply_output_override(cfg: SurfaceConfig, output: Path) -> None:
    out_path = Path(output).resolve()
    ext = out_path.suffix.lower()
    if ext not in _FORMATS:
        raise ValueError(f"Unsupported output extension '{ext}'")
    compress = None
    if ext == ".las":
        compress = False
    elif ext == ".laz":
        compress = True
    point_format = cfg.output.point_format if cfg.output is not None else 6
    cfg.output = OutputConfig(path=out_path, format=ext.lstrip("."), compress=compress, point_format=point_format)


def build_from_config(
    config: Union[str, Path, SurfaceConfig],
    *,
    output: Optional[Path] = None,
    seed: Optional[int] = None,
    min_dist: Optional[float] = None,
) -> BuildResult:
    """Build (and optionally export) a surface described by a configuration.

    Parameters
    ----------
    config:
        Path to a YAML file or a pre-loaded :class:`~surfels.config.schema.SurfaceConfig`.
    output:
        Optional override for the exported file. The extension drives the
        format (``.obj``, ``.ply``, ``.npz``, ``.las`` or ``.laz``).
    seed:
        Optional RNG seed. Falls back to the value in the config or ``12345``.
    min_dist:
        Optional override switching sampling to ``MinimumDistance(min_dist)``.

    Returns
    -------
    BuildResult
        The built surface, basic statistics (triangles, sampled, explicit,
        samples), the resolved output path (None when nothing was exported)
        and the configuration actually used.
    """

    cfg = load_config(config) if not isinstance(config, SurfaceConfig) else config.model_copy(deep=True)

    if min_dist is not None:
        cfg.sampling = MinimumDistanceConfig(kind="minimum_distance", min_dist=min_dist)
    if output is not None:
        _apply_output_override(cfg, output)

    run_seed = seed if seed is not None else (cfg.seed if cfg.seed is not None else 12345)
    rng = np.random.default_rng(run_seed)

    builder = SurfaceBuilder(index_factory=build_index_factory(cfg)).sampling(build_sampling(cfg))
    n_triangles = 0
    if cfg.mesh is not None:
        scene = MeshScene(cfg.mesh.path, use_trimesh=cfg.mesh.use_trimesh)
        n_triangles = len(scene)
        builder.sample_triangles(scene.triangles(), cfg.payload, rng=rng)
    n_sampled = len(builder)
    builder.add_samples(np.asarray(p, dtype=np.float64) for p in cfg.extra_points)
    surface = builder.build()

    output_path: Optional[Path] = None
    if cfg.output is not None:
        output_path = Path(cfg.output.path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        surface.dump(build_writer(cfg))

    stats = {
        "triangles": n_triangles,
        "sampled": n_sampled,
        "explicit": len(cfg.extra_points),
        "samples": len(surface),
    }
    return BuildResult(surface=surface, stats=stats, output_path=output_path, config=cfg)
