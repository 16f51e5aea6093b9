from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import numpy as np
import typer

from ..core.builder import SurfaceBuilder
from ..core.errors import SurfelError
from ..core.exporter import LasWriter, NpzWriter, ObjWriter, PlyWriter
from ..core.sampling import MinimumDistance
from ..core.scene import MeshScene
from ..examples.synthetic import generate_mesh
from ..sdk import build_from_config

# reported as "Error: ..." with exit code 1
_FAILURES = (SurfelError, ValueError, RuntimeError, OSError)

app = typer.Typer(help="Surfel sampling utilities")
mesh_app = typer.Typer(help="Synthetic mesh helpers")
app.add_typer(mesh_app, name="mesh")


def _configure_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="[%(levelname)s] %(message)s")
    logging.getLogger("surfels").setLevel(numeric)


def _writer_for(output: Path):
    fmt = output.suffix.lower()
    if fmt == ".obj":
        return ObjWriter(str(output))
    if fmt == ".ply":
        return PlyWriter(str(output))
    if fmt == ".npz":
        return NpzWriter(str(output))
    if fmt == ".las":
        return LasWriter(str(output), compress=False)
    if fmt == ".laz":
        return LasWriter(str(output), compress=True)
    raise typer.BadParameter("Output must end with .obj, .ply, .npz, .las or .laz", param_hint="--output")


@app.command("build")
def build(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Override output path (extension sets format)."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Override random seed."),
    min_dist: Optional[float] = typer.Option(None, "--min-dist", help="Override minimum surfel distance."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Build a surfel surface specified by a YAML config."""

    _configure_logging(log_level)
    if output is not None and output.suffix.lower() not in {".obj", ".ply", ".npz", ".las", ".laz"}:
        raise typer.BadParameter(f"Unsupported output extension '{output.suffix}'", param_hint="--output")
    if min_dist is not None and min_dist <= 0:
        raise typer.BadParameter("min_dist must be positive.", param_hint="--min-dist")
    try:
        result = build_from_config(config, output=output, seed=seed, min_dist=min_dist)
    except _FAILURES as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    target = result.output_path if result.output_path is not None else "(not exported)"
    typer.echo(f"Built {result.stats['samples']} surfels from {result.stats['triangles']} triangles → {target}")


@app.command("sample")
def sample(
    mesh: Path = typer.Option(..., "--mesh", help="Input mesh path.", exists=True, file_okay=True, dir_okay=False, readable=True),
    output: Path = typer.Option(Path("surfels.obj"), "--output", "-o", help="Output path (.obj/.ply/.npz/.las/.laz)."),
    min_dist: float = typer.Option(0.1, "--min-dist", help="Minimum distance between surfels."),
    seed: int = typer.Option(101, "--seed", help="Random seed for deterministic sampling."),
    prop: int = typer.Option(-1, "--prop", help="Integer stored as the 'prop' payload of every surfel."),
    use_trimesh: bool = typer.Option(True, "--use-trimesh/--no-trimesh", help="Load the mesh through trimesh when installed."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Quick minimum-distance sampling of a mesh driven entirely from CLI options."""

    if min_dist <= 0:
        raise typer.BadParameter("min_dist must be positive.", param_hint="--min-dist")
    output = output.resolve()
    writer = _writer_for(output)
    _configure_logging(log_level)

    output.parent.mkdir(parents=True, exist_ok=True)
    rng = np.random.default_rng(seed)
    try:
        scene = MeshScene(mesh.resolve(), use_trimesh=use_trimesh)
        surface = (
            SurfaceBuilder()
            .sampling(MinimumDistance(min_dist))
            .sample_triangles(scene.triangles(), {"prop": prop}, rng=rng)
            .build()
        )
        surface.dump(writer)
    except _FAILURES as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Built {len(surface)} surfels from {len(scene)} triangles → {output}")


@mesh_app.command("generate")
def mesh_generate(
    output: Path = typer.Argument(..., help="Output mesh path (.ply or .obj)."),
    preset: str = typer.Option("torus", "--preset", help="Synthetic mesh preset (torus, plane, box)."),
    size: float = typer.Option(1.0, "--size", help="Scene extent scaling factor."),
) -> None:
    """Generate a synthetic mesh useful for sampling demos."""

    out = output.resolve()
    try:
        generate_mesh(preset=preset, size=size, path=out)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--preset")
    typer.echo(f"Wrote synthetic mesh to {out}")


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
