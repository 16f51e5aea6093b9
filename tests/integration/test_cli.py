from __future__ import annotations

from pathlib import Path

import numpy as np
import yaml
from typer.testing import CliRunner

from surfels.cli.main import app


def _write_ascii_ply(path: Path) -> None:
    vertices = [
        (-1.0, -1.0, 0.0),
        (1.0, -1.0, 0.0),
        (1.0, 1.0, 0.0),
        (-1.0, 1.0, 0.0),
    ]
    faces = [
        (0, 1, 2),
        (0, 2, 3),
    ]
    with open(path, "w", encoding="utf-8") as f:
        f.write("ply\n")
        f.write("format ascii 1.0\n")
        f.write(f"element vertex {len(vertices)}\n")
        f.write("property float x\nproperty float y\nproperty float z\n")
        f.write(f"element face {len(faces)}\n")
        f.write("property list uchar int vertex_indices\n")
        f.write("end_header\n")
        for v in vertices:
            f.write(f"{v[0]} {v[1]} {v[2]}\n")
        for face in faces:
            f.write(f"3 {face[0]} {face[1]} {face[2]}\n")


def _write_config(tmp_path: Path, output: dict) -> Path:
    mesh_path = tmp_path / "plane.ply"
    _write_ascii_ply(mesh_path)
    config = {
        "mesh": {"path": mesh_path.name, "use_trimesh": False},
        "sampling": {"kind": "minimum_distance", "min_dist": 0.2},
        "payload": {"prop": -1},
        "output": output,
        "seed": 42,
    }
    cfg_path = tmp_path / "config.yaml"
    with open(cfg_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f)
    return cfg_path


def test_cli_build_npz(tmp_path: Path) -> None:
    cfg_path = _write_config(tmp_path, {"path": "out_surfels.npz", "format": "npz"})

    runner = CliRunner()
    result = runner.invoke(app, ["build", str(cfg_path)])

    assert result.exit_code == 0, result.stdout
    assert "from 2 triangles" in result.stdout

    out_path = tmp_path / "out_surfels.npz"
    assert out_path.exists()
    data = np.load(out_path)
    xyz = data["xyz"]
    assert xyz.shape[0] > 0
    assert np.allclose(xyz[:, 2], 0.0)  # surfels lie on the plane z=0
    assert np.all(np.abs(xyz[:, :2]) <= 1.0 + 1e-6)


def test_cli_build_las(tmp_path: Path) -> None:
    cfg_path = _write_config(tmp_path, {"path": "out_surfels.las", "format": "las"})

    runner = CliRunner()
    result = runner.invoke(app, ["build", str(cfg_path)])
    assert result.exit_code == 0, result.stdout

    out_path = tmp_path / "out_surfels.las"
    assert out_path.exists()

    import laspy

    with laspy.open(out_path) as reader:
        points = reader.read()
        assert len(points.x) > 0
        assert np.max(np.abs(points.z)) <= 0.01


def test_cli_build_with_overrides(tmp_path: Path) -> None:
    cfg_path = _write_config(tmp_path, {"path": "out_surfels.npz", "format": "npz"})

    override_path = tmp_path / "custom_output.ply"
    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "build",
            str(cfg_path),
            "--output",
            str(override_path),
            "--seed",
            "99",
            "--min-dist",
            "0.4",
            "--log-level",
            "DEBUG",
        ],
    )

    assert result.exit_code == 0, result.stdout
    assert override_path.exists()
    assert not (tmp_path / "out_surfels.npz").exists()
    with open(override_path, "r", encoding="utf-8") as f:
        header = f.readline().strip()
    assert header == "ply"


def test_cli_build_rejects_bad_overrides(tmp_path: Path) -> None:
    cfg_path = _write_config(tmp_path, {"path": "out_surfels.npz", "format": "npz"})
    runner = CliRunner()

    result = runner.invoke(app, ["build", str(cfg_path), "--output", str(tmp_path / "out.xyz")])
    assert result.exit_code != 0

    result = runner.invoke(app, ["build", str(cfg_path), "--min-dist", "0"])
    assert result.exit_code != 0
    assert "min_dist must be positive" in result.output


def test_cli_build_reports_unimplemented_sampling(tmp_path: Path) -> None:
    cfg_path = _write_config(tmp_path, {"path": "out_surfels.npz", "format": "npz"})
    with open(cfg_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)
    config["sampling"] = {"kind": "per_sqr_unit", "density": 10.0}
    with open(cfg_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f)

    runner = CliRunner()
    result = runner.invoke(app, ["build", str(cfg_path)])
    assert result.exit_code == 1
    assert "Error:" in result.output


def test_mesh_generate_command(tmp_path: Path) -> None:
    output = tmp_path / "demo_mesh.ply"
    runner = CliRunner()
    result = runner.invoke(app, ["mesh", "generate", str(output), "--preset", "torus", "--size", "2"])
    assert result.exit_code == 0, result.stdout
    assert output.exists()
    with open(output, "r", encoding="utf-8") as f:
        header = f.readline().strip()
        second = f.readline().strip()
    assert header == "ply"
    assert second == "format ascii 1.0"


def test_mesh_generate_obj_and_unknown_preset(tmp_path: Path) -> None:
    output = tmp_path / "box.obj"
    runner = CliRunner()
    result = runner.invoke(app, ["mesh", "generate", str(output), "--preset", "box"])
    assert result.exit_code == 0, result.stdout
    with open(output, "r", encoding="utf-8") as f:
        tags = {line.split()[0] for line in f if line.strip()}
    assert tags == {"v", "vt", "vn", "f"}

    result = runner.invoke(app, ["mesh", "generate", str(tmp_path / "x.ply"), "--preset", "teapot"])
    assert result.exit_code != 0


def test_cli_sample_smoke(tmp_path: Path) -> None:
    mesh_path = tmp_path / "box.obj"
    runner = CliRunner()
    result = runner.invoke(app, ["mesh", "generate", str(mesh_path), "--preset", "box"])
    assert result.exit_code == 0, result.stdout

    out_path = tmp_path / "quick_surfels.obj"
    result = runner.invoke(
        app,
        [
            "sample",
            "--mesh",
            str(mesh_path),
            "--output",
            str(out_path),
            "--min-dist",
            "0.25",
            "--seed",
            "5",
        ],
    )

    assert result.exit_code == 0, result.stdout
    assert out_path.exists()
    with open(out_path, "r", encoding="utf-8") as f:
        lines = [line.split() for line in f if line.strip() and not line.startswith("#")]
    xyz = np.array([[float(c) for c in row[1:]] for row in lines if row[0] == "v"])
    assert xyz.shape[0] > 0
    # every surfel lies on the surface of the unit box
    assert np.allclose(np.abs(xyz).max(axis=1), 0.5, atol=1e-6)


def test_cli_sample_rejects_non_positive_min_dist(tmp_path: Path) -> None:
    mesh_path = tmp_path / "plane.ply"
    _write_ascii_ply(mesh_path)
    runner = CliRunner()
    result = runner.invoke(
        app,
        ["sample", "--mesh", str(mesh_path), "--output", str(tmp_path / "bad.npz"), "--min-dist", "0"],
    )

    assert result.exit_code != 0
    assert "min_dist must be positive" in result.output


def _write_binary_ply_header(path: Path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write("ply\nformat binary_little_endian 1.0\nelement vertex 0\nend_header\n")


def test_cli_sample_reports_mesh_errors(tmp_path: Path) -> None:
    mesh_path = tmp_path / "binary.ply"
    _write_binary_ply_header(mesh_path)
    runner = CliRunner()
    result = runner.invoke(
        app,
        ["sample", "--mesh", str(mesh_path), "--output", str(tmp_path / "out.obj"), "--no-trimesh"],
    )

    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "ASCII" in result.output
    assert not (tmp_path / "out.obj").exists()


def test_cli_build_reports_mesh_errors(tmp_path: Path) -> None:
    cfg_path = _write_config(tmp_path, {"path": "out_surfels.npz", "format": "npz"})
    _write_binary_ply_header(tmp_path / "plane.ply")

    runner = CliRunner()
    result = runner.invoke(app, ["build", str(cfg_path)])
    assert result.exit_code == 1
    assert "Error:" in result.output
