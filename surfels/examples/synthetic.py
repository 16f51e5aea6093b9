from __future__ import annotations

from pathlib import Path
from typing import Tuple

import numpy as np

MeshArrays = Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]


def _grid_plane(size: float, divisions: int, z: float) -> MeshArrays:
    lin = np.linspace(-size / 2.0, size / 2.0, divisions + 1)
    xv, yv = np.meshgrid(lin, lin, indexing="ij")
    vertices = np.column_stack([xv.ravel(), yv.ravel(), np.full_like(xv.ravel(), z)])

    faces = []
    for i in range(divisions):
        for j in range(divisions):
            idx0 = i * (divisions + 1) + j
            idx1 = idx0 + 1
            idx2 = idx0 + (divisions + 1)
            idx3 = idx2 + 1
            faces.append([idx0, idx2, idx3])
            faces.append([idx0, idx3, idx1])
    faces_arr = np.asarray(faces, dtype=np.int64)
    uv = (vertices[:, :2] + size / 2.0) / size
    normals = _compute_vertex_normals(vertices, faces_arr)
    return vertices, faces_arr, normals, uv


def _box(size: float) -> MeshArrays:
    h = size / 2.0
    vertices = np.array([
        [-h, -h, -h], [h, -h, -h], [h, h, -h], [-h, h, -h],
        [-h, -h, h], [h, -h, h], [h, h, h], [-h, h, h],
    ], dtype=np.float64)

    faces = np.array([
        [0, 2, 1], [0, 3, 2],  # bottom
        [4, 5, 6], [4, 6, 7],  # top
        [0, 1, 5], [0, 5, 4],  # front
        [1, 2, 6], [1, 6, 5],  # right
        [2, 3, 7], [2, 7, 6],  # back
        [3, 0, 4], [3, 4, 7],  # left
    ], dtype=np.int64)
    uv = (vertices[:, :2] + h) / size
    return vertices, faces, _compute_vertex_normals(vertices, faces), uv


def torus_arrays(
    major_radius: float = 1.0,
    minor_radius: float = 0.25,
    major_segments: int = 48,
    minor_segments: int = 24,
) -> MeshArrays:
    """Torus around the z axis with analytic normals and (u, v) in [0, 1].

    The seam ring and column are duplicated (u = 1, v = 1) so no triangle
    interpolates texture coordinates across the wrap.
    """
    if minor_radius <= 0 or major_radius <= minor_radius:
        raise ValueError("Torus requires 0 < minor_radius < major_radius.")
    u = np.arange(major_segments + 1) / major_segments
    v = np.arange(minor_segments + 1) / minor_segments
    uu, vv = np.meshgrid(u, v, indexing="ij")
    theta = 2.0 * np.pi * uu.ravel()
    phi = 2.0 * np.pi * vv.ravel()

    ring = major_radius + minor_radius * np.cos(phi)
    vertices = np.column_stack([ring * np.cos(theta), ring * np.sin(theta), minor_radius * np.sin(phi)])
    normals = np.column_stack([np.cos(phi) * np.cos(theta), np.cos(phi) * np.sin(theta), np.sin(phi)])
    uv = np.column_stack([uu.ravel(), vv.ravel()])

    stride = minor_segments + 1
    faces = []
    for i in range(major_segments):
        for j in range(minor_segments):
            a = i * stride + j
            b = (i + 1) * stride + j
            c = (i + 1) * stride + j + 1
            d = i * stride + j + 1
            faces.append([a, b, c])
            faces.append([a, c, d])
    return vertices, np.asarray(faces, dtype=np.int64), normals, uv


def _compute_vertex_normals(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    normals = np.zeros_like(vertices, dtype=np.float64)
    tris = vertices[faces]
    face_normals = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
    lens = np.linalg.norm(face_normals, axis=1, keepdims=True)
    face_normals = np.divide(face_normals, np.clip(lens, 1e-12, None), out=np.zeros_like(face_normals), where=lens > 0)
    np.add.at(normals, faces.ravel(), np.repeat(face_normals, 3, axis=0))
    lens = np.linalg.norm(normals, axis=1, keepdims=True)
    return np.divide(normals, np.clip(lens, 1e-12, None), out=np.zeros_like(normals), where=lens > 0)


def mesh_arrays(preset: str, size: float = 1.0) -> MeshArrays:
    """Vertices, faces, normals and texcoords of a synthetic preset."""
    preset = preset.lower()
    if preset == "torus":
        return torus_arrays(major_radius=size, minor_radius=size * 0.25)
    if preset == "plane":
        return _grid_plane(size=size, divisions=8, z=0.0)
    if preset == "box":
        return _box(size=size)
    raise ValueError(f"Unknown synthetic mesh preset '{preset}'.")


def write_ascii_ply(path: Path, vertices: np.ndarray, faces: np.ndarray, normals: np.ndarray, uv: np.ndarray) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("ply\n")
        f.write("format ascii 1.0\n")
        f.write(f"element vertex {len(vertices)}\n")
        f.write("property float x\nproperty float y\nproperty float z\n")
        f.write("property float nx\nproperty float ny\nproperty float nz\n")
        f.write("property float s\nproperty float t\n")
        f.write(f"element face {len(faces)}\n")
        f.write("property list uchar int vertex_indices\n")
        f.write("end_header\n")
        for (x, y, z), (nx, ny, nz), (s, t) in zip(vertices, normals, uv):
            f.write(f"{x:.6f} {y:.6f} {z:.6f} {nx:.6f} {ny:.6f} {nz:.6f} {s:.6f} {t:.6f}\n")
        for tri in faces:
            f.write(f"3 {tri[0]} {tri[1]} {tri[2]}\n")


def write_obj(path: Path, vertices: np.ndarray, faces: np.ndarray, normals: np.ndarray, uv: np.ndarray) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for x, y, z in vertices:
            f.write(f"v {x:.6f} {y:.6f} {z:.6f}\n")
        for s, t in uv:
            f.write(f"vt {s:.6f} {t:.6f}\n")
        for nx, ny, nz in normals:
            f.write(f"vn {nx:.6f} {ny:.6f} {nz:.6f}\n")
        for a, b, c in faces + 1:
            f.write(f"f {a}/{a}/{a} {b}/{b}/{b} {c}/{c}/{c}\n")


def generate_mesh(preset: str, size: float, path: Path) -> None:
    """Write a synthetic preset (torus, plane, box) as ASCII PLY or OBJ."""
    arrays = mesh_arrays(preset, size)
    if path.suffix.lower() == ".obj":
        write_obj(path, *arrays)
    else:
        write_ascii_ply(path, *arrays)
