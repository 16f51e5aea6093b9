from __future__ import annotations
from pathlib import Path
from typing import Iterator, Optional
import numpy as np

from .geometry import Triangle, Vertex
from .utils import get_logger, triangle_areas

_log = get_logger()

try:
    import trimesh  # type: ignore
    _HAVE_TRIMESH = True
except Exception:
    trimesh = None  # type: ignore
    _HAVE_TRIMESH = False


class MeshScene:
    """Holds a triangle mesh and hands its triangles to surfel sampling.

    Meshes load through trimesh when it is installed. Without it, ASCII PLY
    and Wavefront OBJ files are read directly.
    """
    def __init__(
        self,
        mesh_path: str | Path | None = None,
        use_trimesh: bool = True,
    ) -> None:
        self.mesh_path = Path(mesh_path) if mesh_path is not None else None
        self._vertices: Optional[np.ndarray] = None
        self._faces: Optional[np.ndarray] = None
        self._vertex_normals: Optional[np.ndarray] = None
        self._vertex_texcoords: Optional[np.ndarray] = None

        if self.mesh_path is not None:
            self._load_from_path(self.mesh_path, use_trimesh=use_trimesh)

    @classmethod
    def from_arrays(
        cls,
        vertices: np.ndarray,
        faces: np.ndarray,
        normals: Optional[np.ndarray] = None,
        texcoords: Optional[np.ndarray] = None,
    ) -> "MeshScene":
        scene = cls()
        scene._store(vertices, faces, normals, texcoords)
        return scene

    # -- IO helpers --
    def _load_from_path(self, path: Path, use_trimesh: bool) -> None:
        if not path.exists():
            raise FileNotFoundError(f"Mesh file not found: {path}")
        suffix = path.suffix.lower()

        if use_trimesh and _HAVE_TRIMESH:
            mesh = trimesh.load_mesh(str(path), force="mesh", process=False)
            normals = np.asarray(mesh.vertex_normals, dtype=np.float64) if len(mesh.faces) else None
            uv = getattr(mesh.visual, "uv", None)
            self._store(mesh.vertices, mesh.faces, normals, uv)
            return

        if suffix == ".ply":
            self._load_ascii_ply(path)
            return
        if suffix == ".obj":
            self._load_obj(path)
            return

        raise RuntimeError(f"Unsupported mesh format '{suffix}'; install trimesh or provide ASCII PLY/OBJ.")

    def _store(
        self,
        vertices: np.ndarray,
        faces: np.ndarray,
        normals: Optional[np.ndarray],
        texcoords: Optional[np.ndarray],
    ) -> None:
        v = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
        f = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        if len(f) and (f.min() < 0 or f.max() >= len(v)):
            raise ValueError("Face indices out of range for vertex array.")
        self._vertices = v
        self._faces = f
        self._vertex_normals = None
        self._vertex_texcoords = None
        if normals is not None:
            n = np.asarray(normals, dtype=np.float64)
            if n.shape == v.shape:
                self._vertex_normals = n
            else:
                _log.warning("Ignoring normals with shape %s (expected %s).", n.shape, v.shape)
        if texcoords is not None:
            uv = np.asarray(texcoords, dtype=np.float64)
            if uv.shape == (len(v), 2):
                self._vertex_texcoords = uv
            else:
                _log.warning("Ignoring texcoords with shape %s (expected %s).", uv.shape, (len(v), 2))

    # -- API --
    def __len__(self) -> int:
        return 0 if self._faces is None else len(self._faces)

    def bounds(self) -> tuple[float, float, float, float, float, float]:
        if self._vertices is None or len(self._vertices) == 0:
            raise RuntimeError("Scene not loaded.")
        mn = self._vertices.min(axis=0)
        mx = self._vertices.max(axis=0)
        return (float(mn[0]), float(mx[0]), float(mn[1]), float(mx[1]), float(mn[2]), float(mx[2]))

    def triangle_arrays(self) -> tuple[np.ndarray, np.ndarray]:
        if self._vertices is None or self._faces is None:
            raise RuntimeError("Mesh does not expose triangle arrays.")
        return self._vertices, self._faces

    def surface_area(self) -> float:
        v, f = self.triangle_arrays()
        if len(f) == 0:
            return 0.0
        return float(triangle_areas(v[f]).sum())

    def _vertex(self, idx: int) -> Vertex:
        assert self._vertices is not None
        nrm = self._vertex_normals[idx] if self._vertex_normals is not None else None
        uv = self._vertex_texcoords[idx] if self._vertex_texcoords is not None else None
        return Vertex(self._vertices[idx], nrm, uv)

    def triangles(self) -> Iterator[Triangle]:
        _, faces = self.triangle_arrays()
        for a, b, c in faces:
            yield Triangle.from_vertices(self._vertex(a), self._vertex(b), self._vertex(c))

    # -- fallback readers --
    def _load_ascii_ply(self, path: Path) -> None:
        with open(path, "r", encoding="utf-8") as f:
            header: list[str] = []
            while True:
                line = f.readline()
                if not line:
                    raise RuntimeError("Unexpected EOF while reading PLY header.")
                line = line.strip()
                header.append(line)
                if line == "end_header":
                    break

            if header[0] != "ply":
                raise RuntimeError("Only ASCII PLY files are supported.")
            if "format ascii" not in header[1]:
                raise RuntimeError("Only ASCII PLY format is supported.")

            n_vertices = 0
            n_faces = 0
            vertex_props: list[str] = []
            current_element = None
            for line in header[2:]:
                parts = line.split()
                if not parts:
                    continue
                if parts[0] == "element":
                    current_element = parts[1]
                    if current_element == "vertex":
                        n_vertices = int(parts[2])
                    elif current_element == "face":
                        n_faces = int(parts[2])
                elif parts[0] == "property" and current_element == "vertex":
                    vertex_props.append(parts[-1])

            rows = []
            for _ in range(n_vertices):
                parts = f.readline().split()
                if len(parts) < len(vertex_props):
                    raise RuntimeError("Vertex line is shorter than its declared properties.")
                rows.append([float(v) for v in parts[:len(vertex_props)]])
            table = np.asarray(rows, dtype=np.float64).reshape(n_vertices, len(vertex_props))

            faces = []
            for _ in range(n_faces):
                parts = f.readline().split()
                if not parts:
                    continue
                count = int(parts[0])
                idx = [int(v) for v in parts[1:1 + count]]
                # fan triangulation for polygons
                for i in range(1, count - 1):
                    faces.append((idx[0], idx[i], idx[i + 1]))

        col = {name: i for i, name in enumerate(vertex_props)}

        def columns(*names: str) -> Optional[np.ndarray]:
            if all(n in col for n in names):
                return table[:, [col[n] for n in names]]
            return None

        xyz = columns("x", "y", "z")
        if xyz is None:
            raise RuntimeError("PLY vertices must declare x, y and z properties.")
        uv = columns("s", "t")
        if uv is None:
            uv = columns("u", "v")
        self._store(xyz, np.asarray(faces, dtype=np.int64).reshape(-1, 3), columns("nx", "ny", "nz"), uv)

    def _load_obj(self, path: Path) -> None:
        positions: list[list[float]] = []
        normals: list[list[float]] = []
        texcoords: list[list[float]] = []
        corners: list[tuple[int, int, int]] = []

        def resolve(token: str, count: int) -> int:
            i = int(token)
            return i - 1 if i > 0 else count + i

        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                parts = line.split()
                if not parts or parts[0].startswith("#"):
                    continue
                tag = parts[0]
                if tag == "v":
                    positions.append([float(v) for v in parts[1:4]])
                elif tag == "vn":
                    normals.append([float(v) for v in parts[1:4]])
                elif tag == "vt":
                    texcoords.append([float(v) for v in parts[1:3]])
                elif tag == "f":
                    face = []
                    for token in parts[1:]:
                        refs = token.split("/")
                        vi = resolve(refs[0], len(positions))
                        ti = resolve(refs[1], len(texcoords)) if len(refs) > 1 and refs[1] else -1
                        ni = resolve(refs[2], len(normals)) if len(refs) > 2 and refs[2] else -1
                        face.append((vi, ti, ni))
                    for i in range(1, len(face) - 1):
                        corners.extend([face[0], face[i], face[i + 1]])

        # Corners are de-indexed so each face corner keeps its own normal/uv.
        ref = np.asarray(corners, dtype=np.int64).reshape(-1, 3)
        pos = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        vertices = pos[ref[:, 0]] if len(ref) else np.zeros((0, 3))
        nrm = None
        if len(ref) and normals and np.all(ref[:, 2] >= 0):
            nrm = np.asarray(normals, dtype=np.float64)[ref[:, 2]]
        uv = None
        if len(ref) and texcoords and np.all(ref[:, 1] >= 0):
            uv = np.asarray(texcoords, dtype=np.float64)[ref[:, 1]]
        faces = np.arange(len(ref), dtype=np.int64).reshape(-1, 3)
        self._store(vertices, faces, nrm, uv)
