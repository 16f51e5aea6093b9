from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Type, Union
import math
import numpy as np
from scipy.spatial import cKDTree

from .geometry import FromVertices, InterpolateVertex, Triangle, position_of
from .utils import get_logger, triangle_areas

_log = get_logger()


@dataclass(frozen=True)
class SurfelSampling:
    """Base for strategies converting triangles into surfel positions."""

    def _check_positive(self, name: str, value: float) -> None:
        if not math.isfinite(value) or value <= 0.0:
            raise ValueError(f"{name} must be a positive finite number, got {value!r}.")


@dataclass(frozen=True)
class PerSqrUnit(SurfelSampling):
    """Random points per triangle, proportional to density times area.

    Fast, but clumps together at small scales. Not implemented yet; use
    ``MinimumDistance`` instead.
    """
    density: float

    def __post_init__(self) -> None:
        self._check_positive("density", float(self.density))


@dataclass(frozen=True)
class MinimumDistance(SurfelSampling):
    """Poisson disk set generated by dart throwing on the surface.

    Slower than ``PerSqrUnit`` but surfels are evenly spaced: no two are
    closer than ``min_dist``.
    """
    min_dist: float

    def __post_init__(self) -> None:
        self._check_positive("min_dist", float(self.min_dist))


class _PointGrid:
    """Uniform hash grid with cell size equal to the minimum distance."""

    def __init__(self, cell: float) -> None:
        self.cell = float(cell)
        self._r2 = self.cell * self.cell
        self._cells: Dict[Tuple[int, int, int], List[np.ndarray]] = {}
        self._points: List[np.ndarray] = []

    def __len__(self) -> int:
        return len(self._points)

    def _key(self, p: np.ndarray) -> Tuple[int, int, int]:
        return (int(math.floor(p[0] / self.cell)),
                int(math.floor(p[1] / self.cell)),
                int(math.floor(p[2] / self.cell)))

    def is_free(self, p: np.ndarray) -> bool:
        i, j, k = self._key(p)
        for di in (-1, 0, 1):
            for dj in (-1, 0, 1):
                for dk in (-1, 0, 1):
                    for q in self._cells.get((i + di, j + dj, k + dk), ()):
                        d = p - q
                        if float(d @ d) < self._r2:
                            return False
        return True

    def add(self, p: np.ndarray) -> None:
        self._cells.setdefault(self._key(p), []).append(p)
        self._points.append(p)

    def points(self) -> np.ndarray:
        if not self._points:
            return np.zeros((0, 3), dtype=np.float64)
        return np.stack(self._points)


def _random_barycentric(rng: np.random.Generator, n: int) -> np.ndarray:
    uv = rng.random((n, 2))
    flip = uv.sum(axis=1) > 1.0
    uv[flip] = 1.0 - uv[flip]
    return np.column_stack([1.0 - uv[:, 0] - uv[:, 1], uv[:, 0], uv[:, 1]])


def _subdivide(tri_ids: np.ndarray, bary: np.ndarray, pos: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split every fragment into four at its edge midpoints."""
    def split(arr: np.ndarray) -> np.ndarray:
        a, b, c = arr[:, 0], arr[:, 1], arr[:, 2]
        ab, bc, ca = 0.5 * (a + b), 0.5 * (b + c), 0.5 * (c + a)
        children = [
            np.stack([a, ab, ca], axis=1),
            np.stack([ab, b, bc], axis=1),
            np.stack([ca, bc, c], axis=1),
            np.stack([ab, bc, ca], axis=1),
        ]
        return np.concatenate(children, axis=0)

    return np.tile(tri_ids, 4), split(bary), split(pos)


def _longest_edges(pos: np.ndarray) -> np.ndarray:
    e = np.stack([pos[:, 1] - pos[:, 0], pos[:, 2] - pos[:, 1], pos[:, 0] - pos[:, 2]], axis=1)
    return np.linalg.norm(e, axis=2).max(axis=1)


class PoissonDiskSampler:
    """Dart throwing on surfaces (Cline et al.).

    Active fragments start as the input triangles. Each round throws one
    dart into every fragment plus extra darts proportional to the active
    area, then retires covered fragments and splits the rest into four.
    A fragment is covered when one accepted disk holds all of its corners,
    or when every corner lies in some disk and the fragment is shorter
    than ``resolution * min_dist``. Sampling stops once no fragment is left
    or after ``max_depth`` subdivisions.

    Darts are drawn in batches of at most ``chunk_size`` so memory stays
    bounded for large meshes and small distances. Items without an
    ``interpolate`` method are treated as vertex triples and wrapped with
    ``triangle_type.from_vertices``.

    Accepted points are produced lazily as interpolated vertices.
    """

    def __init__(
        self,
        min_dist: float,
        rng: Optional[np.random.Generator] = None,
        throws_per_disk: float = 2.0,
        resolution: float = 0.125,
        max_depth: int = 12,
        chunk_size: int = 65536,
        triangle_type: Type[FromVertices] = Triangle,
    ) -> None:
        if not math.isfinite(min_dist) or min_dist <= 0.0:
            raise ValueError(f"min_dist must be a positive finite number, got {min_dist!r}.")
        if throws_per_disk <= 0.0:
            raise ValueError("throws_per_disk must be positive.")
        if max_depth < 0:
            raise ValueError("max_depth must be non-negative.")
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1.")
        self.min_dist = float(min_dist)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.throws_per_disk = float(throws_per_disk)
        self.resolution = float(resolution)
        self.max_depth = int(max_depth)
        self.chunk_size = int(chunk_size)
        self.triangle_type = triangle_type

    def sample(self, triangles: Iterable[Union[InterpolateVertex, Sequence[Any]]]) -> Iterator[Any]:
        tris = [t if isinstance(t, InterpolateVertex) else self.triangle_type.from_vertices(*t) for t in triangles]
        if not tris:
            return

        unit = np.eye(3)
        corners = np.stack([
            np.stack([position_of(t.interpolate(w)) for w in unit]) for t in tris
        ])
        areas = triangle_areas(corners)
        valid = areas > 0.0
        if not np.all(valid):
            _log.debug("Skipping %d degenerate triangles.", int((~valid).sum()))

        tri_ids = np.nonzero(valid)[0]
        bary = np.tile(unit, (len(tri_ids), 1, 1))
        pos = corners[tri_ids]

        grid = _PointGrid(self.min_dist)
        disk_area = self.min_dist * self.min_dist
        for depth in range(self.max_depth + 1):
            if len(tri_ids) == 0:
                break
            frag_areas = triangle_areas(pos)
            total = float(frag_areas.sum())
            if total <= 0.0:
                break
            # one dart per fragment, the rest spread by area
            n_frags = len(tri_ids)
            n_extra = max(int(math.ceil(self.throws_per_disk * total / disk_area)) - n_frags, 0)
            order = self.rng.permutation(n_frags)
            for start in range(0, n_frags, self.chunk_size):
                yield from self._throw(tris, grid, tri_ids, bary, order[start:start + self.chunk_size])
            probs = frag_areas / total
            for start in range(0, n_extra, self.chunk_size):
                n = min(self.chunk_size, n_extra - start)
                yield from self._throw(tris, grid, tri_ids, bary, self.rng.choice(n_frags, size=n, p=probs))

            keep = ~self._covered(grid.points(), pos)
            _log.debug("Dart throwing depth %d: %d throws, %d/%d fragments active, %d points.",
                       depth, n_frags + n_extra, int(keep.sum()), len(keep), len(grid))
            if depth == self.max_depth:
                break
            tri_ids, bary, pos = _subdivide(tri_ids[keep], bary[keep], pos[keep])

    def _throw(
        self,
        tris: List[Any],
        grid: _PointGrid,
        tri_ids: np.ndarray,
        bary: np.ndarray,
        picks: np.ndarray,
    ) -> Iterator[Any]:
        weights = np.einsum("ni,nij->nj", _random_barycentric(self.rng, len(picks)), bary[picks])
        for tid, w in zip(tri_ids[picks], weights):
            vertex = tris[tid].interpolate(w)
            p = position_of(vertex)
            if grid.is_free(p):
                grid.add(p)
                yield vertex

    def _covered(self, points: np.ndarray, pos: np.ndarray) -> np.ndarray:
        if len(points) == 0:
            return np.zeros(len(pos), dtype=bool)
        tree = cKDTree(points)
        d = self.min_dist
        corner_dist, _ = tree.query(pos.reshape(-1, 3))
        corners_in = (corner_dist < d).reshape(-1, 3).all(axis=1)
        _, nearest = tree.query(pos.mean(axis=1))
        offsets = pos - points[nearest][:, None, :]
        single = (np.linalg.norm(offsets, axis=2) < d).all(axis=1)
        small = _longest_edges(pos) < self.resolution * d
        return single | (corners_in & small)


def into_poisson_disk_set(
    triangles: Iterable[Any],
    min_dist: float,
    rng: Optional[np.random.Generator] = None,
) -> Iterator[Any]:
    """Lazily yield a Poisson disk set of vertices sampled on ``triangles``."""
    return PoissonDiskSampler(min_dist, rng=rng).sample(triangles)
