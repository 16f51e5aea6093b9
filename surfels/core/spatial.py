from __future__ import annotations
from typing import Any, List, Optional, Protocol, Sequence, Set, Tuple
import numpy as np
from scipy.spatial import cKDTree

from .errors import IndexConstructionError


class SpatialIndex(Protocol):
    """3D point index filled once, then frozen and queried.

    Query results are ``(distance, payload)`` pairs sorted by distance.
    """
    def add(self, point: Sequence[float], payload: Any) -> None: ...
    def freeze(self) -> None: ...
    def nearest(self, point: Sequence[float], k: int = 1) -> List[Tuple[float, Any]]: ...
    def within(self, point: Sequence[float], radius: float) -> List[Tuple[float, Any]]: ...
    def __len__(self) -> int: ...


def _query_point(point: Sequence[float]) -> np.ndarray:
    q = np.asarray(point, dtype=np.float64)
    if q.shape != (3,):
        raise ValueError(f"Query point must have shape (3,), got {q.shape}.")
    return q


class _StaticIndex:
    """Shared insertion bookkeeping for indices built once and then frozen."""

    def __init__(self, allow_duplicates: bool = True) -> None:
        self.allow_duplicates = bool(allow_duplicates)
        self._coords: List[Tuple[float, float, float]] = []
        self._payloads: List[Any] = []
        self._seen: Set[Tuple[float, float, float]] = set()
        self._points: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return len(self._coords)

    @property
    def frozen(self) -> bool:
        return self._points is not None

    def add(self, point: Sequence[float], payload: Any) -> None:
        if self.frozen:
            raise IndexConstructionError("Cannot add points to a frozen spatial index.")
        try:
            coord = tuple(float(c) for c in point)
        except (TypeError, ValueError) as exc:
            raise IndexConstructionError(f"Invalid coordinate {point!r} for payload {payload!r}.") from exc
        if len(coord) != 3:
            raise IndexConstructionError(f"Expected a 3D coordinate, got {len(coord)} components.")
        if not all(np.isfinite(coord)):
            raise IndexConstructionError(f"Non-finite coordinate {coord} for payload {payload!r}.")
        if not self.allow_duplicates:
            if coord in self._seen:
                raise IndexConstructionError(f"Duplicate coordinate {coord} for payload {payload!r}.")
            self._seen.add(coord)
        self._coords.append(coord)  # type: ignore[arg-type]
        self._payloads.append(payload)

    def freeze(self) -> None:
        if self.frozen:
            return
        self._points = np.asarray(self._coords, dtype=np.float64).reshape(-1, 3)
        self._seen.clear()
        self._build(self._points)

    def _build(self, points: np.ndarray) -> None:  # pragma: no cover - abstract
        raise NotImplementedError

    def _require_frozen(self) -> np.ndarray:
        if self._points is None:
            raise RuntimeError("Spatial index must be frozen before querying.")
        return self._points


class KdTreeIndex(_StaticIndex):
    """k-d tree index backed by ``scipy.spatial.cKDTree``."""

    def __init__(self, allow_duplicates: bool = True, leafsize: int = 16) -> None:
        super().__init__(allow_duplicates=allow_duplicates)
        self.leafsize = int(leafsize)
        self._tree: Optional[cKDTree] = None

    def _build(self, points: np.ndarray) -> None:
        if len(points):
            self._tree = cKDTree(points, leafsize=self.leafsize)

    def nearest(self, point: Sequence[float], k: int = 1) -> List[Tuple[float, Any]]:
        self._require_frozen()
        if k < 1:
            raise ValueError("k must be at least 1.")
        if self._tree is None:
            return []
        k = min(k, len(self))
        dist, idx = self._tree.query(_query_point(point), k=k)
        dist = np.atleast_1d(dist)
        idx = np.atleast_1d(idx)
        return [(float(d), self._payloads[int(i)]) for d, i in zip(dist, idx)]

    def within(self, point: Sequence[float], radius: float) -> List[Tuple[float, Any]]:
        points = self._require_frozen()
        if radius < 0:
            raise ValueError("radius must be non-negative.")
        if self._tree is None:
            return []
        q = _query_point(point)
        hits = self._tree.query_ball_point(q, r=radius)
        if not hits:
            return []
        hits = np.asarray(hits, dtype=np.int64)
        dist = np.linalg.norm(points[hits] - q, axis=1)
        order = np.argsort(dist, kind="stable")
        return [(float(dist[o]), self._payloads[int(hits[o])]) for o in order]


class NumpyIndex(_StaticIndex):
    """Pure NumPy brute-force fallback with the same query semantics."""

    def _build(self, points: np.ndarray) -> None:
        pass

    def _distances(self, point: Sequence[float]) -> np.ndarray:
        points = self._require_frozen()
        return np.linalg.norm(points - _query_point(point), axis=1)

    def nearest(self, point: Sequence[float], k: int = 1) -> List[Tuple[float, Any]]:
        if k < 1:
            raise ValueError("k must be at least 1.")
        dist = self._distances(point)
        order = np.argsort(dist, kind="stable")[:k]
        return [(float(dist[o]), self._payloads[int(o)]) for o in order]

    def within(self, point: Sequence[float], radius: float) -> List[Tuple[float, Any]]:
        if radius < 0:
            raise ValueError("radius must be non-negative.")
        dist = self._distances(point)
        order = np.argsort(dist, kind="stable")
        return [(float(dist[o]), self._payloads[int(o)]) for o in order if dist[o] <= radius]
