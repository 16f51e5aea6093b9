from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence, runtime_checkable
import numpy as np

from .utils import ensure_unit_vectors


@runtime_checkable
class HasPosition(Protocol):
    def position(self) -> np.ndarray: ...


@runtime_checkable
class HasNormal(Protocol):
    def normal(self) -> Optional[np.ndarray]: ...


@runtime_checkable
class HasTexcoords(Protocol):
    def texcoords(self) -> Optional[np.ndarray]: ...


@runtime_checkable
class InterpolateVertex(Protocol):
    def interpolate(self, weights: Sequence[float]) -> Any: ...


class FromVertices(Protocol):
    @classmethod
    def from_vertices(cls, a: Any, b: Any, c: Any) -> "FromVertices": ...


def position_of(obj: Any) -> np.ndarray:
    """Return the float64 (3,) position of ``obj``.

    Anything with a ``position()`` method is positional; so are plain
    3-sequences and numpy arrays, which are their own position.
    """
    if isinstance(obj, HasPosition):
        arr = np.asarray(obj.position(), dtype=np.float64)
    else:
        arr = np.asarray(obj, dtype=np.float64)
    if arr.shape != (3,):
        raise TypeError(f"Expected a 3D position, got shape {arr.shape} from {type(obj).__name__}.")
    return arr


def normal_of(obj: Any) -> Optional[np.ndarray]:
    if not isinstance(obj, HasNormal):
        return None
    try:
        n = obj.normal()
    except AttributeError:
        return None
    return None if n is None else np.asarray(n, dtype=np.float64)


def texcoords_of(obj: Any) -> Optional[np.ndarray]:
    if not isinstance(obj, HasTexcoords):
        return None
    try:
        uv = obj.texcoords()
    except AttributeError:
        return None
    return None if uv is None else np.asarray(uv, dtype=np.float64)


@dataclass
class Vertex:
    """A point on a mesh with optional normal and texture coordinates."""
    xyz: np.ndarray                    # (3,)
    nrm: Optional[np.ndarray] = None   # (3,)
    uv: Optional[np.ndarray] = None    # (2,)

    def __post_init__(self) -> None:
        self.xyz = np.asarray(self.xyz, dtype=np.float64).reshape(3)
        if self.nrm is not None:
            self.nrm = np.asarray(self.nrm, dtype=np.float64).reshape(3)
        if self.uv is not None:
            self.uv = np.asarray(self.uv, dtype=np.float64).reshape(2)

    def position(self) -> np.ndarray:
        return self.xyz

    def normal(self) -> Optional[np.ndarray]:
        return self.nrm

    def texcoords(self) -> Optional[np.ndarray]:
        return self.uv


def _as_vertex(v: Any) -> Vertex:
    if isinstance(v, Vertex):
        return v
    return Vertex(position_of(v), normal_of(v), texcoords_of(v))


class Triangle:
    """Three vertices supporting barycentric interpolation.

    Normals and texture coordinates are interpolated only when all three
    corners carry them; interpolated normals are renormalised.
    """
    __slots__ = ("a", "b", "c")

    def __init__(self, a: Vertex, b: Vertex, c: Vertex) -> None:
        self.a = a
        self.b = b
        self.c = c

    @classmethod
    def from_vertices(cls, a: Any, b: Any, c: Any) -> "Triangle":
        return cls(_as_vertex(a), _as_vertex(b), _as_vertex(c))

    def corners(self) -> np.ndarray:
        return np.stack([self.a.xyz, self.b.xyz, self.c.xyz])

    def area(self) -> float:
        a, b, c = self.corners()
        return float(0.5 * np.linalg.norm(np.cross(b - a, c - a)))

    def interpolate(self, weights: Sequence[float]) -> Vertex:
        w = np.asarray(weights, dtype=np.float64).reshape(3)
        xyz = w[0] * self.a.xyz + w[1] * self.b.xyz + w[2] * self.c.xyz
        nrm = None
        if self.a.nrm is not None and self.b.nrm is not None and self.c.nrm is not None:
            nrm = ensure_unit_vectors(w[0] * self.a.nrm + w[1] * self.b.nrm + w[2] * self.c.nrm)
        uv = None
        if self.a.uv is not None and self.b.uv is not None and self.c.uv is not None:
            uv = w[0] * self.a.uv + w[1] * self.b.uv + w[2] * self.c.uv
        return Vertex(xyz, nrm, uv)

    def __repr__(self) -> str:
        return f"Triangle({self.a.xyz.tolist()}, {self.b.xyz.tolist()}, {self.c.xyz.tolist()})"
