from __future__ import annotations
from typing import Generic, Optional, TypeVar
import numpy as np

from .geometry import HasNormal, HasTexcoords, position_of

V = TypeVar("V")
D = TypeVar("D")


class Surfel(Generic[V, D]):
    """A surface element: an interpolated vertex plus associated data.

    The payload can be mutated in place through ``data`` but not replaced.
    Normal and texture coordinates are forwarded to the wrapped vertex.
    """
    __slots__ = ("_vertex", "_data")

    def __init__(self, vertex: V, data: D) -> None:
        self._vertex = vertex
        self._data = data

    @property
    def vertex(self) -> V:
        return self._vertex

    @property
    def data(self) -> D:
        return self._data

    def position(self) -> np.ndarray:
        return position_of(self._vertex)

    def normal(self) -> Optional[np.ndarray]:
        if not isinstance(self._vertex, HasNormal):
            raise AttributeError(f"{type(self._vertex).__name__} has no normal")
        return self._vertex.normal()

    def texcoords(self) -> Optional[np.ndarray]:
        if not isinstance(self._vertex, HasTexcoords):
            raise AttributeError(f"{type(self._vertex).__name__} has no texcoords")
        return self._vertex.texcoords()

    def __repr__(self) -> str:
        return f"Surfel(position={self.position().tolist()}, data={self._data!r})"
