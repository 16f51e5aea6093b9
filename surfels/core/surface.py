from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Generic, Iterator, List, Optional, Sequence, Tuple, TypeVar
import numpy as np

from .errors import SinkError
from .geometry import normal_of, position_of, texcoords_of
from .pointcloud import PointBatch
from .spatial import SpatialIndex
from .utils import get_logger

_log = get_logger()

S = TypeVar("S")


@dataclass(frozen=True)
class Neighbor(Generic[S]):
    index: int
    distance: float
    sample: S


class Surface(Generic[S]):
    """Immutable, spatially indexed collection of surface samples.

    Created by ``SurfaceBuilder.build()``. Sample ``i`` is stored in the
    spatial index at its position with payload ``i``; the index is never
    updated afterwards. Payloads reachable through samples may still be
    mutated since the index is keyed by position only.
    """

    def __init__(self, samples: Sequence[S], spatial_idx: SpatialIndex) -> None:
        self._samples: Tuple[S, ...] = tuple(samples)
        self._spatial_idx = spatial_idx

    @property
    def samples(self) -> Tuple[S, ...]:
        return self._samples

    @property
    def spatial_index(self) -> SpatialIndex:
        return self._spatial_idx

    def __len__(self) -> int:
        return len(self._samples)

    def __getitem__(self, idx: int) -> S:
        return self._samples[idx]

    def __iter__(self) -> Iterator[S]:
        return iter(self._samples)

    def __repr__(self) -> str:
        return f"Surface({len(self._samples)} samples)"

    # -- spatial queries --
    def _neighbors(self, hits: List[Tuple[float, Any]]) -> List[Neighbor[S]]:
        return [Neighbor(index=int(i), distance=d, sample=self._samples[int(i)]) for d, i in hits]

    def nearest(self, point: Sequence[float], k: int = 1) -> List[Neighbor[S]]:
        """The ``k`` samples closest to ``point``, nearest first."""
        return self._neighbors(self._spatial_idx.nearest(point, k=k))

    def nearest_sample(self, point: Sequence[float]) -> S:
        hits = self.nearest(point, k=1)
        if not hits:
            raise IndexError("nearest_sample() on an empty surface")
        return hits[0].sample

    def within(self, point: Sequence[float], radius: float) -> List[Neighbor[S]]:
        """All samples no farther than ``radius`` from ``point``, nearest first."""
        return self._neighbors(self._spatial_idx.within(point, radius))

    # -- attribute arrays --
    def positions(self) -> np.ndarray:
        if not self._samples:
            return np.zeros((0, 3), dtype=np.float64)
        return np.stack([position_of(s) for s in self._samples])

    def normals(self) -> Optional[np.ndarray]:
        """Per-sample normals, or None unless every sample has one."""
        return self._stack_optional([normal_of(s) for s in self._samples])

    def texcoords(self) -> Optional[np.ndarray]:
        return self._stack_optional([texcoords_of(s) for s in self._samples])

    @staticmethod
    def _stack_optional(values: List[Optional[np.ndarray]]) -> Optional[np.ndarray]:
        if not values or any(v is None for v in values):
            return None
        return np.stack(values)  # type: ignore[arg-type]

    def to_batch(self) -> PointBatch:
        attrs = {}
        normals = self.normals()
        if normals is not None:
            attrs["normal"] = normals.astype(np.float32)
        uv = self.texcoords()
        if uv is not None:
            attrs["texcoords"] = uv.astype(np.float32)
        return PointBatch(xyz=self.positions(), attrs=attrs)

    # -- export --
    def dump(self, writer) -> None:
        """Write all sample positions and vertex attributes to ``writer``.

        ``writer`` follows the exporter protocol (``write_batch``/``close``).
        The writer is closed even when writing fails. Failures are re-raised
        as ``SinkError``.
        """
        batch = self.to_batch()
        try:
            try:
                writer.write_batch(batch)
            finally:
                writer.close()
        except SinkError:
            raise
        except Exception as exc:
            raise SinkError(f"Failed to dump {len(batch)} surfels: {exc}") from exc
        _log.info("Dumped %d surfels", len(batch))
