from __future__ import annotations
import copy
from typing import Any, Callable, Generic, Iterable, List, Optional, Sequence, TypeVar, Union
import numpy as np

from .errors import BuilderConsumedError, SamplingNotImplementedError
from .geometry import InterpolateVertex, position_of
from .sampling import MinimumDistance, PerSqrUnit, PoissonDiskSampler, SurfelSampling
from .spatial import KdTreeIndex, SpatialIndex
from .surface import Surface
from .surfel import Surfel
from .utils import get_logger

_log = get_logger()

S = TypeVar("S")


class SurfaceBuilder(Generic[S]):
    """Accumulates samples and builds an immutable :class:`Surface`.

    Every method returns the builder so calls can be chained::

        surface = (
            SurfaceBuilder()
            .sampling(MinimumDistance(0.1))
            .sample_triangles(scene.triangles(), {"prop": -1})
            .add_samples(extra_points)
            .build()
        )

    ``build()`` consumes the builder; using it afterwards raises
    :class:`BuilderConsumedError`.
    """

    def __init__(self, index_factory: Optional[Callable[[], SpatialIndex]] = None) -> None:
        self._samples: List[S] = []
        self._sampling: SurfelSampling = MinimumDistance(0.1)
        self._index_factory: Callable[[], SpatialIndex] = index_factory or KdTreeIndex
        self._consumed = False

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def strategy(self) -> SurfelSampling:
        return self._sampling

    def _check_usable(self) -> None:
        if self._consumed:
            raise BuilderConsumedError("SurfaceBuilder was already consumed by build().")

    def sampling(self, strategy: SurfelSampling) -> "SurfaceBuilder[S]":
        """Set the strategy used by later ``sample_triangles`` calls.

        Defaults to ``MinimumDistance(0.1)``. Samples accumulated so far are
        left untouched.
        """
        self._check_usable()
        if not isinstance(strategy, SurfelSampling):
            raise TypeError(f"Expected a SurfelSampling strategy, got {type(strategy).__name__}.")
        self._sampling = strategy
        return self

    def add_samples(self, samples: Iterable[S]) -> "SurfaceBuilder[S]":
        """Append samples verbatim, in iteration order.

        Samples may be hand-made (any positional value, including plain
        xyz triples) or taken from another surface.
        """
        self._check_usable()
        before = len(self._samples)
        self._samples.extend(samples)
        _log.debug("Added %d explicit samples", len(self._samples) - before)
        return self

    def sample_triangles(
        self,
        triangles: Iterable[Union[InterpolateVertex, Sequence[Any]]],
        prototype_data: Any,
        rng: Optional[np.random.Generator] = None,
    ) -> "SurfaceBuilder[S]":
        """Sample surfels on ``triangles`` with the active strategy.

        Every generated surfel carries its own deep copy of
        ``prototype_data``. Triangles need an ``interpolate`` method; bare
        vertex triples are wrapped with ``Triangle.from_vertices``.
        """
        self._check_usable()
        strategy = self._sampling
        if isinstance(strategy, PerSqrUnit):
            raise SamplingNotImplementedError(
                "Only MinimumDistance sampling is implemented at the moment."
            )
        if not isinstance(strategy, MinimumDistance):
            raise SamplingNotImplementedError(f"Unsupported sampling strategy {strategy!r}.")

        sampler = PoissonDiskSampler(strategy.min_dist, rng=rng)
        before = len(self._samples)
        self._samples.extend(
            Surfel(vertex, copy.deepcopy(prototype_data)) for vertex in sampler.sample(triangles)
        )
        _log.debug("Sampled %d surfels with min_dist=%g", len(self._samples) - before, strategy.min_dist)
        return self  # type: ignore[return-value]

    def build(self) -> Surface[S]:
        """Consume the builder, index every sample and return the surface."""
        self._check_usable()
        self._consumed = True
        samples, self._samples = self._samples, []

        spatial_idx = self._index_factory()
        for idx, sample in enumerate(samples):
            spatial_idx.add(tuple(position_of(sample).tolist()), idx)
        spatial_idx.freeze()

        _log.info("Built surface with %d samples", len(samples))
        return Surface(samples, spatial_idx)
