from dataclasses import dataclass, field

import numpy as np
import pytest

from surfels.core.builder import SurfaceBuilder
from surfels.core.errors import BuilderConsumedError, IndexConstructionError, SamplingNotImplementedError
from surfels.core.geometry import Triangle
from surfels.core.sampling import MinimumDistance, PerSqrUnit
from surfels.core.spatial import KdTreeIndex, NumpyIndex
from surfels.core.surfel import Surfel


@dataclass
class SurfelData:
    prop: int
    history: list = field(default_factory=list)


def _square() -> list[Triangle]:
    a, b, c, d = (0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.0), (0.0, 1.0, 0.0)
    return [Triangle.from_vertices(a, b, c), Triangle.from_vertices(a, c, d)]


def _circle(n: int, radius: float = 5.0) -> list[np.ndarray]:
    angles = 2.0 * np.pi * np.arange(n) / n
    return [np.array([radius * np.cos(a), radius * np.sin(a), 0.0]) for a in angles]


def test_default_strategy_is_minimum_distance() -> None:
    assert SurfaceBuilder().strategy == MinimumDistance(0.1)


def test_sampling_rejects_non_strategies() -> None:
    with pytest.raises(TypeError):
        SurfaceBuilder().sampling(0.1)  # type: ignore[arg-type]


def test_add_samples_preserves_count_and_order() -> None:
    points = _circle(100)
    surface = SurfaceBuilder().add_samples(points).build()
    assert len(surface) == 100
    for i, p in enumerate(points):
        assert surface[i] is p


def test_add_samples_accumulates_across_calls() -> None:
    surface = (
        SurfaceBuilder()
        .add_samples([(0.0, 0.0, 0.0), (1.0, 0.0, 0.0)])
        .add_samples([(2.0, 0.0, 0.0)])
        .build()
    )
    assert [tuple(s) for s in surface] == [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0)]


@pytest.mark.parametrize("factory", [KdTreeIndex, NumpyIndex])
def test_every_sample_finds_itself(factory) -> None:
    rng = np.random.default_rng(1)
    surface = (
        SurfaceBuilder(index_factory=factory)
        .sample_triangles(_square(), SurfelData(prop=-1), rng=rng)
        .add_samples([Surfel(np.array([5.0, 5.0, 5.0]), SurfelData(prop=7))])
        .build()
    )
    for i, sample in enumerate(surface):
        hit = surface.nearest(sample.position())[0]
        assert hit.index == i
        assert hit.distance == 0.0


def test_sample_triangles_clones_payload_per_surfel() -> None:
    prototype = SurfelData(prop=-1)
    surface = (
        SurfaceBuilder()
        .sampling(MinimumDistance(0.2))
        .sample_triangles(_square(), prototype, rng=np.random.default_rng(2))
        .build()
    )
    assert len(surface) > 2
    assert all(s.data == SurfelData(prop=-1) for s in surface)

    surface[0].data.prop = 42
    surface[0].data.history.append("touched")
    assert surface[1].data.prop == -1
    assert surface[1].data.history == []
    assert prototype == SurfelData(prop=-1)
    assert len({id(s.data) for s in surface}) == len(surface)


def test_per_sqr_unit_is_not_implemented() -> None:
    consumed = []

    def triangles():
        for tri in _square():
            consumed.append(tri)
            yield tri

    builder = SurfaceBuilder().add_samples([(0.0, 0.0, 0.0)]).sampling(PerSqrUnit(100.0))
    with pytest.raises(SamplingNotImplementedError):
        builder.sample_triangles(triangles(), SurfelData(prop=0))
    with pytest.raises(NotImplementedError):
        builder.sample_triangles(_square(), SurfelData(prop=0))
    assert consumed == []
    assert len(builder) == 1


def test_sampling_change_keeps_accumulated_samples() -> None:
    builder = SurfaceBuilder().add_samples([(0.0, 0.0, 0.0)])
    builder.sampling(MinimumDistance(0.5))
    assert len(builder) == 1
    assert builder.strategy == MinimumDistance(0.5)


def test_build_consumes_builder() -> None:
    builder = SurfaceBuilder().add_samples([(0.0, 0.0, 0.0)])
    builder.build()
    with pytest.raises(BuilderConsumedError):
        builder.add_samples([(1.0, 0.0, 0.0)])
    with pytest.raises(BuilderConsumedError):
        builder.build()


def test_build_fails_when_index_rejects_a_sample() -> None:
    builder = SurfaceBuilder(index_factory=lambda: KdTreeIndex(allow_duplicates=False))
    builder.add_samples([(1.0, 2.0, 3.0), (1.0, 2.0, 3.0)])
    with pytest.raises(IndexConstructionError):
        builder.build()


def test_build_fails_for_non_finite_positions() -> None:
    builder = SurfaceBuilder().add_samples([(0.0, 0.0, 0.0), (np.inf, 0.0, 0.0)])
    with pytest.raises(IndexConstructionError):
        builder.build()
