"""Surfels – point-sampled surfaces with spatial indexing.

Turns triangle meshes into immutable, spatially indexed sets of surface
elements ("surfels") carrying arbitrary per-point payload data:
- Vertex, Triangle & capability protocols (core.geometry)
- Surfel (core.surfel)
- Sampling strategies & Poisson disk dart throwing (core.sampling)
- k-d tree / brute-force spatial indices (core.spatial)
- SurfaceBuilder and Surface (core.builder, core.surface)
- OBJ / PLY / NPZ / LAS exporters (core.exporter)
- MeshScene triangle source (core.scene)
"""

from .core.errors import (SurfelError, SamplingNotImplementedError,
                          IndexConstructionError, SinkError, BuilderConsumedError)
from .core.geometry import (HasPosition, HasNormal, HasTexcoords, Vertex, Triangle,
                            position_of, normal_of, texcoords_of)
from .core.surfel import Surfel
from .core.sampling import (SurfelSampling, PerSqrUnit, MinimumDistance,
                            PoissonDiskSampler, into_poisson_disk_set)
from .core.spatial import SpatialIndex, KdTreeIndex, NumpyIndex
from .core.surface import Surface, Neighbor
from .core.builder import SurfaceBuilder
from .core.pointcloud import PointBatch
from .core.exporter import ObjWriter, PlyWriter, NpzWriter, LasWriter
from .core.scene import MeshScene
