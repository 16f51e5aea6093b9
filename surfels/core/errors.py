from __future__ import annotations


class SurfelError(Exception):
    """Base class for failures raised while building or exporting surfaces."""


class SamplingNotImplementedError(SurfelError, NotImplementedError):
    """The requested sampling strategy has no implementation."""


class IndexConstructionError(SurfelError):
    """The spatial index rejected a point while the surface was being built."""


class SinkError(SurfelError):
    """Writing a surface to an export sink failed."""


class BuilderConsumedError(SurfelError, RuntimeError):
    """A builder was used again after ``build()`` consumed it."""
