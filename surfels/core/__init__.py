"""Core surfel data types, sampling, spatial indexing and export."""
