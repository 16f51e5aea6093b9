from __future__ import annotations
from dataclasses import dataclass, field
import numpy as np
from typing import Dict

@dataclass
class PointBatch:
    """Surfel positions plus per-point attributes handed to exporters."""
    xyz: np.ndarray                       # (N, 3)
    attrs: Dict[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.xyz = np.asarray(self.xyz, dtype=np.float32).reshape(-1, 3)
        n = len(self.xyz)
        for k, v in list(self.attrs.items()):
            v = np.asarray(v)
            if v.ndim == 0 or v.shape[0] != n:
                raise ValueError(f"Attribute '{k}' length {v.shape[:1]} != {n}")
            self.attrs[k] = v

    def __len__(self) -> int:
        return len(self.xyz)

    def has(self, name: str) -> bool:
        return name in self.attrs
