from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Tuple
import numpy as np
import pathlib

import laspy  # type: ignore
from .pointcloud import PointBatch
from .utils import get_logger

_log = get_logger()

@dataclass
class LasWriter:
    """Streaming LAS/LAZ writer using laspy (v2+).

    Header is created lazily on the first batch so the ExtraBytes
    dimensions for normals and texture coordinates follow the actual attrs.
    """
    path: str
    point_format: int = 6
    compress: bool = False
    scale: tuple[float, float, float] = (1e-4, 1e-4, 1e-4)
    offset: Optional[tuple[float, float, float]] = None

    def __post_init__(self) -> None:
        self._fh: Optional[laspy.LasWriter] = None  # type: ignore
        self._header: Optional[laspy.LasHeader] = None  # type: ignore
        self._extras: Dict[str, Tuple[str, int]] = {}

    # -- public API --
    def write_batch(self, batch: PointBatch) -> None:
        if len(batch) == 0:
            return
        if self._fh is None:
            self._init_header_from_batch(batch)
        assert self._fh is not None and self._header is not None
        self._fh.write_points(self._point_record_from_batch(batch, self._header))

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    # -- internals --
    def _init_header_from_batch(self, batch: PointBatch) -> None:
        hdr = laspy.LasHeader(point_format=laspy.PointFormat(self.point_format), version="1.4")
        hdr.scales = self.scale
        if self.offset is None:
            mn = np.min(batch.xyz, axis=0)
            hdr.offsets = (float(mn[0]), float(mn[1]), float(mn[2]))
        else:
            hdr.offsets = self.offset

        # extra dimension name -> (source attribute, column)
        extras: Dict[str, Tuple[str, int]] = {}
        if batch.has("normal"):
            extras.update({"NormalX": ("normal", 0), "NormalY": ("normal", 1), "NormalZ": ("normal", 2)})
        if batch.has("texcoords"):
            extras.update({"TexU": ("texcoords", 0), "TexV": ("texcoords", 1)})
        for name in extras:
            hdr.add_extra_dim(laspy.ExtraBytesParams(name=name, type="float32"))
        self._extras = extras

        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = laspy.open(path, mode="w", header=hdr, do_compress=self.compress)
        self._header = hdr
        _log.info("Opened %s (PF=%d, compress=%s)", path.name, self.point_format, self.compress)

    def _point_record_from_batch(self, batch: PointBatch, header: "laspy.LasHeader") -> "laspy.ScaleAwarePointRecord":
        pts = laspy.ScaleAwarePointRecord.zeros(len(batch), header=header)
        pts.x = batch.xyz[:, 0]
        pts.y = batch.xyz[:, 1]
        pts.z = batch.xyz[:, 2]
        for name, (attr, col) in self._extras.items():
            if attr not in batch.attrs:
                raise ValueError(f"Batch lacks attribute '{attr}' declared by the first batch.")
            pts[name] = batch.attrs[attr][:, col].astype(np.float32, copy=False)
        return pts


class _BufferedWriter:
    """Collects batches and writes them in one go on close."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._batches: List[PointBatch] = []

    def write_batch(self, batch: PointBatch) -> None:
        self._batches.append(batch)

    def _combined(self, name: str) -> Optional[np.ndarray]:
        # Attributes are only exported when every batch carries them.
        if not self._batches or not all(b.has(name) for b in self._batches):
            return None
        return np.concatenate([b.attrs[name] for b in self._batches], axis=0)

    def close(self) -> None:
        if not self._batches:
            return
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._write(path, np.vstack([b.xyz for b in self._batches]))
        _log.debug("Wrote %s", path)
        self._batches.clear()

    def _write(self, path: pathlib.Path, xyz: np.ndarray) -> None:  # pragma: no cover - abstract
        raise NotImplementedError


class ObjWriter(_BufferedWriter):
    """Wavefront OBJ with ``v``/``vt``/``vn`` records, viewable in Blender."""

    def _write(self, path: pathlib.Path, xyz: np.ndarray) -> None:
        uv = self._combined("texcoords")
        nrm = self._combined("normal")
        with open(path, "w", encoding="utf-8") as f:
            f.write(f"# {len(xyz)} surfels\n")
            for x, y, z in xyz:
                f.write(f"v {float(x)} {float(y)} {float(z)}\n")
            if uv is not None:
                for u, v in uv:
                    f.write(f"vt {float(u)} {float(v)}\n")
            if nrm is not None:
                for nx, ny, nz in nrm:
                    f.write(f"vn {float(nx)} {float(ny)} {float(nz)}\n")


class PlyWriter(_BufferedWriter):
    """ASCII PLY with xyz, plus normals when every batch has them."""

    def _write(self, path: pathlib.Path, xyz: np.ndarray) -> None:
        nrm = self._combined("normal")
        with open(path, "w", encoding="utf-8") as f:
            f.write("ply\nformat ascii 1.0\n")
            f.write(f"element vertex {len(xyz)}\n")
            f.write("property float x\nproperty float y\nproperty float z\n")
            if nrm is not None:
                f.write("property float nx\nproperty float ny\nproperty float nz\n")
            f.write("end_header\n")
            for i, (x, y, z) in enumerate(xyz):
                row = f"{float(x)} {float(y)} {float(z)}"
                if nrm is not None:
                    row += " " + " ".join(f"{float(c)}" for c in nrm[i])
                f.write(row + "\n")


class NpzWriter(_BufferedWriter):
    """Compressed NPZ; attributes missing from a batch are zero-filled."""

    def _write(self, path: pathlib.Path, xyz: np.ndarray) -> None:
        all_keys = sorted({k for b in self._batches for k in b.attrs.keys()})
        # Map each attr key to (tail_shape, dtype) from first batch that provides it
        key_meta: Dict[str, Tuple[Tuple[int, ...], np.dtype]] = {}
        for b in self._batches:
            for k, v in b.attrs.items():
                if k not in key_meta:
                    key_meta[k] = (v.shape[1:], v.dtype)

        out: Dict[str, Any] = {"xyz": xyz}
        for k in all_keys:
            tail_shape, dt = key_meta[k]
            vals: List[np.ndarray] = []
            for b in self._batches:
                if k in b.attrs:
                    vals.append(b.attrs[k].astype(dt, copy=False))
                else:
                    vals.append(np.zeros((len(b),) + tail_shape, dtype=dt))
            out[k] = np.concatenate(vals, axis=0)
        np.savez_compressed(path, **out)
