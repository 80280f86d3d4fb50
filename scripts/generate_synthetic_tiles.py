"""
Generate a directory of synthetic, non-overlapping LAZ inputs for retiling.

- Creates a simple terrain surface with hills and noise.
- Cuts it into an irregular set of rectangular source blocks that do not
  align with any round tile size, so retiling has to split and merge them.
- Writes data/synthetic/inputs/block_<i>_<j>.laz.

Requires: laspy with the lazrs backend for LAZ writing.
"""
from __future__ import annotations

import argparse
from pathlib import Path

import laspy
import numpy as np


def ensure_laz_writing_possible():
    # laspy requires either lazrs or laszip to write .laz
    try:
        backends = laspy.LazBackend.detect_available()
        if not backends:
            raise RuntimeError
    except Exception:
        raise RuntimeError(
            "LAZ compression backend not found. Install one of: 'lazrs' (recommended) or 'laszip'.\n"
            "For example: pip install 'laspy[lazrs]'"
        )


def make_points(x0, x1, y0, y1, density, rng):
    n = max(1, int((x1 - x0) * (y1 - y0) * density))
    x = rng.uniform(x0, x1, n)
    y = rng.uniform(y0, y1, n)
    # Gentle hills plus low-amplitude noise
    z = 1.5 * np.sin(0.02 * x) * np.cos(0.02 * y) + 0.05 * rng.standard_normal(n) + 100.0
    return np.column_stack([x, y, z])


def write_laz(path: Path, points: np.ndarray, source_id: int):
    path.parent.mkdir(parents=True, exist_ok=True)
    hdr = laspy.LasHeader(point_format=6, version="1.4")
    hdr.scales = np.array([0.01, 0.01, 0.01])
    hdr.offsets = np.floor(points.min(axis=0))
    las = laspy.LasData(hdr)
    las.x = points[:, 0]
    las.y = points[:, 1]
    las.z = points[:, 2]
    las.classification = np.full(points.shape[0], 2, dtype=np.uint8)
    las.intensity = np.full(points.shape[0], 100, dtype=np.uint16)
    las.point_source_id = np.full(points.shape[0], source_id, dtype=np.uint16)
    las.write(str(path))


def main():
    parser = argparse.ArgumentParser(description="Generate synthetic disjoint LAZ inputs")
    parser.add_argument("--out", type=str, default=None, help="Output directory")
    parser.add_argument("--blocks", type=int, default=4, help="Blocks per axis")
    parser.add_argument("--block-size", type=float, default=137.0, help="Block edge length (m)")
    parser.add_argument("--density", type=float, default=2.0, help="Points per square metre")
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    ensure_laz_writing_possible()
    out = Path(args.out) if args.out else Path(__file__).parent.parent / "data" / "synthetic" / "inputs"
    rng = np.random.default_rng(args.seed)

    # Blocks are separated by a small gap so their closed bounds never touch
    gap = 0.05
    origin_x, origin_y = 512_300.0, 6_959_100.0
    for i in range(args.blocks):
        for j in range(args.blocks):
            x0 = origin_x + i * args.block_size
            y0 = origin_y + j * args.block_size
            pts = make_points(x0, x0 + args.block_size - gap, y0, y0 + args.block_size - gap, args.density, rng)
            path = out / f"block_{i}_{j}.laz"
            write_laz(path, pts, source_id=i * args.blocks + j)
            print(f"Wrote: {path} ({len(pts):,} points)")


if __name__ == "__main__":
    main()
