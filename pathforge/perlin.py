"""
Perlin gradient noise.

The permutation and gradient tables are held by an explicit `Perlin`
object rather than module globals. Build one before rendering starts and
hand the same instance to every texture that needs noise; after
construction it is read-only and safe to share between threads.
"""

from __future__ import annotations
import math
from typing import Optional, Tuple

import numpy as np

from .vec3 import Point3

TABLE_SIZE = 256


class Perlin:
    """Precomputed permutation/gradient tables for Perlin noise and turbulence."""

    __slots__ = ('perm_x', 'perm_y', 'perm_z', 'gradients')

    def __init__(self, rng: Optional[np.random.Generator] = None):
        """Generate the tables.

        Args:
            rng: Random generator; seed it for reproducible noise
        """
        rng = rng if rng is not None else np.random.default_rng()

        # Generator.permutation is a Fisher-Yates shuffle of 0..255
        self.perm_x: Tuple[int, ...] = tuple(rng.permutation(TABLE_SIZE).tolist())
        self.perm_y: Tuple[int, ...] = tuple(rng.permutation(TABLE_SIZE).tolist())
        self.perm_z: Tuple[int, ...] = tuple(rng.permutation(TABLE_SIZE).tolist())

        vectors = rng.uniform(-1.0, 1.0, (TABLE_SIZE, 3))
        vectors /= np.linalg.norm(vectors, axis=1, keepdims=True)
        self.gradients: Tuple[Tuple[float, float, float], ...] = tuple(
            tuple(row) for row in vectors.tolist()
        )

    def noise(self, point: Point3) -> float:
        """Gradient noise at a point, roughly in [-1, 1]."""
        x, y, z = point.x, point.y, point.z
        fx, fy, fz = math.floor(x), math.floor(y), math.floor(z)
        u, v, w = x - fx, y - fy, z - fz
        i, j, k = int(fx), int(fy), int(fz)

        # Hermite smoothing of the cell-local coordinates
        uu = u * u * (3 - 2 * u)
        vv = v * v * (3 - 2 * v)
        ww = w * w * (3 - 2 * w)

        accum = 0.0
        for di in (0, 1):
            wx = uu if di else 1 - uu
            px = self.perm_x[(i + di) & 255]
            for dj in (0, 1):
                wy = vv if dj else 1 - vv
                py = self.perm_y[(j + dj) & 255]
                for dk in (0, 1):
                    wz = ww if dk else 1 - ww
                    gx, gy, gz = self.gradients[px ^ py ^ self.perm_z[(k + dk) & 255]]
                    dot = gx * (u - di) + gy * (v - dj) + gz * (w - dk)
                    accum += wx * wy * wz * dot
        return accum

    def turbulence(self, point: Point3, depth: int = 7) -> float:
        """Multi-octave noise: sum of weight * |noise| with halving weights."""
        accum = 0.0
        weight = 1.0
        p = point

        for _ in range(depth):
            accum += weight * abs(self.noise(p))
            weight *= 0.5
            p = p * 2

        return abs(accum)
