"""
Bounding Volume Hierarchy (BVH) for accelerating ray-object intersection.

The tree is stored as a flat arena: interior nodes live in parallel lists
(box, left child, right child) and refer to each other by integer index.
A child reference is either a node index (>= 0) or the bitwise complement
of an index into the primitive list (< 0). Nothing is nested, so the tree
can be shared read-only between render threads and is released without
deep recursion.
"""

from __future__ import annotations
import logging
from typing import Optional, List, Sequence

import numpy as np

from .ray import Ray
from .shapes import Hittable, HitRecord, AABB, HittableList

logger = logging.getLogger(__name__)


class BVH(Hittable):
    """Bounding Volume Hierarchy acceleration structure.

    Provides O(log n) ray intersection instead of O(n) for n objects.
    """

    def __init__(
        self,
        objects: Sequence[Hittable],
        time0: float = 0.0,
        time1: float = 1.0,
        rng: Optional[np.random.Generator] = None
    ):
        """Build a BVH from a non-empty list of objects.

        Args:
            objects: Hittable objects to accelerate
            time0: Start of the time interval the boxes must cover
            time1: End of the time interval the boxes must cover
            rng: Random generator used to pick split axes
        """
        rng = rng if rng is not None else np.random.default_rng()

        self.objects: List[Hittable] = list(objects)
        self.time0 = time0
        self.time1 = time1

        self._boxes: List[AABB] = []
        self._left: List[int] = []
        self._right: List[int] = []

        leaf_boxes = [obj.bounding_box(time0, time1) for obj in self.objects]
        self._root = self._build(list(range(len(self.objects))), leaf_boxes, rng)

        logger.debug("Built BVH over %d objects with %d nodes", len(self.objects), len(self._boxes))

    def _build(self, indices: List[int], leaf_boxes: List[AABB], rng: np.random.Generator) -> int:
        """Build the subtree over `indices` and return its node index."""
        axis = int(rng.integers(0, 3))
        indices.sort(key=lambda i: leaf_boxes[i].minimum[axis])

        if len(indices) == 1:
            # A single leftover object fills both slots
            left = right = ~indices[0]
        elif len(indices) == 2:
            left, right = ~indices[0], ~indices[1]
        else:
            mid = len(indices) // 2
            left = self._build(indices[:mid], leaf_boxes, rng)
            right = self._build(indices[mid:], leaf_boxes, rng)

        box = AABB.surrounding_box(
            self._child_box(left, leaf_boxes),
            self._child_box(right, leaf_boxes)
        )
        self._boxes.append(box)
        self._left.append(left)
        self._right.append(right)
        return len(self._boxes) - 1

    def _child_box(self, ref: int, leaf_boxes: List[AABB]) -> AABB:
        if ref < 0:
            return leaf_boxes[~ref]
        return self._boxes[ref]

    def hit(self, ray: Ray, t_min: float, t_max: float) -> Optional[HitRecord]:
        """Test ray intersection using the BVH."""
        return self._hit_ref(self._root, ray, t_min, t_max)

    def _hit_ref(self, ref: int, ray: Ray, t_min: float, t_max: float) -> Optional[HitRecord]:
        if ref < 0:
            return self.objects[~ref].hit(ray, t_min, t_max)

        if not self._boxes[ref].hit(ray, t_min, t_max):
            return None

        left = self._left[ref]
        right = self._right[ref]

        # Both children are probed over the full interval
        hit_left = self._hit_ref(left, ray, t_min, t_max)
        if right == left:
            return hit_left
        hit_right = self._hit_ref(right, ray, t_min, t_max)

        if hit_left is None:
            return hit_right
        if hit_right is None:
            return hit_left
        # Ties favour the left child
        return hit_right if hit_right.t < hit_left.t else hit_left

    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        """Return the bounding box for the entire BVH (cached at build time)."""
        return self._boxes[self._root]

    @property
    def node_count(self) -> int:
        """Number of interior nodes in the arena."""
        return len(self._boxes)

    def __len__(self) -> int:
        """Return the number of objects in the BVH."""
        return len(self.objects)


def build_bvh(
    scene: HittableList,
    time0: float = 0.0,
    time1: float = 1.0,
    rng: Optional[np.random.Generator] = None
) -> BVH:
    """Convenience function to build a BVH from a HittableList.

    Args:
        scene: The scene as a HittableList
        time0: Start of the shutter interval
        time1: End of the shutter interval
        rng: Random generator for split axes

    Returns:
        A BVH acceleration structure
    """
    return BVH(list(scene.objects), time0, time1, rng)
