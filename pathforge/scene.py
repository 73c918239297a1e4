"""
In-memory scene description handed to the renderer.

A Scene bundles what one render needs: image size and sample count, the
camera placement, the sky color and the root hittable. Scene files are
turned into these objects by `scene_parser`.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from .vec3 import Vec3, Point3, Color
from .shapes import Hittable

Pixel = Tuple[int, int, int]


@dataclass(frozen=True)
class ImageSlice:
    """A horizontal band of the image: `height` rows starting `top` rows below the top edge."""
    top: int
    height: int


@dataclass(frozen=True)
class ImageSpec:
    """Output image dimensions and sample count."""
    width: int
    height: int
    samples: int
    slice: Optional[ImageSlice] = None

    @property
    def rendered_height(self) -> int:
        """Number of rows actually produced (the slice height when slicing)."""
        return self.slice.height if self.slice is not None else self.height

    @property
    def num_pixels(self) -> int:
        return self.width * self.rendered_height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def with_samples(self, samples: int) -> ImageSpec:
        return replace(self, samples=samples)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'width': self.width,
            'height': self.height,
            'samples': self.samples,
        }
        if self.slice is not None:
            data['slice'] = {'top': self.slice.top, 'height': self.slice.height}
        return data


@dataclass(frozen=True)
class CameraSpec:
    """Camera placement as written in a scene file."""
    look_from: Point3
    look_at: Point3
    fov: float = 90.0
    aperture: float = 0.0
    vup: Vec3 = field(default_factory=lambda: Vec3(0, 1, 0))

    @property
    def focus_dist(self) -> float:
        """Focus on the look-at point."""
        return (self.look_from - self.look_at).length()


@dataclass
class Scene:
    """Everything needed to render one image.

    `seed` is the scene's own seed, used for sample streams when the
    renderer has none. `job` tells apart renders of the same scene whose
    results are averaged: each job index gets its own sample streams.
    """
    image: ImageSpec
    camera: CameraSpec
    objects: Hittable
    sky_color: Color = field(default_factory=lambda: Color(0.5, 0.7, 1.0))
    seed: Optional[int] = None
    job: Optional[int] = None


@dataclass
class Rendered:
    """A rendered pixel buffer together with the image it belongs to."""
    image: ImageSpec
    pixels: List[Pixel]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'image': self.image.to_dict(),
            'pixels': [list(p) for p in self.pixels],
        }
