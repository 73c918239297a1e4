"""
Texture system for the path tracer.

Implements:
- Solid color textures
- Image textures (from files or pixel arrays)
- Procedural textures (checker, recursive checker, marbled noise)

A texture maps surface coordinates (u, v) and the world-space hit point
to a color. Composite textures own their sub-textures.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union
import math

import numpy as np
from PIL import Image

from .perlin import Perlin
from .vec3 import Color, Point3


class Texture(ABC):
    """Abstract base class for textures."""

    @abstractmethod
    def value(self, u: float, v: float, point: Point3) -> Color:
        """Get the texture color at the given UV coordinates.

        Args:
            u: Horizontal texture coordinate [0, 1]
            v: Vertical texture coordinate [0, 1]
            point: 3D point in world space (for procedural textures)

        Returns:
            Color at this location
        """


class SolidColor(Texture):
    """A solid color texture."""

    def __init__(self, color: Color):
        self.color = color

    @classmethod
    def from_rgb(cls, r: float, g: float, b: float) -> SolidColor:
        return cls(Color(r, g, b))

    def value(self, u: float, v: float, point: Point3) -> Color:
        return self.color

    def __repr__(self) -> str:
        return f"SolidColor({self.color})"


class ImageTexture(Texture):
    """A texture sampled from a bitmap (nearest pixel, no filtering)."""

    def __init__(self, source: Union[str, Path, np.ndarray]):
        """Create an image texture.

        Args:
            source: Path to an image file, or an array of 8-bit values:
                (height, width) grey, (height, width, 1) grey, or
                (height, width, 3+) RGB with extra channels ignored
        """
        if isinstance(source, np.ndarray):
            self.filename = None
            data = np.atleast_3d(np.asarray(source, dtype=np.float64))
            if data.shape[2] == 1:
                data = np.repeat(data, 3, axis=2)
            elif data.shape[2] < 3:
                raise ValueError(f"Image array needs 1 or at least 3 channels, got shape {source.shape}")
            self._data = data[:, :, :3] / 255.0
        else:
            self.filename = str(source)
            self._data = self._load_image(self.filename)
        self._height, self._width = self._data.shape[:2]

    @staticmethod
    def _load_image(filename: str) -> np.ndarray:
        """Load an image file as RGB values in [0, 1]."""
        path = Path(filename)
        if not path.exists():
            raise FileNotFoundError(f"Texture file not found: {filename}")

        with Image.open(path) as img:
            return np.array(img.convert('RGB'), dtype=np.float64) / 255.0

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    def value(self, u: float, v: float, point: Point3) -> Color:
        # v runs bottom to top, image rows run top to bottom
        i = u * self._width
        j = (1.0 - v) * self._height - 0.001
        i = int(max(0.0, min(i, self._width - 1)))
        j = int(max(0.0, min(j, self._height - 1)))

        pixel = self._data[j, i]
        return Color(pixel[0], pixel[1], pixel[2])

    def __repr__(self) -> str:
        return f"ImageTexture({self._width}x{self._height})"


class CheckerTexture(Texture):
    """A sine-based checker pattern.

    The x term is squared, so only the sign of sin(scale * z) picks the
    square: the pattern is stripes along z, kept for output compatibility.
    """

    def __init__(self, scale: float, odd: Texture, even: Texture):
        """Create a checker texture.

        Args:
            scale: Spatial frequency of the pattern
            odd: Texture for odd squares
            even: Texture for even squares
        """
        self.scale = scale
        self.odd = odd
        self.even = even

    @classmethod
    def from_colors(cls, scale: float, odd: Color, even: Color) -> CheckerTexture:
        return cls(scale, SolidColor(odd), SolidColor(even))

    def value(self, u: float, v: float, point: Point3) -> Color:
        sines = math.sin(self.scale * point.x) ** 2 * math.sin(self.scale * point.z)
        if sines < 0:
            return self.odd.value(u, v, point)
        return self.even.value(u, v, point)


class RecursiveCheckerTexture(Texture):
    """A 3D checker whose odd squares are themselves checkered.

    Inside an odd square the pattern is re-evaluated at eight times the
    frequency until the frequency exceeds 100.
    """

    MAX_SCALE = 100.0
    SCALE_STEP = 8.0

    def __init__(self, scale: float, odd: Texture, even: Texture):
        self.scale = scale
        self.odd = odd
        self.even = even

    def value(self, u: float, v: float, point: Point3) -> Color:
        scale = self.scale
        while True:
            sines = (math.sin(scale * point.x)
                     * math.sin(scale * point.y)
                     * math.sin(scale * point.z))
            if sines >= 0:
                return self.even.value(u, v, point)
            if scale > self.MAX_SCALE:
                return self.odd.value(u, v, point)
            scale *= self.SCALE_STEP


class NoiseTexture(Texture):
    """Marble-like texture: a sine along z perturbed by turbulence."""

    TURBULENCE_DEPTH = 10

    def __init__(self, perlin: Perlin, scale: float = 1.0):
        """Create a noise texture.

        Args:
            perlin: Shared noise tables
            scale: Frequency of the marble veins along z
        """
        self.perlin = perlin
        self.scale = scale

    def value(self, u: float, v: float, point: Point3) -> Color:
        turb = self.perlin.turbulence(point, self.TURBULENCE_DEPTH)
        t = 0.5 * (1 + math.sin(self.scale * point.z + 10 * turb))
        return Color(t, t, t)

    def __repr__(self) -> str:
        return f"NoiseTexture(scale={self.scale})"
