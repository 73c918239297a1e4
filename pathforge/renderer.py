"""
Renderer module - the heart of the path tracer.

Implements:
- Path tracing with a hard recursion-depth cutoff
- Per-pixel multi-sample estimation with sub-pixel jitter
- Multi-threaded row-parallel rendering with independent random streams
- Gamma-corrected 8-bit output (PNG via Pillow, or plain PPM)
"""

from __future__ import annotations
import logging
import math
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image as PILImage

from .vec3 import Color, lerp
from .ray import Ray
from .camera import Camera
from .shapes import Hittable
from .scene import ImageSpec, Pixel, Rendered, Scene

logger = logging.getLogger(__name__)

BACKGROUNDS = ('gradient', 'flat')


@dataclass
class RenderSettings:
    """Configuration for the renderer."""
    max_depth: int = 50
    t_min: float = 0.001
    num_threads: int = 0  # 0 = auto-detect
    seed: Optional[int] = None
    background: str = 'gradient'

    def __post_init__(self):
        if self.background not in BACKGROUNDS:
            raise ValueError(
                f"Unknown background: {self.background} (expected one of {', '.join(BACKGROUNDS)})"
            )
        if self.num_threads == 0:
            self.num_threads = os.cpu_count() or 4


def background_color(ray: Ray, sky_color: Color, background: str = 'gradient') -> Color:
    """Color seen by a ray that escapes the scene.

    'gradient' blends from white at the horizon-down to the sky color
    straight up; 'flat' is the sky color everywhere.
    """
    if background == 'flat':
        return sky_color
    unit_direction = ray.direction.normalize()
    t = 0.5 * (unit_direction.y + 1.0)
    return lerp(Color(1.0, 1.0, 1.0), sky_color, t)


def ray_color(
    ray: Ray,
    world: Hittable,
    rng: np.random.Generator,
    depth: int = 0,
    sky_color: Color = Color(0.5, 0.7, 1.0),
    max_depth: int = 50,
    t_min: float = 0.001,
    background: str = 'gradient'
) -> Color:
    """Estimate the radiance arriving along a ray.

    Equivalent to the recursion
        color(ray, depth) = emitted + attenuation * color(scattered, depth + 1)
    while depth < max_depth and the material scatters, else emitted alone,
    unrolled into a loop that carries the product of attenuations. Paths
    longer than max_depth are cut off, not terminated by Russian roulette,
    so their remaining energy is lost.
    """
    radiance = Color(0, 0, 0)
    throughput = Color(1, 1, 1)

    while True:
        hit = world.hit(ray, t_min, math.inf)

        if hit is None:
            return radiance + throughput * background_color(ray, sky_color, background)

        if hit.material is None:
            # No material - shade by normal (for debugging)
            return radiance + throughput * (hit.normal + Color(1, 1, 1)) * 0.5

        emitted = hit.material.emitted(hit.u, hit.v, hit.point)
        radiance = radiance + throughput * emitted

        if depth >= max_depth:
            return radiance

        scatter = hit.material.scatter(ray, hit, rng)
        if scatter is None:
            return radiance

        throughput = throughput * scatter.attenuation
        ray = scatter.scattered_ray
        depth += 1


def to_color(color: Color) -> Pixel:
    """Gamma-correct (gamma 2) a linear color into an 8-bit RGB triple."""
    return tuple(
        int(math.sqrt(min(max(c, 0.0), 1.0)) * 255.99)
        for c in (color.x, color.y, color.z)
    )


def pixels_to_render(image: ImageSpec) -> List[Tuple[int, int]]:
    """List (i, j) pixel coordinates in output order.

    Rows come from the top of the image down (restricted to the slice if
    there is one), each row left to right. j is the camera-space row, which
    counts up from the bottom edge.
    """
    top, rows = (image.slice.top, image.slice.height) if image.slice else (0, image.height)
    return [
        (i, image.height - 1 - row)
        for row in range(top, top + rows)
        for i in range(image.width)
    ]


class Renderer:
    """Path tracing renderer with multi-threading support."""

    def __init__(self, settings: RenderSettings = None):
        """Create a renderer with the given settings.

        Args:
            settings: Render configuration (uses defaults if None)
        """
        self.settings = settings if settings else RenderSettings()
        self._progress_callback: Optional[Callable[[float], None]] = None
        self._pixel_callback: Optional[Callable[[Tuple[int, int], Pixel], None]] = None

    def set_progress_callback(self, callback: Callable[[float], None]) -> None:
        """Set a callback function for progress updates.

        Args:
            callback: Function that takes progress as float (0.0 to 1.0)
        """
        self._progress_callback = callback

    def set_pixel_callback(self, callback: Callable[[Tuple[int, int], Pixel], None]) -> None:
        """Set a callback invoked with ((i, j), (r, g, b)) for every finished pixel."""
        self._pixel_callback = callback

    @staticmethod
    def camera_for(scene: Scene) -> Camera:
        """Build the camera for a scene: focus on the look-at point, shutter open over [0, 1]."""
        spec = scene.camera
        return Camera(
            look_from=spec.look_from,
            look_at=spec.look_at,
            vup=spec.vup,
            vfov=spec.fov,
            aspect_ratio=scene.image.aspect_ratio,
            aperture=spec.aperture,
            focus_dist=spec.focus_dist,
            shutter_open=0.0,
            shutter_close=1.0
        )

    def row_seeds(self, scene: Scene) -> List[np.random.SeedSequence]:
        """Seed sequences for every screen row of the full image.

        The settings seed wins over the scene seed. A job index selects an
        independent family of streams for the same seed.
        """
        seed = self.settings.seed if self.settings.seed is not None else scene.seed
        spawn_key = () if scene.job is None else (scene.job,)
        return np.random.SeedSequence(seed, spawn_key=spawn_key).spawn(scene.image.height)

    def ray_color(self, ray: Ray, scene: Scene, rng: np.random.Generator, depth: int = 0) -> Color:
        """Trace one ray through a scene using this renderer's settings."""
        return ray_color(
            ray, scene.objects, rng, depth,
            sky_color=scene.sky_color,
            max_depth=self.settings.max_depth,
            t_min=self.settings.t_min,
            background=self.settings.background
        )

    def render_pixel(
        self,
        camera: Camera,
        scene: Scene,
        location: Tuple[int, int],
        rng: np.random.Generator
    ) -> Pixel:
        """Average `scene.image.samples` jittered samples for one pixel."""
        width = scene.image.width
        height = scene.image.height
        num_samples = scene.image.samples
        i, j = location

        total = Color(0, 0, 0)
        for _ in range(num_samples):
            u = (i + rng.random()) / width
            v = (j + rng.random()) / height
            total = total + self.ray_color(camera.get_ray(u, v, rng), scene, rng)

        color = to_color(total / num_samples)
        if self._pixel_callback:
            self._pixel_callback(location, color)
        return color

    def render(self, scene: Scene) -> List[Pixel]:
        """Render the scene.

        Returns:
            Pixel triples, row-major, top row first (see pixels_to_render)
        """
        image = scene.image
        camera = self.camera_for(scene)
        coords = pixels_to_render(image)
        rows = [coords[n:n + image.width] for n in range(0, len(coords), image.width)]

        # One stream per screen row, so a slice reproduces the same rows of a
        # full render and thread scheduling never changes the result
        streams = self.row_seeds(scene)

        total_rows = len(rows)
        completed_rows = [0]  # Use list for mutable in closure

        def render_row(row: Sequence[Tuple[int, int]]) -> List[Pixel]:
            screen_row = image.height - 1 - row[0][1]
            rng = np.random.default_rng(streams[screen_row])
            pixels = [self.render_pixel(camera, scene, location, rng) for location in row]

            completed_rows[0] += 1
            if self._progress_callback:
                self._progress_callback(completed_rows[0] / total_rows)
            return pixels

        logger.info(
            "Rendering %dx%d (%d rows) at %d samples per pixel on %d threads",
            image.width, image.height, total_rows, image.samples, self.settings.num_threads
        )
        start = time.perf_counter()

        if self.settings.num_threads > 1:
            with ThreadPoolExecutor(max_workers=self.settings.num_threads) as executor:
                results = list(executor.map(render_row, rows))
        else:
            results = [render_row(row) for row in rows]

        elapsed = time.perf_counter() - start
        logger.info("Render finished in %.2fs", elapsed)
        if elapsed > 0:
            logger.debug("%.0f samples per second", image.num_pixels * image.samples / elapsed)

        return [pixel for row in results for pixel in row]

    def render_scene(self, scene: Scene) -> Rendered:
        """Render and wrap the pixels with the image metadata."""
        return Rendered(image=scene.image, pixels=self.render(scene))


def pixels_to_array(pixels: Sequence[Pixel], width: int, height: int) -> np.ndarray:
    """Arrange row-major pixel triples into a (height, width, 3) uint8 array."""
    return np.asarray(pixels, dtype=np.uint8).reshape(height, width, 3)


def format_ppm(pixels: Sequence[Pixel], width: int, height: int) -> str:
    """Encode pixels as a plain-text (P3) PPM image."""
    lines = [f"P3\n{width} {height}\n255"]
    lines.extend(f"{r} {g} {b}" for r, g, b in pixels)
    return "\n".join(lines) + "\n"


def save_image(pixels: Sequence[Pixel], width: int, height: int, filename: str) -> None:
    """Save pixels to a file.

    `.ppm` files are written as plain-text PPM; every other extension is
    handed to Pillow as RGBA with an opaque alpha channel.

    Args:
        pixels: Row-major RGB triples, top row first
        width: Image width
        height: Number of rows in `pixels`
        filename: Output filename (extension determines format)
    """
    path = Path(filename)
    if path.suffix.lower() == '.ppm':
        path.write_text(format_ppm(pixels, width, height))
    else:
        rgb = pixels_to_array(pixels, width, height)
        alpha = np.full((height, width, 1), 255, dtype=np.uint8)
        PILImage.fromarray(np.concatenate([rgb, alpha], axis=2)).save(path)
    logger.info("Saved %dx%d image to %s", width, height, path)
