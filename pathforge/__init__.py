"""
PathForge - A Python Path Tracing Renderer

An offline Monte Carlo path tracer with support for:
- Spheres, moving spheres (motion blur), axis-aligned rectangles and boxes
- Lambertian, metal, dielectric and emissive materials
- Solid, checker, Perlin noise and image textures
- Bounding volume hierarchy acceleration
- Depth of field
- Multi-threaded rendering with reproducible seeds
- Distributed rendering over HTTP
"""

__version__ = "0.1.0"
__author__ = "PathForge Team"

from .vec3 import Vec3, Point3, Color, lerp
from .ray import Ray
from .shapes import (
    AABB, HitRecord, Hittable, HittableList, Sphere, MovingSphere,
    AxisAlignedRect, XYRect, XZRect, YZRect, FlipNormals, make_box
)
from .bvh import BVH, build_bvh
from .perlin import Perlin
from .textures import (
    Texture, SolidColor, CheckerTexture, RecursiveCheckerTexture,
    NoiseTexture, ImageTexture
)
from .materials import Material, ScatterResult, Lambertian, Metal, Dielectric, DiffuseLight
from .camera import Camera
from .scene import Scene, ImageSpec, ImageSlice, CameraSpec, Rendered
from .renderer import Renderer, RenderSettings, ray_color, to_color, save_image
from .scene_parser import SceneParser, SceneParseError, load_scene, parse_scene
from .distributed import Coordinator, RenderJobError, average_pixels, worker_count, run_worker
