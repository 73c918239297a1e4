"""
Scene description language parser.

Supports a YAML (or JSON) scene description with:
- Image settings (size, samples, optional slice)
- Camera placement
- Sky color
- Materials library (named, or inline on each object)
- An object tree (lists, BVHs and primitives)

Example scene file:
```yaml
image:
  width: 400
  height: 200
  samples: 50

camera:
  look_from: [13, 2, 3]
  look_at: [0, 0, 0]
  fov: 20
  aperture: 0.1

sky_color: [0.5, 0.7, 1.0]
seed: 7

materials:
  ground:
    type: lambertian
    albedo:
      type: checker
      scale: 10
      odd: [0.2, 0.3, 0.1]
      even: [0.9, 0.9, 0.9]

  glass:
    type: dielectric
    ref_idx: 1.5

objects:
  type: bvh
  objects:
    - type: sphere
      center: [0, -1000, 0]
      radius: 1000
      material: ground

    - type: sphere
      center: [0, 1, 0]
      radius: 1
      material: glass
```
"""

from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import yaml

from .vec3 import Vec3, Color
from .shapes import (
    Hittable, HittableList, Sphere, MovingSphere,
    XYRect, XZRect, YZRect, FlipNormals, make_box
)
from .bvh import BVH
from .materials import Material, Lambertian, Metal, Dielectric, DiffuseLight
from .textures import (
    Texture, SolidColor, CheckerTexture, RecursiveCheckerTexture,
    NoiseTexture, ImageTexture
)
from .perlin import Perlin
from .scene import Scene, ImageSpec, ImageSlice, CameraSpec, Rendered

logger = logging.getLogger(__name__)

RECT_TYPES = {'xy_rect': XYRect, 'xz_rect': XZRect, 'yz_rect': YZRect}


class SceneParseError(Exception):
    """Error during scene parsing."""
    pass


def load_data(filepath: str) -> Dict[str, Any]:
    """Read a YAML or JSON scene file into a dictionary."""
    path = Path(filepath)
    if not path.exists():
        raise SceneParseError(f"Scene file not found: {filepath}")

    content = path.read_text()

    try:
        if path.suffix == '.json':
            data = json.loads(content)
        else:
            # YAML is a superset of JSON
            data = yaml.safe_load(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise SceneParseError(f"Cannot read scene file {filepath}: {e}") from e

    if not isinstance(data, dict):
        raise SceneParseError(f"Scene file {filepath} does not contain a mapping")
    return data


class SceneParser:
    """Parser for scene descriptions.

    One parser builds one scene: the noise tables and the BVH split axes
    are drawn from a generator seeded by the scene's `seed` entry (or the
    `seed` argument), so a seeded scene always builds the same way.
    """

    def __init__(self, seed: Optional[int] = None, base_dir: Optional[Path] = None):
        self.seed = seed
        self.base_dir = base_dir
        self.materials: Dict[str, Material] = {}
        self._rng: Optional[np.random.Generator] = None
        self._perlin: Optional[Perlin] = None

    def parse_file(self, filepath: str) -> Scene:
        """Parse a scene file.

        Args:
            filepath: Path to the scene file (YAML or JSON)

        Returns:
            The parsed scene
        """
        if self.base_dir is None:
            self.base_dir = Path(filepath).parent
        logger.info("Loading scene from %s", filepath)
        return self.parse_dict(load_data(filepath))

    def parse_dict(self, data: Dict[str, Any]) -> Scene:
        """Parse a scene from a dictionary.

        Args:
            data: Scene description dictionary

        Returns:
            The parsed scene
        """
        if not isinstance(data, dict):
            raise SceneParseError(f"Scene must be a mapping, got {type(data).__name__}")

        seed = self.seed if self.seed is not None else data.get('seed')
        if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int) or seed < 0):
            raise SceneParseError(f"Seed must be a non-negative integer, got {seed!r}")
        self._rng = np.random.default_rng(seed)
        self._perlin = None

        job = data.get('job')
        if job is not None and (isinstance(job, bool) or not isinstance(job, int) or job < 0):
            raise SceneParseError(f"Job index must be a non-negative integer, got {job!r}")

        if 'image' not in data:
            raise SceneParseError("Scene is missing the 'image' section")
        if 'objects' not in data:
            raise SceneParseError("Scene is missing the 'objects' section")

        image = parse_image(data['image'])
        camera = self._parse_camera(data.get('camera', {}))
        sky_color = parse_color(data.get('sky_color', [0.5, 0.7, 1.0]), 'sky_color')

        # Parse materials first (objects reference them)
        if 'materials' in data:
            self._parse_materials(data['materials'])

        objects = self._parse_root(data['objects'])
        logger.debug("Parsed scene: %dx%d, %d samples, %d named materials",
                     image.width, image.height, image.samples, len(self.materials))

        return Scene(image=image, camera=camera, objects=objects, sky_color=sky_color,
                     seed=seed, job=job)

    @property
    def perlin(self) -> Perlin:
        """Noise tables shared by every noise texture in the scene, built on first use."""
        if self._perlin is None:
            self._perlin = Perlin(self._rng)
        return self._perlin

    def _parse_camera(self, camera_data: Dict[str, Any]) -> CameraSpec:
        """Parse camera section."""
        if not isinstance(camera_data, dict):
            raise SceneParseError(f"Camera section must be a mapping, got {camera_data!r}")
        return CameraSpec(
            look_from=parse_vec3(camera_data.get('look_from', [0, 0, 0]), 'camera.look_from'),
            look_at=parse_vec3(camera_data.get('look_at', [0, 0, -1]), 'camera.look_at'),
            fov=parse_float(camera_data.get('fov', 90), 'camera.fov'),
            aperture=parse_float(camera_data.get('aperture', 0.0), 'camera.aperture'),
            vup=parse_vec3(camera_data.get('vup', [0, 1, 0]), 'camera.vup')
        )

    def _parse_materials(self, materials_data: Dict[str, Any]) -> None:
        """Parse the named materials section."""
        if not isinstance(materials_data, dict):
            raise SceneParseError(f"Materials section must be a mapping, got {materials_data!r}")
        for name, mat_data in materials_data.items():
            if not isinstance(mat_data, dict):
                raise SceneParseError(f"Material '{name}' must be a mapping, got {mat_data!r}")
            self.materials[name] = self._parse_material(mat_data)

    def _parse_material(self, mat_data: Dict[str, Any]) -> Material:
        """Parse one material definition."""
        mat_type = str(mat_data.get('type', 'lambertian')).lower()

        if mat_type == 'lambertian':
            return Lambertian(self._parse_texture(mat_data.get('albedo', [0.5, 0.5, 0.5])))

        elif mat_type == 'metal':
            albedo = self._parse_texture(mat_data.get('albedo', [0.8, 0.8, 0.8]))
            return Metal(albedo, parse_float(mat_data.get('fuzz', 0.0), 'metal fuzz'))

        elif mat_type == 'dielectric':
            return Dielectric(parse_float(mat_data.get('ref_idx', 1.5), 'dielectric ref_idx'))

        elif mat_type == 'diffuse_light':
            return DiffuseLight(self._parse_texture(mat_data.get('emit', [1, 1, 1])))

        raise SceneParseError(f"Unknown material type: {mat_type}")

    def _get_material(self, mat_ref: Any) -> Optional[Material]:
        """Get a material by name or inline definition."""
        if mat_ref is None:
            return None
        if isinstance(mat_ref, str):
            if mat_ref not in self.materials:
                raise SceneParseError(f"Unknown material: {mat_ref}")
            return self.materials[mat_ref]
        elif isinstance(mat_ref, dict):
            return self._parse_material(mat_ref)
        raise SceneParseError(f"Invalid material reference: {mat_ref}")

    def _parse_texture(self, data: Any) -> Texture:
        """Parse a texture, or a bare color used as a solid texture."""
        if not isinstance(data, dict) or 'type' not in data:
            return SolidColor(parse_color(data, 'texture'))

        tex_type = str(data['type']).lower()

        if tex_type == 'color':
            return SolidColor(parse_color(data.get('color', [0, 0, 0]), 'color texture'))

        elif tex_type in ('checker', 'recursive_checker'):
            cls = CheckerTexture if tex_type == 'checker' else RecursiveCheckerTexture
            return cls(
                parse_float(data.get('scale', 10.0), f"{tex_type} scale"),
                self._parse_texture(data.get('odd', [0, 0, 0])),
                self._parse_texture(data.get('even', [1, 1, 1]))
            )

        elif tex_type == 'noise':
            return NoiseTexture(self.perlin, parse_float(data.get('scale', 1.0), 'noise scale'))

        elif tex_type == 'image':
            if not isinstance(data.get('path'), str):
                raise SceneParseError("Image texture needs a 'path' string")
            path = Path(data['path'])
            if not path.is_absolute() and self.base_dir is not None:
                path = self.base_dir / path
            try:
                return ImageTexture(path)
            except OSError as e:
                raise SceneParseError(f"Cannot load image texture {path}: {e}") from e

        raise SceneParseError(f"Unknown texture type: {tex_type}")

    def _parse_root(self, data: Any) -> Hittable:
        """Parse the object tree; a bare list becomes a HittableList."""
        if isinstance(data, list):
            return HittableList(self._parse_children(data))
        return self._parse_object(data)

    def _parse_children(self, objects_data: List[Any]) -> List[Hittable]:
        if not objects_data:
            raise SceneParseError("Object groups must contain at least one object")
        return [self._parse_object(obj) for obj in objects_data]

    def _parse_object(self, obj_data: Dict[str, Any]) -> Hittable:
        """Parse one node of the object tree."""
        if not isinstance(obj_data, dict):
            raise SceneParseError(f"Cannot parse object from: {obj_data}")

        obj_type = str(obj_data.get('type', 'sphere')).lower()

        if obj_type == 'list':
            return HittableList(self._parse_children(obj_data.get('objects', [])))

        elif obj_type == 'bvh':
            children = self._parse_children(obj_data.get('objects', []))
            return BVH(children, 0.0, 1.0, self._rng)

        elif obj_type == 'flip_normals':
            if 'object' not in obj_data:
                raise SceneParseError("flip_normals needs an 'object'")
            return FlipNormals(self._parse_object(obj_data['object']))

        material = self._get_material(obj_data.get('material'))

        if obj_type == 'sphere':
            center = parse_vec3(obj_data.get('center', [0, 0, 0]), 'sphere center')
            radius = parse_float(obj_data.get('radius', 1.0), 'sphere radius')
            return Sphere(center, radius, material)

        elif obj_type == 'moving_sphere':
            try:
                start, end = obj_data['start'], obj_data['end']
                return MovingSphere(
                    center0=parse_vec3(start['center'], 'moving_sphere start center'),
                    center1=parse_vec3(end['center'], 'moving_sphere end center'),
                    time0=parse_float(start['time'], 'moving_sphere start time'),
                    time1=parse_float(end['time'], 'moving_sphere end time'),
                    radius=parse_float(obj_data.get('radius', 1.0), 'moving_sphere radius'),
                    material=material
                )
            except (KeyError, TypeError) as e:
                raise SceneParseError(f"moving_sphere needs start/end with time and center: {e}") from e

        elif obj_type in RECT_TYPES:
            try:
                extents = [parse_float(obj_data[key], f"{obj_type} {key}") for key in ('a0', 'a1', 'b0', 'b1', 'k')]
            except KeyError as e:
                raise SceneParseError(f"{obj_type} is missing {e}") from e
            return RECT_TYPES[obj_type](*extents, material)

        elif obj_type == 'box':
            return make_box(
                parse_vec3(obj_data.get('p0', [0, 0, 0]), 'box p0'),
                parse_vec3(obj_data.get('p1', [1, 1, 1]), 'box p1'),
                material
            )

        raise SceneParseError(f"Unknown object type: {obj_type}")


def parse_float(value: Any, name: str = 'value') -> float:
    """Convert a scene value to float, naming the entry if it is not a number."""
    if isinstance(value, bool):
        raise SceneParseError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise SceneParseError(f"{name} must be a number, got {value!r}") from e


def _parse_triple(data: Any, keys: str, name: str) -> List[float]:
    if isinstance(data, (list, tuple)):
        if len(data) != 3:
            raise SceneParseError(f"{name} must have 3 components, got {len(data)}")
        return [parse_float(c, name) for c in data]
    elif isinstance(data, dict):
        return [parse_float(data.get(key, 0), f"{name}.{key}") for key in keys]
    raise SceneParseError(f"Cannot parse {name} from: {data!r}")


def parse_vec3(data: Any, name: str = 'vector') -> Vec3:
    """Parse a Vec3 from a list or an {x, y, z} mapping."""
    return Vec3(*_parse_triple(data, 'xyz', name))


def parse_color(data: Any, name: str = 'color') -> Color:
    """Parse a Color from a list, an {r, g, b} mapping or a #rrggbb string."""
    if isinstance(data, str):
        hex_color = data[1:] if data.startswith('#') else ''
        if len(hex_color) == 6:
            try:
                return Color(*(int(hex_color[n:n + 2], 16) / 255.0 for n in (0, 2, 4)))
            except ValueError:
                pass
        raise SceneParseError(f"Cannot parse {name} from string: {data}")
    return Color(*_parse_triple(data, 'rgb', name))


def parse_image(image_data: Dict[str, Any]) -> ImageSpec:
    """Parse the image section."""
    try:
        slice_data = image_data.get('slice')
        image_slice = None
        if slice_data is not None:
            image_slice = ImageSlice(top=int(slice_data['top']), height=int(slice_data['height']))
        image = ImageSpec(
            width=int(image_data['width']),
            height=int(image_data['height']),
            samples=int(image_data.get('samples', 1)),
            slice=image_slice
        )
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        raise SceneParseError(f"Invalid image section {image_data}: {e}") from e

    if image.width <= 0 or image.height <= 0 or image.samples <= 0:
        raise SceneParseError(f"Image size and samples must be positive: {image_data}")
    if image.slice is not None and (
        image.slice.top < 0 or image.slice.height <= 0
        or image.slice.top + image.slice.height > image.height
    ):
        raise SceneParseError(f"Image slice does not fit in the image: {image_data}")
    return image


def parse_rendered(data: Dict[str, Any]) -> Rendered:
    """Parse a rendered pixel buffer as returned by a render worker."""
    try:
        image = parse_image(data['image'])
        pixels = [(int(p[0]), int(p[1]), int(p[2])) for p in data['pixels']]
    except (KeyError, TypeError, IndexError, ValueError) as e:
        raise SceneParseError(f"Invalid rendered image: {e}") from e
    if len(pixels) != image.num_pixels:
        raise SceneParseError(f"Expected {image.num_pixels} pixels, got {len(pixels)}")
    return Rendered(image=image, pixels=pixels)


def load_scene(filepath: str, seed: Optional[int] = None) -> Scene:
    """Convenience function to load a scene file.

    Args:
        filepath: Path to the scene file
        seed: Overrides the scene's own seed

    Returns:
        The parsed scene
    """
    parser = SceneParser(seed)
    return parser.parse_file(filepath)


def parse_scene(data: Dict[str, Any], seed: Optional[int] = None) -> Scene:
    """Convenience function to parse a scene from a dictionary.

    Args:
        data: Scene description dictionary
        seed: Overrides the scene's own seed

    Returns:
        The parsed scene
    """
    parser = SceneParser(seed)
    return parser.parse_dict(data)
