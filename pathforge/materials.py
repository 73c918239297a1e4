"""
Materials system.

Implements:
- Lambertian diffuse
- Metal (specular reflection with fuzz)
- Dielectric (glass, water - with refraction)
- Diffuse light (emissive, absorbs everything)

Materials hold no mutable state; randomness comes from the generator the
caller passes to `scatter`.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union
import math

import numpy as np

from .vec3 import Vec3, Color, Point3
from .ray import Ray
from .shapes import HitRecord
from .textures import Texture, SolidColor


@dataclass
class ScatterResult:
    """Result of a material scatter operation."""
    attenuation: Color
    scattered_ray: Ray


def as_texture(value: Union[Texture, Color]) -> Texture:
    """Wrap a plain color in a SolidColor; pass textures through."""
    if isinstance(value, Texture):
        return value
    return SolidColor(value)


def refract(v: Vec3, normal: Vec3, ni_over_nt: float) -> Optional[Vec3]:
    """Refract v through a surface with Snell's law.

    Returns None on total internal reflection.
    """
    uv = v.normalize()
    dt = uv.dot(normal)
    discriminant = 1.0 - ni_over_nt * ni_over_nt * (1.0 - dt * dt)
    if discriminant > 0:
        return (uv - normal * dt) * ni_over_nt - normal * math.sqrt(discriminant)
    return None


def schlick(cosine: float, ref_idx: float) -> float:
    """Schlick's approximation of Fresnel reflectance."""
    r0 = (1 - ref_idx) / (1 + ref_idx)
    r0 = r0 * r0
    return r0 + (1 - r0) * (1 - cosine) ** 5


class Material(ABC):
    """Abstract base class for materials."""

    @abstractmethod
    def scatter(self, ray_in: Ray, hit: HitRecord, rng: np.random.Generator) -> Optional[ScatterResult]:
        """Compute the scattered ray and attenuation.

        Args:
            ray_in: The incoming ray
            hit: The intersection being shaded
            rng: Random generator for stochastic scattering

        Returns:
            ScatterResult if ray scatters, None if absorbed
        """

    def emitted(self, u: float, v: float, point: Point3) -> Color:
        """Return emitted light color. Default is no emission."""
        return Color(0, 0, 0)


class Lambertian(Material):
    """Diffuse material with Lambertian (ideal matte) scattering."""

    def __init__(self, albedo: Union[Texture, Color]):
        """Create a Lambertian material.

        Args:
            albedo: Texture, or constant RGB color with components in [0, 1]
        """
        self.albedo = as_texture(albedo)

    def scatter(self, ray_in: Ray, hit: HitRecord, rng: np.random.Generator) -> Optional[ScatterResult]:
        direction = hit.normal + Vec3.random_in_unit_sphere(rng)
        return ScatterResult(
            attenuation=self.albedo.value(hit.u, hit.v, hit.point),
            scattered_ray=Ray(hit.point, direction, ray_in.time)
        )

    def __repr__(self) -> str:
        return f"Lambertian({self.albedo!r})"


class Metal(Material):
    """Metallic material with specular reflection."""

    def __init__(self, albedo: Union[Texture, Color], fuzz: float = 0.0):
        """Create a metal material.

        Args:
            albedo: The reflection color or texture
            fuzz: Radius of the random perturbation (0 = mirror), clamped to 1
        """
        self.albedo = as_texture(albedo)
        self.fuzz = min(fuzz, 1.0)

    def scatter(self, ray_in: Ray, hit: HitRecord, rng: np.random.Generator) -> Optional[ScatterResult]:
        reflected = ray_in.direction.normalize().reflect(hit.normal)
        if self.fuzz > 0:
            reflected = reflected + Vec3.random_in_unit_sphere(rng) * self.fuzz

        return ScatterResult(
            attenuation=self.albedo.value(hit.u, hit.v, hit.point),
            scattered_ray=Ray(hit.point, reflected, ray_in.time)
        )

    def __repr__(self) -> str:
        return f"Metal({self.albedo!r}, fuzz={self.fuzz})"


class Dielectric(Material):
    """Dielectric (glass-like) material with refraction. Always colorless."""

    def __init__(self, ref_idx: float = 1.5):
        """Create a dielectric material.

        Args:
            ref_idx: Index of refraction (1.0 = air, 1.5 = glass, 2.4 = diamond)
        """
        self.ref_idx = ref_idx

    def scatter(self, ray_in: Ray, hit: HitRecord, rng: np.random.Generator) -> Optional[ScatterResult]:
        direction = ray_in.direction
        d_dot_n = direction.dot(hit.normal)

        # A positive dot product means the ray is leaving the surface
        if d_dot_n > 0:
            outward_normal = -hit.normal
            ni_over_nt = self.ref_idx
            cosine = self.ref_idx * d_dot_n / direction.length()
        else:
            outward_normal = hit.normal
            ni_over_nt = 1.0 / self.ref_idx
            cosine = -d_dot_n / direction.length()

        refracted = refract(direction, outward_normal, ni_over_nt)

        if refracted is None or rng.random() < schlick(cosine, self.ref_idx):
            scattered = Ray(hit.point, direction.reflect(hit.normal), ray_in.time)
        else:
            scattered = Ray(hit.point, refracted, ray_in.time)

        return ScatterResult(attenuation=Color(1, 1, 1), scattered_ray=scattered)

    def __repr__(self) -> str:
        return f"Dielectric({self.ref_idx})"


class DiffuseLight(Material):
    """Light-emitting material. Terminates every path that reaches it."""

    def __init__(self, emit: Union[Texture, Color]):
        """Create an emissive material.

        Args:
            emit: Emitted radiance, as a texture or a constant color
        """
        self.emit = as_texture(emit)

    def scatter(self, ray_in: Ray, hit: HitRecord, rng: np.random.Generator) -> Optional[ScatterResult]:
        return None

    def emitted(self, u: float, v: float, point: Point3) -> Color:
        return self.emit.value(u, v, point)

    def __repr__(self) -> str:
        return f"DiffuseLight({self.emit!r})"
