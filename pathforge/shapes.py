"""
Geometric shapes for the path tracer.

Each shape implements the Hittable protocol: a `hit` method returning the
intersection closest to the ray origin within [t_min, t_max], and a
`bounding_box` method returning an AABB over a time interval.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from functools import reduce
from typing import Iterator, Optional, TYPE_CHECKING
import math

from .vec3 import Vec3, Point3
from .ray import Ray

if TYPE_CHECKING:
    from .materials import Material

# Half thickness given to the flat axis of a rectangle's bounding box.
RECT_PADDING = 1e-4


@dataclass
class HitRecord:
    """Stores information about a ray-object intersection.

    Attributes:
        t: The ray parameter at intersection
        point: The intersection point in world space
        normal: Unit surface normal; its orientation is set by the primitive
            (outward for spheres, +axis for rectangles) and by FlipNormals
        material: The material at the hit point
        u, v: Texture coordinates at the hit point
    """
    t: float
    point: Point3
    normal: Vec3
    material: Optional[Material] = None
    u: float = 0.0
    v: float = 0.0


class AABB:
    """Axis-Aligned Bounding Box for acceleration structures."""

    __slots__ = ('minimum', 'maximum')

    def __init__(self, minimum: Point3, maximum: Point3):
        """Create an AABB from corner points.

        Args:
            minimum: Corner with smallest x, y, z values
            maximum: Corner with largest x, y, z values
        """
        self.minimum = minimum
        self.maximum = maximum

    def hit(self, ray: Ray, t_min: float, t_max: float) -> bool:
        """Test if ray intersects this AABB using the slab method.

        A zero direction component gives a signed infinite reciprocal, which
        either rejects the ray (origin outside that slab) or leaves the
        interval untouched (origin inside). NaN bounds never narrow it.
        """
        for i in range(3):
            d = ray.direction[i]
            inv_d = 1.0 / d if d != 0 else math.copysign(math.inf, d)
            t0 = (self.minimum[i] - ray.origin[i]) * inv_d
            t1 = (self.maximum[i] - ray.origin[i]) * inv_d

            if inv_d < 0:
                t0, t1 = t1, t0

            if t0 > t_min:
                t_min = t0
            if t1 < t_max:
                t_max = t1

            if t_max <= t_min:
                return False

        return True

    @staticmethod
    def surrounding_box(box0: AABB, box1: AABB) -> AABB:
        """Return the AABB that contains both input boxes."""
        small = Point3(
            min(box0.minimum.x, box1.minimum.x),
            min(box0.minimum.y, box1.minimum.y),
            min(box0.minimum.z, box1.minimum.z)
        )
        big = Point3(
            max(box0.maximum.x, box1.maximum.x),
            max(box0.maximum.y, box1.maximum.y),
            max(box0.maximum.z, box1.maximum.z)
        )
        return AABB(small, big)

    def __repr__(self) -> str:
        return f"AABB(min={self.minimum}, max={self.maximum})"


class Hittable(ABC):
    """Abstract base class for all objects that can be hit by rays."""

    @abstractmethod
    def hit(self, ray: Ray, t_min: float, t_max: float) -> Optional[HitRecord]:
        """Test if ray intersects this object.

        Args:
            ray: The ray to test
            t_min: Minimum t value to consider (avoid self-intersection)
            t_max: Maximum t value to consider

        Returns:
            HitRecord if intersection found, None otherwise
        """

    @abstractmethod
    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        """Get the axis-aligned box enclosing this object over [time0, time1]."""


def _sphere_uv(p: Vec3) -> tuple[float, float]:
    """UV coordinates of a point on the unit sphere centred at the origin."""
    phi = math.atan2(p.z, p.x)
    theta = math.asin(max(-1.0, min(1.0, p.y)))
    u = 1.0 - (phi + math.pi) / (2 * math.pi)
    v = (theta + math.pi / 2) / math.pi
    return u, v


def _hit_sphere(
    center: Point3,
    radius: float,
    material: Optional[Material],
    ray: Ray,
    t_min: float,
    t_max: float
) -> Optional[HitRecord]:
    """Solve |origin + t*dir - center|^2 = r^2 and return the nearer valid root.

    With a = d.d, b = oc.d and c = oc.oc - r^2 the roots are
    (-b -/+ sqrt(b^2 - ac)) / a; the nearer one is tried first.
    """
    oc = ray.origin - center
    a = ray.direction.length_squared()
    b = oc.dot(ray.direction)
    c = oc.length_squared() - radius * radius

    discriminant = b * b - a * c
    if discriminant < 0:
        return None

    sqrtd = math.sqrt(discriminant)

    for root in ((-b - sqrtd) / a, (-b + sqrtd) / a):
        if root < t_min or root > t_max:
            continue
        point = ray.at(root)
        normal = (point - center) / radius
        u, v = _sphere_uv(normal)
        return HitRecord(t=root, point=point, normal=normal, material=material, u=u, v=v)

    return None


class Sphere(Hittable):
    """A sphere defined by center and radius."""

    def __init__(self, center: Point3, radius: float, material: Optional[Material] = None):
        """Create a sphere.

        Args:
            center: Center point of the sphere
            radius: Radius of the sphere
            material: Material for shading
        """
        self.center = center
        self.radius = radius
        self.material = material

    def hit(self, ray: Ray, t_min: float, t_max: float) -> Optional[HitRecord]:
        return _hit_sphere(self.center, self.radius, self.material, ray, t_min, t_max)

    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        """Return the AABB containing this sphere; static spheres ignore time."""
        r_vec = Vec3(abs(self.radius), abs(self.radius), abs(self.radius))
        return AABB(self.center - r_vec, self.center + r_vec)

    def __repr__(self) -> str:
        return f"Sphere(center={self.center}, radius={self.radius})"


class MovingSphere(Hittable):
    """A sphere that moves linearly between two keyframes.

    Used for motion blur effects. time0 and time1 must differ.
    """

    def __init__(
        self,
        center0: Point3,
        center1: Point3,
        time0: float,
        time1: float,
        radius: float,
        material: Optional[Material] = None
    ):
        """Create a moving sphere.

        Args:
            center0: Center position at time0
            center1: Center position at time1
            time0: Time of the first keyframe
            time1: Time of the second keyframe
            radius: Radius of the sphere
            material: Material for shading
        """
        self.center0 = center0
        self.center1 = center1
        self.time0 = time0
        self.time1 = time1
        self.radius = radius
        self.material = material

    def center(self, time: float) -> Point3:
        """Get the center position at a given time (extrapolates outside the keyframes)."""
        t = (time - self.time0) / (self.time1 - self.time0)
        return self.center0 + (self.center1 - self.center0) * t

    def hit(self, ray: Ray, t_min: float, t_max: float) -> Optional[HitRecord]:
        """Test ray-sphere intersection at the ray's time."""
        return _hit_sphere(self.center(ray.time), self.radius, self.material, ray, t_min, t_max)

    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        """Return AABB that contains the sphere at both ends of the interval."""
        r_vec = Vec3(abs(self.radius), abs(self.radius), abs(self.radius))
        c0 = self.center(time0)
        c1 = self.center(time1)
        box0 = AABB(c0 - r_vec, c0 + r_vec)
        box1 = AABB(c1 - r_vec, c1 + r_vec)
        return AABB.surrounding_box(box0, box1)

    def __repr__(self) -> str:
        return (f"MovingSphere(center0={self.center0}, center1={self.center1}, "
                f"radius={self.radius})")


class AxisAlignedRect(Hittable):
    """A rectangle lying in a plane perpendicular to one coordinate axis.

    Subclasses fix which axis is constant (k_axis) and which two axes span
    the rectangle (a_axis, b_axis).
    """

    k_axis = 2
    a_axis = 0
    b_axis = 1

    def __init__(
        self,
        a0: float,
        a1: float,
        b0: float,
        b1: float,
        k: float,
        material: Optional[Material] = None
    ):
        """Create a rectangle [a0, a1] x [b0, b1] on the plane axis == k."""
        self.a0 = a0
        self.a1 = a1
        self.b0 = b0
        self.b1 = b1
        self.k = k
        self.material = material

    @property
    def normal(self) -> Vec3:
        n = [0.0, 0.0, 0.0]
        n[self.k_axis] = 1.0
        return Vec3(*n)

    def hit(self, ray: Ray, t_min: float, t_max: float) -> Optional[HitRecord]:
        d = ray.direction[self.k_axis]
        if d == 0:
            # Parallel to the plane
            return None

        t = (self.k - ray.origin[self.k_axis]) / d
        if t < t_min or t > t_max:
            return None

        a = ray.origin[self.a_axis] + t * ray.direction[self.a_axis]
        b = ray.origin[self.b_axis] + t * ray.direction[self.b_axis]
        if a < self.a0 or a > self.a1 or b < self.b0 or b > self.b1:
            return None

        return HitRecord(
            t=t,
            point=ray.at(t),
            normal=self.normal,
            material=self.material,
            u=(a - self.a0) / (self.a1 - self.a0),
            v=(b - self.b0) / (self.b1 - self.b0)
        )

    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        """Return the rectangle's box, padded on the flat axis so it has volume."""
        lo = [0.0, 0.0, 0.0]
        hi = [0.0, 0.0, 0.0]
        lo[self.a_axis], hi[self.a_axis] = self.a0, self.a1
        lo[self.b_axis], hi[self.b_axis] = self.b0, self.b1
        lo[self.k_axis] = self.k - RECT_PADDING
        hi[self.k_axis] = self.k + RECT_PADDING
        return AABB(Point3(*lo), Point3(*hi))

    def __repr__(self) -> str:
        return (f"{type(self).__name__}({self.a0}, {self.a1}, {self.b0}, {self.b1}, "
                f"k={self.k})")


class XYRect(AxisAlignedRect):
    """Rectangle x0..x1, y0..y1 on the plane z = k, normal +z."""

    k_axis, a_axis, b_axis = 2, 0, 1


class XZRect(AxisAlignedRect):
    """Rectangle x0..x1, z0..z1 on the plane y = k, normal +y."""

    k_axis, a_axis, b_axis = 1, 0, 2


class YZRect(AxisAlignedRect):
    """Rectangle y0..y1, z0..z1 on the plane x = k, normal +x."""

    k_axis, a_axis, b_axis = 0, 1, 2


class FlipNormals(Hittable):
    """Wraps another hittable and reverses the normals it reports."""

    def __init__(self, obj: Hittable):
        self.obj = obj

    def hit(self, ray: Ray, t_min: float, t_max: float) -> Optional[HitRecord]:
        hit_record = self.obj.hit(ray, t_min, t_max)
        if hit_record is None:
            return None
        return replace(hit_record, normal=-hit_record.normal)

    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        return self.obj.bounding_box(time0, time1)

    def __repr__(self) -> str:
        return f"FlipNormals({self.obj!r})"


class HittableList(Hittable):
    """A collection of hittable objects searched linearly."""

    def __init__(self, objects: Optional[list[Hittable]] = None):
        self.objects: list[Hittable] = objects if objects is not None else []

    def add(self, obj: Hittable) -> None:
        """Add an object to the list."""
        self.objects.append(obj)

    def clear(self) -> None:
        """Remove all objects."""
        self.objects.clear()

    def hit(self, ray: Ray, t_min: float, t_max: float) -> Optional[HitRecord]:
        """Find the closest intersection among all objects."""
        closest_hit: Optional[HitRecord] = None
        closest_t = t_max

        for obj in self.objects:
            hit_record = obj.hit(ray, t_min, closest_t)
            if hit_record is not None:
                closest_hit = hit_record
                closest_t = hit_record.t

        return closest_hit

    def bounding_box(self, time0: float = 0.0, time1: float = 1.0) -> AABB:
        """Return the AABB containing all objects. The list must not be empty."""
        return reduce(
            AABB.surrounding_box,
            (obj.bounding_box(time0, time1) for obj in self.objects)
        )

    def __len__(self) -> int:
        return len(self.objects)

    def __iter__(self) -> Iterator[Hittable]:
        return iter(self.objects)


def make_box(p0: Point3, p1: Point3, material: Optional[Material] = None) -> HittableList:
    """Build an axis-aligned box out of six rectangles.

    The faces on the maximum side of each axis keep their +axis normals;
    the faces on the minimum side are flipped so every normal points out.
    """
    lo = Point3(min(p0.x, p1.x), min(p0.y, p1.y), min(p0.z, p1.z))
    hi = Point3(max(p0.x, p1.x), max(p0.y, p1.y), max(p0.z, p1.z))
    return HittableList([
        XYRect(lo.x, hi.x, lo.y, hi.y, hi.z, material),
        FlipNormals(XYRect(lo.x, hi.x, lo.y, hi.y, lo.z, material)),
        XZRect(lo.x, hi.x, lo.z, hi.z, hi.y, material),
        FlipNormals(XZRect(lo.x, hi.x, lo.z, hi.z, lo.y, material)),
        YZRect(lo.y, hi.y, lo.z, hi.z, hi.x, material),
        FlipNormals(YZRect(lo.y, hi.y, lo.z, hi.z, lo.x, material)),
    ])
