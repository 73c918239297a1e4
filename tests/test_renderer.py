"""Tests for Renderer class."""

import os
from dataclasses import replace
import pytest
import numpy as np
from PIL import Image

from pathforge.vec3 import Vec3, Point3, Color
from pathforge.ray import Ray
from pathforge.shapes import AABB, HitRecord, Hittable, Sphere, HittableList
from pathforge.materials import Material, ScatterResult, Lambertian, DiffuseLight
from pathforge.scene import Scene, ImageSpec, ImageSlice, CameraSpec, Rendered
from pathforge.renderer import (
    Renderer, RenderSettings, background_color, ray_color, to_color,
    pixels_to_render, pixels_to_array, format_ppm, save_image
)


class SpyMaterial(Material):
    """Emits a constant color and records every scatter call."""

    def __init__(self, emit=Color(0, 0, 0), attenuation=Color(0.5, 0.5, 0.5)):
        self.emit = emit
        self.attenuation = attenuation
        self.calls = 0

    def scatter(self, ray_in, hit, rng):
        self.calls += 1
        return ScatterResult(self.attenuation, Ray(hit.point, Vec3(0, 1, 0), ray_in.time))

    def emitted(self, u, v, point):
        return self.emit


class Everywhere(Hittable):
    """Hit by every ray at t = 1."""

    def __init__(self, material):
        self.material = material

    def hit(self, ray, t_min, t_max):
        return HitRecord(t=1.0, point=ray.at(1.0), normal=Vec3(0, 1, 0), material=self.material)

    def bounding_box(self, time0=0.0, time1=1.0):
        return AABB(Point3(-1e9, -1e9, -1e9), Point3(1e9, 1e9, 1e9))


def make_scene(objects, width=8, height=6, samples=2, image_slice=None, sky=Color(0.5, 0.7, 1.0)):
    return Scene(
        image=ImageSpec(width, height, samples, image_slice),
        camera=CameraSpec(look_from=Point3(0, 0, 0), look_at=Point3(0, 0, -1), fov=90),
        objects=objects,
        sky_color=sky
    )


def sphere_scene(**kwargs):
    world = HittableList([
        Sphere(Point3(0, 0, -3), 1.0, Lambertian(Color(0.8, 0.3, 0.3))),
        Sphere(Point3(0, -101, -3), 100.0, Lambertian(Color(0.5, 0.5, 0.5))),
    ])
    return make_scene(world, **kwargs)


class TestRenderSettings:
    """Test RenderSettings configuration."""

    def test_default_values(self):
        settings = RenderSettings()
        assert settings.max_depth == 50
        assert settings.t_min == 0.001
        assert settings.seed is None
        assert settings.background == 'gradient'

    def test_auto_thread_detection(self):
        settings = RenderSettings(num_threads=0)
        assert settings.num_threads == (os.cpu_count() or 4)

    def test_unknown_background(self):
        with pytest.raises(ValueError):
            RenderSettings(background='starfield')


class TestToColor:
    """Test the gamma-corrected 8-bit conversion."""

    def test_gamma_transform(self):
        assert to_color(Color(0, 0.5, 1.0)) == (0, 181, 255)

    def test_clamps(self):
        assert to_color(Color(-1, 2, 0.25)) == (0, 255, 127)

    def test_returns_ints(self):
        assert all(isinstance(c, int) for c in to_color(Color(0.3, 0.6, 0.9)))


class TestBackground:
    """Test sky shading for escaping rays."""

    def test_gradient(self):
        sky = Color(0.5, 0.7, 1.0)
        up = background_color(Ray(Point3(0, 0, 0), Vec3(0, 2, 0)), sky)
        down = background_color(Ray(Point3(0, 0, 0), Vec3(0, -3, 0)), sky)
        level = background_color(Ray(Point3(0, 0, 0), Vec3(1, 0, 0)), sky)

        assert up == sky
        assert down == Color(1, 1, 1)
        assert level == Color(0.75, 0.85, 1.0)

    def test_flat(self):
        sky = Color(0.1, 0.2, 0.3)
        down = background_color(Ray(Point3(0, 0, 0), Vec3(0, -1, 0)), sky, 'flat')
        assert down == sky


class TestRayColor:
    """Test the path integrator."""

    def test_miss_returns_background(self):
        rng = np.random.default_rng(0)
        world = HittableList([Sphere(Point3(0, 0, -5), 1.0)])
        color = ray_color(Ray(Point3(0, 0, 0), Vec3(0, 1, 0)), world, rng)
        assert color == Color(0.5, 0.7, 1.0)

    def test_missing_material_shades_normal(self):
        rng = np.random.default_rng(0)
        world = HittableList([Sphere(Point3(0, 0, -5), 1.0)])
        color = ray_color(Ray(Point3(0, 0, 0), Vec3(0, 0, -1)), world, rng)
        # Normal (0, 0, 1) maps to (0.5, 0.5, 1)
        assert color == Color(0.5, 0.5, 1.0)

    def test_depth_cutoff_never_scatters(self):
        spy = SpyMaterial(emit=Color(0.2, 0.2, 0.2))
        color = ray_color(Ray(Point3(0, 0, 0), Vec3(0, 0, -1)), Everywhere(spy),
                          np.random.default_rng(0), depth=50)

        assert spy.calls == 0
        assert color == Color(0.2, 0.2, 0.2)

    def test_scatters_once_per_level(self):
        spy = SpyMaterial(emit=Color(1, 1, 1))
        color = ray_color(Ray(Point3(0, 0, 0), Vec3(0, 0, -1)), Everywhere(spy),
                          np.random.default_rng(0), max_depth=50)

        assert spy.calls == 50
        # emitted + 0.5 * (emitted + 0.5 * (...)) over 51 hits
        expected = sum(0.5 ** k for k in range(51))
        assert color.x == pytest.approx(expected)

    def test_custom_max_depth(self):
        spy = SpyMaterial()
        ray_color(Ray(Point3(0, 0, 0), Vec3(0, 0, -1)), Everywhere(spy),
                  np.random.default_rng(0), max_depth=3)
        assert spy.calls == 3

    def test_absorbed_path_returns_emission(self):
        world = Everywhere(DiffuseLight(Color(2, 3, 4)))
        color = ray_color(Ray(Point3(0, 0, 0), Vec3(0, 0, -1)), world, np.random.default_rng(0))
        assert color == Color(2, 3, 4)

    def test_attenuation_multiplies_background(self):
        # One bounce off a perfect upward scatterer, then the sky
        class Bounce(Hittable):
            def __init__(self):
                self.material = SpyMaterial(attenuation=Color(0.5, 0.25, 1.0))

            def hit(self, ray, t_min, t_max):
                if ray.direction.z >= 0:
                    return None
                return HitRecord(t=1.0, point=ray.at(1.0), normal=Vec3(0, 1, 0), material=self.material)

            def bounding_box(self, time0=0.0, time1=1.0):
                return AABB(Point3(-1, -1, -1), Point3(1, 1, 1))

        color = ray_color(Ray(Point3(0, 0, 0), Vec3(0, 0, -1)), Bounce(),
                          np.random.default_rng(0), sky_color=Color(0.4, 0.4, 0.4))
        assert color == Color(0.2, 0.1, 0.4)


class TestPixelsToRender:
    """Test pixel ordering."""

    def test_rows_top_down(self):
        coords = pixels_to_render(ImageSpec(3, 2, 1))
        assert coords == [(0, 1), (1, 1), (2, 1), (0, 0), (1, 0), (2, 0)]

    def test_slice(self):
        coords = pixels_to_render(ImageSpec(3, 4, 1, ImageSlice(top=1, height=2)))
        assert coords == [(0, 2), (1, 2), (2, 2), (0, 1), (1, 1), (2, 1)]

    def test_count(self):
        image = ImageSpec(5, 7, 1, ImageSlice(top=3, height=4))
        assert len(pixels_to_render(image)) == image.num_pixels == 20


class TestRendererBasic:
    """Test basic renderer functionality."""

    def test_render_produces_image(self):
        renderer = Renderer(RenderSettings(max_depth=2, num_threads=1, seed=1))
        pixels = renderer.render(sphere_scene())

        assert len(pixels) == 8 * 6
        for pixel in pixels:
            assert len(pixel) == 3
            assert all(0 <= c <= 255 for c in pixel)

    def test_flat_sky(self):
        renderer = Renderer(RenderSettings(num_threads=1, seed=1, background='flat'))
        scene = make_scene(HittableList([Sphere(Point3(0, 0, 50), 1.0)]), sky=Color(0.25, 0.25, 0.25))

        assert set(renderer.render(scene)) == {(127, 127, 127)}

    def test_sky_gradient(self):
        renderer = Renderer(RenderSettings(num_threads=1, seed=1))
        scene = make_scene(HittableList([Sphere(Point3(0, 0, 50), 1.0)]), width=4, height=20)
        pixels = renderer.render(scene)

        # Top row is bluer (less red) than the bottom row
        assert pixels[0][0] < pixels[-1][0]
        assert pixels[0][2] == 255

    def test_emissive_object_visible(self):
        renderer = Renderer(RenderSettings(num_threads=1, seed=1))
        # Camera sits inside a large glowing sphere
        scene = make_scene(Sphere(Point3(0, 0, 0), 100.0, DiffuseLight(Color(1, 0, 0))))

        assert set(renderer.render(scene)) == {(255, 0, 0)}

    def test_render_scene(self):
        renderer = Renderer(RenderSettings(max_depth=2, num_threads=1, seed=1))
        scene = sphere_scene()
        rendered = renderer.render_scene(scene)

        assert isinstance(rendered, Rendered)
        assert rendered.image == scene.image
        assert len(rendered.pixels) == scene.image.num_pixels

    def test_camera_for(self):
        scene = Scene(
            image=ImageSpec(200, 100, 1),
            camera=CameraSpec(look_from=Point3(0, 0, 3), look_at=Point3(0, 0, -1), fov=90, aperture=0.5),
            objects=HittableList()
        )
        camera = Renderer.camera_for(scene)

        assert camera.lens_radius == 0.25
        assert camera.shutter_open == 0.0
        assert camera.shutter_close == 1.0
        # Focus plane at |look_from - look_at| = 4, aspect 2
        assert camera.lower_left_corner == Point3(-8, -4, -1)


class TestRendererDeterminism:
    """Test seeded, thread-independent rendering."""

    def test_same_seed_same_image(self):
        scene = sphere_scene(samples=3)
        a = Renderer(RenderSettings(max_depth=5, num_threads=1, seed=42)).render(scene)
        b = Renderer(RenderSettings(max_depth=5, num_threads=1, seed=42)).render(scene)
        assert a == b

    def test_thread_count_does_not_change_result(self):
        scene = sphere_scene(samples=3)
        single = Renderer(RenderSettings(max_depth=5, num_threads=1, seed=7)).render(scene)
        multi = Renderer(RenderSettings(max_depth=5, num_threads=4, seed=7)).render(scene)
        assert single == multi

    def test_slice_matches_full_render(self):
        settings = RenderSettings(max_depth=5, num_threads=2, seed=3)
        full = Renderer(settings).render(sphere_scene(width=4, height=6))
        part = Renderer(settings).render(
            sphere_scene(width=4, height=6, image_slice=ImageSlice(top=2, height=3))
        )

        assert len(part) == 12
        assert part == full[2 * 4:5 * 4]

    def test_scene_seed_used_without_settings_seed(self):
        settings = RenderSettings(max_depth=5, num_threads=1)
        scene = replace(sphere_scene(samples=3), seed=11)
        assert Renderer(settings).render(scene) == Renderer(settings).render(scene)

    def test_settings_seed_wins_over_scene_seed(self):
        scene = sphere_scene(samples=3)
        by_settings = Renderer(RenderSettings(max_depth=5, num_threads=1, seed=11)).render(scene)
        by_scene = Renderer(RenderSettings(max_depth=5, num_threads=1, seed=11)).render(
            replace(scene, seed=99)
        )
        assert by_settings == by_scene

    def test_jobs_trace_independent_samples(self):
        settings = RenderSettings(max_depth=5, num_threads=1, seed=7)
        scene = sphere_scene(samples=1)
        first = Renderer(settings).render(replace(scene, job=0))
        second = Renderer(settings).render(replace(scene, job=1))
        again = Renderer(settings).render(replace(scene, job=1))

        assert first != second
        assert second == again

    def test_row_seeds_cover_full_image(self):
        renderer = Renderer(RenderSettings(seed=1))
        scene = sphere_scene(width=4, height=6, image_slice=ImageSlice(top=2, height=3))
        assert len(renderer.row_seeds(scene)) == 6


class TestRendererCallbacks:
    """Test progress and pixel callbacks."""

    def test_progress_callback(self):
        renderer = Renderer(RenderSettings(max_depth=2, num_threads=1, seed=1))
        progress = []
        renderer.set_progress_callback(progress.append)
        renderer.render(sphere_scene())

        assert len(progress) == 6
        assert progress[-1] == 1.0
        assert progress == sorted(progress)

    def test_pixel_callback(self):
        renderer = Renderer(RenderSettings(max_depth=2, num_threads=1, seed=1))
        seen = {}
        renderer.set_pixel_callback(lambda location, color: seen.__setitem__(location, color))
        pixels = renderer.render(sphere_scene())

        assert len(seen) == 8 * 6
        assert seen[(0, 5)] == pixels[0]
        assert seen[(7, 0)] == pixels[-1]


class TestImageOutput:
    """Test image encoding and saving."""

    def test_pixels_to_array(self):
        arr = pixels_to_array([(1, 2, 3), (4, 5, 6)], 2, 1)
        assert arr.shape == (1, 2, 3)
        assert arr.dtype == np.uint8
        assert arr[0, 1].tolist() == [4, 5, 6]

    def test_format_ppm(self):
        assert format_ppm([(0, 181, 255), (1, 2, 3)], 2, 1) == "P3\n2 1\n255\n0 181 255\n1 2 3\n"

    def test_save_ppm(self, tmp_path):
        path = tmp_path / "out.ppm"
        save_image([(0, 181, 255), (1, 2, 3)], 2, 1, str(path))
        assert path.read_text() == "P3\n2 1\n255\n0 181 255\n1 2 3\n"

    def test_save_png(self, tmp_path):
        path = tmp_path / "out.png"
        pixels = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (10, 20, 30)]
        save_image(pixels, 2, 2, str(path))

        with Image.open(path) as img:
            assert img.size == (2, 2)
            assert img.mode == 'RGBA'
            assert img.getpixel((0, 0)) == (255, 0, 0, 255)
            assert img.getpixel((1, 1)) == (10, 20, 30, 255)
