#!/usr/bin/env python3
"""
PathForge - A Python Path Tracing Renderer

Main entry point for rendering scenes, running a render worker, or
coordinating a distributed render.
"""

import argparse
import logging
import sys
from pathlib import Path

import numpy as np

from pathforge.distributed import Coordinator, RenderJobError, make_worker_job, run_worker
from pathforge.renderer import Renderer, RenderSettings, save_image
from pathforge.scene_parser import SceneParser, SceneParseError, load_data
from pathforge.shapes import HittableList
from pathforge.bvh import BVH

logger = logging.getLogger('pathforge')


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='PathForge - A Python Path Tracing Renderer',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  python main.py scenes/spheres.yml --output render.png
  python main.py scenes/spheres.yml --samples 200 --seed 42 --output render.ppm
  python main.py --worker --port 8000
  python main.py scenes/spheres.yml --coordinator http://localhost:8000/render
        '''
    )

    parser.add_argument('scene', nargs='?', help='Scene file (YAML or JSON)')
    parser.add_argument('-o', '--output', type=str, default='render.png',
                        help='Output filename, .ppm or any Pillow format (default: render.png)')
    parser.add_argument('--samples', type=int, help='Samples per pixel (overrides the scene)')
    parser.add_argument('--depth', type=int, default=50, help='Max ray depth (default: 50)')
    parser.add_argument('--threads', type=int, default=0, help='Number of threads (0=auto)')
    parser.add_argument('--seed', type=int, help='Random seed for reproducible renders')
    parser.add_argument('--background', choices=['gradient', 'flat'], default='gradient',
                        help='Sky shading for rays that escape the scene (default: gradient)')
    group = parser.add_mutually_exclusive_group()
    group.add_argument('--bvh', dest='accelerate', action='store_const', const=True,
                       help='Wrap the scene objects in a BVH')
    group.add_argument('--list', dest='accelerate', action='store_const', const=False,
                       help='Flatten a top-level BVH into a plain list')
    parser.add_argument('--worker', action='store_true', help='Run a render worker')
    parser.add_argument('--host', default='localhost', help='Worker host to bind to')
    parser.add_argument('--port', type=int, default=8000, help='Worker port to listen on')
    parser.add_argument('--coordinator', metavar='URL',
                        help='Distribute the render to the worker at URL')
    parser.add_argument('--lines-per-job', type=int, metavar='N',
                        help='With --coordinator, split the image into bands of N rows')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(name)s %(levelname)s: %(message)s'
    )

    settings = RenderSettings(
        max_depth=args.depth,
        num_threads=args.threads,
        seed=args.seed,
        background=args.background
    )

    if args.worker:
        run_worker(args.host, args.port, settings)
        return 0

    if not args.scene:
        parser.error('a scene file is required unless --worker is given')
    if args.lines_per_job is not None and args.lines_per_job <= 0:
        parser.error('--lines-per-job must be positive')

    try:
        data = load_data(args.scene)
        if args.samples is not None:
            data = make_worker_job(data, args.samples)

        if args.coordinator:
            rendered = Coordinator(
                args.coordinator, lines_per_job=args.lines_per_job, seed=args.seed
            ).render(data)
        else:
            scene = SceneParser(args.seed, Path(args.scene).parent).parse_dict(data)
            if args.accelerate is True and not isinstance(scene.objects, BVH):
                objects = list(scene.objects) if isinstance(scene.objects, HittableList) else [scene.objects]
                scene.objects = BVH(objects, 0.0, 1.0, np.random.default_rng(scene.seed))
            elif args.accelerate is False and isinstance(scene.objects, BVH):
                scene.objects = HittableList(scene.objects.objects)

            renderer = Renderer(settings)
            last_progress = [0]

            def progress_callback(progress: float):
                pct = int(progress * 100)
                if pct >= last_progress[0] + 10:
                    last_progress[0] = pct
                    logger.info("Rendering: %d%%", pct)

            renderer.set_progress_callback(progress_callback)
            rendered = renderer.render_scene(scene)
    except (SceneParseError, RenderJobError) as e:
        logger.error("%s", e)
        return 1

    # Ensure output directory exists
    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    save_image(rendered.pixels, rendered.image.width, rendered.image.rendered_height, str(output_path))
    return 0


if __name__ == '__main__':
    sys.exit(main())
