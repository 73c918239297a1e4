"""
Distributed rendering over HTTP.

A render is split into independent jobs that each trace the whole image
(or one band of rows) with a few samples per pixel; the coordinator posts
the jobs to a worker URL in parallel and averages the returned pixel
buffers.

Usage:
    python main.py --worker --port 8000
    python main.py scene.yml --coordinator http://localhost:8000/render
    python main.py scene.yml --coordinator http://localhost:8000/render --lines-per-job 5
"""

from __future__ import annotations

import copy
import json
import logging
import math
import urllib.error
import urllib.request
from concurrent.futures import ThreadPoolExecutor
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

import numpy as np

from .renderer import Renderer, RenderSettings
from .scene import ImageSlice, ImageSpec, Pixel, Rendered
from .scene_parser import SceneParseError, SceneParser, parse_image, parse_rendered

logger = logging.getLogger(__name__)

SAMPLES_PER_WORKER = 5


class RenderJobError(Exception):
    """A distributed render job failed."""
    pass


def worker_count(samples: int, samples_per_worker: int = SAMPLES_PER_WORKER) -> int:
    """Number of jobs needed to cover `samples` samples per pixel."""
    return math.ceil(samples / samples_per_worker)


def make_worker_job(scene_data: Dict[str, Any], samples: int = SAMPLES_PER_WORKER,
                    job: Optional[int] = None, image_slice: Optional[ImageSlice] = None) -> Dict[str, Any]:
    """Copy a scene description with its sample count replaced.

    Args:
        scene_data: Scene description dictionary (left untouched)
        samples: Samples per pixel for the job
        job: Job index; jobs with different indices trace independent samples
        image_slice: Band of rows to render instead of the scene's own
    """
    job_data = copy.deepcopy(scene_data)
    job_data['image'] = dict(job_data['image'], samples=samples)
    if image_slice is not None:
        job_data['image']['slice'] = {'top': image_slice.top, 'height': image_slice.height}
    if job is not None:
        job_data['job'] = job
    return job_data


def image_bands(image: ImageSpec, lines_per_job: int) -> List[ImageSlice]:
    """Split the rows an image renders into bands of at most `lines_per_job` rows, top first."""
    if lines_per_job <= 0:
        raise ValueError(f"lines_per_job must be positive, got {lines_per_job}")
    start = image.slice.top if image.slice is not None else 0
    end = start + image.rendered_height
    return [
        ImageSlice(top=top, height=min(lines_per_job, end - top))
        for top in range(start, end, lines_per_job)
    ]


def average_pixels(buffers: Sequence[Sequence[Pixel]]) -> List[Pixel]:
    """Average pixel buffers channel by channel, rounding down.

    Every buffer carries the same weight. All buffers must hold the same
    number of pixels.
    """
    if not buffers:
        raise RenderJobError("No pixel buffers to average")
    count = len(buffers)
    size = len(buffers[0])
    for buffer in buffers:
        if len(buffer) != size:
            raise RenderJobError(f"Pixel buffers differ in size: {len(buffer)} != {size}")

    result = []
    for pixels in zip(*buffers):
        r = sum(p[0] for p in pixels) // count
        g = sum(p[1] for p in pixels) // count
        b = sum(p[2] for p in pixels) // count
        result.append((r, g, b))
    return result


def post_job(url: str, job: Dict[str, Any], timeout: Optional[float] = None) -> Rendered:
    """Send one job to a worker and parse its response."""
    body = json.dumps(job).encode('utf-8')
    request = urllib.request.Request(
        url, data=body, headers={'Content-Type': 'application/json'}, method='POST'
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            data = json.loads(response.read().decode('utf-8'))
    except (urllib.error.URLError, OSError, json.JSONDecodeError) as e:
        raise RenderJobError(f"Render job to {url} failed: {e}") from e

    try:
        return parse_rendered(data)
    except SceneParseError as e:
        raise RenderJobError(f"Worker at {url} sent an invalid response: {e}") from e


class Coordinator:
    """Fans a scene out to a render worker and combines the results.

    Every job carries the same scene seed, so all workers build the same
    noise tables and BVH, plus its own job index, so every job traces
    independent samples. With `lines_per_job` the rows are also split into
    bands; each band is averaged on its own and the bands are joined top
    to bottom.
    """

    def __init__(self, url: str, samples_per_worker: int = SAMPLES_PER_WORKER,
                 timeout: Optional[float] = None, lines_per_job: Optional[int] = None,
                 seed: Optional[int] = None, max_workers: Optional[int] = None):
        if lines_per_job is not None and lines_per_job <= 0:
            raise ValueError(f"lines_per_job must be positive, got {lines_per_job}")
        self.url = url
        self.samples_per_worker = samples_per_worker
        self.timeout = timeout
        self.lines_per_job = lines_per_job
        self.seed = seed
        self.max_workers = max_workers

    def scene_seed(self, scene_data: Dict[str, Any]) -> int:
        """The seed every job shares: ours, else the scene's, else a fresh one."""
        if self.seed is not None:
            return self.seed
        if scene_data.get('seed') is not None:
            return scene_data['seed']
        return int(np.random.default_rng().integers(2 ** 63))

    def render(self, scene_data: Dict[str, Any]) -> Rendered:
        """Render a scene description on the workers.

        Any failed job fails the whole render.

        Raises:
            RenderJobError: if a job fails or returns an unexpected image
        """
        try:
            image = parse_image(scene_data['image'])
        except (KeyError, TypeError, SceneParseError) as e:
            raise RenderJobError(f"Cannot distribute scene: {e}") from e

        # None keeps the rows the scene itself asks for
        bands: List[Optional[ImageSlice]] = [image.slice]
        if self.lines_per_job is not None:
            bands = list(image_bands(image, self.lines_per_job))

        num_jobs = worker_count(image.samples, self.samples_per_worker)
        seeded = dict(scene_data, seed=self.scene_seed(scene_data))
        jobs = [
            make_worker_job(seeded, self.samples_per_worker, index, band)
            for band in bands
            for index in range(num_jobs)
        ]
        logger.info("Sending %d jobs of %d samples (%d bands) to %s",
                    len(jobs), self.samples_per_worker, len(bands), self.url)

        with ThreadPoolExecutor(max_workers=self.max_workers or len(jobs)) as executor:
            futures = [executor.submit(post_job, self.url, job, self.timeout) for job in jobs]
            results = [future.result() for future in futures]

        pixels: List[Pixel] = []
        for n, band in enumerate(bands):
            band_results = results[n * num_jobs:(n + 1) * num_jobs]
            expected = image.width * (band.height if band is not None else image.rendered_height)
            for result in band_results:
                if result.image.num_pixels != expected:
                    raise RenderJobError(
                        f"Worker returned {result.image.num_pixels} pixels, expected {expected}"
                    )
            pixels.extend(average_pixels([r.pixels for r in band_results]))

        logger.info("All %d jobs finished", len(jobs))
        return Rendered(image=image, pixels=pixels)


class RenderWorkerHandler(BaseHTTPRequestHandler):
    """HTTP request handler that renders posted scene descriptions."""

    settings: RenderSettings = RenderSettings(num_threads=1)

    def do_POST(self):
        """Handle POST requests."""
        path = urlparse(self.path).path
        if path != '/render':
            self.send_error(404)
            return

        content_length = int(self.headers.get('Content-Length', 0))
        body = self.rfile.read(content_length)
        logger.info("Received render request (%d bytes)", len(body))

        try:
            data = json.loads(body) if body else {}
            scene = SceneParser().parse_dict(data)
        except (json.JSONDecodeError, SceneParseError) as e:
            logger.warning("Rejected render request: %s", e)
            self._send_json({'error': str(e)}, status=400)
            return

        rendered = Renderer(self.settings).render_scene(scene)
        self._send_json(rendered.to_dict())

    def _send_json(self, data: Any, status: int = 200):
        """Send JSON response."""
        response = json.dumps(data).encode('utf-8')
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(response)))
        self.end_headers()
        self.wfile.write(response)

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


def make_worker_server(host: str = 'localhost', port: int = 8000,
                       settings: Optional[RenderSettings] = None) -> ThreadingHTTPServer:
    """Create (but do not start) a render worker server."""
    handler = RenderWorkerHandler
    if settings is not None:
        handler = type('ConfiguredRenderWorkerHandler', (RenderWorkerHandler,), {'settings': settings})
    return ThreadingHTTPServer((host, port), handler)


def run_worker(host: str = 'localhost', port: int = 8000,
               settings: Optional[RenderSettings] = None) -> None:
    """Run a render worker until interrupted."""
    server = make_worker_server(host, port, settings)
    logger.info("Render worker listening on http://%s:%d/render", host, server.server_address[1])

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.server_close()
