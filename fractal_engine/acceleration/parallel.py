"""
Tile-parallel frame rendering on a thread pool.

The frame is split into rectangular tiles; each tile is rendered by the
nogil numba tile kernel on a worker thread, writing its own region of a
shared output buffer. A dispatcher cancels superseded frames at tile
granularity.
"""

import os
import time
import threading
import numpy as np
from typing import Callable, List, Optional
import logging
from dataclasses import dataclass, replace
from concurrent.futures import ThreadPoolExecutor, as_completed

from ..core.fractal_types import FrameRequest
from .numba_backend import allocate_frame, kernel_arguments, render_tile

logger = logging.getLogger(__name__)


class FrameCancelled(RuntimeError):
    """Raised when a frame is superseded by a newer one before it completes."""


@dataclass
class TileSpec:
    """Specification for a single tile in parallel rendering."""
    tile_id: int
    x_start: int
    x_end: int
    y_start: int
    y_end: int
    width: int
    height: int


def create_tile_grid(width: int, height: int, tile_size: int = 64) -> List[TileSpec]:
    """
    Create a grid of tiles for parallel processing.

    Args:
        width: Total image width
        height: Total image height
        tile_size: Target tile size (pixels)

    Returns:
        List of TileSpec objects covering the image exactly once
    """
    if tile_size <= 0:
        raise ValueError("tile_size must be positive")

    tiles = []
    tile_id = 0

    for y in range(0, height, tile_size):
        for x in range(0, width, tile_size):
            x_end = min(x + tile_size, width)
            y_end = min(y + tile_size, height)

            tiles.append(TileSpec(
                tile_id=tile_id,
                x_start=x,
                x_end=x_end,
                y_start=y,
                y_end=y_end,
                width=x_end - x,
                height=y_end - y
            ))
            tile_id += 1

    logger.info(f"Created {len(tiles)} tiles of target size {tile_size}x{tile_size}")
    return tiles


def get_optimal_worker_count() -> int:
    """Number of worker threads for tile rendering."""
    return max(1, os.cpu_count() or 1)


class ParallelAccelerator:
    """Thread-pool tile renderer."""

    def __init__(self, max_workers: Optional[int] = None, tile_size: int = 64):
        """
        Initialize the accelerator.

        Args:
            max_workers: Number of worker threads (None for CPU count)
            tile_size: Size of tiles for parallel processing
        """
        self.max_workers = get_optimal_worker_count() if max_workers is None else max(1, max_workers)
        self.tile_size = tile_size
        logger.debug(f"Parallel accelerator: {self.max_workers} threads, "
                     f"{tile_size}x{tile_size} tiles")

    def render(self, request: FrameRequest,
               should_continue: Optional[Callable[[], bool]] = None) -> np.ndarray:
        """
        Render a frame tile by tile.

        Args:
            request: Frame to render
            should_continue: Polled before each tile starts; returning False
                skips the remaining tiles and raises FrameCancelled

        Returns:
            (H, W, 4) uint8 RGBA buffer
        """
        start_time = time.time()
        out = allocate_frame(request)
        args = kernel_arguments(request)
        tiles = create_tile_grid(request.width, request.height, self.tile_size)

        def work(tile: TileSpec) -> bool:
            if should_continue is not None and not should_continue():
                return False
            tile_start = time.time()
            render_tile(*args, tile.x_start, tile.x_end, tile.y_start, tile.y_end, out)
            logger.debug(f"Tile {tile.tile_id} done in {time.time() - tile_start:.3f}s")
            return True

        skipped = 0
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(work, tile) for tile in tiles]
            for future in as_completed(futures):
                if not future.result():
                    skipped += 1

        if skipped:
            raise FrameCancelled(f"Frame {request.frame_id} superseded, "
                                 f"{skipped}/{len(tiles)} tiles skipped")

        logger.info(f"Rendered {request.kind.name} {request.width}x{request.height} "
                    f"in {time.time() - start_time:.2f}s")
        return out


class FrameDispatcher:
    """
    Frame-granular cancellation on top of a tile renderer.

    Every submitted frame gets a new generation number; a frame whose
    generation is no longer current when one of its tiles is about to start
    is abandoned with FrameCancelled.
    """

    def __init__(self, accelerator: Optional[ParallelAccelerator] = None):
        self.accelerator = accelerator or ParallelAccelerator()
        self._lock = threading.Lock()
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def cancel(self) -> None:
        """Supersede the in-flight frame without submitting a new one."""
        with self._lock:
            self._generation += 1

    def submit(self, request: FrameRequest) -> np.ndarray:
        """
        Render ``request``, superseding any frame still in flight.

        Raises:
            FrameCancelled: If a newer frame was submitted before this one finished
        """
        with self._lock:
            self._generation += 1
            generation = self._generation
        request = replace(request, frame_id=generation)

        def is_current() -> bool:
            return self._generation == generation

        out = self.accelerator.render(request, should_continue=is_current)
        if not is_current():
            raise FrameCancelled(f"Frame {generation} superseded after completion")
        return out
