"""
Procedural landscape compositor.

Every layer (terrain, water, vegetation, urban areas, roads, buildings and
clouds) is a pure function of a world-space position, built from a hashed
value noise and its fractal Brownian motion sum. The compositor stacks the
layers back to front and applies a simple directional light.
"""

import math
import numpy as np
from numba import njit
from enum import IntEnum
from dataclasses import dataclass
from typing import Tuple
import logging

logger = logging.getLogger(__name__)


class Biome(IntEnum):
    """Terrain class by height."""

    DEEP_WATER = 0
    SHALLOW_WATER = 1
    BEACH = 2
    GRASS = 3
    GRASSLAND = 4
    ROCK = 5
    HIGH_ROCK = 6
    SNOW = 7


class RoadClass(IntEnum):
    NONE = 0
    HIGHWAY = 1
    ARTERIAL = 2
    LOCAL = 3


WATER_THRESHOLD = 0.3
CITY_SPACING = 4.0
CITY_RADIUS = 0.4
HIGHWAY_THRESHOLD = 0.4
ARTERIAL_THRESHOLD = 0.3
LOCAL_THRESHOLD = 0.2


def _normalized(x, y, z):
    length = math.sqrt(x * x + y * y + z * z)
    return x / length, y / length, z / length


SUN = _normalized(1.0, 1.0, 0.6)


@njit(cache=True, nogil=True)
def fract(x):
    return x - math.floor(x)


@njit(cache=True, nogil=True)
def clamp01(x):
    return min(max(x, 0.0), 1.0)


@njit(cache=True, nogil=True)
def smoothstep(edge0, edge1, x):
    t = clamp01((x - edge0) / (edge1 - edge0))
    return t * t * (3.0 - 2.0 * t)


@njit(cache=True, nogil=True)
def mix(a, b, t):
    return a + (b - a) * t


@njit(cache=True, nogil=True)
def hash21(x, y):
    """Pseudo-random scalar in [0, 1) for a 2D position."""
    p0 = fract(x * 0.1031)
    p1 = fract(y * 0.1031)
    p2 = fract(x * 0.1031)
    d = p0 * (p1 + 33.33) + p1 * (p2 + 33.33) + p2 * (p0 + 33.33)
    p0 += d
    p1 += d
    p2 += d
    return fract((p0 + p1) * p2)


@njit(cache=True, nogil=True)
def hash22(x, y):
    """Pseudo-random pair in [0, 1)^2 for a 2D position."""
    p0 = fract(x * 0.1031)
    p1 = fract(y * 0.1030)
    p2 = fract(x * 0.0973)
    d = p0 * (p1 + 33.33) + p1 * (p2 + 33.33) + p2 * (p0 + 33.33)
    p0 += d
    p1 += d
    p2 += d
    return fract((p0 + p1) * p2), fract((p0 + p2) * p1)


@njit(cache=True, nogil=True)
def value_noise(x, y):
    """Smoothly interpolated lattice noise."""
    ix = math.floor(x)
    iy = math.floor(y)
    fx = x - ix
    fy = y - iy

    a = hash21(ix, iy)
    b = hash21(ix + 1.0, iy)
    c = hash21(ix, iy + 1.0)
    d = hash21(ix + 1.0, iy + 1.0)

    ux = fx * fx * (3.0 - 2.0 * fx)
    uy = fy * fy * (3.0 - 2.0 * fy)
    return mix(a, b, ux) + (c - a) * uy * (1.0 - ux) + (d - b) * ux * uy


@njit(cache=True, nogil=True)
def fbm(x, y, octaves):
    """Fractal Brownian motion: octaves of noise at doubling frequency."""
    value = 0.0
    amplitude = 0.5
    frequency = 1.0
    for _ in range(octaves):
        value += amplitude * value_noise(x * frequency, y * frequency)
        frequency *= 2.0
        amplitude *= 0.5
    return value


@njit(cache=True, nogil=True)
def terrain_height(x, y):
    mountains = fbm(x * 0.3, y * 0.3, 6) * 2.0
    hills = fbm(x * 1.5, y * 1.5, 4) * 0.5
    details = fbm(x * 5.0, y * 5.0, 3) * 0.1
    return mountains + hills + details


@njit(cache=True, nogil=True)
def terrain_gradient(x, y):
    """Slope magnitude by forward differences."""
    eps = 0.02
    h = terrain_height(x, y)
    gx = (terrain_height(x + eps, y) - h) / eps
    gy = (terrain_height(x, y + eps) - h) / eps
    return math.sqrt(gx * gx + gy * gy)


@njit(cache=True, nogil=True)
def flatness_from_slope(slope):
    return 1.0 - clamp01(slope * 5.0)


@njit(cache=True, nogil=True)
def classify_biome(height):
    if height < 0.15:
        return 0
    if height < 0.3:
        return 1
    if height < 0.35:
        return 2
    if height < 0.5:
        return 3
    if height < 0.8:
        return 4
    if height < 1.2:
        return 5
    if height < 1.5:
        return 6
    return 7


@njit(cache=True, nogil=True)
def terrain_color(height, flatness):
    if height < 0.15:
        return 0.05, 0.15, 0.35
    if height < 0.3:
        t = (height - 0.15) / 0.15
        return mix(0.05, 0.2, t), mix(0.15, 0.4, t), mix(0.35, 0.6, t)
    if height < 0.35:
        return 0.85, 0.75, 0.55
    if height < 0.5:
        return 0.2, 0.65, 0.15
    if height < 0.8:
        t = 1.0 - flatness
        return mix(0.35, 0.55, t), mix(0.6, 0.45, t), mix(0.2, 0.3, t)
    if height < 1.2:
        t = (height - 0.8) / 0.4
        return mix(0.45, 0.3, t), mix(0.4, 0.28, t), mix(0.35, 0.25, t)
    if height < 1.5:
        return 0.5, 0.5, 0.5
    return 0.95, 0.95, 1.0


@njit(cache=True, nogil=True)
def lake_mask(x, y, height):
    lake = smoothstep(0.55, 0.65, fbm(x * 0.2 + 200.0, y * 0.2 + 100.0, 4))
    return lake * smoothstep(0.5, 0.2, height)


@njit(cache=True, nogil=True)
def river_mask(x, y, height):
    river_width = 0.08
    river = abs(fbm(x * 0.5 + 100.0, y * 0.5 + 50.0, 4) - 0.5) * 2.0
    height_ok = smoothstep(0.6, 0.3, height)
    if river < river_width and height_ok > 0.3:
        return (1.0 - river / river_width) * height_ok
    return 0.0


@njit(cache=True, nogil=True)
def tree_density(x, y, height, flatness, water):
    if water > WATER_THRESHOLD:
        return 0.0
    altitude = 1.0 - abs(height - 0.7) / 0.7
    slope_factor = mix(0.3, 1.0, flatness)
    return clamp01(altitude * slope_factor * fbm(x * 10.0, y * 10.0, 3))


@njit(cache=True, nogil=True)
def urban_density(x, y, water):
    if water > WATER_THRESHOLD:
        return 0.0
    threshold = 0.68
    center = fbm(x * 0.08, y * 0.08, 3)
    if center > threshold:
        return clamp01((center - threshold) * 6.0)
    return 0.0


@njit(cache=True, nogil=True)
def city_center(gx, gy):
    """City position inside grid cell (gx, gy), in cell units."""
    ox, oy = hash22(gx * 456.789, gy * 456.789)
    return gx + ox * 0.8 + 0.1, gy + oy * 0.8 + 0.1


@njit(cache=True, nogil=True)
def road_network(x, y, water, gradient):
    """
    Road strengths at a position.

    Returns:
        (highway, arterial, local) strengths in [0, 1]
    """
    highway = 0.0
    arterial = 0.0
    local = 0.0

    if water > WATER_THRESHOLD or gradient > 0.5:
        return highway, arterial, local

    gx = math.floor(x / CITY_SPACING)
    gy = math.floor(y / CITY_SPACING)

    nearest = 999.0
    second = 999.0
    nearest_x = 0.0
    nearest_y = 0.0
    city_count = 0

    for dx in range(-2, 3):
        for dy in range(-2, 3):
            tx = gx + dx
            ty = gy + dy
            if hash21(tx * 123.456, ty * 123.456) > 0.65:
                cx, cy = city_center(tx, ty)
                cx *= CITY_SPACING
                cy *= CITY_SPACING
                dist = math.sqrt((x - cx) ** 2 + (y - cy) ** 2)
                city_count += 1
                if dist < nearest:
                    second = nearest
                    nearest = dist
                    nearest_x = cx
                    nearest_y = cy
                elif dist < second:
                    second = dist

    # Highways run between cities and bypass their centres
    if city_count >= 2:
        between = smoothstep(0.8, 0.3, abs(nearest - second))
        if nearest > CITY_RADIUS * 1.2:
            path = smoothstep(0.5, 0.48, fbm(x * 0.3, y * 0.3, 2))
            highway = path * between * (1.0 - gradient)

    if 0.3 < nearest < 2.0:
        to_x = nearest_x - x
        to_y = nearest_y - y
        length = math.sqrt(to_x * to_x + to_y * to_y)
        angle = fbm(x * 0.8, y * 0.8, 2)
        alignment = abs((to_x * math.cos(angle) + to_y * math.sin(angle)) / length)
        arterial = smoothstep(0.7, 0.9, alignment) * smoothstep(2.0, 0.5, nearest)

    if nearest < 0.8:
        lx = fract(x * 8.0)
        ly = fract(y * 8.0)
        if lx < 0.08 or ly < 0.08:
            local = smoothstep(0.8, 0.2, nearest)

    return highway, arterial, local


@njit(cache=True, nogil=True)
def classify_road(highway, arterial, local, water):
    """First matching road class wins; no roads over water."""
    if water >= WATER_THRESHOLD:
        return 0
    if highway > HIGHWAY_THRESHOLD:
        return 1
    if arterial > ARTERIAL_THRESHOLD:
        return 2
    if local > LOCAL_THRESHOLD:
        return 3
    return 0


@njit(cache=True, nogil=True)
def building_mask(x, y, height, flatness, water, urban):
    if water > WATER_THRESHOLD:
        return 0.0
    if height > 1.5 or height < 0.2:
        return 0.0
    bx = math.floor(x * 5.0)
    by = math.floor(y * 5.0)
    if hash21(bx, by) < urban * flatness * 0.6:
        return hash21(bx + 1.0, by + 1.0)
    return 0.0


@njit(cache=True, nogil=True)
def cloud_layer(x, y):
    """(coverage, thickness) of the cloud layer."""
    coverage = smoothstep(0.4, 0.7, fbm(x * 0.6 + 50.0, y * 0.6 + 50.0, 5))
    thickness = smoothstep(0.3, 0.8, fbm(x * 1.2 + 25.0, y * 1.2 + 75.0, 3))
    return coverage, thickness


@njit(cache=True, nogil=True)
def landscape_layers(x, y):
    """All layer values at a world position, as a flat tuple."""
    height = terrain_height(x, y)
    gradient = terrain_gradient(x, y)
    flatness = flatness_from_slope(gradient)
    lake = lake_mask(x, y, height)
    river = river_mask(x, y, height)
    water = max(lake, river)
    trees = tree_density(x, y, height, flatness, water)
    urban = urban_density(x, y, water)
    highway, arterial, local = road_network(x, y, water, gradient)
    building = building_mask(x, y, height, flatness, water, urban)
    coverage, thickness = cloud_layer(x, y)
    return (height, flatness, lake, river, trees, urban, highway, arterial, local,
            building, coverage, thickness)


@njit(cache=True, nogil=True)
def landscape_pixel(x, y):
    """Composited RGBA colour at a world position."""
    (height, flatness, lake, river, trees, urban, highway, arterial, local,
     building, coverage, thickness) = landscape_layers(x, y)
    water = max(lake, river)

    r, g, b = terrain_color(height, flatness)

    if trees > 0.3 and lake < 0.3 and river < 0.3:
        a = trees * 0.8
        r, g, b = mix(r, 0.08, a), mix(g, 0.4, a), mix(b, 0.08, a)

    if lake > 0.3:
        r, g, b = mix(0.25, 0.05, lake), mix(0.7, 0.25, lake), mix(0.75, 0.55, lake)
    elif river > 0.3:
        r, g, b = mix(r, 0.2, river), mix(g, 0.6, river), mix(b, 0.9, river)

    road = classify_road(highway, arterial, local, water)
    if road == 1:
        a = highway * 0.95
        r, g, b = mix(r, 0.8, a), mix(g, 0.2, a), mix(b, 0.1, a)
    elif road == 2:
        a = arterial * 0.9
        r, g, b = mix(r, 0.85, a), mix(g, 0.4, a), mix(b, 0.15, a)
    elif road == 3:
        a = local * 0.85
        r, g, b = mix(r, 0.9, a), mix(g, 0.7, a), mix(b, 0.2, a)

    if building > 0.0 and water < 0.3:
        shade = hash21(math.floor(x * 5.0), math.floor(y * 5.0))
        a = building * 0.85
        r = mix(r, mix(0.7, 0.75, shade), a)
        g = mix(g, mix(0.6, 0.75, shade), a)
        b = mix(b, mix(0.45, 0.75, shade), a)

    if urban > 0.1 and water < 0.3:
        a = urban * 0.25
        r, g, b = mix(r, 0.45, a), mix(g, 0.45, a), mix(b, 0.45, a)

    eps = 0.01
    nx = (height - terrain_height(x + eps, y)) / eps
    ny = (height - terrain_height(x, y + eps)) / eps
    nz = 1.0
    length = math.sqrt(nx * nx + ny * ny + nz * nz)
    ndotl = (nx * SUN[0] + ny * SUN[1] + nz * SUN[2]) / length
    lighting = mix(max(ndotl, 0.25), 0.8, clamp01(water))
    r *= lighting
    g *= lighting
    b *= lighting

    if water > 0.3:
        shimmer = hash21(x * 50.0, y * 50.0) * 0.2
        r += shimmer
        g += shimmer * 1.1
        b += shimmer * 0.9

    if coverage > 0.3:
        cr = mix(1.0, 0.6, thickness)
        cg = mix(1.0, 0.6, thickness)
        cb = mix(1.0, 0.65, thickness)
        a = coverage * mix(0.3, 0.7, thickness)
        r, g, b = mix(r, cr, a), mix(g, cg, a), mix(b, cb, a)

    return clamp01(r), clamp01(g), clamp01(b), 1.0


@dataclass(frozen=True)
class LandscapeSample:
    """Layer values of the landscape at one world position."""

    height: float
    flatness: float
    biome: Biome
    lake: float
    river: float
    trees: float
    urban: float
    highway: float
    arterial: float
    local: float
    road_class: RoadClass
    building: float
    cloud_coverage: float
    cloud_thickness: float

    @property
    def water(self) -> float:
        return max(self.lake, self.river)


def sample_landscape(x: float, y: float) -> LandscapeSample:
    """
    Sample every landscape layer at a world position.

    Args:
        x, y: World coordinates

    Returns:
        LandscapeSample with heights, masks and classifications
    """
    (height, flatness, lake, river, trees, urban, highway, arterial, local,
     building, coverage, thickness) = landscape_layers(float(x), float(y))
    water = max(lake, river)
    return LandscapeSample(
        height=float(height), flatness=float(flatness),
        biome=Biome(int(classify_biome(height))),
        lake=float(lake), river=float(river), trees=float(trees), urban=float(urban),
        highway=float(highway), arterial=float(arterial), local=float(local),
        road_class=RoadClass(int(classify_road(highway, arterial, local, water))),
        building=float(building), cloud_coverage=float(coverage),
        cloud_thickness=float(thickness),
    )


def landscape_color(x: float, y: float) -> Tuple[float, float, float, float]:
    """Composited RGBA colour at a world position."""
    return tuple(float(c) for c in landscape_pixel(float(x), float(y)))
