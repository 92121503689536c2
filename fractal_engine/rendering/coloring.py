"""
Palette definitions, expansion and sampling.

A palette is defined by ordered colour stops and expanded once per frame
into an (N, 4) float32 RGBA lookup table. Pixels pick an entry by nearest
index; there is no interpolation at sampling time.
"""

import json
import math
import numpy as np
from numba import njit
from typing import Dict, List, Sequence, Tuple, Union
from dataclasses import dataclass, field
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PALETTE_SIZE = 256


class PaletteError(ValueError):
    """Raised for empty, malformed or out-of-range palette data."""


@njit(cache=True, nogil=True)
def palette_index(t, n):
    """Nearest palette index for a normalised value; NaN maps to 0."""
    if t != t:
        return 0
    v = t * (n - 1)
    if v <= 0.0:
        return 0
    if v >= n - 1:
        return n - 1
    return int(math.floor(v + 0.5))


@njit(cache=True, nogil=True)
def sample_palette(palette, t):
    """RGBA entry of an expanded palette for a normalised value."""
    i = palette_index(t, palette.shape[0])
    return (np.float64(palette[i, 0]), np.float64(palette[i, 1]),
            np.float64(palette[i, 2]), np.float64(palette[i, 3]))


@njit(cache=True, nogil=True)
def to_byte(c):
    """Quantise a colour channel to 8 bits."""
    if c != c or c <= 0.0:
        return np.uint8(0)
    if c >= 1.0:
        return np.uint8(255)
    return np.uint8(int(math.floor(c * 255.0 + 0.5)))


def sample_index(t: float, n: int) -> int:
    """
    Palette index for value ``t`` in a palette of ``n`` entries.

    Args:
        t: Normalised value; values outside [0, 1] are clamped
        n: Palette size

    Returns:
        Index in [0, n - 1]
    """
    if n <= 0:
        raise PaletteError("Palette must contain at least one entry")
    return int(palette_index(float(t), int(n)))


def sample(t: float, palette: np.ndarray) -> np.ndarray:
    """RGBA colour of a palette for value ``t``."""
    palette = validate_palette_array(palette)
    return palette[sample_index(t, palette.shape[0])].copy()


def to_rgba8(colors: np.ndarray) -> np.ndarray:
    """Convert float colours in [0, 1] to uint8."""
    colors = np.nan_to_num(np.asarray(colors, dtype=np.float64), nan=0.0)
    return np.floor(np.clip(colors, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


def validate_palette_array(palette) -> np.ndarray:
    """
    Validate an expanded palette.

    Accepts an (N, 4) array or a flat array whose length is a multiple of 4.

    Returns:
        Contiguous (N, 4) float32 array

    Raises:
        PaletteError: If the palette is missing, empty or malformed
    """
    if palette is None:
        raise PaletteError("Palette is required")
    try:
        array = np.asarray(palette, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise PaletteError(f"Palette is not numeric: {e}") from e

    if array.ndim == 1:
        if array.size == 0 or array.size % 4 != 0:
            raise PaletteError(f"Flat palette length must be a positive multiple of 4, "
                               f"got {array.size}")
        array = array.reshape(-1, 4)
    elif array.ndim != 2 or array.shape[1] != 4:
        raise PaletteError(f"Palette must have shape (N, 4), got {array.shape}")

    if array.shape[0] == 0:
        raise PaletteError("Palette must contain at least one entry")
    if not np.all(np.isfinite(array)):
        raise PaletteError("Palette contains non-finite values")

    return np.ascontiguousarray(array)


@dataclass(frozen=True)
class ColorStop:
    """Palette stop: position in [0, 1] and 8-bit RGB channels."""

    position: float
    r: int
    g: int
    b: int

    def validate(self) -> None:
        if not 0.0 <= self.position <= 1.0:
            raise PaletteError(f"Stop position must be in [0, 1], got {self.position}")
        for channel in (self.r, self.g, self.b):
            if not 0 <= channel <= 255:
                raise PaletteError(f"Channel values must be in [0, 255], got {channel}")

    def to_list(self) -> List[float]:
        return [self.position, self.r, self.g, self.b]


@dataclass
class Palette:
    """Named palette made of ordered colour stops."""

    name: str
    stops: List[ColorStop] = field(default_factory=list)

    def __post_init__(self):
        self.stops = [s if isinstance(s, ColorStop) else ColorStop(*s) for s in self.stops]
        self.validate()

    def validate(self) -> None:
        """
        Check the stops.

        Raises:
            PaletteError: On no stops, out-of-range values or decreasing positions
        """
        if not self.stops:
            raise PaletteError(f"Palette '{self.name}' has no stops")
        for stop in self.stops:
            stop.validate()
        positions = [s.position for s in self.stops]
        if any(b < a for a, b in zip(positions, positions[1:])):
            raise PaletteError(f"Palette '{self.name}' stop positions must be non-decreasing")

    def expand(self, n: int = DEFAULT_PALETTE_SIZE) -> np.ndarray:
        """
        Expand the stops into an (n, 4) RGBA lookup table.

        Colours are interpolated linearly between stops and clamped to the
        first/last stop outside their coverage. Alpha is always 1.

        Args:
            n: Number of entries

        Returns:
            float32 array of shape (n, 4) with values in [0, 1]
        """
        if n < 1:
            raise PaletteError("Palette size must be at least 1")
        if self.stops[0].position > 0.0 or self.stops[-1].position < 1.0:
            logger.debug(f"Palette '{self.name}' does not cover [0, 1], clamping to end stops")

        positions = np.array([s.position for s in self.stops], dtype=np.float64)
        channels = np.array([[s.r, s.g, s.b] for s in self.stops], dtype=np.float64) / 255.0
        t = np.linspace(0.0, 1.0, n) if n > 1 else np.zeros(1)

        table = np.ones((n, 4), dtype=np.float32)
        for c in range(3):
            table[:, c] = np.interp(t, positions, channels[:, c])
        return table

    def to_dict(self) -> Dict:
        return {'name': self.name, 'stops': [s.to_list() for s in self.stops]}

    @classmethod
    def from_dict(cls, data: Dict) -> 'Palette':
        try:
            name = data.get('name', 'Custom')
            stops = [ColorStop(float(p), int(r), int(g), int(b)) for p, r, g, b in data['stops']]
        except (KeyError, TypeError, ValueError) as e:
            raise PaletteError(f"Malformed palette definition: {e}") from e
        return cls(name, stops)

    def to_matplotlib_colormap(self, n_colors: int = 256):
        """Convert palette to matplotlib colormap."""
        import matplotlib.colors as mcolors

        table = self.expand(n_colors)
        return mcolors.ListedColormap(table[:, :3], name=self.name)

    @classmethod
    def from_matplotlib(cls, cmap_name: str, n_samples: int = 32) -> 'Palette':
        """Create palette from matplotlib colormap."""
        import matplotlib

        try:
            cmap = matplotlib.colormaps[cmap_name]
        except KeyError as e:
            raise PaletteError(f"Unknown matplotlib colormap '{cmap_name}'") from e

        stops = []
        for t in np.linspace(0.0, 1.0, n_samples):
            r, g, b, _a = cmap(t)
            stops.append(ColorStop(float(t), int(round(r * 255)), int(round(g * 255)),
                                   int(round(b * 255))))
        return cls(f"From_{cmap_name}", stops)

    def save_to_file(self, filepath: Union[str, Path]) -> None:
        """Save palette as JSON stops, or as a GIMP palette for ``.gpl`` paths."""
        filepath = Path(filepath)
        if filepath.suffix.lower() == '.gpl':
            with open(filepath, 'w') as f:
                f.write("GIMP Palette\n")
                f.write(f"Name: {self.name}\n")
                f.write("#\n")
                for i, stop in enumerate(self.stops):
                    f.write(f"{stop.r:3d} {stop.g:3d} {stop.b:3d} Color_{i}\n")
        else:
            with open(filepath, 'w') as f:
                json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Saved palette '{self.name}' to {filepath}")

    @classmethod
    def load_from_file(cls, filepath: Union[str, Path]) -> 'Palette':
        """Load palette from a JSON stop file or a GIMP ``.gpl`` file."""
        filepath = Path(filepath)
        if filepath.suffix.lower() != '.gpl':
            with open(filepath, 'r') as f:
                try:
                    data = json.load(f)
                except json.JSONDecodeError as e:
                    raise PaletteError(f"Invalid palette file {filepath}: {e}") from e
            return cls.from_dict(data)

        colors = []
        name = "Loaded_Palette"
        with open(filepath, 'r') as f:
            for line in f:
                line = line.strip()
                if line.startswith("Name:"):
                    name = line.split(":", 1)[1].strip()
                elif line and not line.startswith("#") and not line.startswith("GIMP"):
                    parts = line.split()
                    if len(parts) >= 3 and all(p.isdigit() for p in parts[:3]):
                        colors.append(tuple(int(p) for p in parts[:3]))

        if not colors:
            raise PaletteError(f"No valid colors found in {filepath}")

        # GPL files carry no positions; spread the colours evenly
        count = max(1, len(colors) - 1)
        stops = [ColorStop(i / count if len(colors) > 1 else 0.0, *rgb)
                 for i, rgb in enumerate(colors)]
        return cls(name, stops)


BUILTIN_PALETTES: Dict[str, Palette] = {
    'classic': Palette("Classic", [
        (0.0, 0, 7, 100), (0.16, 32, 107, 203), (0.42, 237, 255, 255),
        (0.6425, 255, 170, 0), (0.8575, 0, 2, 0), (1.0, 0, 7, 100),
    ]),
    'fire': Palette("Fire", [
        (0.0, 0, 0, 0), (0.25, 128, 0, 0), (0.5, 255, 0, 0),
        (0.75, 255, 128, 0), (1.0, 255, 255, 0),
    ]),
    'ocean': Palette("Ocean", [
        (0.0, 0, 0, 64), (0.33, 0, 64, 128), (0.66, 0, 128, 192), (1.0, 64, 192, 255),
    ]),
    'grayscale': Palette("Grayscale", [
        (0.0, 0, 0, 0), (1.0, 255, 255, 255),
    ]),
    'rainbow': Palette("Rainbow", [
        (0.0, 255, 0, 0), (0.17, 255, 165, 0), (0.33, 255, 255, 0), (0.5, 0, 255, 0),
        (0.67, 0, 0, 255), (0.83, 139, 0, 255), (1.0, 255, 0, 0),
    ]),
    'psychedelic': Palette("Psychedelic", [
        (0.0, 255, 0, 255), (0.2, 0, 255, 255), (0.4, 255, 255, 0),
        (0.6, 255, 0, 0), (0.8, 0, 255, 0), (1.0, 255, 0, 255),
    ]),
    'ultra_fractal': Palette("Ultra Fractal", [
        (0.0, 66, 30, 15), (0.25, 25, 7, 26), (0.5, 9, 1, 47),
        (0.75, 4, 4, 73), (1.0, 0, 7, 100),
    ]),
}


def _palette_key(name: str) -> str:
    return name.strip().lower().replace(' ', '_').replace('-', '_')


class ColoringEngine:
    """Registry of named palettes."""

    def __init__(self):
        self.palettes: Dict[str, Palette] = dict(BUILTIN_PALETTES)

    def add_palette(self, name: str, palette: Palette) -> None:
        """Add a custom color palette."""
        self.palettes[_palette_key(name)] = palette
        logger.info(f"Added color palette: {name}")

    def get_palette(self, name: str) -> Palette:
        """
        Get a palette by name.

        Names are matched case-insensitively with spaces and dashes treated
        as underscores; a path to a palette file is loaded. Names of the form
        ``mpl:<colormap>`` import a matplotlib colormap.
        """
        key = _palette_key(name)
        if key in self.palettes:
            return self.palettes[key]
        if name.startswith('mpl:'):
            palette = Palette.from_matplotlib(name[4:])
            self.palettes[key] = palette
            return palette
        path = Path(name)
        if path.suffix.lower() in ('.json', '.gpl') and path.exists():
            return Palette.load_from_file(path)

        available = ', '.join(self.palettes.keys())
        raise PaletteError(f"Unknown color palette '{name}'. Available: {available}")

    def expand(self, name: str, n: int = DEFAULT_PALETTE_SIZE) -> np.ndarray:
        """Expanded lookup table of a named palette."""
        return self.get_palette(name).expand(n)

    def list_palettes(self) -> List[str]:
        """Get list of available color palettes."""
        return list(self.palettes.keys())

    def describe(self) -> List[Tuple[str, str, int]]:
        """(key, display name, stop count) for each palette."""
        return [(key, p.name, len(p.stops)) for key, p in self.palettes.items()]
