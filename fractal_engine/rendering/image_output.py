"""
Image export for rendered frames.

Frames are (H, W, 4) uint8 RGBA buffers. They are written with Pillow as
PNG (metadata in text chunks), TIFF (metadata in the image description) or
JPEG (alpha dropped, metadata in a companion JSON file), or dumped raw as
NumPy arrays.
"""

import numpy as np
from typing import Dict, Any, Optional, Tuple
from pathlib import Path
from dataclasses import dataclass, asdict, field
import json
import logging
from datetime import datetime

from PIL import Image, PngImagePlugin, TiffImagePlugin

from .. import __version__

logger = logging.getLogger(__name__)

METADATA_KEY = "FractalMetadata"
TIFF_DESCRIPTION_TAG = 270


@dataclass
class RenderMetadata:
    """Metadata for fractal renders."""

    # Frame parameters
    fractal_type: str
    resolution: Tuple[int, int]  # width, height
    max_iterations: int
    color_palette: str
    center: Tuple[float, float] = (0.0, 0.0)
    zoom: float = 1.0
    shading: Optional[str] = None
    camera: Optional[Dict[str, Any]] = None

    # Timing and backend
    render_time_seconds: float = 0.0
    backend: str = "threads"
    tiles_used: int = 0

    # Generation info
    timestamp: str = ""
    software_version: str = __version__

    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()
        self.resolution = tuple(self.resolution)
        self.center = tuple(self.center)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RenderMetadata':
        return cls(**data)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'RenderMetadata':
        return cls.from_dict(json.loads(json_str))


class ImageExporter:
    """Writes RGBA frames to image files with metadata."""

    def __init__(self):
        self.supported_formats = {
            '.png': self._save_png,
            '.tiff': self._save_tiff,
            '.tif': self._save_tiff,
            '.jpg': self._save_jpeg,
            '.jpeg': self._save_jpeg,
        }

    def save_image(self, image_array: np.ndarray, filepath: Path,
                   metadata: Optional[RenderMetadata] = None,
                   quality: int = 95, compression: Optional[str] = None) -> Path:
        """
        Save an RGBA frame to file with metadata.

        Args:
            image_array: (H, W, 4) uint8 buffer, or float RGB(A) in [0, 1]
            filepath: Output file path; the suffix selects the format
            metadata: Render metadata to embed
            quality: JPEG quality (1-100)
            compression: Compression method ('none', 'fast', 'high' for PNG;
                'lzw', 'deflate', 'jpeg', 'none' for TIFF)

        Returns:
            The written path
        """
        filepath = Path(filepath)
        suffix = filepath.suffix.lower()

        if suffix not in self.supported_formats:
            supported = ', '.join(self.supported_formats.keys())
            raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")

        image_array = self._prepare_image_array(image_array)
        pil_image = Image.fromarray(image_array)

        filepath.parent.mkdir(parents=True, exist_ok=True)
        self.supported_formats[suffix](pil_image, filepath, metadata, quality, compression)

        logger.info(f"Saved image: {filepath} ({pil_image.size[0]}x{pil_image.size[1]})")
        return filepath

    def _prepare_image_array(self, image_array: np.ndarray) -> np.ndarray:
        """Validate a frame and convert it to contiguous uint8 RGBA."""
        image_array = np.asarray(image_array)
        if image_array.ndim != 3 or image_array.shape[2] not in (3, 4):
            raise ValueError(f"Expected image array (H, W, 3|4), got {image_array.shape}")

        if image_array.dtype != np.uint8:
            if np.issubdtype(image_array.dtype, np.floating):
                image_array = np.floor(np.clip(image_array, 0.0, 1.0) * 255.0 + 0.5)
            image_array = np.clip(image_array, 0, 255).astype(np.uint8)

        if image_array.shape[2] == 3:
            alpha = np.full(image_array.shape[:2] + (1,), 255, dtype=np.uint8)
            image_array = np.concatenate([image_array, alpha], axis=2)

        return np.ascontiguousarray(image_array)

    def _save_png(self, pil_image: Image.Image, filepath: Path,
                  metadata: Optional[RenderMetadata], quality: int, compression: Optional[str]) -> None:
        """Save as PNG with metadata."""
        pnginfo = PngImagePlugin.PngInfo()

        if metadata:
            pnginfo.add_text("Title", f"Fractal: {metadata.fractal_type}")
            pnginfo.add_text("Software", f"fractal-engine v{metadata.software_version}")
            pnginfo.add_text("Creation Time", metadata.timestamp)
            pnginfo.add_text(METADATA_KEY, metadata.to_json())

        # PNG compression levels: 0 (no compression) to 9 (max compression)
        compress_level = 6
        if compression:
            if compression.lower() in ['none', '0']:
                compress_level = 0
            elif compression.lower() in ['fast', 'low']:
                compress_level = 1
            elif compression.lower() in ['high', 'max']:
                compress_level = 9

        pil_image.save(filepath, "PNG", pnginfo=pnginfo, compress_level=compress_level)

    def _save_tiff(self, pil_image: Image.Image, filepath: Path,
                   metadata: Optional[RenderMetadata], quality: int, compression: Optional[str]) -> None:
        """Save as TIFF with the metadata JSON as image description."""
        compression_map = {
            'none': None,
            'lzw': 'tiff_lzw',
            'jpeg': 'jpeg',
            'deflate': 'tiff_deflate',
            'zip': 'tiff_deflate',
        }
        tiff_compression = compression_map.get((compression or 'lzw').lower(), 'tiff_lzw')

        save_kwargs = {'format': 'TIFF'}
        if tiff_compression:
            save_kwargs['compression'] = tiff_compression
        if tiff_compression == 'jpeg':
            # JPEG-in-TIFF cannot carry alpha
            pil_image = pil_image.convert('RGB')
            save_kwargs['quality'] = quality

        if metadata:
            ifd = TiffImagePlugin.ImageFileDirectory_v2()
            ifd[TIFF_DESCRIPTION_TAG] = metadata.to_json()
            save_kwargs['tiffinfo'] = ifd

        pil_image.save(filepath, **save_kwargs)

    def _save_jpeg(self, pil_image: Image.Image, filepath: Path,
                   metadata: Optional[RenderMetadata], quality: int, compression: Optional[str]) -> None:
        """Save as JPEG; metadata goes to a companion JSON file."""
        pil_image.convert('RGB').save(filepath, "JPEG", quality=quality, optimize=True)

        if metadata:
            json_path = filepath.with_suffix('.json')
            with open(json_path, 'w') as f:
                f.write(metadata.to_json())
            logger.info(f"Saved metadata: {json_path}")

    def save_raw_data(self, image_array: np.ndarray, filepath: Path,
                      metadata: Optional[RenderMetadata] = None) -> Path:
        """
        Save raw image data as NumPy array.

        Args:
            image_array: Image array to save
            filepath: Output file path (.npy)
            metadata: Metadata to save alongside

        Returns:
            The written path
        """
        filepath = Path(filepath)
        if filepath.suffix.lower() != '.npy':
            filepath = filepath.with_suffix('.npy')

        np.save(filepath, image_array)

        if metadata:
            metadata_path = filepath.with_suffix('.json')
            with open(metadata_path, 'w') as f:
                f.write(metadata.to_json())

        logger.info(f"Saved raw data: {filepath}")
        return filepath

    def load_raw_data(self, filepath: Path) -> Tuple[np.ndarray, Optional[RenderMetadata]]:
        """
        Load raw image data and metadata.

        Args:
            filepath: Input file path (.npy)

        Returns:
            Tuple of (image_array, metadata)
        """
        filepath = Path(filepath)
        image_array = np.load(filepath)

        metadata = None
        metadata_path = filepath.with_suffix('.json')
        if metadata_path.exists():
            with open(metadata_path, 'r') as f:
                metadata = RenderMetadata.from_json(f.read())

        return image_array, metadata

    def extract_metadata_from_image(self, filepath: Path) -> Optional[RenderMetadata]:
        """
        Extract render metadata from a saved image.

        Args:
            filepath: Path to image file

        Returns:
            Extracted metadata or None
        """
        filepath = Path(filepath)

        if filepath.suffix.lower() in ['.jpg', '.jpeg']:
            json_path = filepath.with_suffix('.json')
            if json_path.exists():
                with open(json_path, 'r') as f:
                    return RenderMetadata.from_json(f.read())
            return None

        with Image.open(filepath) as img:
            text = getattr(img, 'text', {})
            if METADATA_KEY in text:
                return RenderMetadata.from_json(text[METADATA_KEY])

            tags = getattr(img, 'tag_v2', None)
            if tags is not None and TIFF_DESCRIPTION_TAG in tags:
                try:
                    return RenderMetadata.from_json(tags[TIFF_DESCRIPTION_TAG])
                except (json.JSONDecodeError, TypeError) as e:
                    logger.warning(f"Image description of {filepath} is not render metadata: {e}")

        return None
