"""
Configuration files, presets and environment overrides.

Configuration files are JSON or YAML documents with an optional ``render``
section (RenderConfig fields) and an optional ``presets`` section mapping
preset names to partial RenderConfig dictionaries. Environment variables
prefixed with ``FRACTAL_ENGINE_`` override individual fields.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import fields
from typing import Any, Dict, List, Optional, Union, get_type_hints

import yaml

from ..api import RenderConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "FRACTAL_ENGINE_"

DEFAULT_PRESETS: Dict[str, Dict[str, Any]] = {
    'mandelbrot': {'fractal': 'mandelbrot', 'center': [-0.5, 0.0], 'zoom': 1.0,
                   'color_palette': 'classic'},
    'seahorse_valley': {'fractal': 'mandelbrot', 'center': [-0.743643887037151, 0.131825904205330],
                        'zoom': 5000.0, 'max_iterations': 4000, 'color_palette': 'ultra_fractal'},
    'julia': {'fractal': 'julia', 'center': [0.0, 0.0], 'zoom': 1.0, 'color_palette': 'ocean'},
    'burning_ship': {'fractal': 'burning_ship', 'center': [-1.755, -0.03], 'zoom': 20.0,
                     'color_palette': 'fire'},
    'newton': {'fractal': 'newton', 'center': [0.0, 0.0], 'zoom': 1.0, 'max_iterations': 64,
               'color_palette': 'psychedelic'},
    'mandelbulb': {'fractal': 'mandelbulb', 'shading': 'distance_estimation',
                   'max_iterations': 16, 'color_palette': 'classic'},
    'mandelbulb_raytraced': {'fractal': 'mandelbulb', 'shading': 'ray_traced',
                             'camera_position': [0.0, 0.0, 2.5], 'camera_pitch': 0.0,
                             'max_iterations': 16, 'color_palette': 'rainbow'},
    'landscape': {'fractal': 'landscape', 'center': [0.0, 0.0], 'zoom': 1.0},
}


def _field_types() -> Dict[str, Any]:
    hints = get_type_hints(RenderConfig)
    return {f.name: hints[f.name] for f in fields(RenderConfig)}


def _coerce(value: str, target: Any) -> Any:
    """Convert an environment string to the type of a RenderConfig field."""
    if target is bool:
        lowered = value.strip().lower()
        if lowered in ('1', 'true', 'yes', 'on'):
            return True
        if lowered in ('0', 'false', 'no', 'off'):
            return False
        raise ValueError(f"Invalid boolean value: {value!r}")
    if target is int:
        return int(value)
    if target is float:
        return float(value)
    if target is str:
        return value
    # Optional[int] and tuple-valued fields
    if value.strip().lower() in ('', 'none', 'null'):
        return None
    if ',' in value:
        return [float(v) for v in value.split(',')]
    return int(value)


class ConfigManager:
    """Loads, validates and saves configuration files."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path else None

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
        """
        Load a configuration document.

        Args:
            config_path: JSON or YAML file; None loads the manager's own path,
                or an empty document if it has none

        Returns:
            Configuration dictionary with ``render`` and ``presets`` sections
        """
        path = Path(config_path) if config_path else self.config_path
        if path is None:
            return {'render': {}, 'presets': {}}

        with open(path, 'r') as f:
            if path.suffix.lower() in ('.yaml', '.yml'):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")

        data.setdefault('render', {})
        data.setdefault('presets', {})
        logger.debug(f"Loaded configuration from {path}")
        return data

    def save_config(self, config: Dict[str, Any], config_path: Union[str, Path]) -> None:
        """Save a configuration document as JSON or YAML by suffix."""
        path = Path(config_path)
        with open(path, 'w') as f:
            if path.suffix.lower() in ('.yaml', '.yml'):
                yaml.safe_dump(config, f, sort_keys=False)
            else:
                json.dump(config, f, indent=2)
        logger.info(f"Saved configuration to {path}")

    def list_presets(self, config: Optional[Dict[str, Any]] = None) -> List[str]:
        """Built-in presets followed by the document's own."""
        names = list(DEFAULT_PRESETS.keys())
        if config:
            names += [n for n in config.get('presets', {}) if n not in DEFAULT_PRESETS]
        return names

    def get_preset(self, name: str, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        presets = dict(DEFAULT_PRESETS)
        if config:
            presets.update(config.get('presets', {}))
        if name not in presets:
            available = ', '.join(presets.keys())
            raise ValueError(f"Unknown preset '{name}'. Available: {available}")
        return dict(presets[name])

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Check a configuration document.

        Returns:
            List of error messages; empty when the document is valid
        """
        errors = []
        known = set(_field_types())

        sections = [('render', config.get('render', {}))]
        sections += [(f"presets.{name}", values)
                     for name, values in config.get('presets', {}).items()]

        for label, values in sections:
            if not isinstance(values, dict):
                errors.append(f"{label}: must be a mapping")
                continue
            unknown = sorted(set(values) - known)
            if unknown:
                errors.append(f"{label}: unknown fields {', '.join(unknown)}")
                continue
            try:
                RenderConfig.from_dict(values).validate()
            except (TypeError, ValueError) as e:
                errors.append(f"{label}: {e}")

        return errors

    def create_render_config(self, config: Optional[Dict[str, Any]] = None,
                             preset: Optional[str] = None) -> RenderConfig:
        """
        Build a RenderConfig.

        Precedence, lowest first: defaults, the document's ``render`` section,
        the preset, environment overrides.
        """
        config = config or {}
        values: Dict[str, Any] = dict(config.get('render', {}))
        if preset:
            values.update(self.get_preset(preset, config))
        values.update(EnvironmentConfig.overrides())

        render_config = RenderConfig.from_dict(values)
        render_config.validate()
        return render_config

    def export_config_template(self, output_path: Union[str, Path]) -> None:
        """Write a template with the default render settings and built-in presets."""
        template = {
            'render': RenderConfig().to_dict(),
            'presets': DEFAULT_PRESETS,
        }
        self.save_config(template, output_path)


class EnvironmentConfig:
    """Reads RenderConfig overrides from ``FRACTAL_ENGINE_*`` variables."""

    @staticmethod
    def overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        Collect overrides such as ``FRACTAL_ENGINE_MAX_ITERATIONS=500``.

        Raises:
            ValueError: If a variable cannot be converted to its field type
        """
        environ = os.environ if environ is None else environ
        result = {}
        for name, target in _field_types().items():
            key = ENV_PREFIX + name.upper()
            if key in environ:
                try:
                    result[name] = _coerce(environ[key], target)
                except ValueError as e:
                    raise ValueError(f"Invalid value for {key}: {e}") from e
        if result:
            logger.debug(f"Environment overrides: {sorted(result)}")
        return result


def load_config_from_args(config_file: Optional[str] = None,
                          preset: Optional[str] = None) -> RenderConfig:
    """
    Build the render configuration for a CLI invocation.

    Args:
        config_file: Optional JSON or YAML configuration file
        preset: Optional preset name

    Returns:
        Validated RenderConfig
    """
    manager = ConfigManager(config_file)
    return manager.create_render_config(manager.load_config(), preset)
