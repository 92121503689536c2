"""
Command-line interface for fractal rendering.

Renders single frames to image files and inspects the available fractals,
palettes and configuration presets.
"""

import click
import sys
from pathlib import Path
from typing import Tuple
import logging
import time

import numba

from .. import __version__
from ..api import BACKENDS, FractalRenderer
from ..core.fractal_types import FractalKind, FractalRegistry, ShadingMode
from ..io.config import ConfigManager, load_config_from_args
from ..rendering.coloring import ColoringEngine

logger = logging.getLogger(__name__)

FRACTAL_CHOICES = [kind.name.lower() for kind in FractalKind]
SHADING_CHOICES = [mode.name.lower() for mode in ShadingMode]


def _parse_floats(value: str, count: int, label: str) -> Tuple[float, ...]:
    try:
        parts = tuple(float(x.strip()) for x in value.split(','))
    except ValueError:
        raise click.BadParameter(f"{label} must be {count} comma-separated numbers")
    if len(parts) != count:
        raise click.BadParameter(f"{label} must be {count} comma-separated numbers")
    return parts


def _fail(ctx, e: Exception, prefix: str = "Error"):
    click.echo(f"{prefix}: {e}", err=True)
    if ctx.obj.get('verbose'):
        import traceback
        traceback.print_exc()
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--config', type=click.Path(exists=True), help='Configuration file path')
@click.option('--preset', help='Configuration preset to use')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Suppress most output')
@click.pass_context
def main(ctx, version, config, preset, verbose, quiet):
    """
    Fractal Engine - escape-time, ray-marched and procedural fractal renderer.

    Renders Mandelbrot, Julia, Burning Ship, Tricorn, Newton, Phoenix and
    Barnsley fern views with extended precision, the ray-marched Mandelbulb
    and a procedural landscape.
    """
    if quiet:
        logging.basicConfig(level=logging.ERROR)
    elif verbose:
        logging.basicConfig(level=logging.DEBUG,
                            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    else:
        logging.basicConfig(level=logging.INFO,
                            format='%(levelname)s: %(message)s')

    if version:
        click.echo(f"Fractal Engine v{__version__}")
        click.echo(f"Python: {sys.version}")
        click.echo(f"Numba: {numba.__version__} ({numba.get_num_threads()} threads)")

        if ctx.invoked_subcommand is None:
            sys.exit(0)

    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config
    ctx.obj['preset'] = preset
    ctx.obj['verbose'] = verbose


@main.command()
@click.argument('fractal_type', type=click.Choice(FRACTAL_CHOICES))
@click.argument('output', type=click.Path())
@click.option('--width', '-w', type=int, help='Image width')
@click.option('--height', '-h', type=int, help='Image height')
@click.option('--center', type=str, help='View centre: "x,y"')
@click.option('--zoom', type=float, help='Zoom factor')
@click.option('--max-iter', 'max_iterations', type=int, help='Maximum iterations')
@click.option('--clamp-iter', 'clamp_iterations', is_flag=True,
              help='Clamp the iteration budget into range instead of failing')
@click.option('--palette', 'color_palette', help='Palette name, palette file or mpl:<colormap>')
@click.option('--palette-size', type=int, help='Number of palette entries')
@click.option('--shading', type=click.Choice(SHADING_CHOICES), help='Mandelbulb shading mode')
@click.option('--camera', type=str, help='Mandelbulb camera position: "x,y,z"')
@click.option('--yaw', 'camera_yaw', type=float, help='Camera yaw (radians)')
@click.option('--pitch', 'camera_pitch', type=float, help='Camera pitch (radians)')
@click.option('--fov', 'field_of_view', type=float, help='Camera field of view')
@click.option('--backend', type=click.Choice(BACKENDS), help='Rendering backend')
@click.option('--workers', 'num_workers', type=int, help='Worker threads for tile rendering')
@click.option('--tile-size', type=int, help='Tile size for parallel rendering')
@click.option('--raw', 'save_raw_data', is_flag=True, default=None,
              help='Also save the raw RGBA buffer as .npy')
@click.pass_context
def render(ctx, fractal_type, output, **kwargs):
    """
    Render a single fractal image.

    FRACTAL_TYPE: Type of fractal
    OUTPUT: Output image file path (.png, .tiff, .jpg)
    """
    try:
        render_config = load_config_from_args(ctx.obj.get('config_file'), ctx.obj.get('preset'))
        render_config.fractal = fractal_type

        center = kwargs.pop('center')
        camera = kwargs.pop('camera')
        if center:
            render_config.center = _parse_floats(center, 2, "center")
        if camera:
            render_config.camera_position = _parse_floats(camera, 3, "camera")

        for key, value in kwargs.items():
            if value is not None and value is not False:
                setattr(render_config, key, value)

        renderer = FractalRenderer(render_config)

        click.echo(f"Rendering {fractal_type} fractal...")
        start_time = time.time()
        renderer.render(Path(output))

        click.echo(f"Render complete: {time.time() - start_time:.2f}s")
        click.echo(f"Saved: {output}")

    except click.BadParameter:
        raise
    except Exception as e:
        _fail(ctx, e)


@main.command()
@click.option('--size', type=str, default='512x512', help='Benchmark image size (widthxheight)')
@click.option('--iterations', type=int, default=512, help='Maximum iterations for benchmark')
@click.pass_context
def benchmark(ctx, size, iterations):
    """Compare the thread-pool and numba backends."""
    try:
        try:
            width, height = map(int, size.split('x'))
        except ValueError:
            click.echo("Error: Invalid size format. Use 'widthxheight'", err=True)
            sys.exit(1)

        config = load_config_from_args(ctx.obj.get('config_file'), ctx.obj.get('preset'))
        config.width = width
        config.height = height
        config.max_iterations = iterations

        results = FractalRenderer(config).benchmark_performance()

        click.echo("Configuration:")
        for key, value in results['config'].items():
            click.echo(f"  {key}: {value}")

        click.echo("\nPerformance Results:")
        for method, result in results['benchmarks'].items():
            click.echo(f"  {method.upper()}: {result['time']:.2f}s "
                       f"({result['pixels_per_second']:,.0f} pixels/sec)")

    except Exception as e:
        _fail(ctx, e)


@main.command()
@click.pass_context
def fractals(ctx):
    """List available fractal types."""
    click.echo("Available fractal types:")
    for name, description in FractalRegistry.list_fractals().items():
        click.echo(f"  {name}")
        if ctx.obj.get('verbose'):
            click.echo(f"    {description}")

    click.echo("\nMandelbulb shading modes:")
    for name in SHADING_CHOICES:
        click.echo(f"  {name}")


@main.command()
@click.pass_context
def palettes(ctx):
    """List available color palettes."""
    engine = ColoringEngine()
    click.echo("Available color palettes:")
    for key, name, stops in engine.describe():
        if ctx.obj.get('verbose'):
            click.echo(f"  {key} ({name}, {stops} stops)")
        else:
            click.echo(f"  {key}")


@main.command('export-palette')
@click.argument('name')
@click.argument('output', type=click.Path())
@click.pass_context
def export_palette(ctx, name, output):
    """
    Save a palette definition to a file.

    NAME: Palette name (or mpl:<colormap>)
    OUTPUT: Output file (.json stops or .gpl GIMP palette)
    """
    try:
        palette = ColoringEngine().get_palette(name)
        palette.save_to_file(Path(output))
        click.echo(f"Saved palette '{palette.name}' to {output}")
    except Exception as e:
        _fail(ctx, e)


@main.command('list-presets')
@click.pass_context
def list_presets(ctx):
    """List available configuration presets."""
    try:
        manager = ConfigManager(ctx.obj.get('config_file'))
        config_dict = manager.load_config()

        click.echo("Available presets:")
        for preset in manager.list_presets(config_dict):
            click.echo(f"  {preset}")
            if ctx.obj.get('verbose'):
                for key, value in manager.get_preset(preset, config_dict).items():
                    click.echo(f"    {key}: {value}")

    except Exception as e:
        _fail(ctx, e)


@main.command('init-config')
@click.option('--output', '-o', type=click.Path(), default='fractal_engine.yaml',
              help='Output file path (.yaml or .json)')
@click.pass_context
def init_config(ctx, output):
    """Create a configuration template file."""
    try:
        output_path = Path(output)
        if not output_path.suffix:
            output_path = output_path.with_suffix('.yaml')

        ConfigManager().export_config_template(output_path)
        click.echo(f"Configuration template created: {output_path}")

    except Exception as e:
        _fail(ctx, e)


@main.command('validate-config')
@click.argument('config_file', type=click.Path(exists=True))
@click.pass_context
def validate_config(ctx, config_file):
    """Validate a configuration file."""
    try:
        manager = ConfigManager()
        errors = manager.validate_config(manager.load_config(config_file))
    except Exception as e:
        _fail(ctx, e, "Error validating config")
        return

    if errors:
        click.echo(f"Configuration file has errors: {config_file}")
        for error in errors:
            click.echo(f"  Error: {error}")
        sys.exit(1)

    click.echo(f"Configuration file is valid: {config_file}")


if __name__ == '__main__':
    main()
