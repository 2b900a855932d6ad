"""
Command-line interface for the theme packager.
Provides commands for saving and loading themes in every supported format.
"""

import sys
import os
import dataclasses
from pathlib import Path
from typing import List, Optional
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import PackagerConfig, ENV_VARS
from .assets.errors import (
    ThemeCodecError,
    MalformedAssetError,
    CorruptLayoutError,
    DanglingAssetReferenceError,
    UnsupportedPixelFormatError,
    MissingAssetError,
    ManifestError,
    InvalidArchiveError,
    OperationalError,
    CorruptPayloadError,
    ResourceExhaustedError,
)
from .assets.table import AssetTable, BitmapAsset
from .pipeline import ThemePipeline, OperationResult
from .processing.compatibility import CompatibleWithLoss, Incompatible
from .processing.package import PackageMetadata

# Initialize typer app and rich console
app = typer.Typer(
    name="theme-packager",
    help="Theme packager - pack theme images and colors into caches, files, source data and packages",
    add_completion=False,
    rich_markup_mode="rich",
    epilog="""
[bold]Examples:[/bold]
  [cyan]theme-packager save-cache themes/dark -o build/cache[/cyan]         Pack a component directory
  [cyan]theme-packager emit-source build/cache -o src/theme[/cyan]         Snapshot a theme as source
  [cyan]theme-packager write-package build/cache dark.thmpkg[/cyan]        Bundle a theme package
  [cyan]theme-packager load-package dark.thmpkg -o themes/dark[/cyan]      Unpack a theme package

[bold]Environment Variables:[/bold]
  Use [cyan]theme-packager config --env-vars[/cyan] to see all available variables.
    """
)
console = Console()

# Error class -> heading shown to the user
ERROR_TITLES = [
    (InvalidArchiveError, "Invalid archive"),
    (OperationalError, "Operational error"),
    (CorruptPayloadError, "Corrupt package"),
    (ResourceExhaustedError, "Memory error"),
    (MissingAssetError, "Missing theme file"),
    (ManifestError, "Invalid manifest"),
    (UnsupportedPixelFormatError, "Unsupported image format"),
    (DanglingAssetReferenceError, "Dangling image reference"),
    (CorruptLayoutError, "Corrupt image cache"),
    (MalformedAssetError, "Invalid theme asset"),
]


@app.command("save-cache")
def save_cache(
    source: Path = typer.Argument(..., help="Theme to read: component directory, image cache or package"),
    output_dir: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory"),
    image_map: bool = typer.Option(True, "--image-map/--no-image-map", help="Also write an HTML image map"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Pack a theme into an image cache (atlas + layout map)."""
    pipeline = ThemePipeline(_load_config(config_file))
    table = _read_table(pipeline, source)
    result = pipeline.save_cache(table, output_dir or Path(pipeline.config.output_dir), image_map)
    _report(result)


@app.command("load-cache")
def load_cache(
    directory: Path = typer.Argument(..., help="Directory holding the image cache"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Read an image cache and list its assets."""
    pipeline = ThemePipeline(_load_config(config_file))
    result = pipeline.load_cache(directory)
    _report(result)
    _display_table(result.table)


@app.command("save-components")
def save_components(
    source: Path = typer.Argument(..., help="Theme to read: component directory, image cache or package"),
    output_dir: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Write a theme as one image file per bitmap plus a manifest."""
    pipeline = ThemePipeline(_load_config(config_file))
    table = _read_table(pipeline, source)
    result = pipeline.save_components(table, output_dir or Path(pipeline.config.output_dir))
    _report(result)


@app.command("load-components")
def load_components(
    directory: Path = typer.Argument(..., help="Component directory"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Read a component directory and list its assets."""
    pipeline = ThemePipeline(_load_config(config_file))
    result = pipeline.load_components(directory)
    _report(result)
    _display_table(result.table)


@app.command("emit-source")
def emit_source(
    source: Path = typer.Argument(..., help="Theme to read: component directory, image cache or package"),
    output_dir: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory"),
    dialect: Optional[str] = typer.Option(None, "--dialect", "-d", help="Source dialect (c/python)"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Write a theme as embeddable source data plus a definitions listing."""
    pipeline = ThemePipeline(_load_config(config_file))
    if dialect and dialect not in ("c", "python"):
        console.print(f"[red]Unknown dialect:[/red] {escape(dialect)} (expected c or python)")
        raise typer.Exit(1)

    table = _read_table(pipeline, source)
    result = pipeline.save_source(table, output_dir or Path(pipeline.config.output_dir), dialect)
    _report(result)


@app.command("image-map")
def image_map(
    directory: Path = typer.Argument(..., help="Directory holding the image cache"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Write an HTML image map for an existing image cache."""
    pipeline = ThemePipeline(_load_config(config_file))
    try:
        path = pipeline.cache_codec.save_image_map(directory)
    except ThemeCodecError as e:
        _print_error(e)
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Wrote image map {escape(str(path))}")


@app.command("write-package")
def write_package(
    source: Path = typer.Argument(..., help="Theme to read: component directory, image cache or package"),
    output: Path = typer.Argument(..., help="Package file to write"),
    min_compatible: Optional[int] = typer.Option(None, "--min-compatible", help="Oldest codec version allowed to read the package"),
    name: Optional[str] = typer.Option(None, "--name", help="Theme name stored in the package"),
    author: Optional[str] = typer.Option(None, "--author", help="Theme author stored in the package"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Bundle a theme into a versioned, checksummed package."""
    pipeline = ThemePipeline(_load_config(config_file))
    running = pipeline.archive.format_version
    if min_compatible is not None and min_compatible > running:
        console.print(f"[red]Invalid --min-compatible:[/red] {min_compatible} is above the running version {running}")
        raise typer.Exit(1)

    attributes = {}
    if name:
        attributes["name"] = name
    if author:
        attributes["author"] = author
    metadata = PackageMetadata(
        min_compatible_version=running if min_compatible is None else min_compatible,
        attributes=attributes
    )

    table = _read_table(pipeline, source)
    result = pipeline.write_package(table, output, metadata)
    _report(result)


@app.command("load-package")
def load_package(
    package: Path = typer.Argument(..., help="Package file to read"),
    output_dir: Optional[Path] = typer.Option(None, "--output", "-o", help="Unpack into a component directory"),
    known_ids_file: Optional[Path] = typer.Option(
        None, "--known-ids",
        help="File listing the asset ids this build knows, one per line; "
             "assets of a newer package missing from it are dropped. Without it every id is accepted"
    ),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Validate a theme package and optionally unpack it."""
    known_ids = _read_known_ids(known_ids_file) if known_ids_file else None
    pipeline = ThemePipeline(_load_config(config_file), known_ids=known_ids)
    result = pipeline.load_package(package)

    if isinstance(result.outcome, Incompatible):
        console.print(f"[red]Incompatible theme:[/red] {escape(result.outcome.reason)}")
        raise typer.Exit(1)
    _report(result)

    if isinstance(result.outcome, CompatibleWithLoss) and result.outcome.dropped_ids:
        console.print(f"[yellow]Package is newer than this version; "
                      f"{len(result.outcome.dropped_ids)} unknown assets were dropped[/yellow]")
    for key, value in sorted(result.data.get("attributes", {}).items()):
        console.print(f"  {escape(key)}: {escape(value)}")

    _display_table(result.table)
    if output_dir:
        _report(pipeline.save_components(result.table, output_dir))


@app.command()
def defaults(
    output_dir: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the default theme as components"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Read the configured default theme."""
    pipeline = ThemePipeline(_load_config(config_file))
    result = pipeline.read_defaults()
    _report(result)
    _display_table(result.table)
    if output_dir:
        _report(pipeline.save_components(result.table, output_dir))


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
    validate_config: bool = typer.Option(False, "--validate", help="Validate configuration file"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    env_vars: bool = typer.Option(False, "--env-vars", help="Show available environment variables")
):
    """Manage packager configuration."""
    if env_vars:
        _display_env_vars()
        return

    if show or validate_config:
        config = _load_config(config_file)

        if show:
            _display_config(config)

        if validate_config:
            errors = config.validate()
            if errors:
                console.print("[red]Configuration validation errors:[/red]")
                for error in errors:
                    console.print(f"  • {error}")
                raise typer.Exit(1)
            else:
                console.print("[green]✓ Configuration is valid[/green]")
    else:
        console.print("Use --show to display configuration, --validate to check it, or --env-vars to see environment variables.")


@app.command()
def version():
    """Show theme packager version information."""
    console.print("[bold]Theme Packager[/bold]")
    console.print(f"Version: {__version__}")
    console.print("Python: " + sys.version.split()[0])

    from importlib import metadata

    table = Table(show_header=False)
    table.add_column("Status", width=3)
    table.add_column("Package", style="cyan")
    table.add_column("Version", style="green")

    for name in ("Pillow", "numpy", "Jinja2", "toml", "typer", "rich"):
        try:
            table.add_row("[green]✓[/green]", name, metadata.version(name))
        except metadata.PackageNotFoundError:
            table.add_row("[red]✗[/red]", name, "Not installed")

    console.print("\n[bold]Dependencies:[/bold]")
    console.print(table)


def _load_config(config_file: Optional[Path]) -> PackagerConfig:
    """Load configuration from file or use defaults with environment variable support."""
    config = None

    if config_file:
        if not config_file.exists():
            console.print(f"[red]Configuration file not found:[/red] {config_file}")
            raise typer.Exit(1)
        try:
            config = PackagerConfig.from_file(config_file)
        except ValueError as e:
            console.print(f"[red]Error loading configuration:[/red] {escape(str(e))}")
            raise typer.Exit(1)
        console.print(f"[dim]Using configuration: {config_file}[/dim]")
    else:
        # Try to find default config files
        default_configs = [
            Path("theme_packager.toml"),
            Path("theme_packager.json"),
        ]

        for config_path in default_configs:
            if config_path.exists():
                console.print(f"[dim]Using configuration: {config_path}[/dim]")
                config = PackagerConfig.from_file(config_path)
                break

        if config is None:
            config = PackagerConfig()

    # Apply environment variable overrides
    config = PackagerConfig._apply_env_overrides(config)

    env_vars_used = [key for key in os.environ if key.startswith('THEME_PACKAGER_')]
    if env_vars_used:
        console.print(f"[dim]Environment overrides applied: {len(env_vars_used)} variables[/dim]")

    return config


def _read_known_ids(path: Path) -> List[str]:
    """Read one asset id per line, skipping blank lines."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]Cannot read known ids:[/red] {escape(str(e))}")
        raise typer.Exit(1)
    return [line for line in text.splitlines() if line.strip()]


def _read_table(pipeline: ThemePipeline, source: Path) -> AssetTable:
    """
    Read a theme from whatever `source` points at.

    A directory with a manifest is a component directory, a directory or
    `.json` file otherwise names an image cache, and any other file is
    treated as a package.
    """
    if source.is_dir():
        if pipeline.component_codec.manifest_path(source).exists():
            result = pipeline.load_components(source)
        else:
            result = pipeline.load_cache(source)
    elif source.suffix.lower() == ".json":
        if source.stem != pipeline.config.cache_name:
            pipeline = ThemePipeline(dataclasses.replace(pipeline.config, cache_name=source.stem))
        result = pipeline.load_cache(source.parent)
    else:
        result = pipeline.load_package(source)
        if isinstance(result.outcome, Incompatible):
            console.print(f"[red]Incompatible theme:[/red] {escape(result.outcome.reason)}")
            raise typer.Exit(1)

    _report(result, quiet=True)
    return result.table


def _report(result: OperationResult, quiet: bool = False) -> None:
    """Print an operation result, exiting with status 1 on failure."""
    if not result.success:
        if result.error is not None:
            _print_error(result.error)
        else:
            console.print(f"[red]✗[/red] {escape(result.message)}")
        raise typer.Exit(1)

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")
    if not quiet:
        console.print(f"[green]✓[/green] {escape(result.message)}")
        for path in result.files:
            console.print(f"  [dim]{escape(str(path))}[/dim]")


def _print_error(error: ThemeCodecError) -> None:
    title = "Theme error"
    for error_type, heading in ERROR_TITLES:
        if isinstance(error, error_type):
            title = heading
            break
    console.print(f"[red]{title}:[/red] {escape(str(error))}")


def _display_table(table: Optional[AssetTable]) -> None:
    """Display the assets of a table."""
    if table is None:
        return

    view = Table(title=f"Theme Assets ({len(table.bitmaps())} images, {len(table.colors())} colors)")
    view.add_column("Id", style="cyan")
    view.add_column("Kind")
    view.add_column("Value", style="green")
    view.add_column("Role")

    for asset in table.sorted_assets():
        if isinstance(asset, BitmapAsset):
            view.add_row(escape(asset.asset_id), "image", f"{asset.width}×{asset.height}", asset.role.value)
        else:
            view.add_row(escape(asset.asset_id), "color", asset.hex, "")

    console.print(view)


def _display_config(config: PackagerConfig) -> None:
    """Display configuration in a formatted table."""
    table = Table(title="Theme Packager Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    # Atlas settings
    table.add_row("Atlas Width", str(config.atlas_width))
    table.add_row("Atlas Padding", str(config.atlas_padding))

    # Output settings
    table.add_row("Compression Level", str(config.compression_level))
    table.add_row("Cache Name", config.cache_name)
    table.add_row("Manifest Name", config.manifest_name)
    table.add_row("Source Dialect", config.source_dialect)
    table.add_row("Output Directory", config.output_dir)

    # Limits
    table.add_row("Max Atlas Pixels", str(config.max_atlas_pixels))
    table.add_row("Max Package Bytes", str(config.max_package_bytes))
    table.add_row("Max Package Entries", str(config.max_package_entries))

    table.add_row("Fallback Cache Directory", config.fallback_cache_dir or "(none)")

    console.print(table)


def _display_env_vars() -> None:
    """Display available environment variables for configuration."""
    table = Table(title="Theme Packager Environment Variables")
    table.add_column("Variable", style="cyan")
    table.add_column("Description", style="white")
    table.add_column("Example", style="green")

    for var_name, description, example in ENV_VARS:
        table.add_row(var_name, description, example)

    console.print(table)
    console.print("\n[dim]Set these environment variables to override configuration file settings.[/dim]")
    console.print("[dim]Example: export THEME_PACKAGER_ATLAS_WIDTH=1024[/dim]")


if __name__ == "__main__":
    app()
