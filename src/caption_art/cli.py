from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .analysis.types import ReferenceMetadata
from .brand import BrandStyle
from .config import load_config_or_default
from .errors import CaptionArtError
from .pipeline import Pipeline, build_pipeline
from .render.types import RenderRequest

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", help="Path to caption-art.toml"),
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
):
    level = log_level.upper()
    if level not in LOG_LEVELS:
        raise typer.BadParameter(f"expected one of {', '.join(LOG_LEVELS)}", param_hint="--log-level")
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    ctx.obj = {"config_path": config}


def _pipeline(ctx: typer.Context) -> Pipeline:
    try:
        return build_pipeline(load_config_or_default(ctx.obj["config_path"]))
    except CaptionArtError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e


def _brand_style(
    pipeline: Pipeline,
    workspace: Optional[str],
    primary: Optional[str],
    secondary: Optional[str],
    accent: Optional[str],
) -> BrandStyle:
    if workspace:
        return pipeline.brands.get_brand_style(workspace)
    if not primary:
        raise typer.BadParameter("pass --workspace or --primary")
    return BrandStyle(
        primary_color=primary,
        secondary_color=secondary or primary,
        accent_color=accent or primary,
    )


@app.command()
def render(
    ctx: typer.Context,
    subject: str = typer.Argument(..., help="Subject image path or URL"),
    caption: str = typer.Option("", "--caption", "-c"),
    fmt: str = typer.Option("square", "--format", help="square or story"),
    layout: str = typer.Option("center-focus", "--layout", help="center-focus, bottom-text or top-text"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Brand kit workspace id"),
    primary: Optional[str] = typer.Option(None, "--primary"),
    secondary: Optional[str] = typer.Option(None, "--secondary"),
    accent: Optional[str] = typer.Option(None, "--accent"),
    watermark: bool = typer.Option(False, "--watermark"),
    quality: int = typer.Option(90, "--quality", min=1, max=100),
    no_cache: bool = typer.Option(False, "--no-cache", help="Render even if a cached result exists"),
):
    """Render one captioned creative."""
    pipeline = _pipeline(ctx)
    try:
        request = RenderRequest(
            format=fmt,
            layout=layout,
            caption=caption,
            brand_style=_brand_style(pipeline, workspace, primary, secondary, accent),
            watermark=watermark,
            quality=quality,
        )
        result = pipeline.renderer.render(subject, request, bypass_cache=no_cache)
    except (CaptionArtError, ValidationError) as e:
        console.print(f"[bold red]Render failed:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    console.print(f"[bold green]Rendered[/bold green] {result.image_ref} ({result.width}x{result.height})")
    console.print(f"Thumbnail: {result.thumbnail_ref}")


@app.command("render-all")
def render_all(
    ctx: typer.Context,
    subject: str = typer.Argument(..., help="Subject image path or URL"),
    caption: str = typer.Option("", "--caption", "-c"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w"),
    primary: Optional[str] = typer.Option(None, "--primary"),
    secondary: Optional[str] = typer.Option(None, "--secondary"),
    accent: Optional[str] = typer.Option(None, "--accent"),
    watermark: bool = typer.Option(False, "--watermark"),
):
    """Render the standard set of formats and layouts."""
    pipeline = _pipeline(ctx)
    try:
        style = _brand_style(pipeline, workspace, primary, secondary, accent)
    except (CaptionArtError, ValidationError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    renders = pipeline.renderer.render_multiple_formats(subject, caption, style, watermark)

    table = Table(title="Renders")
    table.add_column("Format")
    table.add_column("Layout")
    table.add_column("Image")
    table.add_column("Size")
    for r in renders:
        table.add_row(r.format, r.layout, r.result.image_ref, f"{r.result.width}x{r.result.height}")
    console.print(table)

    if not renders:
        console.print("[bold red]No variants rendered[/bold red]")
        raise typer.Exit(code=1)


@app.command()
def analyze(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Reference image path or URL"),
    name: str = typer.Option("", "--name"),
    description: str = typer.Option("", "--description"),
    tags: list[str] = typer.Option([], "--tag", help="Reference tag; repeatable"),
    as_json: bool = typer.Option(False, "--json", help="Print the full analysis as JSON"),
):
    """Learn a style profile from a reference image."""
    pipeline = _pipeline(ctx)
    metadata = ReferenceMetadata(reference_id=source, name=name, description=description, tags=tuple(tags))
    try:
        analysis = pipeline.analyzer.analyze_reference(source, metadata)
    except CaptionArtError as e:
        console.print(f"[bold red]Analysis failed:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    if as_json:
        console.print_json(json.dumps(analysis.to_dict()))
        return

    table = Table(title=f"Style analysis ({analysis.source})")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Palette", ", ".join(analysis.color_palette))
    table.add_row("Visual style", ", ".join(analysis.visual_style_descriptors))
    table.add_row("Composition", ", ".join(analysis.composition_descriptors))
    table.add_row("Mood", ", ".join(analysis.mood_descriptors))
    table.add_row("Typography", ", ".join(analysis.typography_suggestions))
    table.add_row("Key elements", ", ".join(analysis.key_elements))
    table.add_row("Confidence", f"{analysis.confidence:.2f}")
    console.print(table)


@app.command()
def cleanup(
    ctx: typer.Context,
    older_than_hours: float = typer.Option(24.0, "--older-than-hours", min=0),
):
    """Delete generated renders older than the cutoff."""
    pipeline = _pipeline(ctx)
    removed = pipeline.renderer.cleanup_old_files(older_than_hours)
    console.print(f"Removed {removed} file(s) from {pipeline.renderer.output_dir}")


cache_app = typer.Typer(add_completion=False, no_args_is_help=True)
app.add_typer(cache_app, name="cache")


@cache_app.command("stats")
def cache_stats(ctx: typer.Context):
    pipeline = _pipeline(ctx)
    stats = pipeline.cache.stats()
    table = Table(title=f"Cache ({pipeline.cache.cache_dir})")
    table.add_column("Hits", style="green")
    table.add_column("Misses", style="yellow")
    table.add_column("Entries")
    table.add_column("Memory (bytes)")
    table.add_column("Hit rate")
    table.add_row(
        str(stats.hits),
        str(stats.misses),
        str(stats.entry_count),
        str(stats.total_memory_bytes),
        f"{stats.hit_rate:.1%}",
    )
    console.print(table)
    console.print(f"Files on disk: {pipeline.cache.file_count()}")


@cache_app.command("clear")
def cache_clear(ctx: typer.Context):
    pipeline = _pipeline(ctx)
    pipeline.cache.clear()
    console.print(f"[bold green]Cleared[/bold green] {pipeline.cache.cache_dir}")


if __name__ == "__main__":
    app()
