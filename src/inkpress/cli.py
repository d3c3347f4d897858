"""CLI interface for inkpress."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from inkpress.assembler import group_by_category
from inkpress.build import build_site, render_site
from inkpress.config import SiteConfig, load_config, merge_cli_overrides
from inkpress.errors import BuildFailed, InkpressError
from inkpress.models import BuildReport

app = typer.Typer(
    name="inkpress",
    help="Build a static site from Markdown files with front matter.",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from inkpress import __version__

        console.print(f"inkpress {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output."),
    ] = False,
) -> None:
    """Inkpress - render content, layouts and includes into a static site."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


SourceArg = Annotated[
    Path,
    typer.Argument(
        help="Site source directory.",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
]
ConfigOpt = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to a .inkpress.toml file."),
]
KeepGoingOpt = Annotated[
    Optional[bool],
    typer.Option(
        "--keep-going/--fail-fast",
        help="Keep building after a document fails (default: fail fast).",
    ),
]
WorkersOpt = Annotated[
    Optional[int],
    typer.Option("--workers", "-j", min=1, help="Render documents in parallel."),
]
DraftsOpt = Annotated[
    Optional[bool],
    typer.Option("--drafts/--no-drafts", help="Include unpublished documents."),
]


def _resolve_config(source: Path, config_path: Path | None, **overrides: object) -> SiteConfig:
    config = load_config(config_path, source_dir=source)
    return merge_cli_overrides(config, **overrides)


def _print_failures(report: BuildReport) -> None:
    table = Table(title="Failed documents", show_lines=False)
    table.add_column("Path", style="cyan")
    table.add_column("Error", style="red", no_wrap=True)
    table.add_column("Message")
    for failure in report.failures:
        table.add_row(str(failure.path), failure.kind, failure.message)
    console.print(table)


@app.command()
def build(
    source: SourceArg = Path("."),
    output: Annotated[
        Optional[Path],
        typer.Option(
            "--output",
            "-o",
            help="Output directory, relative to the current directory. Defaults to <source>/_site.",
            file_okay=False,
            resolve_path=True,
        ),
    ] = None,
    config_path: ConfigOpt = None,
    keep_going: KeepGoingOpt = None,
    workers: WorkersOpt = None,
    drafts: DraftsOpt = None,
    clean: Annotated[
        Optional[bool],
        typer.Option("--clean/--no-clean", help="Remove the output directory first."),
    ] = None,
) -> None:
    """Build the site and write it to the output directory.

    Exits with status 1 if any document fails to load or render.
    """
    config = _resolve_config(
        source,
        config_path,
        output_dir=output,
        keep_going=keep_going,
        workers=workers,
        drafts=drafts,
        clean=clean,
    )
    output_dir = config.output_path(source)
    console.print(f"Building [bold]{source}[/bold] -> {output_dir}")

    try:
        report = build_site(source, config=config)
    except BuildFailed as exc:
        _print_failures(exc.report)
        console.print("[bold red]Build aborted.[/bold red] No files were written.")
        raise typer.Exit(1)
    except InkpressError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)

    console.print()
    console.print(f"  Documents: {report.documents}")
    console.print(f"  Pages written: {len(report.pages_written)}")
    console.print(f"  Listings written: {len(report.listings_written)}")
    console.print(f"  Output: {output_dir}")

    if not report.ok:
        _print_failures(report)
        console.print(f"[bold yellow]Built with {len(report.failures)} failure(s).[/bold yellow]")
        raise typer.Exit(1)

    console.print("[bold green]Build complete![/bold green]")


@app.command()
def check(
    source: SourceArg = Path("."),
    config_path: ConfigOpt = None,
    keep_going: KeepGoingOpt = True,
    drafts: DraftsOpt = None,
) -> None:
    """Load and render every document without writing, then summarize.

    Reports all failing documents by default.
    """
    config = _resolve_config(source, config_path, keep_going=keep_going, drafts=drafts)

    try:
        pages, report = render_site(source, config)
    except BuildFailed as exc:
        _print_failures(exc.report)
        raise typer.Exit(1)
    except InkpressError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)

    table = Table(title=f"{len(pages)} document(s)")
    table.add_column("Category", style="cyan")
    table.add_column("Pages", justify="right")
    table.add_column("Latest")
    for listing in group_by_category(pages):
        latest = listing.pages[0]
        table.add_row(listing.name, str(len(listing.pages)), latest.title)
    console.print(table)

    if not report.ok:
        _print_failures(report)
        raise typer.Exit(1)

    console.print("[green]All documents rendered.[/green]")


if __name__ == "__main__":
    app()
