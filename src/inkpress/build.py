"""Build pipeline: source tree to rendered pages to written site.

Stages run in order: the template registry is loaded once, every content
file is loaded and rendered independently, and the assembler writes the
site only after all renders have finished.

Failure policy:
  fail-fast: the first failing document aborts the build; nothing is written.
  fail-soft: failures are collected; every other page is still written.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from inkpress.assembler import SiteAssembler, find_output_conflicts
from inkpress.config import SiteConfig, merge_cli_overrides
from inkpress.errors import BuildFailed, InkpressError
from inkpress.loader import ContentLoader
from inkpress.models import BuildReport, FailurePolicy, RenderedPage
from inkpress.renderer import render_document
from inkpress.templates import TemplateRegistry, load_registry

logger = logging.getLogger(__name__)

# (source path, rendered page or None when skipped, error or None)
_Outcome = tuple[Path, RenderedPage | None, InkpressError | None]


def _load_and_render(
    loader: ContentLoader, registry: TemplateRegistry, config: SiteConfig, path: Path
) -> _Outcome:
    try:
        document = loader.load(path)
        if document is None:
            return path, None, None
        return path, render_document(document, registry, config), None
    except InkpressError as exc:
        exc.with_path(path)
        return path, None, exc


def _render_all(
    loader: ContentLoader, registry: TemplateRegistry, config: SiteConfig
) -> Iterator[_Outcome]:
    """Render every content file, yielding outcomes in source path order."""
    paths = list(loader.iter_paths())
    workers = max(1, config.build.workers)
    if workers == 1:
        for path in paths:
            yield _load_and_render(loader, registry, config, path)
        return

    with ThreadPoolExecutor(max_workers=workers) as pool:
        yield from pool.map(
            lambda p: _load_and_render(loader, registry, config, p), paths
        )


def _clean_output(output_dir: Path, source_dir: Path) -> None:
    resolved = output_dir.resolve()
    if resolved == source_dir.resolve() or resolved in source_dir.resolve().parents:
        raise InkpressError(f"Refusing to clean {output_dir}: it contains the source tree")
    if output_dir.exists():
        logger.info("Cleaning %s", output_dir)
        shutil.rmtree(output_dir)


def render_site(
    source_dir: Path,
    config: SiteConfig,
    registry: TemplateRegistry | None = None,
) -> tuple[list[RenderedPage], BuildReport]:
    """Load and render every document without writing anything.

    Raises:
        BuildFailed: Under fail-fast, at the first failing document, or
            once rendering is done if two outputs share a path.
        InvalidTemplate: If a layout or include does not compile.
    """
    registry = registry or load_registry(source_dir, config)
    loader = ContentLoader(source_dir, config)
    report = BuildReport()
    pages: list[RenderedPage] = []

    for path, page, error in _render_all(loader, registry, config):
        if error is not None:
            logger.error("%s: %s", error.kind, error)
            report.record_failure(path, error.kind, error.message)
            if config.policy is FailurePolicy.FAIL_FAST:
                report.documents = len(pages) + len(report.failures)
                raise BuildFailed(report)
            continue
        if page is not None:
            pages.append(page)

    report.documents = len(pages) + len(report.failures)

    conflicts = find_output_conflicts(pages)
    for conflict in conflicts:
        logger.error("%s: %s", conflict.kind, conflict)
        report.record_failure(conflict.path, conflict.kind, conflict.message)
    if conflicts:
        if config.policy is FailurePolicy.FAIL_FAST:
            raise BuildFailed(report)
        clashing = {conflict.path for conflict in conflicts}
        pages = [page for page in pages if page.source_path not in clashing]

    return pages, report


def build_site(
    source_dir: Path,
    output_dir: Path | None = None,
    config: SiteConfig | None = None,
) -> BuildReport:
    """Build the site under ``source_dir``.

    Args:
        source_dir: Site root containing content, layouts and includes.
        output_dir: Where to write the site. Defaults to the configured
            output directory.
        config: Site configuration; defaults apply when omitted.

    Returns:
        A BuildReport. Under fail-soft it may list failures.

    Raises:
        BuildFailed: Under fail-fast, when any document fails. Nothing
            is written in that case.
        InvalidTemplate: If a layout or include does not compile.
    """
    config = config or SiteConfig()
    if output_dir is not None:
        config = merge_cli_overrides(config, output_dir=output_dir)
    output_dir = config.output_path(source_dir)

    registry = load_registry(source_dir, config)
    pages, report = render_site(source_dir, config, registry)

    if config.build.clean:
        _clean_output(output_dir, source_dir)

    assembler = SiteAssembler(output_dir, registry, config)
    report.pages_written, report.listings_written = assembler.assemble(pages)
    return report
