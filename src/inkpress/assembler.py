"""Site assembler: group rendered pages by category and write the site.

The assembler only runs once every page has been rendered, since a
category listing needs the complete set of pages. Listing order is
derived from page dates and slugs, never from filesystem order.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from jinja2 import Environment

from inkpress.config import SiteConfig
from inkpress.errors import OutputConflict
from inkpress.models import CategoryListing, RenderedPage
from inkpress.renderer import slugify, url_for
from inkpress.templates import TemplateRegistry

logger = logging.getLogger(__name__)

INDEX_PATH = Path("index.html")

_LISTING_SOURCE = """\
<h1>{{ heading }}</h1>
<ul class="post-list">
{%- for page in pages %}
  <li>{% if page.date %}<span class="post-date">{{ page.date.strftime("%Y-%m-%d") }}</span> {% endif %}<a href="{{ page.url }}">{{ page.title }}</a></li>
{%- endfor %}
</ul>
"""

_SHELL_SOURCE = """\
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{{ page.title }}{% if site.title %} | {{ site.title }}{% endif %}</title>
</head>
<body>
{{ content | safe }}
</body>
</html>
"""

_builtin = Environment(autoescape=True, keep_trailing_newline=True)
_listing_template = _builtin.from_string(_LISTING_SOURCE)
_shell_template = _builtin.from_string(_SHELL_SOURCE)


def listing_order(pages: Iterable[RenderedPage]) -> list[RenderedPage]:
    """Newest first; undated pages last; ties broken by slug then path."""
    by_name = sorted(pages, key=lambda p: (p.slug, p.output_path.as_posix()))
    return sorted(by_name, key=lambda p: p.date or datetime.min, reverse=True)


def group_by_category(pages: Iterable[RenderedPage]) -> list[CategoryListing]:
    """Build one listing per distinct category, sorted by category name.

    A page appears once in the listing of every category it declares
    and in no other listing.
    """
    grouped: dict[str, list[RenderedPage]] = {}
    for page in pages:
        for category in page.categories:
            grouped.setdefault(category, []).append(page)

    listings: list[CategoryListing] = []
    used_slugs: set[str] = set()
    for name in sorted(grouped):
        slug = slugify(name)
        candidate, n = slug, 2
        while candidate in used_slugs:
            candidate = f"{slug}-{n}"
            n += 1
        used_slugs.add(candidate)
        listings.append(
            CategoryListing(name=name, slug=candidate, pages=listing_order(grouped[name]))
        )
    return listings


def find_output_conflicts(pages: list[RenderedPage]) -> list[OutputConflict]:
    """Return one error for every page whose output path is already taken.

    A path is taken when another page renders to it or when a category
    listing would be written there. Every page in a clash gets an error,
    so the result does not depend on render order.
    """
    claimed: dict[Path, list[RenderedPage]] = {}
    for page in pages:
        claimed.setdefault(page.output_path, []).append(page)
    listing_paths = {listing.output_path: listing.name for listing in group_by_category(pages)}

    conflicts: list[OutputConflict] = []
    for page in pages:
        others = [p for p in claimed[page.output_path] if p is not page]
        if others:
            other = ", ".join(str(p.source_path) for p in others)
        elif page.output_path in listing_paths:
            other = f"the listing for category {listing_paths[page.output_path]!r}"
        else:
            continue
        conflicts.append(OutputConflict(page.output_path, other, path=page.source_path))
    return conflicts


def _atomic_write(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a temp file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class SiteAssembler:
    """Writes rendered pages, category listings and the site index."""

    def __init__(
        self,
        output_dir: Path,
        registry: TemplateRegistry,
        config: SiteConfig | None = None,
    ) -> None:
        self.output_dir = output_dir
        self.registry = registry
        self.config = config or SiteConfig()

    def render_listing(self, heading: str, pages: list[RenderedPage], url: str) -> str:
        """Render a listing page, wrapped in the listing layout if one exists."""
        content = _listing_template.render(heading=heading, pages=pages)
        context: dict[str, Any] = {
            "content": content,
            "page": {"title": heading, "url": url, "pages": pages},
            "site": self.config.site.model_dump(),
        }
        layout_name = self.config.build.listing_layout
        if self.registry.has_layout(layout_name):
            return self.registry.layout(layout_name)(context)
        return _shell_template.render(**context)

    def write_page(self, page: RenderedPage) -> Path:
        target = self.output_dir / page.output_path
        _atomic_write(target, page.html)
        return target

    def assemble(self, pages: Iterable[RenderedPage]) -> tuple[list[Path], list[Path]]:
        """Write every page, one listing per category, and the index.

        Returns:
            ``(pages_written, listings_written)``.
        """
        ordered = listing_order(pages)

        pages_written = [self.write_page(page) for page in ordered]

        listings_written: list[Path] = []
        for listing in group_by_category(ordered):
            html = self.render_listing(
                listing.name, listing.pages, url_for(listing.output_path)
            )
            target = self.output_dir / listing.output_path
            _atomic_write(target, html)
            listings_written.append(target)

        if not any(page.output_path == INDEX_PATH for page in ordered):
            index_html = self.render_listing(
                self.config.site.title or "Posts", ordered, url_for(INDEX_PATH)
            )
            index_target = self.output_dir / INDEX_PATH
            _atomic_write(index_target, index_html)
            listings_written.append(index_target)

        logger.info(
            "Wrote %d page(s) and %d listing(s) to %s",
            len(pages_written),
            len(listings_written),
            self.output_dir,
        )
        return pages_written, listings_written
