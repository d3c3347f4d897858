"""Renderer: expand includes, convert Markdown, and wrap in a layout.

Rendering a document is a pure function of the document, the template
registry and the config. Errors raised by the registry propagate
unchanged, tagged with the document's source path.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import markdown

from inkpress.config import SiteConfig
from inkpress.errors import InkpressError, InvalidPermalink
from inkpress.loader import DRAFTS_DIR, POSTS_DIR
from inkpress.models import ContentDocument, IncludeDirective, RenderedPage
from inkpress.templates import TemplateRegistry

logger = logging.getLogger(__name__)

_DIRECTIVE = re.compile(r"\{%-?\s*include\s+(?P<args>.*?)\s*-?%\}", re.DOTALL)
_PARAM = re.compile(
    r"""(?P<key>[A-Za-z_][\w-]*)\s*=\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\s"']+))"""
)


def slugify(text: str) -> str:
    """Lowercase, hyphen-separated form of ``text`` for use in paths."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug or "untitled"


def _parse_directive(match: re.Match[str]) -> IncludeDirective:
    args = match.group("args").strip()
    name, *remainder = re.split(r"\s+", args, maxsplit=1)
    rest = remainder[0] if remainder else ""
    name = name.strip("\"'")

    params: dict[str, str] = {}
    for param in _PARAM.finditer(rest):
        value = param.group("dq")
        if value is None:
            value = param.group("sq")
        if value is None:
            value = param.group("bare")
        params[param.group("key")] = value

    leftover = _PARAM.sub("", rest).strip()
    if leftover:
        logger.warning("Ignoring unrecognized include arguments %r in %r", leftover, args)

    return IncludeDirective(
        name=name,
        params=params,
        start=match.start(),
        end=match.end(),
        raw=match.group(0),
    )


def find_include_directives(body: str) -> list[IncludeDirective]:
    """Return the include directives in ``body``, left to right."""
    return [_parse_directive(m) for m in _DIRECTIVE.finditer(body)]


def expand_includes(body: str, registry: TemplateRegistry) -> str:
    """Replace every include directive with its resolved fragment.

    Single pass: content produced by a fragment is not scanned again.
    """
    return _DIRECTIVE.sub(
        lambda m: registry.resolve_include(_parse_directive(m)),
        body,
    )


def output_path_for(document: ContentDocument) -> Path:
    """Site-relative output path of a document.

    ``permalink`` wins. Dated documents go under their categories and
    date; undated ones mirror their source path.

    Raises:
        InvalidPermalink: If the permalink climbs out of the site root.
    """
    if document.permalink:
        target = document.permalink.replace("\\", "/").strip("/")
        if ".." in target.split("/"):
            raise InvalidPermalink(
                f"Permalink escapes the output directory: {document.permalink!r}"
            )
        if not target:
            return Path("index.html")
        if document.permalink.endswith("/") or not Path(target).suffix:
            return Path(target) / "index.html"
        return Path(target)

    if document.date is not None:
        d = document.date
        parts = [slugify(c) for c in sorted(document.categories)]
        parts += [f"{d:%Y}", f"{d:%m}", f"{d:%d}", f"{document.slug}.html"]
        return Path(*parts)

    relative = document.relative_path
    if relative.parts and relative.parts[0] in (POSTS_DIR, DRAFTS_DIR):
        relative = Path(*relative.parts[1:])
    return relative.with_suffix(".html")


def url_for(output_path: Path) -> str:
    url = "/" + output_path.as_posix()
    if url.endswith("/index.html"):
        url = url.removesuffix("index.html")
    return url


def page_context(document: ContentDocument, url: str) -> dict[str, Any]:
    """Front matter fields exposed to layouts as ``page``."""
    context = dict(document.front_matter)
    context.update(
        title=document.title,
        categories=sorted(document.categories),
        date=document.date,
        slug=document.slug,
        url=url,
    )
    return context


def render_document(
    document: ContentDocument,
    registry: TemplateRegistry,
    config: SiteConfig | None = None,
) -> RenderedPage:
    """Render a document into its final page.

    Raises:
        UnknownInclude, MissingParameter, UnknownLayout: From the
            registry, tagged with the document path.
    """
    config = config or SiteConfig()
    try:
        body = expand_includes(document.body, registry)
        layout = registry.layout(document.layout)

        if document.is_markdown:
            body = markdown.markdown(body, extensions=config.markdown.extensions)

        output_path = output_path_for(document)
        url = url_for(output_path)
        html = layout(
            {
                "content": body,
                "page": page_context(document, url),
                "site": config.site.model_dump(),
            }
        )
    except InkpressError as exc:
        exc.with_path(document.source_path)
        raise

    logger.debug("Rendered %s -> %s", document.source_path, output_path)
    return RenderedPage(
        source_path=document.source_path,
        output_path=output_path,
        url=url,
        html=html,
        title=document.title,
        slug=document.slug,
        categories=document.categories,
        date=document.date,
    )
