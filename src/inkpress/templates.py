"""Template resolver: named layouts and parameterized include fragments.

Layouts and fragments are Jinja2 templates. The registry is built once
before rendering starts and exposes read-only views afterwards, so it can
be shared between render workers without locking.

Fragments read their parameters through the ``include`` namespace, e.g.
``{{ include.id }}``. A placeholder wrapped in ``default(...)`` is
optional; every other placeholder must be supplied by the directive.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateError, nodes

from inkpress.config import SiteConfig
from inkpress.errors import InvalidTemplate, MissingParameter, UnknownInclude, UnknownLayout
from inkpress.models import IncludeDirective

logger = logging.getLogger(__name__)

INCLUDE_NAMESPACE = "include"


def create_environment(includes_dir: Path | None = None) -> Environment:
    """Jinja2 environment shared by layouts and fragments."""
    loader = FileSystemLoader(str(includes_dir)) if includes_dir is not None else None
    return Environment(loader=loader, autoescape=False, keep_trailing_newline=True)


def _include_attr(node: nodes.Node) -> str | None:
    """Return the parameter name if ``node`` reads ``include.<name>``."""
    if isinstance(node, nodes.Getattr):
        target = node.node
        if isinstance(target, nodes.Name) and target.name == INCLUDE_NAMESPACE:
            return node.attr
    if isinstance(node, nodes.Getitem):
        target = node.node
        if (
            isinstance(target, nodes.Name)
            and target.name == INCLUDE_NAMESPACE
            and isinstance(node.arg, nodes.Const)
            and isinstance(node.arg.value, str)
        ):
            return node.arg.value
    return None


def find_placeholders(ast: nodes.Template) -> tuple[frozenset[str], frozenset[str]]:
    """Collect ``(required, optional)`` include parameters of a template."""
    referenced: set[str] = set()
    for node in ast.find_all((nodes.Getattr, nodes.Getitem)):
        name = _include_attr(node)
        if name is not None:
            referenced.add(name)

    optional: set[str] = set()
    for node in ast.find_all(nodes.Filter):
        if node.name in ("default", "d") and node.node is not None:
            name = _include_attr(node.node)
            if name is not None:
                optional.add(name)

    return frozenset(referenced - optional), frozenset(optional)


class Layout:
    """A named template wrapping a rendered body."""

    def __init__(self, name: str, source: str, env: Environment) -> None:
        self.name = name
        try:
            self._template = env.from_string(source)
        except TemplateError as exc:
            raise InvalidTemplate(f"Layout {name!r} does not compile: {exc}") from exc

    def __call__(self, context: Mapping[str, Any]) -> str:
        try:
            return self._template.render(**context)
        except TemplateError as exc:
            raise InvalidTemplate(f"Layout {self.name!r} failed to render: {exc}") from exc


class Fragment:
    """A reusable include with named placeholders."""

    def __init__(self, name: str, source: str, env: Environment) -> None:
        self.name = name
        self.source = source
        try:
            self.required, self.optional = find_placeholders(env.parse(source))
            self._template = env.from_string(source)
        except TemplateError as exc:
            raise InvalidTemplate(f"Include {name!r} does not compile: {exc}") from exc

    def render(self, params: Mapping[str, str]) -> str:
        """Substitute ``params`` into the fragment's placeholders.

        Raises:
            MissingParameter: If a required placeholder is not supplied.
        """
        missing = sorted(self.required - params.keys())
        if missing:
            raise MissingParameter(self.name, missing[0])
        try:
            return self._template.render({INCLUDE_NAMESPACE: dict(params)})
        except TemplateError as exc:
            raise InvalidTemplate(f"Include {self.name!r} failed to render: {exc}") from exc


class TemplateRegistry:
    """Immutable lookup of layouts and fragments by name.

    Resolution is exact: an unregistered name fails immediately, there is
    no default layout and no partial matching.
    """

    def __init__(
        self,
        layouts: Mapping[str, Layout] | None = None,
        fragments: Mapping[str, Fragment] | None = None,
    ) -> None:
        self._layouts: Mapping[str, Layout] = MappingProxyType(dict(layouts or {}))
        self._fragments: Mapping[str, Fragment] = MappingProxyType(dict(fragments or {}))

    @classmethod
    def from_sources(
        cls,
        layouts: Mapping[str, str] | None = None,
        fragments: Mapping[str, str] | None = None,
        *,
        env: Environment | None = None,
    ) -> TemplateRegistry:
        """Compile a registry from in-memory template sources."""
        env = env or create_environment()
        return cls(
            layouts={name: Layout(name, src, env) for name, src in (layouts or {}).items()},
            fragments={
                name: Fragment(name, src, env) for name, src in (fragments or {}).items()
            },
        )

    @property
    def layouts(self) -> Mapping[str, Layout]:
        return self._layouts

    @property
    def fragments(self) -> Mapping[str, Fragment]:
        return self._fragments

    def has_layout(self, name: str) -> bool:
        return name in self._layouts

    def layout(self, name: str) -> Layout:
        """Return the layout registered under ``name``.

        Raises:
            UnknownLayout: If no such layout exists.
        """
        try:
            return self._layouts[name]
        except KeyError:
            raise UnknownLayout(name) from None

    def fragment(self, name: str) -> Fragment:
        """Return the fragment registered under ``name``.

        Raises:
            UnknownInclude: If no such fragment exists.
        """
        try:
            return self._fragments[name]
        except KeyError:
            raise UnknownInclude(name) from None

    def resolve_include(self, directive: IncludeDirective) -> str:
        """Render an include directive to its substituted content."""
        return self.fragment(directive.name).render(directive.params)


def _iter_template_files(directory: Path) -> Iterator[Path]:
    if not directory.is_dir():
        return
    for path in sorted(directory.rglob("*")):
        if path.is_file() and not path.name.startswith("."):
            yield path


def load_registry(source_dir: Path, config: SiteConfig | None = None) -> TemplateRegistry:
    """Build the registry from a site's layouts and includes directories.

    Layouts are keyed by file stem (``_layouts/post.html`` → ``post``).
    Fragments are keyed by their path relative to the includes directory,
    extension included (``_includes/youtubePlayer.html`` →
    ``youtubePlayer.html``).
    """
    config = config or SiteConfig()
    layouts_dir = source_dir / config.build.layouts_dir
    includes_dir = source_dir / config.build.includes_dir
    env = create_environment(includes_dir if includes_dir.is_dir() else None)

    layouts: dict[str, Layout] = {}
    for path in _iter_template_files(layouts_dir):
        name = path.relative_to(layouts_dir).with_suffix("").as_posix()
        try:
            layouts[name] = Layout(name, path.read_text(encoding="utf-8"), env)
        except InvalidTemplate as exc:
            exc.with_path(path)
            raise

    fragments: dict[str, Fragment] = {}
    for path in _iter_template_files(includes_dir):
        name = path.relative_to(includes_dir).as_posix()
        try:
            fragments[name] = Fragment(name, path.read_text(encoding="utf-8"), env)
        except InvalidTemplate as exc:
            exc.with_path(path)
            raise

    logger.info(
        "Loaded %d layout(s) and %d include(s) from %s",
        len(layouts),
        len(fragments),
        source_dir,
    )
    return TemplateRegistry(layouts, fragments)
