"""Content loader: discover source files and parse their front matter.

A content file starts with a ``---`` line, followed by YAML key-value
pairs and a closing ``---`` line. Everything after the closing line is
the body. Files without an opening delimiter are not content documents
(static assets, partials) and are skipped.
"""

from __future__ import annotations

import contextlib
import logging
import os
import re
from collections.abc import Iterator
from datetime import UTC, date, datetime, time
from pathlib import Path
from typing import Any

import yaml

from inkpress.config import SiteConfig
from inkpress.errors import InkpressError, MalformedHeader, UnreadableSource
from inkpress.models import ContentDocument

logger = logging.getLogger(__name__)

DELIMITER = "---"
POSTS_DIR = "_posts"
DRAFTS_DIR = "_drafts"

_DATED_STEM = re.compile(r"^(\d{4}-\d{2}-\d{2})-(.+)$")
_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S %z", "%Y-%m-%d %H:%M %z", "%Y-%m-%d %H:%M:%S")


def split_front_matter(text: str) -> tuple[str | None, str]:
    """Split a file into its header text and body.

    Returns ``(None, text)`` when the file does not open with a delimiter.

    Raises:
        MalformedHeader: If the header is opened but never closed.
    """
    text = text.removeprefix("\ufeff")
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != DELIMITER:
        return None, text

    for idx in range(1, len(lines)):
        if lines[idx].rstrip() == DELIMITER:
            header = "".join(lines[1:idx])
            body = "".join(lines[idx + 1 :])
            return header, body

    raise MalformedHeader("Front matter opened with '---' but never closed")


def parse_front_matter(text: str) -> dict[str, Any]:
    """Extract the front matter of a content file as a dict.

    Returns an empty dict when the text has no front matter.

    Raises:
        MalformedHeader: If the header is unterminated or is not a
            YAML mapping.
    """
    header, _ = split_front_matter(text)
    if header is None:
        return {}
    return _parse_header(header)


def serialize_front_matter(data: dict[str, Any]) -> str:
    """Dump a front matter dict back to its delimited YAML form."""
    if not data:
        return f"{DELIMITER}\n{DELIMITER}\n"
    dumped = yaml.safe_dump(
        data, sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    return f"{DELIMITER}\n{dumped}{DELIMITER}\n"


def _parse_header(header: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError as exc:
        raise MalformedHeader(f"Front matter is not valid YAML: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise MalformedHeader(
            f"Front matter must be key-value pairs, got {type(data).__name__}"
        )
    return {str(key): value for key, value in data.items()}


def load_document(path: Path, root: Path) -> ContentDocument | None:
    """Parse a single source file into a ContentDocument.

    Returns None if the file has no front matter.

    Raises:
        MalformedHeader: If the header is structurally invalid.
        UnreadableSource: If the file is not valid UTF-8.

    Both errors are tagged with ``path``.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise UnreadableSource(
            f"Not valid UTF-8 text (byte {exc.start}: {exc.reason})", path=path
        ) from exc

    try:
        header, body = split_front_matter(text)
        if header is None:
            logger.debug("No front matter in %s, skipping", path)
            return None
        return _build_document(path, root, _parse_header(header), body)
    except InkpressError as exc:
        exc.with_path(path)
        raise


def _build_document(
    path: Path, root: Path, fm: dict[str, Any], body: str
) -> ContentDocument:
    layout = fm.get("layout")
    if not isinstance(layout, str) or not layout.strip():
        raise MalformedHeader("Front matter must declare a 'layout'")

    relative = path.relative_to(root)
    stem_match = _DATED_STEM.match(path.stem)

    entry_date: datetime | None = None
    if "date" in fm:
        entry_date = _coerce_date(fm["date"])
    elif stem_match:
        with contextlib.suppress(ValueError):
            entry_date = datetime.combine(date.fromisoformat(stem_match.group(1)), time())

    slug = stem_match.group(2) if stem_match else path.stem

    title = fm.get("title")
    if title is None or title == "":
        title = slug.replace("-", " ").replace("_", " ").title()

    categories = _coerce_categories(fm.get("categories")) | _coerce_categories(
        fm.get("category")
    )

    permalink = fm.get("permalink")
    published = fm.get("published", True) is not False
    if relative.parts and relative.parts[0] == DRAFTS_DIR:
        published = False

    return ContentDocument(
        source_path=path,
        relative_path=relative,
        layout=layout.strip(),
        title=str(title),
        categories=categories,
        body=body,
        date=entry_date,
        slug=slug,
        permalink=str(permalink) if permalink else None,
        published=published,
        front_matter=fm,
    )


def _coerce_date(value: Any) -> datetime:
    """Normalize a front matter date to a naive UTC datetime."""
    parsed: datetime | None = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time())
    elif isinstance(value, str):
        raw = value.strip()
        with contextlib.suppress(ValueError):
            parsed = datetime.fromisoformat(raw)
        for fmt in _DATE_FORMATS:
            if parsed is not None:
                break
            with contextlib.suppress(ValueError):
                parsed = datetime.strptime(raw, fmt)

    if parsed is None:
        raise MalformedHeader(f"Unparseable date: {value!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def _coerce_categories(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset(value.split())
    if isinstance(value, list | tuple | set):
        return frozenset(str(item).strip() for item in value if str(item).strip())
    return frozenset([str(value)])


class ContentLoader:
    """Discovers content files under a site root.

    Discovery is lazy and restartable: every call to ``iter_paths`` or
    ``iter_documents`` walks the tree again. Directories are visited in
    sorted order so results never depend on filesystem enumeration.
    """

    def __init__(self, root: Path, config: SiteConfig | None = None) -> None:
        self.root = root
        self.config = config or SiteConfig()
        self._extensions = {ext.lower() for ext in self.config.build.extensions}

    def _skipped_dirs(self) -> set[Path]:
        build = self.config.build
        skipped = {
            (self.root / build.layouts_dir).resolve(),
            (self.root / build.includes_dir).resolve(),
            self.config.output_path(self.root).resolve(),
        }
        return skipped

    def _is_content_dir(self, parent: Path, name: str) -> bool:
        if name.startswith("."):
            return False
        if name.startswith("_") and name not in (POSTS_DIR, DRAFTS_DIR):
            return False
        if name == DRAFTS_DIR and not self.config.build.drafts:
            return False
        return (parent / name).resolve() not in self._skipped_dirs()

    def iter_paths(self) -> Iterator[Path]:
        """Yield candidate content files in deterministic order."""
        for dirpath, dirnames, filenames in os.walk(self.root):
            parent = Path(dirpath)
            dirnames[:] = sorted(d for d in dirnames if self._is_content_dir(parent, d))
            for name in sorted(filenames):
                path = parent / name
                if path.suffix.lower() in self._extensions:
                    yield path

    def load(self, path: Path) -> ContentDocument | None:
        """Load one file; None if it is not content or is an unwanted draft."""
        document = load_document(path, self.root)
        if document is None:
            return None
        if not document.published and not self.config.build.drafts:
            logger.debug("Skipping unpublished document %s", path)
            return None
        return document

    def iter_documents(self) -> Iterator[ContentDocument]:
        """Yield every content document under the root.

        Raises the first loading error encountered.
        """
        for path in self.iter_paths():
            document = self.load(path)
            if document is not None:
                yield document
