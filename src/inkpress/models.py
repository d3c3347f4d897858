"""Pure data models for the publishing pipeline.

All Pydantic models and enums live here. No I/O, no rendering logic.
Documents and pages are frozen: a document is created once by the
loader and consumed unchanged by the renderer.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Source documents
# ---------------------------------------------------------------------------


class ContentDocument(BaseModel):
    """One content file: parsed front matter plus the raw body."""

    model_config = ConfigDict(frozen=True)

    source_path: Path
    relative_path: Path
    layout: str
    title: str
    categories: frozenset[str] = frozenset()
    body: str = ""
    date: datetime | None = None
    slug: str
    permalink: str | None = None
    published: bool = True
    front_matter: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("front_matter", mode="after")
    @classmethod
    def _freeze_front_matter(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(copy.deepcopy(dict(value)))

    @property
    def is_markdown(self) -> bool:
        return self.source_path.suffix.lower() in (".md", ".markdown")


class IncludeDirective(BaseModel):
    """An include reference found in a document body."""

    model_config = ConfigDict(frozen=True)

    name: str
    params: dict[str, str] = Field(default_factory=dict)
    start: int = 0
    end: int = 0
    raw: str = ""


# ---------------------------------------------------------------------------
# Rendered output
# ---------------------------------------------------------------------------


class RenderedPage(BaseModel):
    """Final markup for one document and where it will be written."""

    model_config = ConfigDict(frozen=True)

    source_path: Path
    output_path: Path
    url: str
    html: str
    title: str
    slug: str
    categories: frozenset[str] = frozenset()
    date: datetime | None = None


class CategoryListing(BaseModel):
    """Pages sharing a category, in listing order."""

    name: str
    slug: str
    pages: list[RenderedPage] = Field(default_factory=list)

    @property
    def output_path(self) -> Path:
        return Path("categories") / self.slug / "index.html"


# ---------------------------------------------------------------------------
# Build outcome
# ---------------------------------------------------------------------------


class FailurePolicy(StrEnum):
    """What a build does when a document fails."""

    FAIL_FAST = "fail-fast"
    FAIL_SOFT = "fail-soft"


class DocumentFailure(BaseModel):
    """A document that could not be loaded or rendered."""

    path: Path
    kind: str
    message: str


class BuildReport(BaseModel):
    """Summary of a build: what was written and what failed."""

    documents: int = 0
    pages_written: list[Path] = Field(default_factory=list)
    listings_written: list[Path] = Field(default_factory=list)
    failures: list[DocumentFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def record_failure(self, path: Path, kind: str, message: str) -> None:
        self.failures.append(DocumentFailure(path=path, kind=kind, message=message))
