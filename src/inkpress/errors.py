"""Build errors raised by the loader, template resolver and renderer.

Every error carries a ``kind`` (its class name) so failures can be
reported uniformly, and an optional ``path`` naming the document that
triggered it. The pipeline tags errors with the document path before
recording them.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from inkpress.models import BuildReport


class InkpressError(Exception):
    """Base class for all site build errors."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    @property
    def kind(self) -> str:
        return type(self).__name__

    def with_path(self, path: Path) -> InkpressError:
        """Tag the error with the offending document and return it."""
        if self.path is None:
            self.path = path
        return self

    def __str__(self) -> str:
        if self.path is not None:
            return f"{self.path}: {self.message}"
        return self.message


class MalformedHeader(InkpressError):
    """Front matter was opened but never closed, or is not key-value data."""


class UnknownLayout(InkpressError):
    """A document references a layout that is not registered."""

    def __init__(self, name: str, *, path: Path | None = None) -> None:
        super().__init__(f"Unknown layout: {name!r}", path=path)
        self.name = name


class UnknownInclude(InkpressError):
    """An include directive names a fragment that is not registered."""

    def __init__(self, name: str, *, path: Path | None = None) -> None:
        super().__init__(f"Unknown include: {name!r}", path=path)
        self.name = name


class MissingParameter(InkpressError):
    """A fragment placeholder was not supplied by the include directive."""

    def __init__(self, fragment: str, parameter: str, *, path: Path | None = None) -> None:
        super().__init__(
            f"Include {fragment!r} requires parameter {parameter!r}", path=path
        )
        self.fragment = fragment
        self.parameter = parameter


class InvalidTemplate(InkpressError):
    """A layout or fragment could not be compiled or rendered."""


class UnreadableSource(InkpressError):
    """A content file is not valid UTF-8 text."""


class InvalidPermalink(InkpressError):
    """A permalink points outside the output directory."""


class OutputConflict(InkpressError):
    """Two outputs would be written to the same path."""

    def __init__(self, output_path: Path, other: str, *, path: Path | None = None) -> None:
        super().__init__(f"Output {output_path.as_posix()} is also claimed by {other}", path=path)
        self.output_path = output_path
        self.other = other


class BuildFailed(InkpressError):
    """Raised when a build aborts; carries the report of every failure."""

    def __init__(self, report: BuildReport) -> None:
        count = len(report.failures)
        super().__init__(f"Build failed with {count} document error(s)")
        self.report = report
