"""Static site builder for Markdown content with front matter.

Source files are loaded with their front matter, include directives are
expanded, the body is wrapped in its declared layout, and the assembler
writes every page plus one listing per category.
"""

from inkpress.build import build_site, render_site
from inkpress.config import SiteConfig, load_config
from inkpress.errors import (
    BuildFailed,
    InkpressError,
    InvalidPermalink,
    InvalidTemplate,
    MalformedHeader,
    MissingParameter,
    OutputConflict,
    UnknownInclude,
    UnknownLayout,
    UnreadableSource,
)
from inkpress.models import (
    BuildReport,
    CategoryListing,
    ContentDocument,
    DocumentFailure,
    FailurePolicy,
    IncludeDirective,
    RenderedPage,
)

__version__ = "0.1.0"

__all__ = [
    "BuildFailed",
    "BuildReport",
    "CategoryListing",
    "ContentDocument",
    "DocumentFailure",
    "FailurePolicy",
    "IncludeDirective",
    "InkpressError",
    "InvalidPermalink",
    "InvalidTemplate",
    "MalformedHeader",
    "MissingParameter",
    "OutputConflict",
    "RenderedPage",
    "SiteConfig",
    "UnknownInclude",
    "UnknownLayout",
    "UnreadableSource",
    "build_site",
    "load_config",
    "render_site",
]
