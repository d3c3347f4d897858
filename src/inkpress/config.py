"""Site configuration loaded from .inkpress.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from inkpress.models import FailurePolicy

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".inkpress.toml"


class SiteSectionConfig(BaseModel):
    """[site] section."""

    title: str = ""
    base_url: str = ""


class BuildSectionConfig(BaseModel):
    """[build] section."""

    output_dir: str = "_site"
    layouts_dir: str = "_layouts"
    includes_dir: str = "_includes"
    extensions: list[str] = Field(default_factory=lambda: [".md", ".markdown", ".html"])
    listing_layout: str = "category"
    keep_going: bool = False
    workers: int = 1
    drafts: bool = False
    clean: bool = False


class MarkdownSectionConfig(BaseModel):
    """[markdown] section."""

    extensions: list[str] = Field(default_factory=lambda: ["fenced_code", "tables"])


class SiteConfig(BaseModel):
    """Top-level configuration for a site build."""

    site: SiteSectionConfig = Field(default_factory=SiteSectionConfig)
    build: BuildSectionConfig = Field(default_factory=BuildSectionConfig)
    markdown: MarkdownSectionConfig = Field(default_factory=MarkdownSectionConfig)

    @property
    def policy(self) -> FailurePolicy:
        return FailurePolicy.FAIL_SOFT if self.build.keep_going else FailurePolicy.FAIL_FAST

    def output_path(self, source_dir: Path) -> Path:
        """Resolve the output directory; relative paths are under the source."""
        out = Path(self.build.output_dir)
        return out if out.is_absolute() else source_dir / out


def load_config(
    path: str | Path | None = None, *, source_dir: Path | None = None
) -> SiteConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .inkpress.toml in the source directory
    3. .inkpress.toml in CWD

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.
        source_dir: Site source directory to search before CWD.

    Returns:
        Merged SiteConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        search_dirs = [source_dir] if source_dir is not None else []
        search_dirs.append(Path("."))
        for search_dir in search_dirs:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break

    try:
        config = SiteConfig.model_validate(data) if data else SiteConfig()
    except ValidationError as exc:
        logger.warning("Invalid config, using defaults: %s", exc)
        config = SiteConfig()

    return _apply_env_vars(config)


def merge_cli_overrides(config: SiteConfig, **cli_kwargs: object) -> SiteConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "output_dir": ("build", "output_dir"),
        "keep_going": ("build", "keep_going"),
        "workers": ("build", "workers"),
        "drafts": ("build", "drafts"),
        "clean": ("build", "clean"),
        "site_url": ("site", "base_url"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = str(value) if isinstance(value, Path) else value

    return SiteConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: SiteConfig) -> SiteConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "INKPRESS_OUTPUT_DIR": ("build", "output_dir"),
        "INKPRESS_SITE_URL": ("site", "base_url"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    workers_raw = os.environ.get("INKPRESS_WORKERS")
    if workers_raw is not None:
        try:
            data["build"]["workers"] = int(workers_raw)
        except ValueError:
            logger.warning("Ignoring INKPRESS_WORKERS=%r: not an integer", workers_raw)
    keep_going_raw = os.environ.get("INKPRESS_KEEP_GOING")
    if keep_going_raw is not None:
        data["build"]["keep_going"] = keep_going_raw.lower() in ("true", "1", "yes")

    return SiteConfig.model_validate(data)
