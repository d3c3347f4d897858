"""Tests for the build pipeline and its failure policies."""

from pathlib import Path

import pytest

from inkpress.build import build_site, render_site
from inkpress.config import SiteConfig
from inkpress.errors import BuildFailed, InkpressError, InvalidTemplate

UNCLOSED_POST = """\
---
layout: post
title: "Never closed"
categories: monitoring

The closing marker is missing.
"""

UNKNOWN_LAYOUT_POST = """\
---
layout: slides
title: "Slides"
categories: monitoring
---

Body.
"""


def _soft_config() -> SiteConfig:
    config = SiteConfig()
    config.build.keep_going = True
    return config


class TestBuildSite:
    def test_scenario_kamon_post(self, sample_site: Path):
        out = sample_site / "_site"
        report = build_site(sample_site)

        assert report.ok
        assert report.documents == 3
        page = out / "monitoring" / "2019" / "05" / "14" / "monitoring-with-kamon.html"
        html = page.read_text(encoding="utf-8")
        assert "https://www.youtube.com/embed/fVw_8BOTF3s" in html
        assert "Monitoring with kamon and prometheus" in html

        listing = (out / "categories" / "monitoring" / "index.html").read_text(encoding="utf-8")
        assert "/monitoring/2019/05/14/monitoring-with-kamon.html" in listing
        assert listing.count("/monitoring/2019/05/14/monitoring-with-kamon.html") == 1

    def test_listing_per_category(self, sample_site: Path):
        build_site(sample_site)
        categories = sorted(p.name for p in (sample_site / "_site" / "categories").iterdir())
        assert categories == ["fp", "monitoring", "scala"]

    def test_explicit_output_dir(self, sample_site: Path, tmp_path: Path):
        out = tmp_path / "public"
        report = build_site(sample_site, out)
        assert (out / "index.html").exists()
        assert not (sample_site / "_site").exists()
        assert all(p.is_relative_to(out) for p in report.pages_written)

    def test_output_not_rescanned(self, sample_site: Path):
        build_site(sample_site)
        report = build_site(sample_site)
        assert report.documents == 3

    def test_deterministic_across_builds(self, tmp_path: Path, site_factory):
        first = build_site(site_factory(tmp_path / "one"))
        second = build_site(site_factory(tmp_path / "two"))
        for written in first.listings_written:
            rel = written.relative_to(tmp_path / "one" / "_site")
            twin = tmp_path / "two" / "_site" / rel
            assert twin.read_text(encoding="utf-8") == written.read_text(encoding="utf-8")
        assert len(second.listings_written) == len(first.listings_written)

    def test_parallel_render_matches_sequential(self, tmp_path: Path, site_factory):
        sequential = site_factory(tmp_path / "seq")
        parallel = site_factory(tmp_path / "par")
        config = SiteConfig()
        config.build.workers = 4

        build_site(sequential)
        build_site(parallel, config=config)

        seq_out, par_out = sequential / "_site", parallel / "_site"
        seq_files = sorted(p.relative_to(seq_out) for p in seq_out.rglob("*") if p.is_file())
        par_files = sorted(p.relative_to(par_out) for p in par_out.rglob("*") if p.is_file())
        assert seq_files == par_files
        for rel in seq_files:
            assert (seq_out / rel).read_text(encoding="utf-8") == (par_out / rel).read_text(
                encoding="utf-8"
            )

    def test_clean_removes_stale_output(self, sample_site: Path):
        stale = sample_site / "_site" / "old.html"
        stale.parent.mkdir()
        stale.write_text("stale", encoding="utf-8")
        config = SiteConfig()
        config.build.clean = True
        build_site(sample_site, config=config)
        assert not stale.exists()
        assert (sample_site / "_site" / "index.html").exists()

    def test_clean_refuses_source_tree(self, sample_site: Path):
        config = SiteConfig()
        config.build.clean = True
        config.build.output_dir = "."
        with pytest.raises(InkpressError, match="Refusing"):
            build_site(sample_site, config=config)

    def test_invalid_layout_aborts(self, sample_site: Path):
        (sample_site / "_layouts" / "post.html").write_text("{% if %}", encoding="utf-8")
        with pytest.raises(InvalidTemplate):
            build_site(sample_site)


class TestFailFast:
    def test_unclosed_header_fails_build(self, sample_site: Path):
        broken = sample_site / "_posts" / "2019-12-01-never-closed.md"
        broken.write_text(UNCLOSED_POST, encoding="utf-8")

        with pytest.raises(BuildFailed) as excinfo:
            build_site(sample_site)

        [failure] = excinfo.value.report.failures
        assert failure.path == broken
        assert failure.kind == "MalformedHeader"
        assert not (sample_site / "_site").exists()

    def test_unknown_layout_fails_build(self, sample_site: Path):
        (sample_site / "_posts" / "2019-12-01-slides.md").write_text(
            UNKNOWN_LAYOUT_POST, encoding="utf-8"
        )
        with pytest.raises(BuildFailed) as excinfo:
            build_site(sample_site)
        assert excinfo.value.report.failures[0].kind == "UnknownLayout"

    def test_missing_parameter_fails_build(self, sample_site: Path, kamon_post: str):
        (sample_site / "_posts" / "2019-12-01-video.md").write_text(
            kamon_post.replace(' id="fVw_8BOTF3s"', ""), encoding="utf-8"
        )
        with pytest.raises(BuildFailed) as excinfo:
            build_site(sample_site)
        assert excinfo.value.report.failures[0].kind == "MissingParameter"

    def test_unknown_include_fails_build(self, sample_site: Path, kamon_post: str):
        (sample_site / "_posts" / "2019-12-01-video.md").write_text(
            kamon_post.replace("youtubePlayer.html", "vimeoPlayer.html"), encoding="utf-8"
        )
        with pytest.raises(BuildFailed) as excinfo:
            build_site(sample_site)
        assert excinfo.value.report.failures[0].kind == "UnknownInclude"


class TestFailSoft:
    def test_failures_collected_and_others_written(self, sample_site: Path):
        broken = sample_site / "_posts" / "2019-12-01-never-closed.md"
        broken.write_text(UNCLOSED_POST, encoding="utf-8")
        slides = sample_site / "_posts" / "2019-12-02-slides.md"
        slides.write_text(UNKNOWN_LAYOUT_POST, encoding="utf-8")

        report = build_site(sample_site, config=_soft_config())

        assert not report.ok
        assert [(f.path, f.kind) for f in report.failures] == [
            (broken, "MalformedHeader"),
            (slides, "UnknownLayout"),
        ]
        assert report.documents == 5
        assert len(report.pages_written) == 3

        out = sample_site / "_site"
        assert not list(out.rglob("never-closed*"))
        assert not list(out.rglob("slides*"))
        listing = (out / "categories" / "monitoring" / "index.html").read_text(encoding="utf-8")
        assert "Slides" not in listing


class TestRenderSite:
    def test_writes_nothing(self, sample_site: Path):
        pages, report = render_site(sample_site, SiteConfig())
        assert len(pages) == 3
        assert report.ok
        assert not (sample_site / "_site").exists()

    def test_fail_fast_raises(self, sample_site: Path):
        (sample_site / "_posts" / "2019-12-01-slides.md").write_text(
            UNKNOWN_LAYOUT_POST, encoding="utf-8"
        )
        with pytest.raises(BuildFailed):
            render_site(sample_site, SiteConfig())


def _page(layout: str = "post", **fields: str) -> str:
    header = "".join(f"{key}: {value}\n" for key, value in fields.items())
    return f"---\nlayout: {layout}\n{header}---\n\nBody.\n"


class TestOutputConflicts:
    def test_same_stem_different_suffix_fails_fast(self, sample_site: Path):
        (sample_site / "about.md").write_text(_page(title="About"), encoding="utf-8")
        (sample_site / "about.html").write_text(_page(title="About"), encoding="utf-8")

        with pytest.raises(BuildFailed) as excinfo:
            build_site(sample_site)

        failures = excinfo.value.report.failures
        assert sorted(f.path.name for f in failures) == ["about.html", "about.md"]
        assert {f.kind for f in failures} == {"OutputConflict"}
        assert not (sample_site / "_site").exists()

    def test_same_stem_different_suffix_fail_soft(self, sample_site: Path):
        (sample_site / "about.md").write_text(_page(title="About"), encoding="utf-8")
        (sample_site / "about.html").write_text(_page(title="About"), encoding="utf-8")

        report = build_site(sample_site, config=_soft_config())

        assert [f.kind for f in report.failures] == ["OutputConflict", "OutputConflict"]
        assert report.documents == 5
        assert len(report.pages_written) == 3
        assert not (sample_site / "_site" / "about.html").exists()

    def test_duplicate_dated_posts(self, sample_site: Path, kamon_post: str):
        copy = sample_site / "_posts" / "archive" / "2019-05-14-monitoring-with-kamon.md"
        copy.parent.mkdir()
        copy.write_text(kamon_post, encoding="utf-8")

        report = build_site(sample_site, config=_soft_config())

        assert {f.path for f in report.failures} == {
            copy,
            sample_site / "_posts" / "2019-05-14-monitoring-with-kamon.md",
        }
        assert len(report.pages_written) == 2

    def test_permalink_over_category_listing(self, sample_site: Path):
        page = sample_site / "monitoring.md"
        page.write_text(
            _page(title="Monitoring", permalink="/categories/monitoring/"), encoding="utf-8"
        )

        report = build_site(sample_site, config=_soft_config())

        [failure] = report.failures
        assert failure.path == page
        assert failure.kind == "OutputConflict"
        assert "listing" in failure.message
        listing = sample_site / "_site" / "categories" / "monitoring" / "index.html"
        assert "Monitoring with kamon and prometheus" in listing.read_text(encoding="utf-8")

    def test_page_may_replace_site_index(self, sample_site: Path):
        (sample_site / "index.md").write_text(_page(title="Home"), encoding="utf-8")
        report = build_site(sample_site)
        assert report.ok
        assert "Home" in (sample_site / "_site" / "index.html").read_text(encoding="utf-8")


class TestUnsafeSources:
    def test_non_utf8_source_recorded_under_fail_soft(self, sample_site: Path):
        bad = sample_site / "_posts" / "2019-12-01-bad.md"
        bad.write_bytes(b"---\nlayout: post\n---\n\n\xff\xfe broken\n")

        report = build_site(sample_site, config=_soft_config())

        [failure] = report.failures
        assert failure.path == bad
        assert failure.kind == "UnreadableSource"
        assert len(report.pages_written) == 3

    def test_non_utf8_source_fails_fast(self, sample_site: Path):
        (sample_site / "_posts" / "2019-12-01-bad.md").write_bytes(b"---\nlayout: post\n---\n\xff")
        with pytest.raises(BuildFailed) as excinfo:
            build_site(sample_site)
        assert excinfo.value.report.failures[0].kind == "UnreadableSource"

    def test_permalink_cannot_escape_output(self, sample_site: Path, tmp_path: Path):
        escaping = sample_site / "escape.md"
        escaping.write_text(_page(title="Out", permalink="/../../escaped.html"), encoding="utf-8")

        report = build_site(sample_site, config=_soft_config())

        [failure] = report.failures
        assert failure.path == escaping
        assert failure.kind == "InvalidPermalink"
        assert not (tmp_path / "escaped.html").exists()
        assert not list(tmp_path.rglob("escaped.html"))


class TestParallelFailSoft:
    def test_failures_match_sequential(self, tmp_path: Path, site_factory):
        sites = [site_factory(tmp_path / "seq"), site_factory(tmp_path / "par")]
        for site in sites:
            (site / "_posts" / "2019-12-01-never-closed.md").write_text(
                UNCLOSED_POST, encoding="utf-8"
            )
            (site / "_posts" / "2019-12-02-slides.md").write_text(
                UNKNOWN_LAYOUT_POST, encoding="utf-8"
            )
        parallel_config = _soft_config()
        parallel_config.build.workers = 4

        sequential = build_site(sites[0], config=_soft_config())
        parallel = build_site(sites[1], config=parallel_config)

        assert [(f.path.name, f.kind) for f in parallel.failures] == [
            (f.path.name, f.kind) for f in sequential.failures
        ]
        assert [f.kind for f in parallel.failures] == ["MalformedHeader", "UnknownLayout"]
        assert [p.relative_to(sites[1]) for p in parallel.pages_written] == [
            p.relative_to(sites[0]) for p in sequential.pages_written
        ]
