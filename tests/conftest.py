"""Shared fixtures: a small site with layouts, an include and dated posts."""

from pathlib import Path

import pytest

POST_LAYOUT = """\
<html>
<head><title>{{ page.title }}</title></head>
<body>
<article data-categories="{{ page.categories | join(',') }}">
{{ content }}
</article>
</body>
</html>
"""

CATEGORY_LAYOUT = """\
<html><body class="listing">
{{ content }}
</body></html>
"""

YOUTUBE_INCLUDE = """\
<iframe width="{{ include.width | default(560) }}" height="315" src="https://www.youtube.com/embed/{{ include.id }}" frameborder="0" allowfullscreen></iframe>
"""

KAMON_POST = """\
---
layout: post
title: "Monitoring with kamon and prometheus"
categories: monitoring
---

A talk about instrumenting Scala services.

{% include youtubePlayer.html id="fVw_8BOTF3s" %}
"""

ZIO_POST = """\
---
layout: post
title: "Functional effects in practice"
categories: [scala, fp]
---

A weather forecast console application built with effects.

```scala
val program = for {
  city <- getCity
} yield city
```
"""

GRAFANA_POST = """\
---
layout: post
title: "Dashboards with Grafana"
categories:
  - monitoring
  - scala
---

Dashboards for the metrics exported above.
"""


def write_site(root: Path, posts: dict[str, str] | None = None) -> Path:
    """Write a site tree under ``root`` and return it."""
    (root / "_layouts").mkdir(parents=True, exist_ok=True)
    (root / "_includes").mkdir(parents=True, exist_ok=True)
    (root / "_posts").mkdir(parents=True, exist_ok=True)
    (root / "_layouts" / "post.html").write_text(POST_LAYOUT, encoding="utf-8")
    (root / "_layouts" / "category.html").write_text(CATEGORY_LAYOUT, encoding="utf-8")
    (root / "_includes" / "youtubePlayer.html").write_text(YOUTUBE_INCLUDE, encoding="utf-8")

    if posts is None:
        posts = {
            "2019-05-14-monitoring-with-kamon.md": KAMON_POST,
            "2020-02-03-functional-effects.md": ZIO_POST,
            "2019-11-20-grafana-dashboards.md": GRAFANA_POST,
        }
    for name, text in posts.items():
        (root / "_posts" / name).write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def sample_site(tmp_path: Path) -> Path:
    """A site with three posts across the monitoring, scala and fp categories."""
    return write_site(tmp_path / "site")


@pytest.fixture
def site_factory():
    """The site writer, for tests that need more than one site tree."""
    return write_site


@pytest.fixture
def kamon_post() -> str:
    """Source of the video post, for tests that write variants of it."""
    return KAMON_POST
