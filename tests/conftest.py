"""Test configuration and fixtures for Tramline tests."""

import os
import sys
import shutil
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from tramline_pkg.settings import TramlineSettings


def write_tree(root, files):
    """Write a {relative path: text} mapping below root."""
    for relative_path, content in files.items():
        path = Path(root, *relative_path.split('/'))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding='utf-8')
    return str(root)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def make_settings(temp_dir):
    """Build frozen Settings from a plain dict merged over the defaults."""
    def _make(**values):
        loader = TramlineSettings(temp_dir)
        merged = dict(loader.settings)
        merged.update(values)
        return loader.freeze(merged)
    return _make


@pytest.fixture
def blog_site(temp_dir):
    """A small site: three dated posts, layouts, data and a passthrough folder."""
    write_tree(temp_dir, {
        'tramline.yml': """
pass:
  - assets
collect:
  - collection: posts
    actions:
      - action: paginate
        path: /blog
        slug: title
        state: publish
        layout: _includes/post.html
      - action: paginate_groups
        path: /blog/page
        size: 2
        state: publish
        layout: _includes/list.html
        sort:
          by: date
          format: yyyymmdd
          order: newest
""",
        'index.md': """---
title: Home
state: publish
layout: base.html
---

# Hello
""",
        'about.md': """---
title: About
state: publish
layout: base.html
---

About **us**.
""",
        'notes.md': """---
title: Notes
---

No state, never written.
""",
        '_drafts/wip.md': """---
title: Work In Progress
layout: base.html
---

Draft.
""",
        '_includes/base.html': """<html><body><h1>{{ data.site.title }}</h1>{{ content }}</body></html>""",
        '_includes/post.html': """---
layout: base.html
---
<article><h2>{{ context.title }}</h2>{{ content }}</article>""",
        '_includes/list.html': """---
layout: base.html
---
<ul>{% for item in context['items'] %}<li>{{ item.title }}</li>{% endfor %}</ul>""",
        '_collections/posts/first.md': """---
title: First Post
date: "2024-01-01"
---

One.
""",
        '_collections/posts/second.md': """---
title: Second Post
date: "2024-02-01"
---

Two.
""",
        '_collections/posts/third.md': """---
title: Third Post
date: "2024-03-01"
---

Three.
""",
        '_data/site.yml': 'title: Test Site\nurl: https://example.com\n',
        'assets/style.css': 'body { color: black; }\n',
    })
    return temp_dir
