#!/usr/bin/env python3
"""
Command-line interface for Tramline - static site build pipeline.
"""

import os
import sys
import argparse
from dataclasses import replace
from typing import Dict

from . import __version__
from .core import Tramline
from .server import DEFAULT_PORT, DevServer
from .settings import TramlineSettings

STARTER_FILES: Dict[str, str] = {
    'index.md': """---
title: "Welcome"
state: publish
layout: base.html
---

# Welcome to your new site

Edit `index.md`, then run `tramline --serve` to watch it rebuild.
""",
    '_includes/base.html': """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>{{ context.title or data.site.title }}</title>
<link rel="stylesheet" href="/assets/style.css">
</head>
<body>
<main>
{{ content }}
</main>
</body>
</html>
""",
    '_includes/post.html': """---
layout: base.html
---
<article>
<h1>{{ context.title }}</h1>
<p><time>{{ context.date }}</time></p>
{{ content }}
</article>
""",
    '_includes/list.html': """---
layout: base.html
---
<ul>
{% for item in context['items'] %}
<li><a href="/{{ item.relative_path.lstrip('/') }}">{{ item.title }}</a></li>
{% endfor %}
</ul>
<nav>
{% if context.navigation_data.previous is not none %}<a href="/{{ context.navigation_data.previous.relative_path.lstrip('/') }}">Newer</a>{% endif %}
{% if context.navigation_data.next is not none %}<a href="/{{ context.navigation_data.next.relative_path.lstrip('/') }}">Older</a>{% endif %}
</nav>
""",
    '_collections/posts/hello-world.md': """---
title: "Hello World"
date: 2026-01-15
description: "The first post on this site."
---

This post lives in `_collections/posts/`, so it joins the **posts** collection.
""",
    '_data/site.yml': """title: "My Tramline Site"
url: "https://example.com"
""",
    'assets/style.css': """body { font-family: sans-serif; max-width: 42rem; margin: 2rem auto; }
""",
}


def create_starter_structure(project_dir: str) -> None:
    """Create a starter source tree next to the configuration file."""
    for relative_path, content in STARTER_FILES.items():
        file_path = os.path.join(project_dir, *relative_path.split('/'))
        if os.path.exists(file_path):
            print(f"File already exists: {relative_path}")
            continue
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        with open(file_path, 'w', encoding='utf-8') as f:
            f.write(content)
        print(f"Created: {relative_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Tramline - Static Site Build Pipeline')
    parser.add_argument('--project', type=str, default='.',
                        help='Project directory holding the configuration file')
    parser.add_argument('--source', type=str,
                        help='Source directory, relative to the project directory')
    parser.add_argument('--output', type=str,
                        help='Output directory for the generated site')
    parser.add_argument('--no-clean', dest='clean', action='store_false', default=None,
                        help='Build into the existing output directory without removing it first')
    parser.add_argument('--cool-urls', dest='cool_urls', action='store_true', default=None,
                        help='Write pages as path.html instead of path/index.html')
    parser.add_argument('--log-dir', dest='log_dir', type=str,
                        help='Write a full debug log into this directory')
    parser.add_argument('--serve', action='store_true',
                        help='Serve the output and rebuild when sources change')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help=f'Port for the development server (default {DEFAULT_PORT})')
    parser.add_argument('--no-reload', dest='live_reload', action='store_false',
                        help='Disable live reload while serving')
    parser.add_argument('--init', type=str, choices=['yml', 'yaml', 'json'],
                        help='Create a sample configuration file and starter structure')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv=None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    project_dir = os.path.abspath(os.path.expanduser(args.project))

    # Handle init command
    if args.init:
        settings_loader = TramlineSettings(project_dir)
        config_path = settings_loader.create_sample_config(args.init)
        print(f"Created sample configuration file: {config_path}")

        print("\nCreating starter project structure...")
        create_starter_structure(project_dir)

        print("\nYour new Tramline site is ready!")
        print("Run 'tramline --serve' to build it and preview it at "
              f"http://localhost:{DEFAULT_PORT}/")
        return

    # Load settings from configuration file
    settings_loader = TramlineSettings(project_dir)
    settings_loader.load_settings()

    # Command line arguments take precedence over the configuration file
    args_dict = {k: v for k, v in vars(args).items() if v is not None}
    final_settings = settings_loader.merge_with_args(args_dict)
    if final_settings['output'].startswith('~/'):
        final_settings['output'] = os.path.expanduser(final_settings['output'])
    settings = settings_loader.freeze(final_settings)

    try:
        generator = Tramline(project_dir, settings)
        generator.build()
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    if args.serve:
        # Rebuilds write over the served tree instead of removing it
        rebuild_settings = replace(settings, clean=False)
        ignore_dirs = [os.path.join(project_dir, settings.log_dir)] if settings.log_dir else []
        server = DevServer(
            generator.output_dir,
            port=args.port,
            live_reload=args.live_reload,
            source_dir=generator.source_dir,
            rebuild=lambda: Tramline(project_dir, rebuild_settings).build(),
            ignore_dirs=ignore_dirs,
        )
        server.serve_forever()


if __name__ == '__main__':
    main()
