"""
Markdown rendering and front matter parsing.
"""

import yaml
import mistune
from typing import Any, Dict, Tuple

MARKDOWN_SUFFIX = '_md'
MARKDOWN_FORMAT = 'markdown'


def create_markdown_parser():
    """Create a Mistune markdown parser with a custom renderer."""
    class CustomRenderer(mistune.HTMLRenderer):
        def __init__(self):
            super().__init__(escape=False)

        def block_code(self, code, info=None):
            escaped_code = mistune.escape(code)
            return '<pre style="white-space: pre-wrap;"><code>{}</code></pre>\n'.format(escaped_code)

    return mistune.create_markdown(
        renderer=CustomRenderer(),
        plugins=['table', 'task_lists', 'strikethrough']
    )


_parser = create_markdown_parser()


def render_markdown(text: str) -> str:
    """Convert markdown text to HTML."""
    return _parser(text)


def split_front_matter(text: str) -> Tuple[Dict[str, Any], str]:
    """
    Split YAML front matter from the rest of a document.

    Front matter must open on the first line with ``---`` and close with a
    second ``---`` line. Raises yaml.YAMLError for invalid YAML and
    ValueError when the front matter is not a mapping.
    """
    text = text.lstrip('\ufeff')
    if not text.startswith('---'):
        return {}, text

    lines = text.splitlines(keepends=True)
    if lines[0].strip() != '---':
        return {}, text
    for index in range(1, len(lines)):
        if lines[index].strip() == '---':
            metadata = yaml.safe_load(''.join(lines[1:index])) or {}
            if not isinstance(metadata, dict):
                raise ValueError('front matter must be a mapping')
            return metadata, ''.join(lines[index + 1:]).lstrip('\n')
    return {}, text


def render_markdown_fields(value: Any) -> Any:
    """
    Walk a parsed data payload and render flagged markdown fields.

    Keys ending in ``_md`` and mappings shaped like
    ``{"format": "markdown", "content": "..."}`` are replaced by HTML.
    """
    if isinstance(value, dict):
        if value.get('format') == MARKDOWN_FORMAT and isinstance(value.get('content'), str):
            return render_markdown(value['content'])
        rendered = {}
        for key, item in value.items():
            if isinstance(key, str) and key.endswith(MARKDOWN_SUFFIX) and isinstance(item, str):
                rendered[key] = render_markdown(item)
            else:
                rendered[key] = render_markdown_fields(item)
        return rendered
    if isinstance(value, list):
        return [render_markdown_fields(item) for item in value]
    return value
