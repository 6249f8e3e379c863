"""Tests for markdown rendering and front matter."""

import pytest
import yaml

from tramline_pkg.markup import render_markdown, render_markdown_fields, split_front_matter


class TestFrontMatter:

    def test_split(self):
        metadata, body = split_front_matter("---\ntitle: Hello\ntags: [a, b]\n---\n\nBody text\n")
        assert metadata == {'title': 'Hello', 'tags': ['a', 'b']}
        assert body == 'Body text\n'

    def test_no_front_matter(self):
        metadata, body = split_front_matter('Just text\n')
        assert metadata == {}
        assert body == 'Just text\n'

    def test_unclosed_front_matter_is_body(self):
        text = '---\ntitle: Hello\nno closing line\n'
        assert split_front_matter(text) == ({}, text)

    def test_byte_order_mark(self):
        metadata, _ = split_front_matter('\ufeff---\ntitle: BOM\n---\nx')
        assert metadata['title'] == 'BOM'

    def test_empty_front_matter(self):
        metadata, body = split_front_matter('---\n---\nx')
        assert metadata == {}
        assert body == 'x'

    def test_non_mapping_raises(self):
        with pytest.raises(ValueError, match='mapping'):
            split_front_matter('---\n- a\n- b\n---\nx')

    def test_invalid_yaml_raises(self):
        with pytest.raises(yaml.YAMLError):
            split_front_matter('---\ntitle: [oops\n---\nx')


class TestMarkdown:

    def test_render(self):
        html = render_markdown('# Title\n\nSome **bold** text.')
        assert '<h1>Title</h1>' in html
        assert '<strong>bold</strong>' in html

    def test_code_blocks_wrap(self):
        html = render_markdown('```\n<tag>\n```\n')
        assert 'white-space: pre-wrap' in html
        assert '&lt;tag&gt;' in html

    def test_raw_html_kept(self):
        assert '<span class="x">hi</span>' in render_markdown('<span class="x">hi</span>')

    def test_fields(self):
        payload = {
            'intro_md': '*hi*',
            'plain': '*hi*',
            'nested': [{'format': 'markdown', 'content': '**yo**'}],
        }
        rendered = render_markdown_fields(payload)
        assert '<em>hi</em>' in rendered['intro_md']
        assert rendered['plain'] == '*hi*'
        assert '<strong>yo</strong>' in rendered['nested'][0]

    def test_fields_leave_scalars(self):
        assert render_markdown_fields(42) == 42
        assert render_markdown_fields(None) is None
