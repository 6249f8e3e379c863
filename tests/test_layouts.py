"""Tests for template strategies and layout chains."""

import pytest

from tramline_pkg.layouts import LayoutResolver, LayoutState, apply_templates, normalize_ref
from tramline_pkg.models import FileRecord, TemplateStrategy
from tramline_pkg.templates import JinjaTemplate, PythonTemplate, create_environment, invoke

from conftest import write_tree


class Wrap(TemplateStrategy):
    """Wraps content in a tag; stands in for a compiled template."""

    def __init__(self, path, tag):
        super().__init__(path)
        self.tag = tag

    def render(self, data, collections, context):
        return f"<{self.tag}>{context.content}</{self.tag}>"


class Broken(TemplateStrategy):

    def render(self, data, collections, context):
        raise RuntimeError('template exploded')


class NotRenderable(TemplateStrategy):

    @property
    def renderable(self):
        return False


def layout(path, tag, parent=None):
    return FileRecord(name=path.rsplit('/', 1)[-1], relative_path=path,
                      template=Wrap(path, tag), layout_ref=parent)


def page(name, content='body', ref=None):
    return FileRecord(name=name, relative_path=name, page_type='page', state='publish',
                      body=content, layout_ref=ref)


class TestTemplates:

    def test_python_template(self, temp_dir):
        write_tree(temp_dir, {'hello.py': (
            "def render(data, collections, context):\n"
            "    return f\"{data['site']} {len(collections['posts'])} {context['title']}\"\n"
        )})
        strategy = PythonTemplate(f'{temp_dir}/hello.py')
        record = FileRecord(name='x', relative_path='x', meta={'title': 'T'})
        assert strategy.renderable
        assert invoke(strategy, {'site': 'S'}, {'posts': [1, 2]}, record) == 'S 2 T'

    def test_python_config_must_be_dict(self, temp_dir):
        write_tree(temp_dir, {'bad.py': "def config():\n    return ['state']\n"})
        with pytest.raises(TypeError, match='must return a dict'):
            PythonTemplate(f'{temp_dir}/bad.py').config()

    def test_same_file_name_loaded_twice(self, temp_dir):
        write_tree(temp_dir, {
            'a/page.py': "def render(data, collections, context):\n    return 'a'\n",
            'b/page.py': "def render(data, collections, context):\n    return 'b'\n",
        })
        first = PythonTemplate(f'{temp_dir}/a/page.py')
        second = PythonTemplate(f'{temp_dir}/b/page.py')
        record = FileRecord(name='x', relative_path='x')
        assert (first.render({}, {}, record), second.render({}, {}, record)) == ('a', 'b')

    def test_jinja_template_scope(self, temp_dir):
        write_tree(temp_dir, {'_includes/footer.html': '<footer>{{ data.site }}</footer>'})
        env = create_environment([temp_dir, f'{temp_dir}/_includes'])
        strategy = JinjaTemplate('page.html', '{{ context.title }}|{{ content }}|{% include "footer.html" %}', env)
        record = FileRecord(name='x', relative_path='x', body='<p>b</p>', meta={'title': 'T'})
        assert invoke(strategy, {'site': 'S'}, {}, record) == 'T|<p>b</p>|<footer>S</footer>'

    def test_jinja_content_prefers_rendered_content(self, temp_dir):
        strategy = JinjaTemplate('x.html', '{{ content }}', create_environment([temp_dir]))
        record = FileRecord(name='x', relative_path='x', body='raw', content='rendered')
        assert invoke(strategy, {}, {}, record) == 'rendered'

    def test_invoke_rejects_none(self):
        class Silent(TemplateStrategy):
            def render(self, data, collections, context):
                return None

        with pytest.raises(ValueError, match='returned nothing'):
            invoke(Silent('silent.py'), {}, {}, FileRecord(name='x', relative_path='x'))

    def test_invoke_stringifies(self):
        class Number(TemplateStrategy):
            def render(self, data, collections, context):
                return 42

        assert invoke(Number('n.py'), {}, {}, FileRecord(name='x', relative_path='x')) == '42'


class TestApplyTemplates:

    def test_markdown_body_becomes_content(self):
        record = page('a.md', '<p>hi</p>')
        assert apply_templates([record], {}, {}) == 0
        assert record.content == '<p>hi</p>'

    def test_template_output_becomes_content(self):
        record = page('a.html', 'inner')
        record.content = 'inner'
        record.template = Wrap('a.html', 'div')
        apply_templates([record], {}, {})
        assert record.content == '<div>inner</div>'

    def test_failure_counted(self, caplog):
        record = page('a.html')
        record.template = Broken('a.html')
        assert apply_templates([record], {}, {}) == 1
        assert record.content is None
        assert 'template exploded' in caplog.text

    def test_non_pages_untouched(self):
        record = layout('_includes/base.html', 'html')
        apply_templates([record], {}, {})
        assert record.content is None


class TestLayoutResolver:

    def test_normalize_ref(self):
        assert normalize_ref('/_includes//base.html') == '_includes/base.html'
        assert normalize_ref('./a/../b.html') == 'b.html'

    def test_no_layout(self):
        record = page('a.md')
        apply_templates([record], {}, {})
        assert LayoutResolver([record], {}, {}).resolve(record) is LayoutState.RESOLVED
        assert record.content == 'body'

    def test_chain_of_three(self):
        layouts = [
            layout('_includes/inner.html', 'inner', '_includes/middle.html'),
            layout('_includes/middle.html', 'middle', '_includes/outer.html'),
            layout('_includes/outer.html', 'outer'),
        ]
        record = page('a.md', 'x', '_includes/inner.html')
        files = layouts + [record]
        apply_templates(files, {}, {})
        state = LayoutResolver(files, {}, {}).resolve(record)
        assert state is LayoutState.RESOLVED
        assert record.content == '<outer><middle><inner>x</inner></middle></outer>'

    def test_ref_resolved_inside_includes(self):
        base = layout('_includes/base.html', 'main')
        record = page('a.md', 'x', 'base.html')
        files = [base, record]
        apply_templates(files, {}, {})
        assert LayoutResolver(files, {}, {}).resolve(record) is LayoutState.RESOLVED
        assert record.content == '<main>x</main>'

    def test_cycle_is_error(self, caplog):
        files = [
            layout('a.html', 'a', 'b.html'),
            layout('b.html', 'b', 'a.html'),
        ]
        record = page('p.md', 'x', 'a.html')
        files.append(record)
        apply_templates(files, {}, {})
        assert LayoutResolver(files, {}, {}).resolve(record) is LayoutState.ERROR
        assert 'Layout cycle for p.md: a.html -> b.html -> a.html' in caplog.text
        assert record.content == '<b><a>x</a></b>'

    def test_self_reference_is_error(self):
        files = [layout('a.html', 'a', 'a.html')]
        record = page('p.md', 'x', 'a.html')
        files.append(record)
        apply_templates(files, {}, {})
        assert LayoutResolver(files, {}, {}).resolve(record) is LayoutState.ERROR

    def test_missing_layout(self, caplog):
        record = page('p.md', 'x', 'nowhere.html')
        apply_templates([record], {}, {})
        assert LayoutResolver([record], {}, {}).resolve(record) is LayoutState.ERROR
        assert "Layout 'nowhere.html' used by p.md was not found" in caplog.text
        assert record.content == 'x'

    def test_failing_layout_keeps_previous_content(self):
        broken = FileRecord(name='broken.html', relative_path='broken.html', template=Broken('broken.html'))
        inner = layout('inner.html', 'inner', 'broken.html')
        record = page('p.md', 'x', 'inner.html')
        files = [broken, inner, record]
        apply_templates(files, {}, {})
        assert LayoutResolver(files, {}, {}).resolve(record) is LayoutState.ERROR
        assert record.content == '<inner>x</inner>'

    def test_non_renderable_layout(self):
        helper = FileRecord(name='helper.py', relative_path='helper.py', template=NotRenderable('helper.py'))
        record = page('p.md', 'x', 'helper.py')
        files = [helper, record]
        apply_templates(files, {}, {})
        assert LayoutResolver(files, {}, {}).resolve(record) is LayoutState.ERROR

    def test_resolve_all_tally(self):
        base = layout('base.html', 'main')
        good = page('good.md', 'x', 'base.html')
        bad = page('bad.md', 'x', 'missing.html')
        plain = page('plain.md')
        files = [base, good, bad, plain]
        apply_templates(files, {}, {})
        tally = LayoutResolver(files, {}, {}).resolve_all(files)
        assert tally[LayoutState.RESOLVED] == 2
        assert tally[LayoutState.ERROR] == 1
