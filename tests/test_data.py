"""Tests for global data aggregation."""

from tramline_pkg.data import aggregate_data
from tramline_pkg.models import FileRecord


def data_record(path, payload, collections=None):
    return FileRecord(name=path.rsplit('/', 1)[-1], relative_path=path, data=payload, collections=collections)


class TestAggregateData:

    def test_keyed_by_stem(self, make_settings):
        files = [
            data_record('_data/site.yml', {'title': 'Site'}),
            data_record('_data/nav.json', ['home', 'about']),
        ]
        remaining, data = aggregate_data(make_settings(), files)
        assert data == {'site': {'title': 'Site'}, 'nav': ['home', 'about']}
        assert remaining == []

    def test_nested_data_directories(self, make_settings):
        files = [data_record('_data/people/authors.yml', {'a': 1})]
        _, data = aggregate_data(make_settings(), files)
        assert data == {'authors': {'a': 1}}

    def test_later_file_wins(self, make_settings):
        files = [
            data_record('_data/a/site.yml', {'v': 1}),
            data_record('_data/b/site.yml', {'v': 2}),
        ]
        _, data = aggregate_data(make_settings(), files)
        assert data['site'] == {'v': 2}

    def test_data_outside_data_dir_is_not_global(self, make_settings):
        record = data_record('config/site.yml', {'v': 1})
        remaining, data = aggregate_data(make_settings(), [record])
        assert data == {}
        assert remaining == [record]

    def test_custom_data_dir(self, make_settings):
        files = [data_record('content/data/site.yml', {'v': 1})]
        _, data = aggregate_data(make_settings(data='content/data'), files)
        assert data == {'site': {'v': 1}}

    def test_collection_members_stay_with_fields(self, make_settings):
        record = data_record('_data/alice.yml', {'name': 'Alice', 'collections': 'people'}, collections='people')
        record.meta['name'] = 'Front'
        remaining, data = aggregate_data(make_settings(), [record])
        assert remaining == [record]
        assert data['alice']['name'] == 'Alice'
        assert record['name'] == 'Front'
        assert 'collections' not in record.meta

    def test_non_data_records_pass_through(self, make_settings):
        page = FileRecord(name='index.md', relative_path='index.md', page_type='page')
        remaining, data = aggregate_data(make_settings(), [page])
        assert remaining == [page]
        assert data == {}
