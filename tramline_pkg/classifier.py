"""
Walks the source tree and turns every file into a FileRecord.
"""

import os
import json
import logging
import dataclasses
from datetime import datetime
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

import yaml

from .markup import render_markdown, render_markdown_fields, split_front_matter
from .models import FileRecord, Settings
from .templates import JinjaTemplate, PythonTemplate, create_environment

MARKDOWN_EXTENSIONS = ('md', 'markdown')
DATA_EXTENSIONS = ('json', 'yml', 'yaml')
PYTHON_EXTENSIONS = ('py',)
JINJA_EXTENSIONS = ('html', 'jinja', 'j2')


def normalize_dir(path: str) -> str:
    return os.path.normpath(path).replace(os.sep, '/').strip('/') if path else ''


def is_under(relative_path: str, directory: str) -> bool:
    """True when relative_path lies inside directory (both relative to the source root)."""
    directory = normalize_dir(directory)
    if not directory or directory == '.':
        return False
    return relative_path == directory or relative_path.startswith(directory + '/')


class FileClassifier:
    """Produce one FileRecord per file under the source root."""

    def __init__(self, settings: Settings, root: str, output_dir: Optional[str] = None, max_workers: Optional[int] = None):
        self.settings = settings
        self.root = os.path.abspath(root)
        self.output_dir = os.path.abspath(output_dir) if output_dir else None
        self.max_workers = max_workers
        self.logger = logging.getLogger('Tramline.classifier')
        self.env = create_environment([self.root, os.path.join(self.root, settings.includes)])

        self.extractors: Dict[str, Callable[[FileRecord, bool], None]] = {}
        for ext in MARKDOWN_EXTENSIONS:
            self.extractors[ext] = self.extract_markdown
        for ext in DATA_EXTENSIONS:
            self.extractors[ext] = self.extract_data
        for ext in PYTHON_EXTENSIONS:
            self.extractors[ext] = self.extract_python
        for ext in JINJA_EXTENSIONS:
            self.extractors[ext] = self.extract_jinja

    def is_excluded(self, entry: str, entry_path: str) -> bool:
        settings = self.settings
        if entry.startswith('.'):
            return True
        if entry in settings.ignore or entry in settings.passthrough:
            return True
        if entry == os.path.basename(normalize_dir(settings.output)) and \
                os.path.dirname(entry_path) == self.root:
            return True
        if self.output_dir and os.path.abspath(entry_path) == self.output_dir:
            return True
        return False

    def walk(self, current_dir: Optional[str] = None) -> List[str]:
        """Collect every non-excluded file path below current_dir."""
        current_dir = current_dir or self.root
        paths = []
        try:
            entries = sorted(os.listdir(current_dir))
        except (IOError, OSError, PermissionError) as e:
            self.logger.error(f"Failed to read directory {current_dir}: {e}")
            return paths

        for entry in entries:
            entry_path = os.path.join(current_dir, entry)
            if self.is_excluded(entry, entry_path):
                continue
            if os.path.isdir(entry_path):
                paths.extend(self.walk(entry_path))
            elif os.path.isfile(entry_path):
                paths.append(entry_path)
        return paths

    def classify(self) -> List[FileRecord]:
        """Classify every file; the result is ordered by relative path."""
        paths = self.walk()
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            records = list(executor.map(self.create_record, paths))
        return sorted((r for r in records if r is not None), key=lambda r: r.relative_path)

    def metadata_record(self, file_path: str) -> FileRecord:
        """The filesystem-only form of a record."""
        stats = os.stat(file_path)
        name = os.path.basename(file_path)
        relative_path = os.path.relpath(file_path, self.root).replace(os.sep, '/')
        created = getattr(stats, 'st_birthtime', None) or stats.st_ctime

        record = FileRecord(
            name=name,
            relative_path=relative_path,
            origin=os.path.abspath(file_path),
            extension=name.rsplit('.', 1)[1] if '.' in name else '',
            size=stats.st_size,
            created=datetime.fromtimestamp(created),
            modified=datetime.fromtimestamp(stats.st_mtime),
        )

        if is_under(relative_path, self.settings.drafts):
            record.state = 'draft'

        collections_dir = normalize_dir(self.settings.collections_dir)
        if is_under(relative_path, collections_dir):
            parts = relative_path[len(collections_dir) + 1:].split('/')
            if len(parts) > 1:
                record.collections = parts[0]
        return record

    def create_record(self, file_path: str) -> Optional[FileRecord]:
        try:
            base = self.metadata_record(file_path)
        except (IOError, OSError, PermissionError) as e:
            self.logger.error(f"Failed to stat {file_path}: {e}")
            return None

        extractor = self.extractors.get(base.extension.lower())
        if extractor is None:
            return base

        record = dataclasses.replace(base, meta=dict(base.meta))
        in_includes = is_under(record.relative_path, self.settings.includes)
        try:
            extractor(record, in_includes)
        except Exception as e:
            self.logger.error(f"Error processing {record.relative_path}: {e}")
            return base

        # Directory membership is kept alongside declared membership
        if base.collections and record.collections != base.collections:
            declared = record.collections
            if isinstance(declared, str):
                declared = [declared]
            if isinstance(declared, list) and base.collections not in declared:
                record.collections = declared + [base.collections]
        return record

    def read_text(self, record: FileRecord) -> str:
        with open(record.origin, 'r', encoding='utf-8') as f:
            return f.read()

    def extract_markdown(self, record: FileRecord, in_includes: bool) -> None:
        try:
            metadata, body = split_front_matter(self.read_text(record))
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML front matter: {e}")
        record.apply_fields(metadata)
        record.body = render_markdown(body)
        if record.page_type is None and not in_includes:
            record.page_type = 'page'

    def extract_data(self, record: FileRecord, in_includes: bool) -> None:
        text = self.read_text(record)
        if record.extension.lower() == 'json':
            payload = json.loads(text)
        else:
            payload = yaml.safe_load(text)
        record.data = render_markdown_fields(payload)
        if isinstance(payload, dict) and 'collections' in payload:
            record.collections = payload['collections']

    def extract_python(self, record: FileRecord, in_includes: bool) -> None:
        strategy = PythonTemplate(record.origin)
        record.apply_fields(strategy.config())
        record.template = strategy
        if strategy.renderable and record.page_type is None and not in_includes:
            record.page_type = 'page'

    def extract_jinja(self, record: FileRecord, in_includes: bool) -> None:
        metadata, body = split_front_matter(self.read_text(record))
        record.apply_fields(metadata)
        record.template = JinjaTemplate(record.relative_path, body, self.env)
        if record.page_type is None and not in_includes:
            record.page_type = 'page'
