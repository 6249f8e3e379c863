"""
Writes published pages into the output tree.
"""

import os
import logging
import posixpath
from typing import List, Optional

from .models import FileRecord, Settings

ROOT_NAMES = ('index', 'home')


class Emitter:
    """Maps page records to output files and writes them."""

    def __init__(self, settings: Settings, output_dir: str):
        self.settings = settings
        self.output_dir = output_dir
        self.pages_generated = 0
        self.logger = logging.getLogger('Tramline.emitter')

    def destination_path(self, record: FileRecord) -> str:
        """
        The extensionless, slash-prefixed URL path of a record.

        Returns '' for the site root.
        """
        path = record.relative_path.replace('\\', '/').strip()
        if not path or path == '/':
            return ''
        directory, filename = posixpath.split(path)
        stem = filename if filename.startswith('.') else posixpath.splitext(filename)[0]
        if directory.strip('/') == '' and stem in ROOT_NAMES:
            return ''
        if stem == 'index':
            stem = ''
        path = posixpath.join(directory, stem).rstrip('/')
        if not path.startswith('/'):
            path = f"/{path}"
        return path

    def destination_for(self, record: FileRecord) -> str:
        """Filesystem path the record is written to."""
        path = self.destination_path(record)
        if not path:
            return os.path.join(self.output_dir, 'index.html')
        parts = path.strip('/').split('/')
        if self.settings.cool_urls:
            parts[-1] = f"{parts[-1]}.html"
        else:
            parts.append('index.html')
        return os.path.join(self.output_dir, *parts)

    def write(self, record: FileRecord) -> Optional[str]:
        if not record.content:
            self.logger.error(f"NO CONTENT: {record.name} is published but has no content; skipping")
            return None
        destination = self.destination_for(record)
        try:
            os.makedirs(os.path.dirname(destination), exist_ok=True)
            with open(destination, 'w', encoding='utf-8') as f:
                f.write(record.content)
        except (IOError, OSError, PermissionError) as e:
            self.logger.error(f"Failed to write {destination}: {e}")
            return None
        self.pages_generated += 1
        self.logger.info(f"WROTE: {destination}")
        return destination

    def emit(self, files: List[FileRecord]) -> List[str]:
        """Write every published page; drafts and stateless pages are skipped."""
        written = []
        for record in files:
            if record.page_type != 'page':
                continue
            if record.state == 'publish':
                destination = self.write(record)
                if destination:
                    written.append(destination)
            elif record.state == 'draft':
                self.logger.info(f"DRAFT: {record.name}")
            elif not record.state:
                self.logger.info(f"UNDEFINED STATE: {record.name}")
            else:
                self.logger.warning(f"UNKNOWN STATE '{record.state}': {record.name}")
        return written
