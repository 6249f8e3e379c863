"""
Page templates and the layout chain.

Every page first gets its own content (rendered markdown or the output of its
template). If it names a layout, that layout wraps the content, then the
layout's own layout wraps the result, and so on until a layout names none.
"""

import enum
import logging
import posixpath
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional

from .models import Collections, FileRecord
from .templates import invoke

logger = logging.getLogger('Tramline.layouts')


class LayoutState(enum.Enum):
    NEEDS_LAYOUT = 'needs_layout'
    RESOLVING = 'resolving'
    RESOLVED = 'resolved'
    ERROR = 'error'


def normalize_ref(ref: str) -> str:
    ref = posixpath.normpath(ref.replace('\\', '/'))
    return ref.lstrip('/') if ref != '.' else ''


def apply_templates(files: List[FileRecord], data: Mapping[str, Any], collections: Collections) -> int:
    """
    Set the initial content of every page. Returns the number of failures.
    """
    failures = 0
    for record in files:
        if record.page_type != 'page':
            continue
        if record.template is not None:
            try:
                record.content = invoke(record.template, data, collections, record)
            except Exception as e:
                failures += 1
                logger.error(f"Template {record.template.path} failed for {record.name}: {e}")
        elif record.body is not None:
            record.content = record.body
    return failures


class LayoutResolver:
    """Resolve layout chains for page records."""

    def __init__(self, files: List[FileRecord], data: Mapping[str, Any], collections: Collections,
                 includes_dir: str = '_includes'):
        self.data = data
        self.collections = collections
        self.includes_dir = normalize_ref(includes_dir)
        self.layouts: Dict[str, FileRecord] = {}
        for record in files:
            if record.template is not None:
                self.layouts[normalize_ref(record.relative_path)] = record

    def find(self, ref: str) -> Optional[FileRecord]:
        """Look a layout up by path, then by path inside the includes directory."""
        key = normalize_ref(ref)
        layout = self.layouts.get(key)
        if layout is None and self.includes_dir:
            layout = self.layouts.get(posixpath.join(self.includes_dir, key))
        return layout

    def resolve(self, record: FileRecord) -> LayoutState:
        """
        Apply the whole layout chain to one record.

        The loop is bounded by the number of known layouts; visiting the same
        layout twice is a cycle and ends in ERROR. On ERROR the record keeps
        the content of the last step that succeeded.
        """
        if not record.layout_ref:
            return LayoutState.RESOLVED

        state = LayoutState.NEEDS_LAYOUT
        ref = record.layout_ref
        visited = []
        while state in (LayoutState.NEEDS_LAYOUT, LayoutState.RESOLVING):
            state = LayoutState.RESOLVING
            layout = self.find(ref)
            if layout is None:
                logger.error(f"Layout '{ref}' used by {record.name} was not found")
                return LayoutState.ERROR

            key = normalize_ref(layout.relative_path)
            if key in visited or len(visited) >= len(self.layouts):
                chain = ' -> '.join(visited + [key])
                logger.error(f"Layout cycle for {record.name}: {chain}")
                return LayoutState.ERROR
            visited.append(key)

            if not layout.template.renderable:
                logger.error(f"Layout {key} has no render(data, collections, context) function")
                return LayoutState.ERROR

            try:
                record.content = invoke(layout.template, self.data, self.collections, record)
            except Exception as e:
                logger.error(f"Layout {key} failed for {record.name}: {e}")
                return LayoutState.ERROR

            ref = layout.layout_ref
            if not ref:
                state = LayoutState.RESOLVED
        return state

    def resolve_all(self, files: List[FileRecord]) -> Counter:
        """Resolve every page record; returns a tally of final states."""
        tally = Counter()
        for record in files:
            if record.page_type == 'page':
                tally[self.resolve(record)] += 1
        return tally
