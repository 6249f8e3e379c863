"""
Collection assembly: tag membership, then the configured rules.

Rules run strictly in declaration order. Each rule is a fold step that takes
``(files, collections)`` and returns the next pair; its output is merged into
``files`` by record name.
"""

import re
import locale
import logging
import posixpath
import unicodedata
from functools import reduce
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .dates import DateParser, default_parser
from .models import ActionFunc, CollectionRule, Collections, FileRecord, Page, SortSpec

logger = logging.getLogger('Tramline.collect')

NON_SLUG_RE = re.compile(r'[^A-Za-z0-9\- ]')
WHITESPACE_RE = re.compile(r'\s+')
HYPHENS_RE = re.compile(r'-+')
SLASHES_RE = re.compile(r'/+')


def slugify(text: str) -> str:
    """Turn a title-like string into lowercase hyphenated ASCII."""
    text = unicodedata.normalize('NFD', text)
    text = ''.join(char for char in text if not unicodedata.combining(char))
    text = NON_SLUG_RE.sub('', text).strip()
    text = WHITESPACE_RE.sub('-', text)
    text = HYPHENS_RE.sub('-', text)
    return text.lower()


def decipher_slug(record: FileRecord, line: str) -> str:
    """
    Build a slug from the record fields named in ``line``.

    Field names are separated by ``--``; each field's slug is joined with a
    single hyphen. A missing or non-string field contributes an empty part.
    """
    parts = []
    for param in line.split('--'):
        value = record.get(param)
        if isinstance(value, str):
            parts.append(slugify(value))
        else:
            logger.error(f"{value!r} is not a string at '{line}' ({record.relative_path})")
            parts.append('')
    return '-'.join(parts)


def build_membership(files: List[FileRecord]) -> Collections:
    """Group records by the collections they declare."""
    collections: Collections = {}
    for record in files:
        membership = record.collections
        if membership is None:
            continue
        if isinstance(membership, str):
            tags = [membership]
        elif isinstance(membership, (list, tuple)):
            tags = list(membership)
        else:
            logger.error(f'"collections:" in {record.relative_path} needs to be a string or a list')
            continue
        for tag in tags:
            if not isinstance(tag, str) or not tag:
                logger.error(f"Cannot add {record.relative_path} to collection {tag!r}")
                continue
            collections.setdefault(tag, []).append(record)
    return collections


def merge_by_name(files: List[FileRecord], produced: List[FileRecord]) -> List[FileRecord]:
    """
    Upsert ``produced`` into ``files`` keyed by record name.

    A produced record replaces the first existing record with the same name
    in place; unmatched ones are appended in order.
    """
    merged = list(files)
    index: Dict[str, int] = {}
    for position, record in enumerate(merged):
        index.setdefault(record.name, position)
    for record in produced:
        position = index.get(record.name)
        if position is None:
            index[record.name] = len(merged)
            merged.append(record)
        else:
            merged[position] = record
    return merged


def _descending(order: Optional[str], default: bool) -> bool:
    if order in ('newest', 'desc', 'descending'):
        return True
    if order in ('oldest', 'asc', 'ascending'):
        return False
    if order is not None:
        logger.error(f"Unknown sort order '{order}'")
    return default


def _sort_keyed(pairs, descending: bool) -> List[FileRecord]:
    """Sort (key, record) pairs; records with a None key always go last."""
    present = [pair for pair in pairs if pair[0] is not None]
    missing = [record for key, record in pairs if key is None]
    present.sort(key=lambda pair: pair[0], reverse=descending)
    return [record for _, record in present] + missing


def sort_records(records: List[FileRecord], sort: SortSpec,
                 parser: DateParser = default_parser) -> List[FileRecord]:
    """Order records by date, title or any other field."""
    if sort.by == 'date':
        pairs = []
        for record in records:
            value = record.get('date')
            if value is None:
                logger.warning(f"{record.relative_path} has no date to sort by")
            pairs.append((parser.parse(value, sort.format), record))
        return _sort_keyed(pairs, _descending(sort.order, True))

    if sort.by == 'title':
        pairs = []
        for record in records:
            title = record.get('title')
            pairs.append((locale.strxfrm(title) if isinstance(title, str) else None, record))
        return _sort_keyed(pairs, _descending(sort.order, False))

    pairs = [(record.get(sort.by), record) for record in records]
    try:
        return _sort_keyed(pairs, _descending(sort.order, False))
    except TypeError as e:
        logger.error(f"Cannot sort by '{sort.by}': {e}")
        return list(records)


def _join_path(base: str, tail: str) -> str:
    return SLASHES_RE.sub('/', f"{base}/{tail}")


def paginate(rule: CollectionRule, source: List[FileRecord], data: Mapping[str, Any]) -> List[FileRecord]:
    """Give every record in the collection its own page under the rule path."""
    for record in source:
        slug = decipher_slug(record, rule.slug)
        record.relative_path = _join_path(rule.path, slug)
        if not record.state:
            record.state = rule.state
        if not record.layout_ref:
            record.layout_ref = rule.layout
    return list(source)


def paginate_groups(rule: CollectionRule, source: List[FileRecord], data: Mapping[str, Any]) -> List[Page]:
    """
    Split the collection into listing pages of ``rule.size`` records.

    Chunk 0 lives at the rule path, chunk i at ``{path}/{i}``.
    """
    size = rule.size
    if not size or size < 1:
        logger.error(f"paginate_groups on '{rule.collection}' needs a positive size, got {size!r}")
        return []

    items = sort_records(source, rule.sort) if rule.sort else list(source)
    chunks = [items[start:start + size] for start in range(0, len(items), size)]
    if not chunks:
        logger.info(f"Collection '{rule.collection}' is empty; no listing pages for '{rule.path}'")
        return []

    base = posixpath.normpath(SLASHES_RE.sub('/', rule.path)) if rule.path.strip('/') else ''
    if base == '.':
        base = ''

    def chunk_path(position: int) -> str:
        return base if position == 0 else f"{base}/{position}"

    last = len(chunks) - 1

    def previous_path(position: int) -> Optional[str]:
        if position == 0:
            return None
        # Only a final chunk 1 links back to the bare path; elsewhere previous is numbered
        if position == 1 and position == last:
            return base
        return f"{base}/{position - 1}"


    # Lexicographic, not chunk order: "/blog/10" sorts before "/blog/2"
    hrefs = sorted(chunk_path(position) for position in range(len(chunks)))

    pages = []
    for position, chunk in enumerate(chunks):
        page_path = chunk_path(position)
        navigation = {
            'next': chunk_path(position + 1) if position < last else None,
            'previous': previous_path(position),
            'first': chunk_path(0) if position > 0 else None,
            'last': chunk_path(last) if position < last else None,
        }
        pages.append(Page(
            name=page_path,
            relative_path=page_path,
            page_type='page',
            state=rule.state,
            layout_ref=rule.layout,
            meta=dict(rule.meta),
            items=chunk,
            hrefs=list(hrefs),
            navigation=navigation,
            position=position,
        ))

    for page in pages:
        page.navigation_data = {
            'next': pages[page.position + 1] if page.navigation['next'] else None,
            'previous': pages[page.position - 1] if page.navigation['previous'] else None,
            'first': pages[0] if page.navigation['first'] else None,
            'last': pages[last] if page.navigation['last'] else None,
        }
    return pages


ACTIONS: Dict[str, ActionFunc] = {
    'paginate': paginate,
    'paginate_groups': paginate_groups,
}


def register_action(name: str, func: ActionFunc) -> None:
    ACTIONS[name] = func


def run_rule(state: Tuple[List[FileRecord], Collections], rule: CollectionRule,
             data: Mapping[str, Any]) -> Tuple[List[FileRecord], Collections]:
    """One fold step: run a rule and merge its output back into the files."""
    files, collections = state
    action = ACTIONS.get(rule.action)
    if action is None:
        logger.error(
            f'There is no action named "{rule.action}". '
            f'Available actions: {", ".join(sorted(ACTIONS))}'
        )
        return files, collections

    source = collections.get(rule.collection)
    if source is None:
        logger.error(f"Collection '{rule.collection}' has no members; skipping {rule.action}")
        return files, collections

    try:
        produced = action(rule, source, data)
    except Exception as e:
        logger.error(f"Action '{rule.action}' on collection '{rule.collection}' failed: {e}")
        return files, collections

    logger.debug(f"{rule.action} on '{rule.collection}' produced {len(produced)} records")
    return merge_by_name(files, produced), collections


def run_rules(rules, files: List[FileRecord], collections: Collections,
              data: Mapping[str, Any]) -> Tuple[List[FileRecord], Collections]:
    """Fold every rule, in order, over (files, collections)."""
    return reduce(lambda state, rule: run_rule(state, rule, data), rules, (files, collections))
