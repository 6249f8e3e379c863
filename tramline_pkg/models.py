"""
Data model shared by every build stage: file records, listing pages,
collection rules and plugin entries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

# Front matter keys that map onto record fields rather than free-form metadata
FIELD_ALIASES = {
    'collections': 'collections',
    'state': 'state',
    'layout': 'layout_ref',
    'type': 'page_type',
}


@dataclass(eq=False)
class FileRecord:
    """One source file or one synthetic page produced by a collection rule."""
    name: str
    relative_path: str
    origin: Optional[str] = None
    extension: str = ''
    size: int = 0
    created: Optional[datetime] = None
    modified: Optional[datetime] = None
    collections: Any = None
    data: Any = None
    body: Optional[str] = None
    page_type: Optional[str] = None
    state: Optional[str] = None
    layout_ref: Optional[str] = None
    content: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    template: Optional['TemplateStrategy'] = field(default=None, repr=False)

    def apply_fields(self, values: Mapping[str, Any]) -> None:
        """Apply front matter (or a module's config()) onto the record."""
        for key, value in values.items():
            attr = FIELD_ALIASES.get(key)
            if attr:
                setattr(self, attr, value)
            else:
                self.meta[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Look a field up by front matter name, falling back to metadata."""
        if key in FIELD_ALIASES:
            value = getattr(self, FIELD_ALIASES[key])
            return default if value is None else value
        if key in self.meta:
            return self.meta[key]
        if key in self.__dataclass_fields__ and key != 'meta':
            value = getattr(self, key)
            return default if value is None else value
        return default

    def __getitem__(self, key: str) -> Any:
        marker = object()
        value = self.get(key, marker)
        if value is marker:
            raise KeyError(key)
        return value

    def __contains__(self, key: str) -> bool:
        marker = object()
        return self.get(key, marker) is not marker

    @property
    def stem(self) -> str:
        return self.name.split('.')[0]


@dataclass(eq=False)
class Page(FileRecord):
    """A listing page holding one chunk of a paginated collection."""
    items: List[FileRecord] = field(default_factory=list)
    hrefs: List[str] = field(default_factory=list)
    navigation: Dict[str, Optional[str]] = field(default_factory=dict)
    navigation_data: Dict[str, Optional['Page']] = field(default_factory=dict, repr=False)
    position: int = 0


class TemplateStrategy:
    """
    Something that can be invoked with data, collections and the current
    record and returns a string.

    Subclasses wrap a loaded Python module or a compiled Jinja2 template.
    """

    def __init__(self, path: str):
        self.path = path

    @property
    def renderable(self) -> bool:
        return True

    def render(self, data: Mapping[str, Any], collections: Mapping[str, List[FileRecord]],
               context: FileRecord) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class SortSpec:
    by: str = 'date'
    format: str = 'mmddyyyy'
    order: Optional[str] = None


@dataclass(frozen=True)
class CollectionRule:
    """A single action applied to a named collection."""
    collection: str
    action: str
    path: str = ''
    size: Optional[int] = None
    slug: str = 'title'
    sort: Optional[SortSpec] = None
    state: Optional[str] = None
    layout: Optional[str] = None
    meta: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class PluginConfig:
    name: str
    options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def get(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)


@dataclass(frozen=True)
class Settings:
    """Immutable configuration computed once per build."""
    source: str = ''
    output: str = '_site'
    includes: str = '_includes'
    drafts: str = '_drafts'
    data: str = '_data'
    collections_dir: str = '_collections'
    ignore: Tuple[str, ...] = ()
    passthrough: Tuple[str, ...] = ()
    collect: Tuple[CollectionRule, ...] = ()
    use: Tuple[PluginConfig, ...] = ()
    clean: bool = True
    cool_urls: bool = False
    log_dir: Optional[str] = None
    site: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


Collections = Dict[str, List[FileRecord]]
ActionFunc = Callable[[CollectionRule, List[FileRecord], Mapping[str, Any]], List[FileRecord]]
