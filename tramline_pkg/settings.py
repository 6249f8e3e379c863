#!/usr/bin/env python3
"""
Settings loader for Tramline static site builder.
Supports configuration from tramline.yml, tramline.yaml, tramline.json or a
tramline.py module exposing a settings() function.
"""

import os
import json
import copy
import logging
import importlib.util
from types import MappingProxyType
from typing import Dict, Any, List, Optional
import yaml

from .models import CollectionRule, PluginConfig, Settings, SortSpec

ACTION_ALIASES = {
    'paginateGroups': 'paginate_groups',
    'paginate-groups': 'paginate_groups',
}


def merge_settings(defaults: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
    """
    Combine default and user settings.

    Lists given by the user are appended to the default list of the same key;
    every other user value replaces the default.
    """
    merged = copy.deepcopy(defaults)
    for key, value in user.items():
        default_value = defaults.get(key)
        if isinstance(value, list) and isinstance(default_value, list):
            merged[key] = list(default_value) + list(value)
        else:
            merged[key] = value
    return merged


def _freeze_value(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze_value(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze_value(v) for v in value)
    return value


def parse_sort(raw: Any, logger: logging.Logger) -> Optional[SortSpec]:
    """Turn a rule's sort entry into a SortSpec (True means all defaults)."""
    if raw is None or raw is False:
        return None
    if raw is True:
        return SortSpec()
    if isinstance(raw, str):
        return SortSpec(by=raw)
    if not isinstance(raw, dict):
        logger.error(f"Ignoring sort option {raw!r}: expected a mapping")
        return None
    return SortSpec(
        by=str(raw.get('by') or 'date'),
        format=str(raw.get('format') or 'mmddyyyy').lower(),
        order=str(raw['order']).lower() if raw.get('order') else None,
    )


def parse_rules(raw: Any, logger: logging.Logger) -> List[CollectionRule]:
    """
    Parse the collect setting into a flat, ordered list of rules.

    An entry may carry a single ``action`` or a list of ``actions``; in the
    latter case each action inherits the entry's collection name.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.error(f"Setting 'collect' should be a list, got {type(raw).__name__}; ignoring it")
        return []

    rules = []
    for entry in raw:
        if not isinstance(entry, dict):
            logger.error(f"Ignoring collection rule {entry!r}: expected a mapping")
            continue
        collection = entry.get('collection') or entry.get('name')
        if not collection:
            logger.error(f"Ignoring collection rule {entry!r}: it names no collection")
            continue

        if entry.get('action'):
            action_sets = [entry]
        elif isinstance(entry.get('actions'), list):
            action_sets = entry['actions']
        else:
            logger.error(f'Your collection "{collection}" needs at least one action attached to it.')
            continue

        for action_set in action_sets:
            if not isinstance(action_set, dict) or not action_set.get('action'):
                logger.error(f"Ignoring malformed action {action_set!r} for collection '{collection}'")
                continue
            size = action_set.get('size')
            if size is not None:
                try:
                    size = int(size)
                except (TypeError, ValueError):
                    logger.error(f"Ignoring non-numeric size {size!r} for collection '{collection}'")
                    size = None
            action = str(action_set['action'])
            rules.append(CollectionRule(
                collection=str(collection),
                action=ACTION_ALIASES.get(action, action),
                path=str(action_set.get('path') or ''),
                size=size,
                slug=str(action_set.get('slug') or 'title'),
                sort=parse_sort(action_set.get('sort'), logger),
                state=action_set.get('state'),
                layout=action_set.get('layout'),
                meta=_freeze_value(action_set.get('meta') or {}),
            ))
    return rules


def parse_plugins(raw: Any, logger: logging.Logger) -> List[PluginConfig]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.error(f"Setting 'use' should be a list, got {type(raw).__name__}; ignoring it")
        return []
    plugins = []
    for entry in raw:
        if isinstance(entry, str):
            plugins.append(PluginConfig(name=entry))
        elif isinstance(entry, dict) and entry.get('name'):
            options = {k: v for k, v in entry.items() if k != 'name'}
            plugins.append(PluginConfig(name=str(entry['name']), options=_freeze_value(options)))
        else:
            logger.error(f"Ignoring plugin entry {entry!r}: it needs a name")
    return plugins


class TramlineSettings:
    """Load and manage Tramline configuration settings."""

    # Default configuration
    DEFAULT_SETTINGS = {
        'source': '',
        'output': '_site',
        'includes': '_includes',
        'drafts': '_drafts',
        'data': '_data',
        'collections_dir': '_collections',
        'ignore': [
            '.git',
            '__pycache__',
            'node_modules',
            'tramline.yml',
            'tramline.yaml',
            'tramline.json',
            'tramline.py',
            'logs',
        ],
        'pass': [],
        'collect': [],
        'use': [],
        'clean': True,
        'cool_urls': False,
        'log_dir': None,
        'site': {},
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['tramline.yml', 'tramline.yaml', 'tramline.json', 'tramline.py']

    def __init__(self, config_dir: str = None):
        """
        Initialize settings loader.

        Args:
            config_dir: Directory to look for config files. Defaults to current directory.
        """
        self.config_dir = config_dir or os.getcwd()
        self.settings = copy.deepcopy(self.DEFAULT_SETTINGS)
        self.config_file_path = None
        self.logger = logging.getLogger('Tramline.settings')

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from configuration file if it exists.

        Returns:
            Dictionary of configuration settings
        """
        config_file = self._find_config_file()

        if config_file:
            self.config_file_path = config_file
            try:
                loaded_settings = self._load_config_file(config_file)
                if not isinstance(loaded_settings, dict):
                    raise ValueError(f"Configuration in {config_file} must be a mapping")
                self.settings = merge_settings(self.DEFAULT_SETTINGS, loaded_settings)
                self.logger.info(f"Loaded configuration from: {os.path.relpath(config_file)}")
            except Exception as e:
                self.logger.warning(f"Failed to load config file {config_file}: {e}")

        return copy.deepcopy(self.settings)

    def _find_config_file(self) -> Optional[str]:
        """
        Find the first available configuration file.

        Returns:
            Path to config file or None if not found
        """
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.config_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary of configuration settings
        """
        file_ext = os.path.splitext(config_path)[1].lower()
        if file_ext == '.py':
            return self._load_config_module(config_path)

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                if file_ext in ['.yml', '.yaml']:
                    return yaml.safe_load(f) or {}
                elif file_ext == '.json':
                    return json.load(f) or {}
                else:
                    raise ValueError(f"Unsupported config file format: {file_ext}")
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        except PermissionError:
            raise PermissionError(f"Permission denied reading configuration file: {config_path}")
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file {config_path}: {e}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file {config_path}: {e}")
        except (IOError, OSError) as e:
            raise IOError(f"Error reading configuration file {config_path}: {e}")

    def _load_config_module(self, config_path: str) -> Dict[str, Any]:
        """Execute tramline.py and call its settings() function."""
        spec = importlib.util.spec_from_file_location('tramline_user_settings', config_path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        settings_func = getattr(module, 'settings', None)
        if not callable(settings_func):
            raise ValueError(
                f"{config_path} must define a settings() function returning a mapping "
                "with source, output, includes, drafts, ignore, pass or data keys"
            )
        return settings_func() or {}

    def create_sample_config(self, file_format: str = 'yml') -> str:
        """
        Create a sample configuration file.

        Args:
            file_format: Format for config file ('yml', 'yaml', or 'json')

        Returns:
            Path to created sample config file
        """
        sample_config = {
            'output': '_site',
            'includes': '_includes',
            'data': '_data',
            'pass': ['assets'],
            'cool_urls': False,
            'collect': [
                {
                    'collection': 'posts',
                    'actions': [
                        {'action': 'paginate', 'path': '/blog', 'slug': 'title',
                         'state': 'publish', 'layout': '_includes/post.html'},
                        {'action': 'paginate_groups', 'path': '/blog/page', 'size': 5,
                         'state': 'publish', 'layout': '_includes/list.html',
                         'sort': {'by': 'date', 'format': 'yyyymmdd', 'order': 'newest'}},
                    ],
                },
            ],
            'use': [
                {'name': 'syndication', 'feed': 'posts', 'title': 'My Site',
                 'link': 'https://example.com', 'description': 'Latest posts'},
            ],
        }

        filename = f'tramline.{file_format}'
        config_path = os.path.join(self.config_dir, filename)

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                if file_format in ['yml', 'yaml']:
                    f.write("# Tramline Configuration File\n")
                    f.write("# Lists (ignore, pass, collect, use) are appended to the defaults.\n\n")
                    yaml.safe_dump(sample_config, f, sort_keys=False, default_flow_style=False)
                elif file_format == 'json':
                    json.dump(sample_config, f, indent=2)
                else:
                    raise ValueError(f"Unsupported config file format: {file_format}")
        except PermissionError:
            raise PermissionError(f"Permission denied creating configuration file: {config_path}")
        except (IOError, OSError) as e:
            raise IOError(f"Error writing configuration file {config_path}: {e}")

        return config_path

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge configuration settings with command-line arguments.
        Command-line arguments take precedence over config file settings.

        Args:
            args_dict: Dictionary of command-line arguments

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(self.settings)
        for key, value in args_dict.items():
            if value is not None and key in self.DEFAULT_SETTINGS:
                merged[key] = value
        self.settings = merged
        return copy.deepcopy(merged)

    def freeze(self, values: Optional[Dict[str, Any]] = None) -> Settings:
        """Build the immutable Settings used by every build stage."""
        values = self.settings if values is None else values
        known = set(self.DEFAULT_SETTINGS)

        def list_option(key):
            value = values.get(key)
            if value is None:
                return ()
            if not isinstance(value, list):
                self.logger.error(f"Setting '{key}' should be a list; using the default")
                value = self.DEFAULT_SETTINGS[key]
            return tuple(str(item) for item in value)

        site = values.get('site') or {}
        if not isinstance(site, dict):
            self.logger.error("Setting 'site' should be a mapping; ignoring it")
            site = {}

        return Settings(
            source=str(values.get('source') or ''),
            output=str(values.get('output') or self.DEFAULT_SETTINGS['output']),
            includes=str(values.get('includes') or self.DEFAULT_SETTINGS['includes']),
            drafts=str(values.get('drafts') or self.DEFAULT_SETTINGS['drafts']),
            data=str(values.get('data') or self.DEFAULT_SETTINGS['data']),
            collections_dir=str(values.get('collections_dir') or self.DEFAULT_SETTINGS['collections_dir']),
            ignore=list_option('ignore'),
            passthrough=list_option('pass'),
            collect=tuple(parse_rules(values.get('collect'), self.logger)),
            use=tuple(parse_plugins(values.get('use'), self.logger)),
            clean=bool(values.get('clean', True)),
            cool_urls=bool(values.get('cool_urls', False)),
            log_dir=values.get('log_dir'),
            site=_freeze_value(site),
            extra=_freeze_value({k: v for k, v in values.items() if k not in known}),
        )
