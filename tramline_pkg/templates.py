"""
Template strategies: the things a page or layout path resolves to.

Python modules expose ``render(data, collections, context)`` and optionally
``config()``. Jinja2 files are rendered with ``data``, ``collections``,
``context`` and ``content`` in scope.
"""

import os
import importlib.util
import itertools
from typing import Any, Dict, List, Mapping, Optional

from jinja2 import Environment, FileSystemLoader

from .models import FileRecord, TemplateStrategy

_module_counter = itertools.count()


class PythonTemplate(TemplateStrategy):
    """A user module loaded from the source tree."""

    def __init__(self, path: str):
        super().__init__(path)
        module_name = f"tramline_user_{next(_module_counter)}_{os.path.splitext(os.path.basename(path))[0]}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load module from {path}")
        self.module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(self.module)

    @property
    def renderable(self) -> bool:
        return callable(getattr(self.module, 'render', None))

    def config(self) -> Dict[str, Any]:
        config_func = getattr(self.module, 'config', None)
        if not callable(config_func):
            return {}
        values = config_func()
        if values is None:
            return {}
        if not isinstance(values, dict):
            raise TypeError(f"config() in {self.path} must return a dict, got {type(values).__name__}")
        return values

    def render(self, data, collections, context):
        render_func = getattr(self.module, 'render', None)
        if not callable(render_func):
            raise AttributeError(f"{self.path} has no render(data, collections, context) function")
        return render_func(data=data, collections=collections, context=context)


class JinjaTemplate(TemplateStrategy):
    """A Jinja2 template compiled from a file body (front matter removed)."""

    def __init__(self, path: str, source: str, env: Environment):
        super().__init__(path)
        self.template = env.from_string(source)

    def render(self, data, collections, context):
        return self.template.render(
            data=data,
            collections=collections,
            context=context,
            content=context.content if context.content is not None else (context.body or ''),
        )


def create_environment(search_paths: List[str]) -> Environment:
    """Jinja2 environment whose includes/extends resolve against the source tree."""
    return Environment(loader=FileSystemLoader(search_paths), autoescape=False)


def invoke(strategy: TemplateStrategy, data: Mapping[str, Any],
           collections: Mapping[str, List[FileRecord]], context: FileRecord) -> Optional[str]:
    """Call a strategy and make sure it produced a string."""
    result = strategy.render(data, collections, context)
    if result is None:
        raise ValueError(f"{strategy.path} returned nothing")
    if not isinstance(result, str):
        result = str(result)
    return result
