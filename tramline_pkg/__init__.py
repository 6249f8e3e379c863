"""
Tramline - a static site build pipeline.

Tramline walks a source tree, classifies every file, aggregates data files,
groups pages into collections, runs collection rules (pagination and
grouped listing pages), applies templates and layout chains, and writes the
published pages into an output tree. A development server with live reload
serves the result.
"""

__version__ = "1.0.0"
__author__ = "Tramline Contributors"

from .core import Tramline
from .models import CollectionRule, FileRecord, Page, Settings
from .settings import TramlineSettings

__all__ = ['Tramline', 'TramlineSettings', 'FileRecord', 'Page', 'CollectionRule', 'Settings']
