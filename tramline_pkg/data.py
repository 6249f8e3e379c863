"""
Global data: parsed payloads of files in the data directory, keyed by stem.
"""

import logging
from typing import Any, Dict, List, Tuple

from .classifier import is_under
from .models import FileRecord, Settings

logger = logging.getLogger('Tramline.data')


def aggregate_data(settings: Settings, files: List[FileRecord]) -> Tuple[List[FileRecord], Dict[str, Any]]:
    """
    Collect data-directory payloads into one mapping.

    Returns the remaining file list and the data mapping. Data-only records
    are dropped from the file list; records whose payload declares
    ``collections`` stay in it (with the payload copied into ``meta``) so
    they can take part in collections.
    """
    data = {}
    remaining = []
    for record in files:
        if record.data is None or not is_under(record.relative_path, settings.data):
            remaining.append(record)
            continue

        key = record.stem
        if key in data:
            logger.debug(f"Data key '{key}' from {record.relative_path} replaces an earlier file")
        data[key] = record.data

        if isinstance(record.data, dict) and record.collections is not None:
            for field_name, value in record.data.items():
                if field_name != 'collections':
                    record.meta.setdefault(field_name, value)
            remaining.append(record)

    logger.debug(f"Global data keys: {', '.join(sorted(data)) or 'none'}")
    return remaining, data
