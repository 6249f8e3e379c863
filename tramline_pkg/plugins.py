"""
Build plugins. Each plugin receives the finished build state and writes its
own files; none of them feed back into the pages.
"""

import os
import re
import html
import logging
from datetime import datetime
from email.utils import format_datetime, formatdate
from typing import Any, Callable, Dict, List, Mapping
from xml.sax.saxutils import escape

from PIL import Image

from .dates import default_parser
from .emitter import Emitter
from .models import Collections, FileRecord, PluginConfig, Settings

logger = logging.getLogger('Tramline.plugins')

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp', '.bmp', '.tiff')


class BuildContext:
    """What a plugin gets to see once pages are rendered."""

    def __init__(self, settings: Settings, files: List[FileRecord], collections: Collections,
                 data: Mapping[str, Any], output_dir: str):
        self.settings = settings
        self.files = files
        self.collections = collections
        self.data = data
        self.output_dir = output_dir


PluginFunc = Callable[[BuildContext, PluginConfig], None]


def strip_html(text: str) -> str:
    text = html.unescape(str(text))
    text = re.sub(r'<.*?>', '', text)
    return re.sub(r'\s+', ' ', text).strip()


def syndication(context: BuildContext, config: PluginConfig) -> None:
    """Generate an RSS feed for one collection."""
    feed_name = config.get('feed')
    items = context.collections.get(feed_name) if feed_name else None
    if not items:
        logger.error(f"SYNDICATION: collection '{feed_name}' is missing or empty")
        return

    link = str(config.get('link') or context.settings.site.get('url') or '').rstrip('/')
    title = config.get('title') or context.settings.site.get('title') or link
    description = config.get('description') or f"Latest posts from {title}"
    date_format = config.get('date_format', 'mmddyyyy')
    emitter = Emitter(context.settings, context.output_dir)

    dated = []
    for record in items:
        parsed = default_parser.parse(record.get('date'), date_format)
        dated.append((parsed or datetime.min, record))
    dated.sort(key=lambda pair: pair[0], reverse=True)

    limit = config.get('limit')
    if limit:
        dated = dated[:int(limit)]

    rss_content = f'''<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">
<channel>
<title>{escape(str(title))}</title>
<link>{escape(link)}</link>
<atom:link href="{escape(link)}" rel="self" type="application/rss+xml" />
<description>{escape(str(description))}</description>
<language>{escape(str(config.get('language') or 'en'))}</language>
<lastBuildDate>{formatdate()}</lastBuildDate>
'''

    for parsed, record in dated:
        item_link = f"{link}{emitter.destination_path(record) or '/'}"
        item_description = record.get('description') or strip_html(record.body or '')
        pub_date = format_datetime(parsed) if parsed != datetime.min else formatdate()
        rss_content += f'''
<item>
<title>{escape(str(record.get('title', 'Untitled')))}</title>
<link>{escape(item_link)}</link>
<description>{escape(strip_html(item_description))}</description>
<pubDate>{pub_date}</pubDate>
<guid>{escape(item_link)}</guid>
</item>'''

    rss_content += '''
</channel>
</rss>
'''

    destination = os.path.join(context.output_dir, config.get('output', 'feed.xml'))
    try:
        os.makedirs(os.path.dirname(destination), exist_ok=True)
        with open(destination, 'w', encoding='utf-8') as f:
            f.write(rss_content)
        logger.info(f"WROTE: {destination}")
    except (IOError, OSError, PermissionError) as e:
        logger.error(f"Failed to write RSS feed file {destination}: {e}")


def optimize_media(context: BuildContext, config: PluginConfig) -> None:
    """Rescale and recompress images already copied into the output tree."""
    resize = float(config.get('resize', 1.0))
    quality = int(config.get('quality', 80))
    to_webp = bool(config.get('webp', False))
    converted = 0

    for dirpath, _, filenames in os.walk(context.output_dir):
        for filename in filenames:
            ext = os.path.splitext(filename)[1].lower()
            if ext not in IMAGE_EXTENSIONS:
                continue
            image_path = os.path.join(dirpath, filename)
            try:
                with Image.open(image_path) as img:
                    img.load()
                    if resize != 1.0:
                        size = (max(1, int(img.width * resize)), max(1, int(img.height * resize)))
                        img = img.resize(size)
                    if to_webp and ext != '.webp':
                        webp_path = image_path.rsplit('.', 1)[0] + '.webp'
                        img.save(webp_path, 'WEBP', quality=quality)
                        converted += 1
                    elif ext in ('.jpg', '.jpeg', '.webp'):
                        img.save(image_path, quality=quality)
                    else:
                        img.save(image_path)
                if to_webp and ext != '.webp':
                    os.remove(image_path)
            except Exception as e:
                logger.error(f"Failed to optimize {image_path}: {e}")

    logger.info(f"MEDIA: optimized images in {context.output_dir} ({converted} converted to WebP)")


def pwa(context: BuildContext, config: PluginConfig) -> None:
    sw = config.get('sw') or {}
    logger.info(f"PWA | fetch: {sw.get('fetch')}, update: {sw.get('update')}")


PLUGINS: Dict[str, PluginFunc] = {
    'syndication': syndication,
    'optimize_media': optimize_media,
    'pwa': pwa,
}

# Plugins that work on the output tree and so run after pages are written
POST_EMIT = {'optimize_media'}


def register_plugin(name: str, func: PluginFunc, after_emit: bool = False) -> None:
    PLUGINS[name] = func
    if after_emit:
        POST_EMIT.add(name)


def run_plugins(context: BuildContext, after_emit: bool = False) -> None:
    """Run the configured plugins for one phase; failures are logged."""
    for config in context.settings.use:
        if (config.name in POST_EMIT) != after_emit:
            continue
        plugin = PLUGINS.get(config.name)
        if plugin is None:
            logger.error(f"Unknown plugin '{config.name}'")
            continue
        try:
            plugin(context, config)
        except Exception as e:
            logger.error(f"ERROR using plugin '{config.name}': {e}")
