"""
Media reference scanner.

Finds every locally stored blob a record points at: image/video/audio nodes
inside rich-text content, plus the flat fields that hold a single media path
(featured image, journal cover, user avatar, entry assets).

The backup exporter uses it to decide which blobs to bundle, and the media
cleanup uses it to decide which stored blobs are still live, so both always
agree on what "referenced" means.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, Optional, Set

from odyssi.services.content_format import normalize_content

logger = logging.getLogger(__name__)

LOCAL_MEDIA_PREFIXES = ("/uploads/",)
MEDIA_NODE_TYPES = frozenset({"image", "video", "audio"})
MEDIA_NODE_ATTRS = ("src", "url")
CONTENT_FIELDS = ("content",)
MEDIA_FIELDS = ("featured_image", "cover_image", "image")
ASSET_LIST_FIELD = "images"


def is_local_media_path(value: Any) -> bool:
    """True for strings under a local storage prefix; remote URLs are not."""
    return isinstance(value, str) and value.startswith(LOCAL_MEDIA_PREFIXES)


def iter_content_references(tree: Any) -> Iterator[str]:
    """
    Yield local media paths found anywhere in a content tree.

    Walks with an explicit stack, so nesting depth is unbounded. Every dict
    and list value is visited, which also catches media nested inside marks
    or attrs. Nodes of unexpected shape are skipped.
    """
    stack = [tree]
    while stack:
        node = stack.pop()
        if isinstance(node, list):
            stack.extend(reversed(node))
            continue
        if not isinstance(node, dict):
            continue

        if node.get("type") in MEDIA_NODE_TYPES:
            attrs = node.get("attrs")
            if isinstance(attrs, dict):
                for attr in MEDIA_NODE_ATTRS:
                    if is_local_media_path(attrs.get(attr)):
                        yield attrs[attr]

        for value in node.values():
            if isinstance(value, (dict, list)):
                stack.append(value)


def collect_references(record: Optional[Dict[str, Any]]) -> Set[str]:
    """
    Collect the local media paths referenced by one record.

    ``record`` is a serialized record (an entry, journal, blog post or user
    dict). Only the record's own fields are inspected; nested child records
    (a journal's ``entries``) are scanned separately by the caller.
    """
    references: Set[str] = set()
    if not isinstance(record, dict):
        return references

    for field in CONTENT_FIELDS:
        if record.get(field) is not None:
            references.update(iter_content_references(normalize_content(record[field])))

    for field in MEDIA_FIELDS:
        if is_local_media_path(record.get(field)):
            references.add(record[field])

    assets = record.get(ASSET_LIST_FIELD)
    if isinstance(assets, list):
        for asset in assets:
            if isinstance(asset, dict) and is_local_media_path(asset.get("url")):
                references.add(asset["url"])

    return references


def iter_document_records(document) -> Iterable[Dict[str, Any]]:
    """Every record in a backup document that may reference media."""
    for journal in document.journals:
        yield journal
        for entry in journal.get("entries") or []:
            yield entry
    for post in document.loose_records.get("blog_posts") or []:
        yield post
    for user in document.users or []:
        yield user


def collect_document_references(document) -> Set[str]:
    """Union of ``collect_references`` over every record of a BackupDocument."""
    references: Set[str] = set()
    for record in iter_document_records(document):
        references.update(collect_references(record))
    logger.debug(f"Found {len(references)} media references in backup document")
    return references
