"""
Normalisation of entry and post content into a rich-text node tree.

Content has been stored in several shapes over time:

- a proper tree: ``{"type": "doc", "content": [...]}``
- a legacy markdown wrapper: ``{"type": "markdown", "text": "..."}``
- a JSON-encoded string holding either of the above
- a bare string of plain text
- nothing at all

``classify_content`` resolves the shape once into a tagged ``Content`` value,
and ``to_tree`` converts each variant with its own function, so callers only
ever see trees.
"""

import enum
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List

# Markdown image syntax: ![alt](src "optional title")
MARKDOWN_IMAGE_RE = re.compile(r'!\[([^\]]*)\]\(\s*([^)\s]+)(?:\s+"[^"]*")?\s*\)')


class ContentKind(str, enum.Enum):
    """Shapes content can arrive in."""
    TREE = "tree"
    MARKDOWN = "markdown"
    PLAIN_TEXT = "plain_text"
    EMPTY = "empty"


@dataclass(frozen=True)
class Content:
    kind: ContentKind
    value: Any


def classify_content(raw: Any) -> Content:
    """Decide which variant ``raw`` is. Never raises."""
    if raw is None:
        return Content(ContentKind.EMPTY, None)

    if isinstance(raw, str):
        stripped = raw.strip()
        if not stripped:
            return Content(ContentKind.EMPTY, None)
        if stripped[0] in "{[":
            try:
                decoded = json.loads(stripped)
            except ValueError:
                decoded = None
            if isinstance(decoded, (dict, list)):
                return classify_content(decoded)
        return Content(ContentKind.PLAIN_TEXT, raw)

    if isinstance(raw, dict):
        if raw.get("type") == "markdown":
            text = raw.get("text")
            return Content(ContentKind.MARKDOWN, text if isinstance(text, str) else "")
        return Content(ContentKind.TREE, raw)

    if isinstance(raw, list):
        # A bare list of nodes: wrap it so the result is still one tree
        return Content(ContentKind.TREE, {"type": "doc", "content": raw})

    return Content(ContentKind.EMPTY, None)


def _empty_tree(_: Any) -> Dict[str, Any]:
    return {"type": "doc", "content": []}


def _tree_to_tree(value: Dict[str, Any]) -> Dict[str, Any]:
    return value


def _paragraph(text: str) -> Dict[str, Any]:
    return {"type": "paragraph", "content": [{"type": "text", "text": text}]}


def _plain_text_to_tree(text: str) -> Dict[str, Any]:
    paragraphs = [p for p in re.split(r"\n\s*\n", text) if p.strip()]
    return {"type": "doc", "content": [_paragraph(p.strip()) for p in paragraphs]}


def _markdown_to_tree(text: str) -> Dict[str, Any]:
    """
    Minimal markdown conversion: paragraphs stay text, image syntax becomes
    image nodes so their sources are visible to the media scanner.
    """
    nodes: List[Dict[str, Any]] = []
    for block in re.split(r"\n\s*\n", text):
        if not block.strip():
            continue
        position = 0
        for match in MARKDOWN_IMAGE_RE.finditer(block):
            before = block[position:match.start()].strip()
            if before:
                nodes.append(_paragraph(before))
            nodes.append({
                "type": "image",
                "attrs": {"src": match.group(2), "alt": match.group(1) or None},
            })
            position = match.end()
        rest = block[position:].strip()
        if rest:
            nodes.append(_paragraph(rest))
    return {"type": "doc", "content": nodes}


_CONVERTERS = {
    ContentKind.EMPTY: _empty_tree,
    ContentKind.TREE: _tree_to_tree,
    ContentKind.PLAIN_TEXT: _plain_text_to_tree,
    ContentKind.MARKDOWN: _markdown_to_tree,
}


def to_tree(content: Content) -> Dict[str, Any]:
    return _CONVERTERS[content.kind](content.value)


def normalize_content(raw: Any) -> Dict[str, Any]:
    """Classify and convert in one step."""
    return to_tree(classify_content(raw))
