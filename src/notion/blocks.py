"""Conversion of loosely-typed content into Notion rich text and blocks.

Generated content arrives in several shapes: bare strings, markdown, loose
``{"type": ..., "content": ...}`` dicts, or blocks that are already close to
the Notion API shape. Blocks are first parsed into an explicit set of
variants and then rendered into Notion block objects, so anything the
transformer does not understand ends up as an ``UnrecognizedBlock`` rather
than being silently mangled.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

from src.notion.enums import HEADING_BLOCK_TYPES, BlockType, CalloutColor

logger = logging.getLogger(__name__)

# Maximum characters in a single rich text run
MAX_TEXT_LENGTH = 2000

DEFAULT_CALLOUT_ICON = "💡"

# URL fragments identifying files hosted by Notion itself
HOSTED_FILE_MARKERS = ("secure.notion-static.com", "prod-files-secure", "notion-static.com")

ANNOTATION_DEFAULTS: dict[str, Any] = {
    "bold": False,
    "italic": False,
    "strikethrough": False,
    "underline": False,
    "code": False,
    "color": "default",
}

TEXT_BLOCK_TYPES = frozenset(
    {
        BlockType.HEADING_1,
        BlockType.HEADING_2,
        BlockType.HEADING_3,
        BlockType.PARAGRAPH,
        BlockType.BULLETED_LIST_ITEM,
        BlockType.NUMBERED_LIST_ITEM,
        BlockType.TOGGLE,
        BlockType.QUOTE,
        BlockType.TO_DO,
    }
)

_CALLOUT_COLORS = frozenset(color.value for color in CalloutColor)

_BOLD_PATTERN = re.compile(r"\*\*(.+?)\*\*")


# Rich text


def transform_rich_text(value: Any) -> list[dict[str, Any]]:
    """Convert loosely typed text into Notion rich text runs.

    Accepts a string, a single run-like dict, or a list of either. Missing
    annotations are filled with their defaults and runs with empty content
    are dropped. Malformed input degrades to an empty list.

    :param value: Text input in any supported shape.
    :returns: List of Notion rich text objects.
    """
    if value is None:
        return []
    items = value if isinstance(value, list) else [value]

    runs: list[dict[str, Any]] = []
    for item in items:
        runs.extend(_transform_run(item))
    return runs


def _transform_run(item: Any) -> list[dict[str, Any]]:
    """Convert one run-like item, splitting content over the length limit.

    :param item: A string or dict.
    :returns: Zero or more rich text objects.
    """
    if isinstance(item, str):
        content, link, annotations = item, None, None
    elif isinstance(item, dict):
        content = _run_content(item)
        link = _run_link(item)
        annotations = item.get("annotations")
    else:
        return []

    if not content:
        return []

    resolved = _resolve_annotations(annotations)
    return [
        _build_run(content[i : i + MAX_TEXT_LENGTH], link, resolved)
        for i in range(0, len(content), MAX_TEXT_LENGTH)
    ]


def _run_content(item: dict[str, Any]) -> str:
    content = item.get("content")
    if isinstance(content, str):
        return content

    text = item.get("text")
    if isinstance(text, dict) and isinstance(text.get("content"), str):
        return text["content"]
    if isinstance(text, str):
        return text

    plain_text = item.get("plain_text")
    return plain_text if isinstance(plain_text, str) else ""


def _run_link(item: dict[str, Any]) -> str | None:
    link = item.get("link")
    text = item.get("text")
    if link is None and isinstance(text, dict):
        link = text.get("link")

    if isinstance(link, dict):
        link = link.get("url")
    return link if isinstance(link, str) and link else None


def _resolve_annotations(annotations: Any) -> dict[str, Any]:
    """Materialise every annotation, falling back to defaults.

    :param annotations: Raw annotations, possibly partial or malformed.
    :returns: Complete annotations dict.
    """
    resolved = dict(ANNOTATION_DEFAULTS)
    if not isinstance(annotations, dict):
        return resolved

    for key, default in ANNOTATION_DEFAULTS.items():
        value = annotations.get(key)
        if isinstance(value, type(default)):
            resolved[key] = value
    return resolved


def _build_run(content: str, link: str | None, annotations: dict[str, Any]) -> dict[str, Any]:
    text: dict[str, Any] = {"content": content}
    if link:
        text["link"] = {"url": link}
    return {"type": "text", "text": text, "annotations": dict(annotations)}


# Block variants


@dataclass(frozen=True)
class TextBlock:
    """A block that owns rich text: headings, paragraphs, list items, etc."""

    type: BlockType
    rich_text: list[dict[str, Any]]
    children: tuple[ContentBlock, ...] = ()
    checked: bool = False


@dataclass(frozen=True)
class CalloutBlock:
    """A highlighted block with an icon and a background colour."""

    rich_text: list[dict[str, Any]]
    color: str
    icon: str
    children: tuple[ContentBlock, ...] = ()


@dataclass(frozen=True)
class DividerBlock:
    """A horizontal rule."""


@dataclass(frozen=True)
class ColumnListBlock:
    """Side-by-side columns, each holding its own blocks."""

    columns: tuple[tuple[ContentBlock, ...], ...]


@dataclass(frozen=True)
class ImageBlock:
    """An image referenced by URL."""

    url: str
    caption: list[dict[str, Any]]
    hosted: bool


@dataclass(frozen=True)
class UnrecognizedBlock:
    """A block whose type the transformer does not know."""

    raw: dict[str, Any]


ContentBlock = TextBlock | CalloutBlock | DividerBlock | ColumnListBlock | ImageBlock | UnrecognizedBlock


def parse_block(raw: Any) -> ContentBlock | None:
    """Parse a loosely typed block dict into a block variant.

    :param raw: Raw block from a workspace spec.
    :returns: Parsed block, or None if the input has no ``type`` tag or is
        an image without a URL.
    """
    if not isinstance(raw, dict) or not raw.get("type"):
        return None

    type_name = str(raw["type"]).strip().lower()
    try:
        block_type = BlockType(type_name)
    except ValueError:
        return UnrecognizedBlock(raw=raw)

    body = raw.get(type_name)
    body = body if isinstance(body, dict) else {}

    if block_type in TEXT_BLOCK_TYPES:
        return TextBlock(
            type=block_type,
            rich_text=_block_rich_text(raw, body),
            children=_parse_children(raw, body),
            checked=bool(raw.get("checked", body.get("checked", False))),
        )

    if block_type is BlockType.CALLOUT:
        return CalloutBlock(
            rich_text=_block_rich_text(raw, body),
            color=callout_color(raw.get("color") or body.get("color")),
            icon=_callout_icon(raw, body),
            children=_parse_children(raw, body),
        )

    if block_type is BlockType.DIVIDER:
        return DividerBlock()

    if block_type is BlockType.COLUMN_LIST:
        return ColumnListBlock(columns=tuple(_parse_column(c) for c in _raw_columns(raw, body)))

    if block_type is BlockType.IMAGE:
        url = _image_url(raw, body)
        if not url:
            logger.warning("Skipping image block without a URL")
            return None
        return ImageBlock(
            url=url,
            caption=transform_rich_text(raw.get("caption", body.get("caption"))),
            hosted=is_hosted_url(url),
        )

    return UnrecognizedBlock(raw=raw)


def _block_rich_text(raw: dict[str, Any], body: dict[str, Any]) -> list[dict[str, Any]]:
    for source in (raw, body):
        for key in ("rich_text", "content", "text"):
            if source.get(key):
                return transform_rich_text(source[key])
    return []


def _parse_children(raw: dict[str, Any], body: dict[str, Any]) -> tuple[ContentBlock, ...]:
    children = raw.get("children", body.get("children"))
    if not isinstance(children, list):
        return ()
    parsed = (parse_block(child) for child in children)
    return tuple(block for block in parsed if block is not None)


def _raw_columns(raw: dict[str, Any], body: dict[str, Any]) -> list[Any]:
    for columns in (raw.get("columns"), body.get("children"), raw.get("children"), raw.get("content")):
        if isinstance(columns, list):
            return columns
    return []


def _parse_column(column: Any) -> tuple[ContentBlock, ...]:
    """Parse one column given as a block list or a ``{children}`` dict."""
    if isinstance(column, list):
        return _parse_children({"children": column}, {})
    if isinstance(column, dict):
        body = column.get("column")
        return _parse_children(column, body if isinstance(body, dict) else {})
    return ()


def _image_url(raw: dict[str, Any], body: dict[str, Any]) -> str | None:
    url = raw.get("url") or body.get("url")
    for variant in ("external", "file"):
        nested = body.get(variant)
        if not url and isinstance(nested, dict):
            url = nested.get("url")
    return url if isinstance(url, str) and url else None


def _callout_icon(raw: dict[str, Any], body: dict[str, Any]) -> str:
    icon = raw.get("icon") or raw.get("emoji") or body.get("icon")
    if isinstance(icon, dict):
        icon = icon.get("emoji")
    return icon if isinstance(icon, str) and icon else DEFAULT_CALLOUT_ICON


def callout_color(color: Any) -> str:
    """Map a semantic colour onto Notion's background colour names.

    :param color: Colour such as ``blue`` or ``blue_background``.
    :returns: ``<colour>_background``, ``default``, or ``gray_background``
        for anything unknown.
    """
    if not isinstance(color, str):
        return f"{CalloutColor.GRAY}_background"

    name = color.strip().lower().removesuffix("_background")
    if name == CalloutColor.DEFAULT:
        return CalloutColor.DEFAULT.value
    if name in _CALLOUT_COLORS:
        return f"{name}_background"
    return f"{CalloutColor.GRAY}_background"


def is_hosted_url(url: str) -> bool:
    """Whether a URL points at a file hosted by Notion."""
    return any(marker in url for marker in HOSTED_FILE_MARKERS)


# Rendering


def render_block(block: ContentBlock, *, pass_through_unknown: bool = False) -> dict[str, Any] | None:
    """Render a parsed block as a Notion block object.

    :param block: Parsed block variant.
    :param pass_through_unknown: Forward unrecognised blocks unchanged instead
        of dropping them.
    :returns: Notion block object, or None if the block is dropped.
    """
    if isinstance(block, TextBlock):
        body: dict[str, Any] = {"rich_text": block.rich_text}
        if block.type is BlockType.TO_DO:
            body["checked"] = block.checked
        children = _render_children(block.children, pass_through_unknown)
        if children:
            body["children"] = children
            if block.type in HEADING_BLOCK_TYPES:
                body["is_toggleable"] = True
        return _wrap(block.type, body)

    if isinstance(block, CalloutBlock):
        body = {
            "rich_text": block.rich_text,
            "icon": {"type": "emoji", "emoji": block.icon},
            "color": block.color,
        }
        children = _render_children(block.children, pass_through_unknown)
        if children:
            body["children"] = children
        return _wrap(BlockType.CALLOUT, body)

    if isinstance(block, DividerBlock):
        return _wrap(BlockType.DIVIDER, {})

    if isinstance(block, ColumnListBlock):
        columns = []
        for column in block.columns:
            children = _render_children(column, pass_through_unknown)
            # Notion rejects empty columns
            if children:
                columns.append({"object": "block", "type": "column", "column": {"children": children}})
        if not columns:
            logger.warning("Skipping column list without any content")
            return None
        return _wrap(BlockType.COLUMN_LIST, {"children": columns})

    if isinstance(block, ImageBlock):
        variant = "file" if block.hosted else "external"
        body = {"type": variant, variant: {"url": block.url}}
        if block.caption:
            body["caption"] = block.caption
        return _wrap(BlockType.IMAGE, body)

    if pass_through_unknown:
        logger.warning(f"Passing through unrecognised block type: {block.raw.get('type')}")
        return dict(block.raw)

    logger.warning(f"Dropping unrecognised block type: {block.raw.get('type')}")
    return None


def _render_children(
    children: tuple[ContentBlock, ...], pass_through_unknown: bool
) -> list[dict[str, Any]]:
    rendered = (render_block(child, pass_through_unknown=pass_through_unknown) for child in children)
    return [block for block in rendered if block is not None]


def _wrap(block_type: BlockType, body: dict[str, Any]) -> dict[str, Any]:
    return {"object": "block", "type": block_type.value, block_type.value: body}


def transform_block(raw: Any, *, pass_through_unknown: bool = False) -> dict[str, Any] | None:
    """Convert one loosely typed block into a Notion block object.

    :param raw: Raw block from a workspace spec.
    :param pass_through_unknown: Forward unrecognised blocks unchanged.
    :returns: Notion block object, or None when the block has no type tag or
        cannot be rendered. Callers must filter out None.
    """
    block = parse_block(raw)
    if block is None:
        return None
    return render_block(block, pass_through_unknown=pass_through_unknown)


def transform_blocks(raw_blocks: Any, *, pass_through_unknown: bool = False) -> list[dict[str, Any]]:
    """Convert a list of loosely typed blocks, dropping any that fail.

    :param raw_blocks: Raw block list.
    :param pass_through_unknown: Forward unrecognised blocks unchanged.
    :returns: List of Notion block objects.
    """
    if not isinstance(raw_blocks, list):
        return []
    rendered = (transform_block(raw, pass_through_unknown=pass_through_unknown) for raw in raw_blocks)
    return [block for block in rendered if block is not None]


def transform_page_content(content: Any, *, pass_through_unknown: bool = False) -> list[dict[str, Any]]:
    """Convert polymorphic page content into Notion blocks.

    Strings are treated as markdown, lists as block lists, and dicts as a
    wrapper around either (or as a single block when they carry a type).

    :param content: Page content from a workspace spec.
    :param pass_through_unknown: Forward unrecognised blocks unchanged.
    :returns: List of Notion block objects.
    """
    if isinstance(content, str):
        return markdown_to_blocks(content)

    if isinstance(content, list):
        return transform_blocks(content, pass_through_unknown=pass_through_unknown)

    if isinstance(content, dict):
        for key in ("blocks", "contentBlocks", "content", "children"):
            if key in content:
                return transform_page_content(content[key], pass_through_unknown=pass_through_unknown)
        if content.get("type"):
            return transform_blocks([content], pass_through_unknown=pass_through_unknown)

    return []


# Markdown


def markdown_to_blocks(markdown: str) -> list[dict[str, Any]]:
    """Convert markdown text to Notion block objects.

    Supports the following markdown patterns:
    - # / ## / ### Heading -> heading_1 / heading_2 / heading_3
    - - [ ] Item -> to_do (unchecked)
    - - [x] Item -> to_do (checked)
    - - Item or * Item -> bulleted_list_item
    - 1. Item -> numbered_list_item
    - > Quote -> quote
    - --- -> divider
    - Plain text -> paragraph

    ``**bold**`` spans become bold runs.

    :param markdown: Markdown formatted text.
    :returns: List of Notion block objects.
    """
    if not markdown or not markdown.strip():
        return []

    blocks: list[dict[str, Any]] = []
    for line in markdown.split("\n"):
        block = _parse_line_to_block(line)
        if block:
            blocks.append(block)

    return blocks


def _parse_line_to_block(line: str) -> dict[str, Any] | None:
    """Parse a single markdown line to a Notion block.

    :param line: A single line of markdown text.
    :returns: Notion block object or None for empty lines.
    """
    stripped = line.strip()

    if not stripped:
        return None

    if stripped == "---":
        return _wrap(BlockType.DIVIDER, {})

    for prefix, block_type in (
        ("### ", BlockType.HEADING_3),
        ("## ", BlockType.HEADING_2),
        ("# ", BlockType.HEADING_1),
        ("> ", BlockType.QUOTE),
    ):
        if stripped.startswith(prefix):
            return _create_text_block(block_type, stripped[len(prefix) :].strip())

    if stripped.startswith(("- ", "* ")):
        return _parse_list_item(stripped)

    numbered_match = re.match(r"^(\d+)\.\s+(.+)$", stripped)
    if numbered_match:
        return _create_text_block(BlockType.NUMBERED_LIST_ITEM, numbered_match.group(2).strip())

    return _create_text_block(BlockType.PARAGRAPH, stripped)


def _parse_list_item(line: str) -> dict[str, Any]:
    """Parse a list item line (todo or bulleted).

    :param line: A stripped line starting with "- " or "* ".
    :returns: Notion block object for the list item.
    """
    if line.startswith("- [ ] "):
        return _create_text_block(BlockType.TO_DO, line[6:].strip(), checked=False)
    if line.startswith(("- [x] ", "- [X] ")):
        return _create_text_block(BlockType.TO_DO, line[6:].strip(), checked=True)

    return _create_text_block(BlockType.BULLETED_LIST_ITEM, line[2:].strip())


def _create_text_block(block_type: BlockType, text: str, *, checked: bool = False) -> dict[str, Any]:
    """Create a Notion block with inline-formatted rich text.

    :param block_type: The Notion block type.
    :param text: The markdown text content.
    :param checked: Checked state, only used for to_do blocks.
    :returns: Notion block object.
    """
    body: dict[str, Any] = {"rich_text": transform_rich_text(_parse_inline(text))}
    if block_type is BlockType.TO_DO:
        body["checked"] = checked
    return _wrap(block_type, body)


def _parse_inline(text: str) -> list[dict[str, Any]]:
    """Split ``**bold**`` spans out of a line of text."""
    runs: list[dict[str, Any]] = []
    position = 0
    for match in _BOLD_PATTERN.finditer(text):
        runs.append({"content": text[position : match.start()]})
        runs.append({"content": match.group(1), "annotations": {"bold": True}})
        position = match.end()
    runs.append({"content": text[position:]})
    return runs
