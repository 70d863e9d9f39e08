"""Core pipeline for html2print."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import re
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence, Set, Tuple, Union

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag

from .errors import EmptyResultError, Html2PrintError, RenderingError, RootNotFoundError
from .fragments import (
    Badge,
    DocumentDefinition,
    Fragment,
    Heading,
    Hyperlink,
    Image,
    Margin,
    OrderedList,
    PageBreak,
    Paragraph,
    Stack,
    Table,
    TextRun,
    UnorderedList,
)
from .images import ImageResolver, ResolvedImage

LOG = logging.getLogger("html2print")

EXIT_INVALID_ARGS = 6
EXIT_OUTPUT_DIR = 7
EXIT_NOT_FOUND = 8
EXIT_RENDERING = 9

HEADING_SCOPE_ROOT = "root"
HEADING_SCOPE_DOCUMENT = "document"
HEADING_SCOPES = (HEADING_SCOPE_ROOT, HEADING_SCOPE_DOCUMENT)

PAGE_SIZES: Mapping[str, Tuple[float, float]] = MappingProxyType(
    {
        "A4": (595.28, 841.89),
        "A5": (419.53, 595.28),
        "LETTER": (612.0, 792.0),
        "LEGAL": (612.0, 1008.0),
    }
)

DEFAULT_BADGE_COLORS: Mapping[str, str] = MappingProxyType(
    {
        "primary": "#0d6efd",
        "secondary": "#6c757d",
        "success": "#198754",
        "danger": "#dc3545",
        "warning": "#ffc107",
        "info": "#0dcaf0",
    }
)
BADGE_FALLBACK_KEY = "secondary"
BADGE_LITERAL_KEY = "primary"
DARK_TEXT_BADGES = frozenset({"warning", "info", "light"})
DEFAULT_PRIMARY_BADGE_LITERALS = ("100%", "75%", "50%", "25%")
DEFAULT_RECURRING_SECTION_TITLES = ("Summary", "Overview", "Key Metrics", "Details", "Report Summary")

LINK_COLOR = "#0d6efd"
TEXT_DARK = "#212529"
TEXT_LIGHT = "#ffffff"

BADGE_CLASS = "badge"
TITLE_MARKER_CLASSES = frozenset({"card-header", "card-title", "report-title", "section-title"})
CARD_MARKER_CLASSES = frozenset({"card", "report-container", "panel"})
HIDDEN_CLASSES = frozenset({"d-none", "hidden", "invisible"})
FURNITURE_CLASSES = frozenset({"nav-tabs", "nav-pills", "nav-link"})
FURNITURE_ROLES = frozenset({"tablist"})
TAB_PANE_CLASS = "tab-pane"

SUPPRESSED_KINDS = frozenset(
    {"button", "input", "select", "textarea", "option", "script", "style", "noscript", "template"}
)
CONTAINER_KINDS = ("div", "section", "article", "main", "aside", "header", "footer", "nav")
HEADING_KINDS = ("h1", "h2", "h3", "h4", "h5", "h6")

# level -> (style, default alignment, margin)
HEADING_STYLES: Mapping[int, Tuple[str, str, Margin]] = MappingProxyType(
    {
        1: ("header1", "center", (0, 0, 0, 15)),
        2: ("header2", "left", (0, 10, 0, 10)),
        3: ("header3", "left", (0, 8, 0, 6)),
        4: ("header4", "left", (0, 6, 0, 4)),
    }
)
CARD_TITLE_STYLE = "cardTitle"
CARD_TITLE_MARGIN: Margin = (0, 0, 0, 8)
TABLE_HEADER_STYLE = "tableHeader"

ALIGNMENT_VALUES: Mapping[str, str] = MappingProxyType(
    {
        "left": "left",
        "start": "left",
        "center": "center",
        "right": "right",
        "end": "right",
        "justify": "justify",
    }
)
ALIGNMENT_CLASSES: Mapping[str, str] = MappingProxyType(
    {
        "text-start": "left",
        "text-left": "left",
        "text-center": "center",
        "text-end": "right",
        "text-right": "right",
        "text-justify": "justify",
    }
)

_WS_RE = re.compile(r"\s+")
_NUMERIC_DIM_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:px)?\s*$", re.IGNORECASE)


@dataclass
class ExtractionConfig:
    heading_scope: str = HEADING_SCOPE_ROOT
    recurring_section_titles: List[str] = field(default_factory=lambda: list(DEFAULT_RECURRING_SECTION_TITLES))
    badge_colors: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_BADGE_COLORS))
    primary_badge_literals: List[str] = field(default_factory=lambda: list(DEFAULT_PRIMARY_BADGE_LITERALS))
    page_size: str = "A4"
    page_orientation: str = "portrait"
    page_margins: List[float] = field(default_factory=lambda: [40, 60, 40, 60])
    author: str = ""
    subject: str = ""
    header_text: str = ""
    footer_text: str = ""
    image_base_dir: Optional[str] = None

    @property
    def content_width(self) -> float:
        width, height = PAGE_SIZES[self.page_size]
        page_width = height if self.page_orientation == "landscape" else width
        return page_width - float(self.page_margins[0]) - float(self.page_margins[2])


_CONFIG_TYPES: Mapping[str, Tuple[type, ...]] = MappingProxyType(
    {
        "heading_scope": (str,),
        "recurring_section_titles": (list,),
        "badge_colors": (dict,),
        "primary_badge_literals": (list,),
        "page_size": (str,),
        "page_orientation": (str,),
        "page_margins": (list,),
        "author": (str,),
        "subject": (str,),
        "header_text": (str,),
        "footer_text": (str,),
        "image_base_dir": (str, type(None)),
    }
)


def config_from_mapping(data: Mapping[str, Any], source: str = "config") -> ExtractionConfig:
    known = {f.name for f in fields(ExtractionConfig)}
    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            raise ValueError(f"{source}: unknown key: {key}")
        if not isinstance(value, _CONFIG_TYPES[key]):
            raise ValueError(f"{source}: invalid value for {key}: {value!r}")
        values[key] = value

    if values.get("heading_scope", HEADING_SCOPE_ROOT) not in HEADING_SCOPES:
        raise ValueError(f"{source}: heading_scope must be one of {', '.join(HEADING_SCOPES)}")
    page_size = str(values.get("page_size", "A4")).upper()
    if page_size not in PAGE_SIZES:
        raise ValueError(f"{source}: unsupported page_size: {values.get('page_size')}")
    values["page_size"] = page_size
    if values.get("page_orientation", "portrait") not in ("portrait", "landscape"):
        raise ValueError(f"{source}: page_orientation must be portrait or landscape")
    margins = values.get("page_margins")
    if margins is not None:
        if len(margins) != 4 or not all(isinstance(m, (int, float)) and not isinstance(m, bool) for m in margins):
            raise ValueError(f"{source}: page_margins must be four numbers")
    for key in ("recurring_section_titles", "primary_badge_literals"):
        if key in values and not all(isinstance(item, str) for item in values[key]):
            raise ValueError(f"{source}: {key} must contain strings only")
    if "badge_colors" in values:
        colors = values["badge_colors"]
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in colors.items()):
            raise ValueError(f"{source}: badge_colors must map strings to strings")
        values["badge_colors"] = {**DEFAULT_BADGE_COLORS, **colors}
    return ExtractionConfig(**values)


def load_config_file(path: Path) -> ExtractionConfig:
    try:
        data_raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ValueError(f"Unable to read config file {path}: {exc}") from exc
    if not isinstance(data_raw, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return config_from_mapping(data_raw, source=str(path))


def write_config_file(path: Path) -> None:
    safe_write_text(path, json.dumps(asdict(ExtractionConfig()), ensure_ascii=False, indent=2) + "\n")


def _resolve_log_level(verbose: bool, debug: bool) -> int:
    return logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)


def _configure_html2print_logger(level: int) -> None:
    LOG.setLevel(level)
    LOG.propagate = False
    if not LOG.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        handler.setLevel(level)
        LOG.addHandler(handler)
    else:
        for handler in LOG.handlers:
            handler.setLevel(level)
            if handler.formatter is None:
                handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))


def setup_logging(verbose: bool, debug: bool) -> None:
    level = _resolve_log_level(verbose, debug)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    _configure_html2print_logger(level)


def slugify_filename(name: str) -> str:
    name = name.strip().replace(" ", "_")
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name)
    return name or "document"


def safe_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8", newline="\n")


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


# --- Badge / link stylist -------------------------------------------------


def badge_palette_key(classes: Iterable[str], text: str, config: ExtractionConfig) -> str:
    for cls in classes:
        for key in config.badge_colors:
            if cls.endswith(f"-{key}"):
                return key
    if text in config.primary_badge_literals:
        return BADGE_LITERAL_KEY
    return BADGE_FALLBACK_KEY


def style_badge(text: str, classes: Iterable[str], config: ExtractionConfig) -> Badge:
    key = badge_palette_key(classes, text, config)
    background = config.badge_colors.get(key) or DEFAULT_BADGE_COLORS[BADGE_FALLBACK_KEY]
    foreground = TEXT_DARK if key in DARK_TEXT_BADGES else TEXT_LIGHT
    return Badge(text=text, background=background, color=foreground)


def style_link(text: str, href: str) -> Hyperlink:
    return Hyperlink(text=text or href, target=href, color=LINK_COLOR)


# --- Heading registry -----------------------------------------------------


class HeadingRegistry:
    """Heading and title texts already emitted within one extraction scope."""

    def __init__(self) -> None:
        self._seen: Set[str] = set()

    def __contains__(self, text: object) -> bool:
        return isinstance(text, str) and collapse_whitespace(text) in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def register(self, text: str) -> bool:
        key = collapse_whitespace(text)
        if not key or key in self._seen:
            return False
        self._seen.add(key)
        return True


# --- Style hints and visibility --------------------------------------------


def parse_inline_style(value: Optional[str]) -> Dict[str, str]:
    style: Dict[str, str] = {}
    for declaration in (value or "").split(";"):
        name, sep, raw = declaration.partition(":")
        if not sep:
            continue
        name = name.strip().lower()
        if name:
            style[name] = raw.replace("!important", "").strip().lower()
    return style


def format_inline_style(style: Mapping[str, str]) -> str:
    return "; ".join(f"{name}: {value}" for name, value in style.items())


def node_classes(node: Tag) -> List[str]:
    raw = node.get("class")
    if raw is None:
        return []
    if isinstance(raw, str):
        return raw.split()
    return [str(cls) for cls in raw]


def node_alignment(node: Tag, default: str = "left") -> str:
    declared = parse_inline_style(node.get("style")).get("text-align")
    if declared in ALIGNMENT_VALUES:
        return ALIGNMENT_VALUES[declared]
    for cls in node_classes(node):
        if cls in ALIGNMENT_CLASSES:
            return ALIGNMENT_CLASSES[cls]
    return default


def is_hidden(node: Tag) -> bool:
    if node.has_attr("hidden"):
        return True
    style = parse_inline_style(node.get("style"))
    if style.get("display") == "none" or style.get("visibility") == "hidden":
        return True
    return any(cls in HIDDEN_CLASSES for cls in node_classes(node))


def is_furniture(node: Tag) -> bool:
    if (node.get("role") or "").strip().lower() in FURNITURE_ROLES:
        return True
    return any(cls in FURNITURE_CLASSES for cls in node_classes(node))


def _is_text(node: Any) -> bool:
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def is_included(node: Any) -> bool:
    if _is_text(node):
        return True
    if not isinstance(node, Tag):
        return False
    return not (is_hidden(node) or is_furniture(node))


def included_children(node: Tag) -> Iterator[Tag]:
    for child in node.children:
        if isinstance(child, Tag) and is_included(child):
            yield child


def iter_included_descendants(node: Tag) -> Iterator[Tag]:
    for child in included_children(node):
        yield child
        if child.name not in SUPPRESSED_KINDS:
            yield from iter_included_descendants(child)


def node_text(node: Tag, skipped: Optional[Set[int]] = None) -> str:
    """Visible descendant text, whitespace-collapsed.

    Nodes whose identity is in ``skipped`` (already emitted elsewhere) are left out.
    """
    pieces: List[str] = []

    def collect(current: Tag) -> None:
        for child in current.children:
            if isinstance(child, Tag):
                if child.name in SUPPRESSED_KINDS or not is_included(child):
                    continue
                if skipped and id(child) in skipped:
                    continue
                collect(child)
            elif _is_text(child):
                pieces.append(str(child))

    collect(node)
    return collapse_whitespace(" ".join(pieces))


def own_text(node: Tag) -> str:
    return collapse_whitespace(" ".join(str(child) for child in node.children if _is_text(child)))


# --- Normalisation ----------------------------------------------------------


def _force_visible(pane: Tag) -> None:
    style = parse_inline_style(pane.get("style"))
    for name in ("display", "opacity", "visibility"):
        style.pop(name, None)
    if style:
        pane["style"] = format_inline_style(style)
    elif pane.has_attr("style"):
        del pane["style"]
    if pane.has_attr("hidden"):
        del pane["hidden"]
    classes = [cls for cls in node_classes(pane) if cls != "fade" and cls not in HIDDEN_CLASSES]
    for cls in ("active", "show"):
        if cls not in classes:
            classes.append(cls)
    pane["class"] = classes


def normalize_root(root: Tag) -> Tag:
    """Return an independent copy of ``root`` prepared for printing.

    Tab panes are forced open, tab navigation and non-content elements are
    dropped. The caller's tree is left untouched.
    """
    working = copy.copy(root)
    for tag in working.find_all(["script", "style", "noscript", "template"]):
        tag.extract()
    panes = working.select(f".{TAB_PANE_CLASS}")
    if TAB_PANE_CLASS in node_classes(working):
        panes.insert(0, working)
    for pane in panes:
        _force_visible(pane)
    for nav in working.select(".nav-tabs, .nav-pills, [role=tablist]"):
        nav.extract()
    return working


# --- Tree walker and node transformers ------------------------------------


@dataclass
class ExtractionContext:
    """Per-call collaborators shared by every transformer of one extraction."""

    config: ExtractionConfig
    resolver: ImageResolver
    skipped: Set[int] = field(default_factory=set)


Transformer = Callable[[Tag, HeadingRegistry, ExtractionContext], Awaitable[List[Fragment]]]


async def walk(node: Any, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    if not isinstance(node, Tag) or id(node) in ctx.skipped:
        return []
    transformer = TRANSFORMERS.get((node.name or "").lower(), transform_default)
    return await transformer(node, registry, ctx)


async def walk_children(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    fragments: List[Fragment] = []
    for child in included_children(node):
        fragments.extend(await walk(child, registry, ctx))
    return fragments


async def transform_default(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    if own_text(node):
        text = node_text(node, ctx.skipped)
        return [TextRun(text)] if text else []
    return await walk_children(node, registry, ctx)


async def transform_suppressed(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    return []


async def transform_heading(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    text = node_text(node, ctx.skipped)
    if not text or text in registry:
        return []
    level = int(node.name[1])
    style, default_alignment, margin = HEADING_STYLES[min(level, 4)]
    alignment = default_alignment if level == 1 else node_alignment(node, default_alignment)
    registry.register(text)
    return [Heading(text=text, level=level, style=style, alignment=alignment, margin=margin)]


async def transform_paragraph(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    text = node_text(node, ctx.skipped)
    if not text:
        return await walk_children(node, registry, ctx)
    fragments: List[Fragment] = [Paragraph(text=text, alignment=node_alignment(node))]
    for descendant in iter_included_descendants(node):
        if descendant.name == "img":
            fragments.extend(await transform_image(descendant, registry, ctx))
    return fragments


async def transform_link(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    text = node_text(node, ctx.skipped)
    href = (node.get("href") or "").strip()
    if href:
        return [style_link(text, href)]
    return [TextRun(text)] if text else []


def _iter_pruned_descendants(node: Tag, prune: Callable[[Tag], bool]) -> Iterator[Tag]:
    for child in included_children(node):
        if prune(child):
            continue
        yield child
        if child.name not in SUPPRESSED_KINDS:
            yield from _iter_pruned_descendants(child, prune)


def _first_descendant(
    node: Tag,
    predicate: Callable[[Tag], bool],
    prune: Optional[Callable[[Tag], bool]] = None,
) -> Optional[Tag]:
    descendants = iter_included_descendants(node) if prune is None else _iter_pruned_descendants(node, prune)
    for descendant in descendants:
        if predicate(descendant):
            return descendant
    return None


def _is_badge(node: Tag) -> bool:
    return BADGE_CLASS in node_classes(node)


def _is_link(node: Tag) -> bool:
    return node.name == "a" and bool((node.get("href") or "").strip())


def _remaining_text(text: str, part: str) -> str:
    if not part:
        return text
    return collapse_whitespace(text.replace(part, " ", 1))


def inline_fragment(node: Tag, ctx: ExtractionContext) -> Optional[Fragment]:
    """Item text with its first badge or hyperlink kept as a styled part."""
    text = node_text(node, ctx.skipped)

    def emitted(tag: Tag) -> bool:
        return id(tag) in ctx.skipped

    badge = _first_descendant(node, _is_badge, emitted)
    if badge is not None:
        badge_text = node_text(badge, ctx.skipped)
        remaining = _remaining_text(text, badge_text)
        styled = style_badge(badge_text, node_classes(badge), ctx.config)
        parts: Tuple[Fragment, ...] = (TextRun(remaining + " "), styled) if remaining else (styled,)
        return TextRun(text=text, parts=parts)
    link = _first_descendant(node, _is_link, emitted)
    if link is not None:
        link_text = node_text(link, ctx.skipped)
        remaining = _remaining_text(text, link_text)
        styled_link = style_link(link_text, link["href"].strip())
        parts = (styled_link, TextRun(" " + remaining)) if remaining else (styled_link,)
        return TextRun(text=text, parts=parts)
    if text:
        return TextRun(text)
    return None


async def transform_list(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    items: List[Fragment] = []
    for item in included_children(node):
        if item.name != "li":
            continue
        fragment = inline_fragment(item, ctx)
        if fragment is not None:
            items.append(fragment)
    if not items:
        return []
    if node.name == "ol":
        return [OrderedList(items=tuple(items))]
    return [UnorderedList(items=tuple(items))]


def _row_cells(row: Tag) -> List[Tag]:
    return [cell for cell in included_children(row) if cell.name in ("td", "th")]


def _header_cell(cell: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> Fragment:
    text = node_text(cell, ctx.skipped)
    if text in registry and text in ctx.config.recurring_section_titles:
        return TextRun("", style=TABLE_HEADER_STYLE)
    return TextRun(text, style=TABLE_HEADER_STYLE)


def build_cell(cell: Tag, ctx: ExtractionContext) -> Fragment:
    fragment = inline_fragment(cell, ctx)
    return fragment if fragment is not None else TextRun("")


def _body_rows(table: Tag) -> List[Tag]:
    sections = [child for child in included_children(table) if child.name == "tbody"]
    if not sections:
        sections = [table]
    rows: List[Tag] = []
    for section in sections:
        rows.extend(row for row in included_children(section) if row.name == "tr")
    return rows


async def transform_table(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    header: List[Fragment] = []
    for thead in included_children(node):
        if thead.name != "thead":
            continue
        for row in included_children(thead):
            if row.name != "tr":
                continue
            cells = _row_cells(row)
            if cells:
                header = [_header_cell(cell, registry, ctx) for cell in cells]
                break
        if header:
            break

    body: List[List[Fragment]] = []
    for row in _body_rows(node):
        cells = _row_cells(row)
        if cells:
            body.append([build_cell(cell, ctx) for cell in cells])

    rows = ([header] if header else []) + body
    if not rows:
        return []
    column_count = max(len(row) for row in rows)
    grid = tuple(tuple(row) + (TextRun(""),) * (column_count - len(row)) for row in rows)
    return [Table(body=grid, header_rows=1 if header else 0, widths=("*",) * column_count)]


def _title_fragments(node: Tag, registry: HeadingRegistry) -> List[Fragment]:
    text = node_text(node)
    if not text or not registry.register(text):
        return []
    return [
        Heading(
            text=text,
            level=3,
            style=CARD_TITLE_STYLE,
            alignment=node_alignment(node),
            margin=CARD_TITLE_MARGIN,
        )
    ]


def _has_marker(node: Tag, markers: frozenset) -> bool:
    return any(cls in markers for cls in node_classes(node))


async def transform_card(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    items: List[Fragment] = []
    # Nested cards own their titles.
    title = _first_descendant(
        node,
        lambda tag: _has_marker(tag, TITLE_MARKER_CLASSES),
        lambda tag: _has_marker(tag, CARD_MARKER_CLASSES),
    )
    if title is not None:
        items.extend(_title_fragments(title, registry))
        ctx.skipped.add(id(title))
    items.extend(await walk_children(node, registry, ctx))
    text = own_text(node)
    if text:
        items.append(TextRun(text))
    if not items:
        return []
    return [Stack(items=tuple(items))]


async def transform_container(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    if _has_marker(node, TITLE_MARKER_CLASSES):
        return _title_fragments(node, registry)
    if _has_marker(node, CARD_MARKER_CLASSES):
        return await transform_card(node, registry, ctx)
    fragments = await walk_children(node, registry, ctx)
    text = own_text(node)
    if text:
        fragments.append(TextRun(text))
    return fragments


async def transform_span(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    text = node_text(node, ctx.skipped)
    if not text:
        return []
    if _is_badge(node):
        return [style_badge(text, node_classes(node), ctx.config)]
    return [TextRun(text)]


async def transform_label(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    text = node_text(node, ctx.skipped)
    return [TextRun(text)] if text else []


def _dimension(value: Optional[str]) -> Optional[float]:
    match = _NUMERIC_DIM_RE.match(value or "")
    if not match:
        return None
    number = float(match.group(1))
    return number if number > 0 else None


def image_box(node: Tag, resolved: ResolvedImage, max_width: float) -> Tuple[Optional[float], Optional[float]]:
    width = _dimension(node.get("width"))
    height = _dimension(node.get("height"))
    natural_w = float(resolved.width) if resolved.width else None
    natural_h = float(resolved.height) if resolved.height else None

    if width is None and height is None:
        width, height = natural_w, natural_h
    elif width is None and height is not None and natural_w and natural_h:
        width = height * natural_w / natural_h
    elif height is None and width is not None and natural_w and natural_h:
        height = width * natural_h / natural_w

    if width is not None and width > max_width:
        if height is not None:
            height = height * max_width / width
        width = max_width
    if width is None and height is None:
        width = max_width
    return (
        round(width, 2) if width is not None else None,
        round(height, 2) if height is not None else None,
    )


async def transform_image(node: Tag, registry: HeadingRegistry, ctx: ExtractionContext) -> List[Fragment]:
    src = (node.get("src") or "").strip()
    if not src:
        return []
    resolved = await ctx.resolver.resolve(src)
    if resolved is None:
        return []
    width, height = image_box(node, resolved, ctx.config.content_width)
    return [Image(payload=resolved.payload, width=width, height=height)]


def _build_transformers() -> Mapping[str, Transformer]:
    table: Dict[str, Transformer] = {}
    for kind in HEADING_KINDS:
        table[kind] = transform_heading
    for kind in CONTAINER_KINDS:
        table[kind] = transform_container
    for kind in SUPPRESSED_KINDS:
        table[kind] = transform_suppressed
    table.update(
        {
            "p": transform_paragraph,
            "a": transform_link,
            "ul": transform_list,
            "ol": transform_list,
            "table": transform_table,
            "span": transform_span,
            "label": transform_label,
            "img": transform_image,
        }
    )
    return MappingProxyType(table)


TRANSFORMERS: Mapping[str, Transformer] = _build_transformers()


# --- Extraction and pagination --------------------------------------------


def parse_html(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup, "html.parser")


def load_html_document(path: Path) -> BeautifulSoup:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise Html2PrintError(f"Unable to read {path}: {exc}") from exc
    return parse_html(raw)


def find_root(soup: Union[BeautifulSoup, Tag], root_id: str) -> Tag:
    root = soup.find(id=root_id)
    if not isinstance(root, Tag):
        raise RootNotFoundError(root_id)
    return root


def build_default_resolver(config: ExtractionConfig) -> ImageResolver:
    base_dir = Path(config.image_base_dir) if config.image_base_dir else None
    return ImageResolver(base_dir=base_dir)


async def extract_content(
    root: Tag,
    *,
    config: Optional[ExtractionConfig] = None,
    resolver: Optional[ImageResolver] = None,
    registry: Optional[HeadingRegistry] = None,
) -> List[Fragment]:
    config = config or ExtractionConfig()
    ctx = ExtractionContext(config=config, resolver=resolver or build_default_resolver(config))
    working = normalize_root(root)
    return await walk(working, registry if registry is not None else HeadingRegistry(), ctx)


def default_styles() -> Dict[str, Dict[str, Any]]:
    return {
        "header1": {"fontSize": 20, "bold": True},
        "header2": {"fontSize": 16, "bold": True},
        "header3": {"fontSize": 14, "bold": True},
        "header4": {"fontSize": 12, "bold": True},
        CARD_TITLE_STYLE: {"fontSize": 14, "bold": True, "color": TEXT_DARK},
        TABLE_HEADER_STYLE: {"bold": True, "fontSize": 10, "fillColor": "#f8f9fa", "color": TEXT_DARK},
        "link": {"color": LINK_COLOR, "decoration": "underline"},
    }


def build_definition(content: Sequence[Fragment], title: str, config: ExtractionConfig) -> DocumentDefinition:
    return DocumentDefinition(
        content=tuple(content),
        styles=default_styles(),
        info={"title": title, "author": config.author, "subject": config.subject},
        page_size=config.page_size,
        page_orientation=config.page_orientation,
        page_margins=tuple(float(m) for m in config.page_margins),  # type: ignore[arg-type]
        header_text=config.header_text or None,
        footer_text=config.footer_text or None,
    )


async def assemble(
    soup: Union[BeautifulSoup, Tag],
    root_ids: Union[str, Sequence[str]],
    title: str,
    *,
    config: Optional[ExtractionConfig] = None,
    resolver: Optional[ImageResolver] = None,
) -> DocumentDefinition:
    config = config or ExtractionConfig()
    ids = [root_ids] if isinstance(root_ids, str) else list(root_ids)
    if not ids:
        raise ValueError("At least one root identifier is required")
    resolver = resolver or build_default_resolver(config)
    shared_registry = HeadingRegistry() if config.heading_scope == HEADING_SCOPE_DOCUMENT else None
    single = len(ids) == 1
    total = len(ids)

    sections: List[List[Fragment]] = []
    for index, root_id in enumerate(ids, start=1):
        try:
            root = find_root(soup, root_id)
        except RootNotFoundError:
            if single:
                raise
            LOG.warning("Element with id %s not found, skipping", root_id)
            continue
        fragments = await extract_content(root, config=config, resolver=resolver, registry=shared_registry)
        LOG.info("[%d/%d] %s: %d fragment(s)", index, total, root_id, len(fragments))
        if not fragments:
            LOG.warning("Element with id %s has no printable content, skipping", root_id)
            continue
        sections.append(fragments)

    if not sections:
        raise EmptyResultError(f"No printable content found for: {', '.join(ids)}")

    content: List[Fragment] = []
    for index, section in enumerate(sections):
        if index:
            content.append(PageBreak())
        content.extend(section)
    return build_definition(content, title, config)


def build_document(
    soup: Union[BeautifulSoup, Tag],
    root_ids: Union[str, Sequence[str]],
    title: str,
    *,
    config: Optional[ExtractionConfig] = None,
    resolver: Optional[ImageResolver] = None,
) -> DocumentDefinition:
    return asyncio.run(assemble(soup, root_ids, title, config=config, resolver=resolver))


# --- Rendering collaborator -------------------------------------------------


class Renderer(Protocol):
    def render(self, definition: DocumentDefinition, target_name: str) -> Path:
        ...


class JsonDefinitionRenderer:
    """Writes the document definition as ``<target>.json`` for an external renderer."""

    def __init__(self, out_dir: Path) -> None:
        self._out_dir = out_dir

    def render(self, definition: DocumentDefinition, target_name: str) -> Path:
        target = self._out_dir / f"{slugify_filename(target_name)}.json"
        try:
            payload = json.dumps(definition.to_dict(), ensure_ascii=False, indent=2)
            safe_write_text(target, payload + "\n")
        except Exception as exc:
            raise RenderingError(f"Unable to write document definition {target}: {exc}") from exc
        return target


def render_document(
    definition: DocumentDefinition,
    target_name: str,
    renderer: Renderer,
    fallback: Optional[Renderer] = None,
) -> Path:
    try:
        return renderer.render(definition, target_name)
    except RenderingError as exc:
        if fallback is None:
            raise
        LOG.warning("Rendering failed (%s); trying fallback renderer", exc)
        return fallback.render(definition, target_name)


def run_print_pipeline(
    *,
    input_path: Path,
    root_ids: Sequence[str],
    out_dir: Path,
    name: str,
    title: str,
    config: ExtractionConfig,
) -> Tuple[DocumentDefinition, Path]:
    soup = load_html_document(input_path)
    if config.image_base_dir is None:
        config = replace(config, image_base_dir=str(input_path.parent))
    definition = build_document(soup, root_ids, title, config=config)
    LOG.info(
        "Assembled %d fragment(s) across %d page break(s)",
        len(definition.content),
        definition.page_break_count,
    )
    target = render_document(definition, name, JsonDefinitionRenderer(out_dir))
    LOG.info("Document definition written: %s", target)
    return definition, target


