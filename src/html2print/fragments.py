"""Print content model: fragments and the document definition."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

Margin = Tuple[float, float, float, float]

THIN_BORDER_COLOR = "#dee2e6"
THIN_BORDER_WIDTH = 0.5


def _margin_list(margin: Optional[Margin]) -> Optional[List[float]]:
    return list(margin) if margin is not None else None


def _with_optional(data: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    for key, value in extra.items():
        if value is not None:
            data[key] = value
    return data


@dataclass(frozen=True)
class TextRun:
    """Plain inline text; ``parts`` holds mixed inline fragments when present."""

    text: str
    parts: Tuple["Fragment", ...] = ()
    style: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.parts:
            data: Dict[str, Any] = {"text": [part.to_dict() for part in self.parts]}
        else:
            data = {"text": self.text}
        return _with_optional(data, style=self.style)


@dataclass(frozen=True)
class Heading:
    text: str
    level: int
    style: str
    alignment: str = "left"
    margin: Margin = (0, 0, 0, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "style": self.style,
            "alignment": self.alignment,
            "margin": list(self.margin),
        }


@dataclass(frozen=True)
class Paragraph:
    text: str
    alignment: str = "left"
    margin: Margin = (0, 0, 0, 8)

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "alignment": self.alignment, "margin": list(self.margin)}


@dataclass(frozen=True)
class Badge:
    """Small status marker rendered on a semantic background colour."""

    text: str
    background: str
    color: str = "#ffffff"
    font_size: float = 9

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": f" {self.text} ",
            "background": self.background,
            "color": self.color,
            "bold": True,
            "fontSize": self.font_size,
        }


@dataclass(frozen=True)
class Hyperlink:
    text: str
    target: str
    color: str
    decoration: str = "underline"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "link": self.target,
            "color": self.color,
            "decoration": self.decoration,
        }


@dataclass(frozen=True)
class UnorderedList:
    items: Tuple["Fragment", ...]
    margin: Margin = (0, 0, 0, 8)

    def to_dict(self) -> Dict[str, Any]:
        return {"ul": [item.to_dict() for item in self.items], "margin": list(self.margin)}


@dataclass(frozen=True)
class OrderedList:
    items: Tuple["Fragment", ...]
    margin: Margin = (0, 0, 0, 8)

    def to_dict(self) -> Dict[str, Any]:
        return {"ol": [item.to_dict() for item in self.items], "margin": list(self.margin)}


@dataclass(frozen=True)
class Table:
    """Row-major cell grid; the first ``header_rows`` rows repeat on page breaks."""

    body: Tuple[Tuple["Fragment", ...], ...]
    header_rows: int = 0
    widths: Tuple[str, ...] = ()
    margin: Margin = (0, 5, 0, 15)

    @property
    def column_count(self) -> int:
        return len(self.widths)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": {
                "headerRows": self.header_rows,
                "widths": list(self.widths),
                "body": [[cell.to_dict() for cell in row] for row in self.body],
            },
            "layout": {
                "hLineWidth": THIN_BORDER_WIDTH,
                "vLineWidth": THIN_BORDER_WIDTH,
                "hLineColor": THIN_BORDER_COLOR,
                "vLineColor": THIN_BORDER_COLOR,
            },
            "margin": list(self.margin),
        }


@dataclass(frozen=True)
class Stack:
    """Bordered, backgrounded group of fragments (cards and panels)."""

    items: Tuple["Fragment", ...]
    border_color: str = THIN_BORDER_COLOR
    border_width: float = 1
    background: str = "#f8f9fa"
    margin: Margin = (0, 5, 0, 10)
    padding: Margin = (8, 6, 8, 6)

    def to_dict(self) -> Dict[str, Any]:
        # A single-cell table is the only bordered box the renderer knows.
        return {
            "table": {
                "widths": ["*"],
                "body": [
                    [
                        {
                            "stack": [item.to_dict() for item in self.items],
                            "fillColor": self.background,
                            "margin": list(self.padding),
                        }
                    ]
                ],
            },
            "layout": {
                "hLineWidth": self.border_width,
                "vLineWidth": self.border_width,
                "hLineColor": self.border_color,
                "vLineColor": self.border_color,
            },
            "margin": list(self.margin),
        }


@dataclass(frozen=True)
class Image:
    """Embedded image; ``payload`` is always a self-contained data URI."""

    payload: str
    width: Optional[float] = None
    height: Optional[float] = None
    margin: Margin = (0, 5, 0, 10)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"image": self.payload, "margin": list(self.margin)}
        return _with_optional(data, width=self.width, height=self.height)


@dataclass(frozen=True)
class PageBreak:
    def to_dict(self) -> Dict[str, Any]:
        return {"text": "", "pageBreak": "after"}


Fragment = Union[
    TextRun,
    Heading,
    Paragraph,
    Badge,
    Hyperlink,
    UnorderedList,
    OrderedList,
    Table,
    Stack,
    Image,
    PageBreak,
]


@dataclass(frozen=True)
class DocumentDefinition:
    """Ordered fragments plus the style sheet, page geometry and metadata."""

    content: Tuple[Fragment, ...]
    styles: Dict[str, Dict[str, Any]]
    info: Dict[str, str]
    default_style: Dict[str, Any] = field(default_factory=lambda: {"fontSize": 10})
    page_size: str = "A4"
    page_orientation: str = "portrait"
    page_margins: Margin = (40, 60, 40, 60)
    header_text: Optional[str] = None
    footer_text: Optional[str] = None

    @property
    def page_break_count(self) -> int:
        return sum(1 for fragment in self.content if isinstance(fragment, PageBreak))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "content": [fragment.to_dict() for fragment in self.content],
            "styles": {name: dict(style) for name, style in self.styles.items()},
            "defaultStyle": dict(self.default_style),
            "pageSize": self.page_size,
            "pageOrientation": self.page_orientation,
            "pageMargins": _margin_list(self.page_margins),
            "info": dict(self.info),
        }
        if self.header_text:
            data["header"] = {"text": self.header_text, "alignment": "right", "margin": [40, 20, 40, 0], "fontSize": 8}
        if self.footer_text:
            data["footer"] = {"text": self.footer_text, "alignment": "center", "margin": [40, 20, 40, 0], "fontSize": 8}
        return data
