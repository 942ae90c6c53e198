"""Binary renderer backends: report markup to PDF pages and PNG thumbnails.

The default backend parses the section markup dialect produced by
claimpacket.reports.sections and lays it out with reportlab platypus:
cards become KeepTogether groups, page-break markers become PageBreak, and
every page gets the branded header, footer and page number. Thumbnails are
drawn with Pillow from the blocks on the first page.

Malformed markup raises RenderError carrying the key of the enclosing
<section data-section="..."> element.
"""

from __future__ import annotations

import io
import logging
import re
import textwrap
from dataclasses import dataclass, field
from html import escape, unescape
from html.parser import HTMLParser
from typing import Any, NoReturn, Protocol

from PIL import Image, ImageColor, ImageDraw, ImageFont
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    KeepTogether,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from claimpacket.reports.errors import RenderError

logger = logging.getLogger(__name__)

META_HEADER = "report-header"
META_FOOTER = "report-footer"
META_PRIMARY = "report-primary-color"
META_ACCENT = "report-accent-color"
META_PAGE_NUMBERS = "report-page-numbers"

TEXT_DARK = colors.HexColor("#1a1a1a")
TEXT_MUTED = colors.HexColor("#6b7280")
BORDER = colors.HexColor("#d0d7de")
PLACEHOLDER_BG = colors.HexColor("#f3f4f6")

_INLINE_TAGS = {"b": "b", "strong": "b", "i": "i", "em": "i", "u": "u"}
_VOID_TAGS = frozenset({"meta", "br", "img", "link", "hr"})
_TEXT_BLOCK_TAGS = frozenset({"h1", "h2", "h3", "p", "li", "th", "td", "title"})
_PLAIN_TAGS = frozenset({"html", "head", "body", "thead", "tbody"})
_TAG_RE = re.compile(r"<[^>]+>")


class BinaryRendererBackend(Protocol):
    """Converts assembled report HTML into binaries."""

    def html_to_pdf(self, html: str) -> bytes: ...

    def html_to_png(self, html: str, dims: tuple[int, int]) -> bytes: ...


@dataclass
class Block:
    """One layout unit parsed from report markup."""

    kind: str
    section: str | None
    level: int = 0
    markup: str = ""
    css_class: str | None = None
    src: str | None = None
    items: list[str] = field(default_factory=list)
    rows: list[list[tuple[bool, str]]] = field(default_factory=list)
    children: list[Block] = field(default_factory=list)


@dataclass
class ParsedDocument:
    title: str
    meta: dict[str, str]
    blocks: list[Block]

    def first_page(self) -> list[Block]:
        """Blocks before the first page break, with cards flattened."""
        page: list[Block] = []
        for block in self.blocks:
            if block.kind == "page_break":
                if page:
                    break
                continue
            page.extend(block.children if block.kind == "card" else [block])
        return page


def strip_markup(markup: str) -> str:
    return unescape(_TAG_RE.sub("", markup)).strip()


class ReportMarkupParser(HTMLParser):
    """Strict parser for the report markup dialect.

    Tags must nest and close properly; unknown tags are rejected. Inline
    content is re-emitted as reportlab paragraph markup.
    """

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.title = ""
        self.meta: dict[str, str] = {}
        self.blocks: list[Block] = []
        self._open: list[tuple[str, str]] = []
        self._containers: list[list[Block]] = [self.blocks]
        self._section: str | None = None
        self._buffer: list[str] | None = None
        self._buffer_class: str | None = None
        self._list: Block | None = None
        self._table: Block | None = None
        self._row: list[tuple[bool, str]] | None = None
        self._skipping = False
        self._in_head = False

    def fail(self, message: str) -> NoReturn:
        raise RenderError(f"Malformed report markup: {message}", section_key=self._section)

    def close(self) -> None:
        super().close()
        if self._open:
            self.fail(f"unclosed <{self._open[-1][0]}>")

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self.handle_starttag(tag, attrs)
        if tag not in _VOID_TAGS:
            self.handle_endtag(tag)

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        attributes = {k: (v or "") for k, v in attrs}

        if tag in _VOID_TAGS:
            self._handle_void(tag, attributes)
            return

        if self._skipping:
            self.fail(f"<{tag}> inside <{self._open[-1][0]}>")

        if self._buffer is not None:
            if tag not in _INLINE_TAGS:
                self.fail(f"<{tag}> not allowed inside <{self._open[-1][0]}>")
            self._buffer.append(f"<{_INLINE_TAGS[tag]}>")
            self._open.append((tag, "inline"))
            return

        if tag in ("style", "script"):
            self._skipping = True
            self._open.append((tag, "skip"))
        elif tag in _PLAIN_TAGS:
            if tag == "head":
                self._in_head = True
            self._open.append((tag, "plain"))
        elif tag == "section":
            self._section = attributes.get("data-section") or None
            self._open.append((tag, "section"))
        elif tag == "div":
            classes = attributes.get("class", "").split()
            if "page-break" in classes:
                self._containers[-1].append(Block("page_break", self._section))
                self._open.append((tag, "plain"))
            elif "card" in classes:
                card = Block("card", self._section)
                self._containers[-1].append(card)
                self._containers.append(card.children)
                self._open.append((tag, "card"))
            else:
                self._open.append((tag, "plain"))
        elif tag in ("ul", "ol"):
            if self._list is not None:
                self.fail("nested lists are not supported")
            self._list = Block("list", self._section)
            self._open.append((tag, "list"))
        elif tag == "table":
            if self._table is not None:
                self.fail("nested tables are not supported")
            self._table = Block("table", self._section)
            self._open.append((tag, "table"))
        elif tag == "tr":
            if self._table is None:
                self.fail("<tr> outside <table>")
            self._row = []
            self._open.append((tag, "row"))
        elif tag in _TEXT_BLOCK_TAGS:
            if tag == "li" and self._list is None:
                self.fail("<li> outside a list")
            if tag in ("th", "td") and self._row is None:
                self.fail(f"<{tag}> outside <tr>")
            self._buffer = []
            self._buffer_class = attributes.get("class") or None
            self._open.append((tag, "text"))
        else:
            self.fail(f"unsupported tag <{tag}>")

    def _handle_void(self, tag: str, attributes: dict[str, str]) -> None:
        if tag == "br":
            if self._buffer is not None:
                self._buffer.append("<br/>")
        elif tag == "meta":
            name = attributes.get("name")
            if name:
                self.meta[name] = attributes.get("content", "")
        elif tag == "img":
            if self._buffer is not None:
                self.fail("<img> inside a text block")
            self._containers[-1].append(
                Block(
                    "image",
                    self._section,
                    src=attributes.get("src"),
                    markup=escape(attributes.get("alt", ""), quote=False),
                )
            )

    def handle_endtag(self, tag: str) -> None:
        if tag in _VOID_TAGS:
            return
        if not self._open:
            self.fail(f"unexpected </{tag}>")
        open_tag, kind = self._open.pop()
        if open_tag != tag:
            self.fail(f"expected </{open_tag}> but found </{tag}>")

        if kind == "skip":
            self._skipping = False
        elif kind == "inline" and self._buffer is not None:
            self._buffer.append(f"</{_INLINE_TAGS[tag]}>")
        elif kind == "plain" and tag == "head":
            self._in_head = False
        elif kind == "section":
            self._section = None
        elif kind == "card":
            self._containers.pop()
        elif kind == "list" and self._list is not None:
            self._containers[-1].append(self._list)
            self._list = None
        elif kind == "table" and self._table is not None:
            self._containers[-1].append(self._table)
            self._table = None
        elif kind == "row" and self._table is not None and self._row is not None:
            self._table.rows.append(self._row)
            self._row = None
        elif kind == "text":
            self._flush_text(tag)

    def _flush_text(self, tag: str) -> None:
        markup = "".join(self._buffer or []).strip()
        css_class = self._buffer_class
        self._buffer = None
        self._buffer_class = None

        if tag == "title":
            self.title = strip_markup(markup)
        elif tag == "li" and self._list is not None:
            self._list.items.append(markup)
        elif tag in ("th", "td") and self._row is not None:
            self._row.append((tag == "th", markup))
        elif tag == "p":
            self._containers[-1].append(
                Block("paragraph", self._section, markup=markup, css_class=css_class)
            )
        else:
            self._containers[-1].append(
                Block("heading", self._section, level=int(tag[1]), markup=markup)
            )

    def handle_data(self, data: str) -> None:
        if self._skipping:
            return
        if self._buffer is not None:
            self._buffer.append(escape(data, quote=False))
        elif data.strip() and not self._in_head:
            self._containers[-1].append(
                Block("paragraph", self._section, markup=escape(data.strip(), quote=False))
            )


def parse_report_markup(html: str) -> ParsedDocument:
    """Parse report HTML into layout blocks.

    Raises:
        RenderError: If the markup is malformed.
    """
    parser = ReportMarkupParser()
    parser.feed(html)
    parser.close()
    return ParsedDocument(title=parser.title, meta=parser.meta, blocks=parser.blocks)


def _block_lines(block: Block) -> list[tuple[str, bool]]:
    if block.kind == "heading":
        return [(strip_markup(block.markup), True)]
    if block.kind == "paragraph":
        return [(strip_markup(block.markup), False)]
    if block.kind == "list":
        return [(f"- {strip_markup(item)}", False) for item in block.items]
    if block.kind == "table":
        return [(" | ".join(strip_markup(cell) for _, cell in row), False) for row in block.rows]
    if block.kind == "image":
        return [(f"[image] {strip_markup(block.markup)}", False)]
    if block.kind == "card":
        return [line for child in block.children for line in _block_lines(child)]
    return [("", False)]


def html_to_text(html: str) -> str:
    """Plain-text rendition of report markup, one block per line."""
    parsed = parse_report_markup(html)
    lines = [text for block in parsed.blocks for text, _ in _block_lines(block)]
    return "\n".join(lines).strip() + "\n"


def _build_styles(primary: colors.Color, accent: colors.Color) -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "h1": ParagraphStyle(
            "h1", parent=base["Heading1"], fontSize=22, leading=26, textColor=primary,
            spaceAfter=12,
        ),
        "h2": ParagraphStyle(
            "h2", parent=base["Heading2"], fontSize=16, leading=20, textColor=primary,
            spaceBefore=6, spaceAfter=8,
        ),
        "h3": ParagraphStyle(
            "h3", parent=base["Heading3"], fontSize=12, leading=15, textColor=accent,
            spaceBefore=6, spaceAfter=4,
        ),
        "body": ParagraphStyle(
            "body", parent=base["Normal"], fontSize=10, leading=14, textColor=TEXT_DARK,
            spaceAfter=6,
        ),
        "muted": ParagraphStyle(
            "muted", parent=base["Normal"], fontSize=9, leading=12, textColor=TEXT_MUTED,
            spaceAfter=6,
        ),
        "bullet": ParagraphStyle(
            "bullet", parent=base["Normal"], fontSize=10, leading=14, textColor=TEXT_DARK,
            leftIndent=18, bulletIndent=6, spaceAfter=2,
        ),
        "cell": ParagraphStyle(
            "cell", parent=base["Normal"], fontSize=9, leading=12, textColor=TEXT_DARK,
        ),
        "cell_header": ParagraphStyle(
            "cell_header", parent=base["Normal"], fontName="Helvetica-Bold", fontSize=9,
            leading=12, textColor=colors.white,
        ),
    }


class ReportlabRendererBackend:
    """Letter-size PDF via reportlab platypus; PNG thumbnails via Pillow."""

    def __init__(self, *, pagesize: tuple[float, float] = letter) -> None:
        self._pagesize = pagesize

    def html_to_pdf(self, html: str) -> bytes:
        parsed = parse_report_markup(html)
        primary = colors.toColor(parsed.meta.get(META_PRIMARY) or "#0A1A2F", TEXT_DARK)
        accent = colors.toColor(parsed.meta.get(META_ACCENT) or "#117CFF", TEXT_DARK)
        styles = _build_styles(primary, accent)

        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=self._pagesize,
            leftMargin=0.75 * inch,
            rightMargin=0.75 * inch,
            topMargin=0.9 * inch,
            bottomMargin=0.8 * inch,
            title=parsed.title,
            author=parsed.meta.get(META_HEADER, ""),
            invariant=1,
        )
        story = self._flowables(parsed.blocks, styles, doc.width, primary)
        if not story:
            story = [Spacer(1, 0.1 * inch)]

        header = parsed.meta.get(META_HEADER, "")
        footer = parsed.meta.get(META_FOOTER, "")
        show_numbers = parsed.meta.get(META_PAGE_NUMBERS, "true") != "false"

        def decorate(canvas: Any, document: Any) -> None:
            width, height = document.pagesize
            canvas.saveState()
            canvas.setStrokeColor(primary)
            canvas.setLineWidth(1.5)
            canvas.line(
                document.leftMargin, height - 0.6 * inch,
                width - document.rightMargin, height - 0.6 * inch,
            )
            canvas.setFont("Helvetica", 8)
            canvas.setFillColor(TEXT_MUTED)
            canvas.drawString(document.leftMargin, height - 0.5 * inch, header)
            canvas.drawString(document.leftMargin, 0.5 * inch, footer)
            if show_numbers:
                canvas.drawRightString(
                    width - document.rightMargin, 0.5 * inch, f"Page {document.page}"
                )
            canvas.restoreState()

        doc.build(story, onFirstPage=decorate, onLaterPages=decorate)
        return buffer.getvalue()

    def _flowables(
        self,
        blocks: list[Block],
        styles: dict[str, ParagraphStyle],
        width: float,
        primary: colors.Color,
    ) -> list[Any]:
        story: list[Any] = []
        for block in blocks:
            try:
                story.extend(self._block_flowables(block, styles, width, primary))
            except ValueError as e:
                # reportlab's paragraph parser reports bad inline markup as ValueError
                raise RenderError(
                    f"Section markup could not be laid out: {e}", section_key=block.section
                ) from e
        return story

    def _block_flowables(
        self,
        block: Block,
        styles: dict[str, ParagraphStyle],
        width: float,
        primary: colors.Color,
    ) -> list[Any]:
        if block.kind == "heading":
            return [Paragraph(block.markup, styles[f"h{block.level}"])]
        if block.kind == "paragraph":
            style = styles["muted"] if block.css_class == "muted" else styles["body"]
            return [Paragraph(block.markup, style)]
        if block.kind == "list":
            return [Paragraph(item, styles["bullet"], bulletText="•") for item in block.items]
        if block.kind == "table":
            return [self._table(block, styles, width, primary)] if block.rows else []
        if block.kind == "image":
            placeholder = Table(
                [[Paragraph(f"Photo: {block.markup}", styles["muted"])]],
                colWidths=[width],
                rowHeights=[1.4 * inch],
            )
            placeholder.setStyle(
                TableStyle(
                    [
                        ("BOX", (0, 0), (-1, -1), 0.5, BORDER),
                        ("BACKGROUND", (0, 0), (-1, -1), PLACEHOLDER_BG),
                        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
                    ]
                )
            )
            return [placeholder]
        if block.kind == "card":
            return [KeepTogether(self._flowables(block.children, styles, width, primary))]
        if block.kind == "page_break":
            return [PageBreak()]
        return []

    def _table(
        self,
        block: Block,
        styles: dict[str, ParagraphStyle],
        width: float,
        primary: colors.Color,
    ) -> Table:
        columns = max(len(row) for row in block.rows)
        data = []
        for row in block.rows:
            cells = [
                Paragraph(markup, styles["cell_header" if is_header else "cell"])
                for is_header, markup in row
            ]
            cells += [""] * (columns - len(cells))
            data.append(cells)

        if columns == 2:
            col_widths = [1.8 * inch, width - 1.8 * inch]
        else:
            col_widths = [width / columns] * columns

        has_header = all(is_header for is_header, _ in block.rows[0])
        table = Table(data, colWidths=col_widths, repeatRows=1 if has_header else 0)
        commands: list[tuple[Any, ...]] = [
            ("GRID", (0, 0), (-1, -1), 0.5, BORDER),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("TOPPADDING", (0, 0), (-1, -1), 4),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ]
        if has_header:
            commands.append(("BACKGROUND", (0, 0), (-1, 0), primary))
        table.setStyle(TableStyle(commands))
        return table

    def html_to_png(self, html: str, dims: tuple[int, int]) -> bytes:
        parsed = parse_report_markup(html)
        width, height = dims
        try:
            primary = ImageColor.getrgb(parsed.meta.get(META_PRIMARY) or "#0A1A2F")
        except ValueError:
            primary = (10, 26, 47)

        image = Image.new("RGB", (width, height), "white")
        draw = ImageDraw.Draw(image)
        font = ImageFont.load_default()

        band = max(14, height // 14)
        draw.rectangle([0, 0, width, band], fill=primary)
        header = parsed.meta.get(META_HEADER, "")
        draw.text((8, max(2, band // 2 - 5)), header, fill="white", font=font)

        y = band + 10
        chars_per_line = max(10, (width - 16) // 6)
        for block in parsed.first_page():
            for text, is_heading in _block_lines(block):
                for line in textwrap.wrap(text, chars_per_line) or [""]:
                    if y > height - 14:
                        break
                    draw.text((8, y), line, fill=primary if is_heading else (40, 40, 40), font=font)
                    y += 12
            y += 4

        out = io.BytesIO()
        image.save(out, format="PNG", optimize=True)
        return out.getvalue()
