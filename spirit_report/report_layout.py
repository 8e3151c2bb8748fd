"""Paginated report composer.

Lays out a report as an ordered list of pages holding positioned draw
instructions. Nothing here touches a rendering backend: `pdf_service` turns
the pages into a PDF, tests inspect them directly.

Coordinates are top-down in points: `y` is the top edge of an element's box
and grows towards the bottom of the page. Every instruction satisfies
`y + height <= page_height - margin`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Callable, Optional, Sequence, Union

from reportlab.pdfbase import pdfmetrics

from spirit_report.errors import LayoutError
from spirit_report.models import AnalysisResult, Subject
from spirit_report.sanitizer import sanitize_narrative

Measure = Callable[[str, str, float], float]

REPORT_TITLE = "Spirit Personality Analysis"
_EPS = 1e-6


def default_measure(text: str, font: str, font_size: float) -> float:
    return pdfmetrics.stringWidth(text, font, font_size)


@dataclass(frozen=True)
class PageConfig:
    page_width: float = 595.28
    page_height: float = 841.89
    margin: float = 40.0
    max_width: float = 515.0
    font_regular: str = "Helvetica"
    font_bold: str = "Helvetica-Bold"
    title_font_size: float = 22.0
    title_line_height: float = 30.0
    meta_font_size: float = 12.0
    meta_line_height: float = 15.0
    summary_font_size: float = 16.0
    summary_line_height: float = 30.0
    heading_font_size: float = 14.0
    heading_line_height: float = 20.0
    narrative_font_size: float = 11.0
    narrative_line_height: float = 14.0
    narrative_gap: float = 10.0
    table_font_size: float = 11.0
    table_row_height: float = 20.0
    table_cell_padding: float = 4.0
    table_gap: float = 20.0
    table_min_body_rows: int = 2

    def __post_init__(self):
        if self.page_width <= 0 or self.page_height <= 0 or self.margin < 0:
            raise LayoutError("page size must be positive and margin non-negative")
        if self.max_width <= 0 or self.max_width > self.page_width - 2 * self.margin + _EPS:
            raise LayoutError(
                f"max_width={self.max_width} must be positive and fit within page_width minus margins"
            )
        if self.table_min_body_rows < 1:
            raise LayoutError("table_min_body_rows must be >= 1")
        pairs = [
            ("title", self.title_font_size, self.title_line_height),
            ("meta", self.meta_font_size, self.meta_line_height),
            ("summary", self.summary_font_size, self.summary_line_height),
            ("heading", self.heading_font_size, self.heading_line_height),
            ("narrative", self.narrative_font_size, self.narrative_line_height),
            ("table", self.table_font_size, self.table_row_height),
        ]
        for name, size, height in pairs:
            if size <= 0 or height < size:
                raise LayoutError(f"{name} line height must be >= its font size and both positive")
        table_min_height = self.table_row_height * (1 + self.table_min_body_rows)
        if table_min_height > self.content_height + _EPS:
            raise LayoutError("page content area cannot hold a table header plus its minimum body rows")

    @property
    def top(self) -> float:
        return self.margin

    @property
    def bottom_limit(self) -> float:
        return self.page_height - self.margin

    @property
    def content_height(self) -> float:
        return self.bottom_limit - self.top

    @classmethod
    def from_mapping(cls, values: dict) -> "PageConfig":
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in values.items():
            if key not in known:
                continue
            if key.startswith("font_"):
                kwargs[key] = str(value)
            elif key == "table_min_body_rows":
                kwargs[key] = int(value)
            else:
                kwargs[key] = float(value)
        return cls(**kwargs)


# ------------------------------------------------------------------------------
# Content blocks
# ------------------------------------------------------------------------------
@dataclass(frozen=True)
class FixedBlock:
    """Lines that always move together; never split across pages."""

    lines: tuple[str, ...]
    font: str
    font_size: float
    line_height: float
    gap_after: float = 0.0
    keep_with_next: float = 0.0


@dataclass(frozen=True)
class TextBlock:
    text: str
    font: str
    font_size: float
    line_height: float
    gap_after: float = 0.0


@dataclass(frozen=True)
class TableBlock:
    header: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    column_widths: Optional[tuple[float, ...]] = None


Block = Union[FixedBlock, TextBlock, TableBlock]


# ------------------------------------------------------------------------------
# Draw instructions
# ------------------------------------------------------------------------------
@dataclass(frozen=True)
class TextRun:
    x: float
    y: float
    text: str
    font: str
    font_size: float
    height: float


@dataclass(frozen=True)
class TableGrid:
    x: float
    y: float
    column_widths: tuple[float, ...]
    row_height: float
    header: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    font: str
    header_font: str
    font_size: float
    continued: bool = False

    @property
    def height(self) -> float:
        return self.row_height * (1 + len(self.rows))


Instruction = Union[TextRun, TableGrid]


@dataclass
class Page:
    number: int
    width: float
    height: float
    instructions: list = field(default_factory=list)

    def text_runs(self) -> list[TextRun]:
        return [item for item in self.instructions if isinstance(item, TextRun)]

    def tables(self) -> list[TableGrid]:
        return [item for item in self.instructions if isinstance(item, TableGrid)]


# ------------------------------------------------------------------------------
# Text wrapping
# ------------------------------------------------------------------------------
def _split_long_word(word: str, max_width: float, font: str, font_size: float, measure: Measure) -> list[str]:
    pieces: list[str] = []
    current = ""
    for char in word:
        candidate = current + char
        if current and measure(candidate, font, font_size) > max_width:
            pieces.append(current)
            current = char
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def wrap_text(
    text: str,
    max_width: float,
    font: str,
    font_size: float,
    measure: Optional[Measure] = None,
) -> list[str]:
    """Greedy word wrap; each input newline starts a new line, blank ones included."""
    measure = measure or default_measure
    if not text:
        return []

    lines: list[str] = []
    for paragraph in text.replace("\r\n", "\n").split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if measure(candidate, font, font_size) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
                current = ""
            if measure(word, font, font_size) <= max_width:
                current = word
                continue
            pieces = _split_long_word(word, max_width, font, font_size, measure)
            lines.extend(pieces[:-1])
            current = pieces[-1]
        lines.append(current)
    return lines


def _fit_cell_text(value, width: float, font: str, font_size: float, measure: Measure) -> str:
    text = "" if value is None else str(value)
    if measure(text, font, font_size) <= width:
        return text
    ellipsis = "..."
    while text and measure(text + ellipsis, font, font_size) > width:
        text = text[:-1]
    return (text.rstrip() + ellipsis) if text else ""


# ------------------------------------------------------------------------------
# Composer
# ------------------------------------------------------------------------------
class _PageComposer:
    def __init__(self, config: PageConfig, measure: Measure):
        self.config = config
        self.measure = measure
        self.pages: list[Page] = []
        self.y = config.top
        self._add_page()

    @property
    def page(self) -> Page:
        return self.pages[-1]

    def _add_page(self) -> None:
        self.pages.append(Page(len(self.pages) + 1, self.config.page_width, self.config.page_height))
        self.y = self.config.top

    def _break_page(self) -> None:
        if self.page.instructions:
            self._add_page()
        else:
            self.y = self.config.top

    def _fits(self, height: float) -> bool:
        return self.y + height <= self.config.bottom_limit + _EPS

    def _draw_line(self, text: str, font: str, font_size: float, line_height: float) -> None:
        self.page.instructions.append(
            TextRun(self.config.margin, self.y, text, font, font_size, line_height)
        )
        self.y += line_height

    def place_fixed(self, block: FixedBlock) -> None:
        cfg = self.config
        lines: list[str] = []
        for raw in block.lines:
            lines.extend(wrap_text(raw, cfg.max_width, block.font, block.font_size, self.measure) or [""])
        height = len(lines) * block.line_height
        if height > cfg.content_height + _EPS:
            raise LayoutError(f"fixed block of {len(lines)} lines is taller than the page content area")
        required = min(height + block.keep_with_next, cfg.content_height)
        if not self._fits(required):
            self._break_page()
        for line in lines:
            self._draw_line(line, block.font, block.font_size, block.line_height)
        self.y += block.gap_after

    def place_text(self, block: TextBlock) -> None:
        cfg = self.config
        if block.line_height > cfg.content_height + _EPS:
            raise LayoutError("text line height exceeds the page content area")
        for line in wrap_text(block.text, cfg.max_width, block.font, block.font_size, self.measure):
            if not self._fits(block.line_height):
                self._break_page()
            self._draw_line(line, block.font, block.font_size, block.line_height)
        self.y += block.gap_after

    def _column_widths(self, block: TableBlock) -> tuple[float, ...]:
        if block.column_widths:
            return tuple(float(w) for w in block.column_widths)
        columns = max(1, len(block.header))
        return tuple(self.config.max_width / columns for _ in range(columns))

    def _body_rows_that_fit(self, remaining: int) -> int:
        row_height = self.config.table_row_height
        count = 0
        while count < remaining and self._fits(row_height * (count + 2)):
            count += 1
        return count

    def place_table(self, block: TableBlock) -> None:
        cfg = self.config
        widths = self._column_widths(block)
        font, header_font, size = cfg.font_regular, cfg.font_bold, cfg.table_font_size
        inner = [max(0.0, w - 2 * cfg.table_cell_padding) for w in widths]
        header = tuple(
            _fit_cell_text(value, inner[idx], header_font, size, self.measure)
            for idx, value in enumerate(block.header)
        )
        rows = [
            tuple(_fit_cell_text(value, inner[idx], font, size, self.measure) for idx, value in enumerate(row))
            for row in block.rows
        ]

        min_rows = min(cfg.table_min_body_rows, len(rows))
        if not self._fits(cfg.table_row_height * (1 + min_rows)):
            self._break_page()

        start = 0
        continued = False
        while True:
            take = self._body_rows_that_fit(len(rows) - start)
            segment = TableGrid(
                x=cfg.margin,
                y=self.y,
                column_widths=widths,
                row_height=cfg.table_row_height,
                header=header,
                rows=tuple(rows[start:start + take]),
                font=font,
                header_font=header_font,
                font_size=size,
                continued=continued,
            )
            self.page.instructions.append(segment)
            self.y += segment.height
            start += take
            if start >= len(rows):
                break
            self._add_page()
            continued = True
        self.y += cfg.table_gap


def compose(
    blocks: Sequence[Block],
    config: Optional[PageConfig] = None,
    measure: Optional[Measure] = None,
) -> list[Page]:
    composer = _PageComposer(config or PageConfig(), measure or default_measure)
    for block in blocks:
        if isinstance(block, TextBlock):
            composer.place_text(block)
        elif isinstance(block, TableBlock):
            composer.place_table(block)
        elif isinstance(block, FixedBlock):
            composer.place_fixed(block)
        else:
            raise TypeError(f"Unsupported block type: {type(block).__name__}")
    return composer.pages


def build_report_blocks(subject: Subject, result: AnalysisResult, config: Optional[PageConfig] = None) -> list[Block]:
    cfg = config or PageConfig()
    big3 = result.big3
    planet_text = sanitize_narrative(result.planet_interpretation)
    house_text = sanitize_narrative(result.house_interpretation)

    def heading(label: str) -> FixedBlock:
        return FixedBlock(
            (label,),
            cfg.font_bold,
            cfg.heading_font_size,
            cfg.heading_line_height,
            keep_with_next=cfg.narrative_line_height,
        )

    def narrative(text: str) -> TextBlock:
        return TextBlock(
            text,
            cfg.font_regular,
            cfg.narrative_font_size,
            cfg.narrative_line_height,
            gap_after=cfg.narrative_gap,
        )

    return [
        FixedBlock((REPORT_TITLE,), cfg.font_bold, cfg.title_font_size, cfg.title_line_height),
        FixedBlock(
            (
                f"Name: {subject.name}",
                f"Email: {subject.email}",
                f"Date of Birth: {subject.date_of_birth}",
                f"Time of Birth: {subject.time_of_birth}",
                f"Place of Birth: {subject.place_of_birth}",
                f"Location: {subject.location.complete_name}",
            ),
            cfg.font_regular,
            cfg.meta_font_size,
            cfg.meta_line_height,
        ),
        FixedBlock(
            (f"Big 3: Ascendant ({big3.ascendant}), Sun ({big3.sun}), Moon ({big3.moon})",),
            cfg.font_bold,
            cfg.summary_font_size,
            cfg.summary_line_height,
        ),
        TableBlock(("Planet", "Sign"), tuple((p.name, p.sign) for p in result.planets)),
        heading("Planets Interpretation:"),
        narrative(planet_text),
        TableBlock(("House", "Sign"), tuple((str(h.house), h.sign) for h in result.houses)),
        heading("Houses Interpretation:"),
        narrative(house_text),
    ]


def compose_report(
    subject: Subject,
    result: AnalysisResult,
    config: Optional[PageConfig] = None,
    measure: Optional[Measure] = None,
) -> list[Page]:
    cfg = config or PageConfig()
    return compose(build_report_blocks(subject, result, cfg), cfg, measure)
