import json
import logging
from dataclasses import asdict, replace
from io import BytesIO
from pathlib import Path
from typing import Optional, Sequence

from reportlab.lib import colors
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from spirit_report import config
from spirit_report.errors import LayoutError
from spirit_report.models import AnalysisResult, Subject
from spirit_report.report_layout import Page, PageConfig, TableGrid, TextRun, compose_report

logger = logging.getLogger("spirit_report")

PDF_FONT_REG = 'Helvetica'
PDF_FONT_BOLD = 'Helvetica-Bold'
PDF_FEATURE_AVAILABLE = True
PDF_FEATURE_ERROR: Optional[str] = None

HEADER_FILL = colors.HexColor("#7C3AED")
GRID_COLOR = colors.HexColor("#BFBFBF")
BODY_TEXT = colors.HexColor("#1F2937")
# Baseline sits this fraction of the font size below the top of a line box.
BASELINE_RATIO = 0.8


def _existing_file(raw: str) -> Optional[Path]:
    if not raw:
        return None
    candidate = Path(raw).expanduser()
    if candidate.exists() and candidate.is_file():
        return candidate
    return None


def init_fonts(regular_path: str = "", bold_path: str = "") -> None:
    """Register optional TTF report fonts, falling back to Helvetica."""
    global PDF_FONT_REG, PDF_FONT_BOLD, PDF_FEATURE_AVAILABLE, PDF_FEATURE_ERROR

    PDF_FONT_REG = 'Helvetica'
    PDF_FONT_BOLD = 'Helvetica-Bold'
    PDF_FEATURE_AVAILABLE = True
    PDF_FEATURE_ERROR = None

    regular_raw = regular_path or config.REPORT_FONT_PATH
    bold_raw = bold_path or config.REPORT_FONT_BOLD_PATH
    regular = _existing_file(regular_raw)
    if regular is None:
        if regular_raw:
            logger.warning('Report font %s not found; using Helvetica.', regular_raw)
        return

    try:
        pdfmetrics.registerFont(TTFont('ReportRegular', str(regular)))
        PDF_FONT_REG = 'ReportRegular'
        bold = _existing_file(bold_raw)
        if bold:
            pdfmetrics.registerFont(TTFont('ReportBold', str(bold)))
            PDF_FONT_BOLD = 'ReportBold'
        else:
            PDF_FONT_BOLD = 'ReportRegular'
            logger.warning('Bold report font not found; using the regular face for bold style.')
        logger.info('Report font loaded: %s', regular)
    except Exception as e:
        PDF_FONT_REG = 'Helvetica'
        PDF_FONT_BOLD = 'Helvetica-Bold'
        PDF_FEATURE_ERROR = str(e)
        logger.error('Report font registration failed; using Helvetica: %s', e)


def load_pdf_layout_config(path: Optional[str] = None) -> PageConfig:
    """Page configuration with optional JSON overrides and safe fallback."""
    defaults = replace(PageConfig(), font_regular=PDF_FONT_REG, font_bold=PDF_FONT_BOLD)
    config_path = path if path is not None else config.PDF_LAYOUT_CONFIG
    if not config_path:
        return defaults

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            raise ValueError("layout config must be a JSON object")
        merged = asdict(defaults)
        merged.update(loaded)
        return PageConfig.from_mapping(merged)
    except (OSError, ValueError, TypeError, LayoutError) as e:
        logger.warning(f"PDF layout config load failed. Using defaults: {e}")
        return defaults


def _baseline(page: Page, top: float, font_size: float) -> float:
    return page.height - (top + font_size * BASELINE_RATIO)


def _draw_text_run(c: canvas.Canvas, page: Page, run: TextRun) -> None:
    if not run.text:
        return
    c.setFillColor(BODY_TEXT)
    c.setFont(run.font, run.font_size)
    c.drawString(run.x, _baseline(page, run.y + (run.height - run.font_size) / 2, run.font_size), run.text)


def _draw_table(c: canvas.Canvas, page: Page, grid: TableGrid, padding: float) -> None:
    total_width = sum(grid.column_widths)
    text_offset = (grid.row_height - grid.font_size) / 2

    def draw_row(values, top: float) -> None:
        x = grid.x
        for idx, width in enumerate(grid.column_widths):
            value = values[idx] if idx < len(values) else ""
            c.drawString(x + padding, _baseline(page, top + text_offset, grid.font_size), value)
            x += width
        c.line(grid.x, page.height - (top + grid.row_height), grid.x + total_width, page.height - (top + grid.row_height))

    # Header band
    c.setFillColor(HEADER_FILL)
    c.rect(grid.x, page.height - (grid.y + grid.row_height), total_width, grid.row_height, stroke=0, fill=1)
    c.setStrokeColor(GRID_COLOR)
    c.setLineWidth(0.5)
    c.setFillColor(colors.white)
    c.setFont(grid.header_font, grid.font_size)
    draw_row(grid.header, grid.y)

    c.setFillColor(BODY_TEXT)
    c.setFont(grid.font, grid.font_size)
    for row_idx, row in enumerate(grid.rows, start=1):
        draw_row(row, grid.y + row_idx * grid.row_height)

    bottom = page.height - (grid.y + grid.height)
    top = page.height - grid.y
    c.rect(grid.x, bottom, total_width, grid.height, stroke=1, fill=0)
    x = grid.x
    for width in grid.column_widths[:-1]:
        x += width
        c.line(x, bottom, x, top)


def render_pages_to_pdf(pages: Sequence[Page], layout: PageConfig, title: str = "") -> bytes:
    with BytesIO() as buffer:
        c = canvas.Canvas(buffer, pagesize=(layout.page_width, layout.page_height))
        if title:
            c.setTitle(title)
        for page in pages:
            for item in page.instructions:
                if isinstance(item, TextRun):
                    _draw_text_run(c, page, item)
                elif isinstance(item, TableGrid):
                    _draw_table(c, page, item, layout.table_cell_padding)
            c.showPage()
        c.save()
        return buffer.getvalue()


def generate_pdf_report(subject: Subject, result: AnalysisResult, layout: Optional[PageConfig] = None) -> bytes:
    layout = layout or load_pdf_layout_config()
    pages = compose_report(subject, result, layout)
    logger.info("PDF report composed pages=%s", len(pages))
    return render_pages_to_pdf(pages, layout, title="Spirit Personality Analysis")
