import unittest

from reportlab.pdfbase import pdfmetrics

from spirit_report.errors import LayoutError
from spirit_report.models import AnalysisResult, Big3, HousePlacement, Location, Placement, Subject
from spirit_report.report_layout import (
    REPORT_TITLE,
    FixedBlock,
    PageConfig,
    TableBlock,
    TableGrid,
    TextBlock,
    TextRun,
    compose,
    compose_report,
    wrap_text,
)


def fixed_measure(text, font, font_size):
    return len(text) * font_size * 0.5


SMALL = PageConfig(page_width=300, page_height=300, margin=20, max_width=260)
SIGNS = [
    "Aries", "Taurus", "Gemini", "Cancer", "Leo", "Virgo",
    "Libra", "Scorpio", "Sagittarius", "Capricorn", "Aquarius", "Pisces",
]


def _filler(lines: int) -> FixedBlock:
    return FixedBlock(tuple(f"line {i}" for i in range(lines)), "Helvetica", 10, 20)


def _houses_table() -> TableBlock:
    return TableBlock(("House", "Sign"), tuple((str(i + 1), SIGNS[i]) for i in range(12)))


def _long_text(words: int = 400) -> str:
    return " ".join(f"word{i}" for i in range(words))


def _assert_page_bounds(case: unittest.TestCase, pages, config: PageConfig) -> None:
    for page in pages:
        for item in page.instructions:
            height = item.height
            case.assertGreaterEqual(item.y, config.top - 1e-6)
            case.assertLessEqual(item.y + height, config.bottom_limit + 1e-6, msg=f"page {page.number}: {item}")


class TestWrapText(unittest.TestCase):
    def test_lines_never_exceed_max_width(self):
        text = _long_text(120)
        lines = wrap_text(text, 100, "Helvetica", 10, fixed_measure)
        self.assertGreater(len(lines), 1)
        for line in lines:
            self.assertLessEqual(fixed_measure(line, "Helvetica", 10), 100)

    def test_joining_lines_reconstructs_paragraph(self):
        text = "Sun in Leo brings   warmth and a\tgenerous spirit to every room it enters, " * 6
        lines = wrap_text(text, 120, "Helvetica", 10, fixed_measure)
        self.assertEqual(" ".join(lines), " ".join(text.split()))

    def test_explicit_newlines_and_blank_lines_are_kept(self):
        lines = wrap_text("first\n\nsecond", 200, "Helvetica", 10, fixed_measure)
        self.assertEqual(lines, ["first", "", "second"])

    def test_overlong_word_is_split_by_characters(self):
        lines = wrap_text("x" * 50, 100, "Helvetica", 10, fixed_measure)
        self.assertEqual("".join(lines), "x" * 50)
        self.assertTrue(all(len(line) <= 20 for line in lines))

    def test_empty_text_yields_no_lines(self):
        self.assertEqual(wrap_text("", 100, "Helvetica", 10, fixed_measure), [])

    def test_default_measure_uses_font_metrics(self):
        text = _long_text(80)
        for line in wrap_text(text, 200, "Helvetica", 11):
            self.assertLessEqual(pdfmetrics.stringWidth(line, "Helvetica", 11), 200)


class TestPageConfig(unittest.TestCase):
    def test_rejects_width_wider_than_margins_allow(self):
        with self.assertRaises(LayoutError):
            PageConfig(page_width=300, margin=20, max_width=270)

    def test_rejects_page_too_short_for_table_minimum(self):
        with self.assertRaises(LayoutError):
            PageConfig(page_width=300, page_height=90, margin=20, max_width=260, table_row_height=20)

    def test_rejects_line_height_smaller_than_font(self):
        with self.assertRaises(LayoutError):
            PageConfig(narrative_font_size=16, narrative_line_height=14)

    def test_from_mapping_ignores_unknown_keys(self):
        config = PageConfig.from_mapping({"margin": "30", "max_width": 500, "bogus": 1})
        self.assertEqual(config.margin, 30.0)
        self.assertEqual(config.max_width, 500.0)


class TestTextPagination(unittest.TestCase):
    def test_narrative_spans_pages_within_bounds(self):
        text = _long_text(600)
        block = TextBlock(text, "Helvetica", 10, 14)
        pages = compose([block], SMALL, fixed_measure)
        self.assertGreater(len(pages), 1)
        _assert_page_bounds(self, pages, SMALL)
        for page in pages:
            self.assertAlmostEqual(page.instructions[0].y, SMALL.top)

    def test_pagination_preserves_wrapped_lines_exactly(self):
        text = "```\n" + _long_text(300) + "\n\nSecond paragraph here."
        block = TextBlock(text, "Helvetica", 10, 14)
        pages = compose([block], SMALL, fixed_measure)
        produced = [run.text for page in pages for run in page.text_runs()]
        self.assertEqual(produced, wrap_text(text, SMALL.max_width, "Helvetica", 10, fixed_measure))

    def test_lines_advance_by_line_height(self):
        pages = compose([TextBlock("a\nb\nc", "Helvetica", 10, 14)], SMALL, fixed_measure)
        self.assertEqual([run.y for run in pages[0].text_runs()], [20, 34, 48])


class TestFixedBlocks(unittest.TestCase):
    def test_block_that_does_not_fit_moves_whole(self):
        pages = compose([_filler(12), _filler(2)], SMALL, fixed_measure)
        self.assertEqual(len(pages), 2)
        self.assertEqual(len(pages[0].text_runs()), 12)
        self.assertEqual([run.y for run in pages[1].text_runs()], [20, 40])

    def test_keep_with_next_moves_heading(self):
        heading = FixedBlock(("Heading",), "Helvetica-Bold", 10, 20, keep_with_next=14)
        # 12 filler lines end at y=260; heading fits (280) but heading plus one line (294) does not.
        pages = compose([_filler(12), heading, TextBlock("body", "Helvetica", 10, 14)], SMALL, fixed_measure)
        self.assertEqual(len(pages), 2)
        self.assertEqual([run.text for run in pages[1].text_runs()], ["Heading", "body"])

    def test_block_taller_than_page_raises(self):
        with self.assertRaises(LayoutError):
            compose([_filler(14)], SMALL, fixed_measure)

    def test_no_blank_page_when_block_starts_a_page(self):
        pages = compose([_filler(13)], SMALL, fixed_measure)
        self.assertEqual(len(pages), 1)


class TestTablePagination(unittest.TestCase):
    def test_header_repeats_on_every_page_the_table_spans(self):
        pages = compose([_filler(10), _houses_table()], SMALL, fixed_measure)
        segments = [(page.number, grid) for page in pages for grid in page.tables()]
        self.assertEqual([number for number, _ in segments], [1, 2])
        first, second = segments[0][1], segments[1][1]
        self.assertEqual(first.header, ("House", "Sign"))
        self.assertEqual(second.header, ("House", "Sign"))
        self.assertFalse(first.continued)
        self.assertTrue(second.continued)
        self.assertAlmostEqual(second.y, SMALL.top)
        self.assertEqual(len(first.rows) + len(second.rows), 12)
        self.assertEqual([row[0] for row in first.rows + second.rows], [str(i) for i in range(1, 13)])
        _assert_page_bounds(self, pages, SMALL)

    def test_table_is_deferred_when_header_and_minimum_rows_do_not_fit(self):
        pages = compose([_filler(11), _houses_table()], SMALL, fixed_measure)
        self.assertEqual(pages[0].tables(), [])
        grids = pages[1].tables()
        self.assertEqual(len(grids), 1)
        self.assertAlmostEqual(grids[0].y, SMALL.top)
        self.assertEqual(len(grids[0].rows), 12)

    def test_cursor_advances_past_table_plus_gap(self):
        table = TableBlock(("Planet", "Sign"), (("Sun", "Leo"), ("Moon", "Cancer")))
        pages = compose([table, TextBlock("after", "Helvetica", 10, 14)], SMALL, fixed_measure)
        grid = pages[0].tables()[0]
        run = pages[0].text_runs()[0]
        self.assertAlmostEqual(run.y, grid.y + grid.height + SMALL.table_gap)

    def test_empty_table_draws_header_only(self):
        pages = compose([TableBlock(("Planet", "Sign"), ())], SMALL, fixed_measure)
        grid = pages[0].tables()[0]
        self.assertEqual(grid.rows, ())
        self.assertEqual(grid.height, SMALL.table_row_height)

    def test_long_cell_text_is_clipped_to_column(self):
        table = TableBlock(("Planet", "Sign"), (("Sun" * 40, "Leo"),))
        grid = compose([table], SMALL, fixed_measure)[0].tables()[0]
        cell = grid.rows[0][0]
        self.assertTrue(cell.endswith("..."))
        self.assertLessEqual(fixed_measure(cell, "Helvetica", SMALL.table_font_size), 130 - 2 * SMALL.table_cell_padding)


def _subject() -> Subject:
    return Subject(
        name="Asha",
        email="asha@example.com",
        date_of_birth="1994-12-18",
        time_of_birth="23:45",
        place_of_birth="New Delhi",
        location=Location(
            longitude=77.209,
            latitude=28.6139,
            timezone_offset=5.5,
            complete_name="New Delhi, Delhi, India",
        ),
    )


def _result(narrative: str) -> AnalysisResult:
    return AnalysisResult(
        big3=Big3(ascendant="Virgo", sun="Sagittarius", moon="Leo"),
        planets=(
            Placement(name="Sun", sign="Sagittarius"),
            Placement(name="Moon", sign="Leo"),
            Placement(name="Ascendant", sign="Virgo"),
        ),
        houses=tuple(HousePlacement(house=i + 1, sign=SIGNS[i]) for i in range(12)),
        planet_interpretation=narrative,
        house_interpretation=narrative,
    )


class TestComposeReport(unittest.TestCase):
    def test_report_sections_in_order(self):
        pages = compose_report(_subject(), _result("Short narrative."))
        texts = [run.text for page in pages for run in page.text_runs()]
        self.assertEqual(texts[0], REPORT_TITLE)
        self.assertEqual(texts[1], "Name: Asha")
        self.assertEqual(texts[6], "Location: New Delhi, Delhi, India")
        self.assertTrue(texts[7].startswith("Big 3: Ascendant (Virgo)"))
        self.assertLess(texts.index("Planets Interpretation:"), texts.index("Houses Interpretation:"))
        tables = [grid for page in pages for grid in page.tables()]
        self.assertEqual(tables[0].header, ("Planet", "Sign"))
        self.assertEqual(sum(len(g.rows) for g in tables if g.header == ("Planet", "Sign")), 3)
        self.assertEqual(sum(len(g.rows) for g in tables if g.header == ("House", "Sign")), 12)

    def test_raw_markdown_is_sanitized_before_layout(self):
        narrative = "```markdown\n" + "**Sun** in *Sagittarius* seeks meaning. " * 80 + "\n```"
        pages = compose_report(_subject(), _result(narrative))
        self.assertGreater(len(pages), 1)
        for page in pages:
            for run in page.text_runs():
                self.assertNotIn("```", run.text)
                self.assertNotIn("**", run.text)
        _assert_page_bounds(self, pages, PageConfig())

    def test_every_instruction_is_positioned(self):
        pages = compose_report(_subject(), _result(_long_text(900)))
        for page in pages:
            for item in page.instructions:
                self.assertIsInstance(item, (TextRun, TableGrid))
                self.assertEqual(item.x, PageConfig().margin)
