import json
import os
import re
import tempfile
import unittest

from spirit_report import pdf_service
from spirit_report.models import AnalysisResult, Big3, HousePlacement, Location, Placement, Subject
from spirit_report.report_layout import PageConfig, compose_report

SIGNS = [
    "Aries", "Taurus", "Gemini", "Cancer", "Leo", "Virgo",
    "Libra", "Scorpio", "Sagittarius", "Capricorn", "Aquarius", "Pisces",
]

SUBJECT = Subject(
    name="Asha",
    email="asha@example.com",
    date_of_birth="1994-12-18",
    time_of_birth="23:45",
    place_of_birth="New Delhi",
    location=Location(longitude=77.209, latitude=28.6139, timezone_offset=5.5, complete_name="New Delhi, India"),
)


def _result(narrative: str) -> AnalysisResult:
    return AnalysisResult(
        big3=Big3(ascendant="Virgo", sun="Sagittarius", moon="Leo"),
        planets=tuple(Placement(name=name, sign=SIGNS[i]) for i, name in enumerate(["Sun", "Moon", "Mercury", "Venus"])),
        houses=tuple(HousePlacement(house=i + 1, sign=SIGNS[i]) for i in range(12)),
        planet_interpretation=narrative,
        house_interpretation=narrative,
    )


def _write_json(payload) -> str:
    handle = tempfile.NamedTemporaryFile("w", suffix=".json", delete=False, encoding="utf-8")
    with handle:
        if isinstance(payload, str):
            handle.write(payload)
        else:
            json.dump(payload, handle)
    return handle.name


class TestPdfRendering(unittest.TestCase):
    def test_generates_pdf_bytes(self) -> None:
        pdf = pdf_service.generate_pdf_report(SUBJECT, _result("Warm and direct."), PageConfig())
        self.assertTrue(pdf.startswith(b"%PDF"))

    def test_multi_page_report_emits_one_pdf_page_per_composed_page(self) -> None:
        narrative = "Sun in Sagittarius seeks meaning and freedom. " * 150
        layout = PageConfig()
        pages = compose_report(SUBJECT, _result(narrative), layout)
        self.assertGreater(len(pages), 1)
        pdf = pdf_service.render_pages_to_pdf(pages, layout)
        self.assertEqual(len(re.findall(rb"/Type\s*/Page\b", pdf)), len(pages))

    def test_empty_narratives_still_render(self) -> None:
        result = AnalysisResult(big3=Big3(), planets=(), houses=(), planet_interpretation="", house_interpretation="")
        pdf = pdf_service.generate_pdf_report(SUBJECT, result, PageConfig())
        self.assertTrue(pdf.startswith(b"%PDF"))


class TestLayoutConfigLoading(unittest.TestCase):
    def test_no_path_returns_defaults(self) -> None:
        self.assertEqual(pdf_service.load_pdf_layout_config("").margin, PageConfig().margin)

    def test_overrides_are_merged(self) -> None:
        path = _write_json({"margin": 50, "max_width": 495, "narrative_font_size": 10})
        self.addCleanup(os.remove, path)
        layout = pdf_service.load_pdf_layout_config(path)
        self.assertEqual(layout.margin, 50.0)
        self.assertEqual(layout.max_width, 495.0)
        self.assertEqual(layout.narrative_font_size, 10.0)
        self.assertEqual(layout.page_height, PageConfig().page_height)

    def test_invalid_geometry_falls_back_to_defaults(self) -> None:
        path = _write_json({"margin": 200, "max_width": 515})
        self.addCleanup(os.remove, path)
        with self.assertLogs("spirit_report", level="WARNING"):
            layout = pdf_service.load_pdf_layout_config(path)
        self.assertEqual(layout.margin, PageConfig().margin)

    def test_unreadable_files_fall_back_to_defaults(self) -> None:
        broken = _write_json("{not json")
        self.addCleanup(os.remove, broken)
        for path in (broken, "/nonexistent/layout.json"):
            with self.subTest(path=path):
                layout = pdf_service.load_pdf_layout_config(path)
                self.assertEqual(layout, PageConfig(font_regular=pdf_service.PDF_FONT_REG, font_bold=pdf_service.PDF_FONT_BOLD))


if __name__ == "__main__":
    unittest.main()
