"""Report-generation pipeline: cache, fetch, normalize, narrate, sanitize."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from spirit_report.astrology_client import AstrologyClient, build_placement_request
from spirit_report.cache_manager import AnalysisCache, subject_fingerprint
from spirit_report.errors import EmptyResultError, GenerationError
from spirit_report.llm_service import NarrativeService
from spirit_report.models import AnalysisResult, Location, Subject
from spirit_report.normalizer import extract_big3, normalize_houses, normalize_planets
from spirit_report.sanitizer import sanitize_narrative

logger = logging.getLogger("spirit_report")

NO_PLANET_DATA = "No planet data available."
NO_HOUSE_DATA = "No house data available."


class ReportPipeline:
    def __init__(self, astrology: AstrologyClient, narratives: NarrativeService, cache: AnalysisCache):
        self.astrology = astrology
        self.narratives = narratives
        self.cache = cache

    async def _narrate(self, coro, *, fallback: str, kind: str, fingerprint: str) -> tuple[str, bool]:
        """Run one narrative call; a failure degrades to `fallback` for this side only."""
        if coro is None:
            return fallback, False
        try:
            return await coro, False
        except GenerationError as e:
            logger.warning(
                "Narrative degraded kind=%s fingerprint=%s error=%s",
                kind,
                fingerprint[:12],
                e.message,
            )
            return fallback, True

    async def analyze(self, subject: Subject) -> AnalysisResult:
        fingerprint = subject_fingerprint(subject)
        cached = self.cache.lookup(subject)
        if cached is not None:
            logger.info("Analysis cache hit fingerprint=%s", fingerprint[:12])
            return cached

        body = build_placement_request(subject)
        logger.info("Analysis cache miss fingerprint=%s; fetching placements", fingerprint[:12])
        raw_planets, raw_houses = await asyncio.gather(
            self.astrology.fetch_planets(body),
            self.astrology.fetch_houses(body),
        )

        planets = normalize_planets(raw_planets)
        houses = normalize_houses(raw_houses)
        if not planets and not houses:
            raise EmptyResultError()
        big3 = extract_big3(planets)
        logger.info(
            "Placements normalized fingerprint=%s planets=%s houses=%s",
            fingerprint[:12],
            len(planets),
            len(houses),
        )

        (planet_text, planet_degraded), (house_text, house_degraded) = await asyncio.gather(
            self._narrate(
                self.narratives.interpret_planets(subject.name, planets) if planets else None,
                fallback=NO_PLANET_DATA,
                kind="planets",
                fingerprint=fingerprint,
            ),
            self._narrate(
                self.narratives.interpret_houses(subject.name, houses) if houses else None,
                fallback=NO_HOUSE_DATA,
                kind="houses",
                fingerprint=fingerprint,
            ),
        )

        result = AnalysisResult(
            big3=big3,
            planets=tuple(planets),
            houses=tuple(houses),
            planet_interpretation=sanitize_narrative(planet_text),
            house_interpretation=sanitize_narrative(house_text),
        )
        if planet_degraded or house_degraded:
            logger.info("Degraded analysis not cached fingerprint=%s", fingerprint[:12])
        else:
            self.cache.store(subject, result)
        return result

    async def validate_location(self, query: str) -> list[Location]:
        return await self.astrology.search_locations(query)

    def clear_cache(self, subject: Optional[Subject] = None) -> None:
        if subject is None:
            self.cache.clear()
            logger.info("Analysis cache cleared")
        else:
            self.cache.forget(subject)
            logger.info("Analysis cache entry cleared fingerprint=%s", subject_fingerprint(subject)[:12])
