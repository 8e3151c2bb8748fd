import asyncio
import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import httpx
from openai import AsyncOpenAI

from spirit_report import config
from spirit_report.errors import GenerationError
from spirit_report.models import HousePlacement, Placement
from spirit_report.prompts import HOUSE_PROMPT_TEMPLATE, PLANET_PROMPT_TEMPLATE, SYSTEM_PROMPT

logger = logging.getLogger("spirit_report")
llm_audit_logger = logging.getLogger("llm_audit")


def _utc_iso_now() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _canonical_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def _sha256_hex(value: Any) -> str:
    return hashlib.sha256(_canonical_json(value).encode("utf-8")).hexdigest()


def build_planet_prompt(name: str, planets: Sequence[Placement]) -> str:
    records = [p.model_dump() for p in planets]
    return PLANET_PROMPT_TEMPLATE.format(
        name=name,
        planet_names=", ".join(p.name for p in planets),
        placements_json=json.dumps(records, indent=2, ensure_ascii=False),
    )


def build_house_prompt(name: str, houses: Sequence[HousePlacement]) -> str:
    records = [h.model_dump() for h in houses]
    return HOUSE_PROMPT_TEMPLATE.format(
        name=name,
        placements_json=json.dumps(records, indent=2, ensure_ascii=False),
    )


def build_openai_client() -> tuple[Optional[AsyncOpenAI], Optional[httpx.AsyncClient]]:
    if not config.OPENAI_API_KEY:
        return None, None

    timeout = httpx.Timeout(connect=10.0, read=120.0, write=120.0, pool=120.0)
    try:
        http_client = httpx.AsyncClient(timeout=timeout, trust_env=True)
        client_kwargs: dict[str, Any] = {"api_key": config.OPENAI_API_KEY, "http_client": http_client}
        if config.OPENAI_BASE_URL:
            client_kwargs["base_url"] = config.OPENAI_BASE_URL
        client = AsyncOpenAI(**client_kwargs)
        logger.info("OpenAI client initialized base_url=%s", str(getattr(client, "base_url", "default")))
        return client, http_client
    except Exception as e:
        logger.warning("OpenAI client initialization failed: %s", e)
        return None, None


class NarrativeService:
    """Turns normalized placements into markdown interpretations."""

    def __init__(
        self,
        async_client: Any,
        *,
        model: str = config.OPENAI_MODEL,
        temperature: float = config.NARRATIVE_TEMPERATURE,
        top_p: float = config.NARRATIVE_TOP_P,
        max_tokens: int = config.NARRATIVE_MAX_TOKENS,
        max_concurrency: int = config.NARRATIVE_MAX_CONCURRENCY,
    ):
        self._client = async_client
        self.model = str(model or config.OPENAI_MODEL).strip() or config.OPENAI_MODEL
        self._temperature = float(temperature)
        self._top_p = float(top_p)
        self._max_tokens = int(max_tokens)
        self._semaphore = asyncio.Semaphore(max(1, int(max_concurrency)))

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _build_payload(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature,
            "top_p": self._top_p,
            "max_tokens": self._max_tokens,
        }

    async def generate(self, prompt: str, *, kind: str) -> str:
        if self._client is None:
            raise GenerationError("Narrative client not initialized")

        prompt_hash = _sha256_hex(prompt)
        payload = self._build_payload(prompt)
        logger.info("LLM API call started kind=%s model=%s prompt_hash=%s", kind, self.model, prompt_hash[:12])
        async with self._semaphore:
            try:
                response = await self._client.chat.completions.create(**payload)
            except Exception as e:
                logger.warning(
                    "LLM call failed kind=%s model=%s error_type=%s error=%s",
                    kind,
                    self.model,
                    type(e).__name__,
                    str(e),
                )
                raise GenerationError(f"Narrative generation failed for {kind}") from e

        text = response.choices[0].message.content if response and response.choices else ""
        response_text = text.strip() if isinstance(text, str) else ""
        if not response_text:
            raise GenerationError(
                f"LLM returned empty {kind} narrative. finish_reason: "
                f"{response.choices[0].finish_reason if response and response.choices else 'N/A'}"
            )

        llm_audit_logger.info(
            _canonical_json(
                {
                    "kind": kind,
                    "model_used": self.model,
                    "prompt_hash": prompt_hash,
                    "response_length": len(response_text),
                    "timestamp_utc": _utc_iso_now(),
                }
            )
        )
        return response_text

    async def interpret_planets(self, name: str, planets: Sequence[Placement]) -> str:
        return await self.generate(build_planet_prompt(name, planets), kind="planets")

    async def interpret_houses(self, name: str, houses: Sequence[HousePlacement]) -> str:
        return await self.generate(build_house_prompt(name, houses), kind="houses")
