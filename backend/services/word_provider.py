"""
Word Provider — secret word + category for each round.

Words come from Gemini when a key is configured, in per-category batches that
are cached in-process for `word_cache_ttl_seconds`. Any failure (missing key,
library not installed, rate limit, empty answer) falls back to the static
corpus below, so a round always gets a word.
"""
import asyncio
import logging
import random
import re
import time
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from config import settings

logger = logging.getLogger(__name__)


class WordChoice(BaseModel):
    word: str
    category: str


# ── Static fallback corpus ────────────────────────────────────────────────────
BASE_WORDS: Dict[str, List[str]] = {
    "objetos": [
        "mesa", "silla", "lápiz", "libro", "teléfono",
        "computadora", "ventana", "puerta", "cama", "espejo",
    ],
    "animales": [
        "perro", "gato", "león", "tigre", "elefante",
        "jirafa", "mono", "oso", "lobo", "zorro",
    ],
    "comida": [
        "pizza", "hamburguesa", "manzana", "plátano", "naranja",
        "arroz", "pasta", "pan", "queso", "leche",
    ],
    "lugares": [
        "playa", "montaña", "ciudad", "pueblo", "bosque",
        "desierto", "río", "lago", "océano", "isla",
    ],
    "profesiones": [
        "médico", "profesor", "cocinero", "bombero", "policía",
        "ingeniero", "arquitecto", "abogado", "periodista", "fotógrafo",
    ],
}

# Gemini may draw from a wider set than the static corpus covers.
GENERATED_CATEGORIES: List[str] = list(BASE_WORDS) + [
    "deportes", "películas", "tecnología", "naturaleza", "música", "ciencia",
]

_NUMBERING = re.compile(r"^\s*(\d+[.)]|[-*•])\s*")


def _is_rate_limit(exc: Exception) -> bool:
    code = getattr(exc, "code", None) or getattr(exc, "status_code", None)
    return code == 429 or "RESOURCE_EXHAUSTED" in str(exc) or "429" in str(exc)


def parse_word_lines(text: str, count: int) -> List[str]:
    """One word per line; drop numbering/bullets, blank lines and duplicates."""
    words: List[str] = []
    for line in text.splitlines():
        word = _NUMBERING.sub("", line).strip().strip(".,;:\"'")
        if word and word.lower() not in (w.lower() for w in words):
            words.append(word)
    return words[:count]


class WordProvider:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        batch_size: Optional[int] = None,
        cache_ttl: Optional[float] = None,
        min_interval: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self.api_key = settings.gemini_api_key if api_key is None else api_key
        self.model = model or settings.word_model
        self.batch_size = batch_size or settings.word_batch_size
        self.cache_ttl = settings.word_cache_ttl_seconds if cache_ttl is None else cache_ttl
        self.min_interval = settings.gemini_min_interval_seconds if min_interval is None else min_interval
        self.rng = rng or random.Random()

        self._client: Optional[Any] = None
        self._unavailable = not self.api_key  # True when import fails or API key is absent
        self._cache: Dict[Tuple[str, int], Tuple[float, List[str]]] = {}
        self._rate_lock = asyncio.Lock()
        self._last_request = 0.0

    @property
    def available(self) -> bool:
        return not self._unavailable

    # ── Public API ────────────────────────────────────────────────────────────

    async def get_random_word(self, category: Optional[str] = None) -> WordChoice:
        """Never raises: generation problems fall back to the static corpus."""
        if self.available:
            selected = category or self.rng.choice(GENERATED_CATEGORIES)
            words = await self._generated_words(selected, self.batch_size)
            if words:
                return WordChoice(word=self.rng.choice(words), category=selected)
        return self.random_base_word(category)

    async def get_words_for_category(self, category: str, count: int = 10) -> List[str]:
        if self.available:
            words = await self._generated_words(category, count)
            if words:
                return words
        return list(BASE_WORDS.get(category, BASE_WORDS["objetos"]))[:count]

    def random_base_word(self, category: Optional[str] = None) -> WordChoice:
        selected = category if category in BASE_WORDS else self.rng.choice(list(BASE_WORDS))
        return WordChoice(word=self.rng.choice(BASE_WORDS[selected]), category=selected)

    # ── Gemini ────────────────────────────────────────────────────────────────

    async def _generated_words(self, category: str, count: int) -> List[str]:
        key = (category, count)
        cached = self._cache.get(key)
        if cached and cached[0] > time.monotonic():
            return cached[1]

        raw = await self._call_gemini(self._prompt(category, count))
        if not raw:
            return []
        words = parse_word_lines(raw, count)
        if words:
            self._cache[key] = (time.monotonic() + self.cache_ttl, words)
            logger.info("[words] Generated %d words for '%s'", len(words), category)
        else:
            logger.warning("[words] Gemini returned no usable words for '%s' — using fallback", category)
        return words

    @staticmethod
    def _prompt(category: str, count: int) -> str:
        return (
            f"Genera {count} palabras en español relacionadas con la categoría \"{category}\".\n"
            f"Las palabras deben ser:\n"
            f"- Sustantivos comunes\n"
            f"- Fáciles de entender\n"
            f"- Apropiadas para un juego familiar\n"
            f"- Una palabra por línea, sin numeración ni puntos\n\n"
            f"Solo devuelve las palabras, sin explicaciones adicionales."
        )

    async def _wait_for_rate_limit(self) -> None:
        async with self._rate_lock:
            wait = self._last_request + self.min_interval - time.monotonic()
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request = time.monotonic()

    async def _call_gemini(self, prompt: str) -> Optional[str]:
        """Return raw text from a single Gemini generate_content call, or None on failure."""
        if self._unavailable:
            return None

        if self._client is None:
            try:
                from google import genai
            except ImportError:
                self._unavailable = True
                logger.warning("[words] google-genai not installed — using fallback corpus")
                return None
            self._client = genai.Client(api_key=self.api_key)

        await self._wait_for_rate_limit()
        try:
            from google.genai import types
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    temperature=1.0,
                    max_output_tokens=200,
                ),
            )
            return response.text.strip() if response.text else None
        except Exception as exc:
            if _is_rate_limit(exc):
                logger.warning("[words] Gemini rate limit reached — using fallback corpus")
            else:
                logger.error("[words] Gemini call failed: %s", exc)
            return None
