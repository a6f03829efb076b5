"""
Turkish/English content translation through DeepL.

``BatchTranslator`` fills the ``*_en`` fields of stored content. DeepL
rate-limits aggressively, so calls are spaced out by a fixed delay and a
429 response is retried a few times with a linear backoff.
"""
from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import httpx
from pymongo.database import Database

LOGGER = logging.getLogger(__name__)

DEEPL_PRO_URL = "https://api.deepl.com/v2/translate"
DEEPL_FREE_URL = "https://api-free.deepl.com/v2/translate"

MAX_RETRIES = 3

TURKISH_MONTHS = {
    "ocak": "January",
    "şubat": "February",
    "mart": "March",
    "nisan": "April",
    "mayıs": "May",
    "haziran": "June",
    "temmuz": "July",
    "ağustos": "August",
    "eylül": "September",
    "ekim": "October",
    "kasım": "November",
    "aralık": "December",
}

# content type -> (collection, translatable fields)
TRANSLATABLE: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "announcements": ("announcement", ("title", "description", "content", "gallery_description")),
    "events": ("event", ("title", "description")),
    "projects": ("project", ("title", "description")),
    "team": ("team_member", ("title", "description")),
    "sponsors": ("sponsor", ("name", "description")),
}


class TranslationError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"DeepL API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class DeepLTranslator:
    """Thin synchronous DeepL client."""

    def __init__(self, api_key: str, client: Optional[httpx.Client] = None, timeout: float = 15.0) -> None:
        self.api_key = api_key
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    @property
    def endpoint(self) -> str:
        return DEEPL_FREE_URL if self.api_key.endswith(":fx") else DEEPL_PRO_URL

    def translate(self, text: str, source: str = "tr") -> str:
        target = "EN-US" if source == "tr" else "TR"
        response = self._client.post(
            self.endpoint,
            data={"text": text, "source_lang": source.upper(), "target_lang": target},
            headers={"Authorization": f"DeepL-Auth-Key {self.api_key}"},
        )
        if response.status_code >= 300:
            raise TranslationError(response.status_code, response.text[:200])
        translations = response.json().get("translations") or []
        if not translations:
            return text
        return translations[0].get("text") or text

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "DeepLTranslator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def translate_with_retry(
    translator: DeepLTranslator,
    text: str,
    max_retries: int = MAX_RETRIES,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Translate ``text``, waiting 2s, 4s, ... after each 429 before giving up."""
    for attempt in range(max_retries):
        try:
            return translator.translate(text)
        except TranslationError as exc:
            if exc.status_code != 429 or attempt >= max_retries - 1:
                raise
            delay = (attempt + 1) * 2
            LOGGER.info("DeepL rate limited; retrying in %ss", delay)
            sleep(delay)
    raise TranslationError(429, "retries exhausted")


def translate_date(turkish_date: str) -> str:
    result = turkish_date
    for turkish, english in TURKISH_MONTHS.items():
        result = re.sub(re.escape(turkish), english, result, flags=re.IGNORECASE)
    return result


def needs_translation(doc: Dict[str, Any], field: str) -> bool:
    source = doc.get(field)
    if not isinstance(source, str) or not source.strip():
        return False
    translated = doc.get(f"{field}_en")
    return not translated or translated == source


def _empty_counts() -> Dict[str, int]:
    return {"total": 0, "translated": 0, "skipped": 0, "errors": 0}


class BatchTranslator:
    """Fills missing English fields across the stored content types."""

    def __init__(
        self,
        db: Database,
        translator: DeepLTranslator,
        delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int = MAX_RETRIES,
    ) -> None:
        self.db = db
        self.translator = translator
        self.delay_seconds = delay_seconds
        self.sleep = sleep
        self.max_retries = max_retries
        self.api_calls = 0

    def _translate(self, text: str) -> str:
        if self.api_calls and self.delay_seconds > 0:
            self.sleep(self.delay_seconds)
        self.api_calls += 1
        return translate_with_retry(self.translator, text, self.max_retries, self.sleep)

    def pending_updates(self, content_type: str, doc: Dict[str, Any]) -> Dict[str, str]:
        _, fields = TRANSLATABLE[content_type]
        update: Dict[str, str] = {}
        for field in fields:
            if needs_translation(doc, field):
                update[f"{field}_en"] = self._translate(doc[field])
        if content_type == "announcements" and doc.get("date") and not doc.get("date_en"):
            update["date_en"] = translate_date(doc["date"])
        return update

    def run(self, types: Optional[Iterable[str]] = None) -> Dict[str, Dict[str, int]]:
        selected: List[str] = list(types) if types else list(TRANSLATABLE)
        results: Dict[str, Dict[str, int]] = {}
        for content_type in selected:
            if content_type not in TRANSLATABLE:
                LOGGER.warning("Skipping unknown content type %r", content_type)
                continue
            collection, _ = TRANSLATABLE[content_type]
            counts = results.setdefault(content_type, _empty_counts())
            for doc in list(self.db[collection].find({})):
                counts["total"] += 1
                try:
                    update = self.pending_updates(content_type, doc)
                except (TranslationError, httpx.HTTPError):
                    LOGGER.exception("Failed to translate %s %s", content_type, doc["_id"])
                    counts["errors"] += 1
                    continue
                if not update:
                    counts["skipped"] += 1
                    continue
                self.db[collection].update_one({"_id": doc["_id"]}, {"$set": update})
                counts["translated"] += 1
            LOGGER.info("Batch translation of %s finished: %s", content_type, counts)
        return results


__all__ = [
    "BatchTranslator",
    "DeepLTranslator",
    "TRANSLATABLE",
    "TranslationError",
    "needs_translation",
    "translate_date",
    "translate_with_retry",
]
