"""City descriptions from Gemini, with a no-op fallback.

Missing GEMINI_API_KEY never fails a request: callers get a provider whose
describe() returns None and the description is simply left out.
"""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

GEMINI_API_URL_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_TIMEOUT_SECONDS = 60

PROMPT_TEMPLATE = (
    "Write a short, factual description of {city}, {state} for a real-estate "
    "marketing audience: character of the area, lifestyle and what residents "
    "enjoy nearby. Two to three sentences, no superlatives you cannot support. "
    'Respond with JSON only: {{"description": "..."}}'
)


@dataclass(frozen=True)
class DescriptionResult:
    status: str
    description: Optional[str]
    model: str
    error: Optional[str] = None


def _strip_code_fences(text: str) -> str:
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    stripped = re.sub(r"^```(?:json)?", "", stripped, flags=re.IGNORECASE).strip()
    stripped = re.sub(r"```$", "", stripped).strip()
    return stripped


def parse_description(text: str) -> Tuple[Optional[str], Optional[str]]:
    """Pull a description out of model output; plain prose is accepted too."""
    candidate = _strip_code_fences(text)
    start = candidate.find("{")
    end = candidate.rfind("}")
    if start != -1 and end > start:
        try:
            parsed = json.loads(candidate[start : end + 1])
        except json.JSONDecodeError as exc:
            return None, f"json_decode_error: {exc}"
        description = parsed.get("description") if isinstance(parsed, dict) else None
        if isinstance(description, str) and description.strip():
            return description.strip(), None
        return None, "missing_description"
    if candidate:
        return candidate, None
    return None, "empty_response"


class BaseCityDescriptionClient:
    def describe(self, city: str, state: str) -> DescriptionResult:
        raise NotImplementedError


class NoopCityDescriptionClient(BaseCityDescriptionClient):
    def __init__(self, reason: str = "skipped_no_api_key") -> None:
        self.reason = reason

    def describe(self, city: str, state: str) -> DescriptionResult:
        return DescriptionResult(status=self.reason, description=None, model="noop")


class GeminiCityDescriptionClient(BaseCityDescriptionClient):
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_GEMINI_MODEL,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    @classmethod
    def from_env(cls) -> BaseCityDescriptionClient:
        api_key = os.environ.get("GEMINI_API_KEY")
        if not api_key:
            return NoopCityDescriptionClient("skipped_no_api_key")
        model = os.environ.get("GEMINI_MODEL", DEFAULT_GEMINI_MODEL)
        return cls(api_key=api_key, model=model)

    def _redact(self, text: str) -> str:
        if not text:
            return text
        return text.replace(self.api_key, "[REDACTED]")

    def _call_api(self, prompt_text: str) -> Tuple[str, Optional[str]]:
        url = f"{GEMINI_API_URL_TEMPLATE.format(model=self.model)}?key={self.api_key}"
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt_text}]}],
            "generationConfig": {
                "temperature": 0.3,
                "responseMimeType": "application/json",
            },
        }
        try:
            resp = self.session.post(url, json=payload, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            return "", f"request_error: {exc}"
        if resp.status_code >= 400:
            return resp.text, f"http_error: {resp.status_code}"
        try:
            data = resp.json()
        except ValueError as exc:
            return resp.text, f"non_json_response: {exc}"
        candidates = data.get("candidates") or []
        if not candidates:
            return "", "no_candidates"
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = parts[0].get("text") if parts else None
        if not isinstance(text, str):
            return "", "missing_text_part"
        return text, None

    def describe(self, city: str, state: str) -> DescriptionResult:
        raw_text, error = self._call_api(PROMPT_TEMPLATE.format(city=city, state=state))
        if error:
            safe_error = self._redact(error)
            logger.warning("City description request failed for %s, %s: %s", city, state, safe_error)
            return DescriptionResult(status="error", description=None, model=self.model, error=safe_error)
        description, parse_error = parse_description(raw_text)
        if parse_error:
            return DescriptionResult(status="invalid_json", description=None, model=self.model, error=parse_error)
        return DescriptionResult(status="ok", description=description, model=self.model)
