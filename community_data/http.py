"""HTTP client with retry/backoff and request metrics."""
from __future__ import annotations

import json
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class ProviderError(RuntimeError):
    pass


@dataclass
class RequestMetrics:
    network_search: int = 0
    network_details: int = 0
    dedup_skips_search: int = 0
    dedup_skips_details: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def inc_network(self, kind: str) -> None:
        with self._lock:
            if kind == "search":
                self.network_search += 1
            elif kind == "details":
                self.network_details += 1
            else:
                raise ValueError(f"Unknown request kind: {kind}")

    def inc_dedup_skip(self, kind: str) -> None:
        with self._lock:
            if kind == "search":
                self.dedup_skips_search += 1
            elif kind == "details":
                self.dedup_skips_details += 1
            else:
                raise ValueError(f"Unknown request kind: {kind}")


class HttpClient:
    def __init__(
        self,
        api_key: str,
        timeout: int = 20,
        retry_max: int = 3,
        backoff_base: float = 0.1,
        backoff_max: float = 2.0,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.retry_max = retry_max
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.session = requests.Session()

    def _headers(self, field_mask: str) -> Dict[str, str]:
        return {
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": field_mask,
            "Content-Type": "application/json",
        }

    def post_json(self, url: str, body: Dict[str, Any], field_mask: str) -> Dict[str, Any]:
        payload = json.dumps(body)
        return self._request(
            lambda: self.session.post(url, data=payload, headers=self._headers(field_mask), timeout=self.timeout),
            url,
        )

    def get_json(self, url: str, field_mask: str) -> Dict[str, Any]:
        return self._request(
            lambda: self.session.get(url, headers=self._headers(field_mask), timeout=self.timeout),
            url,
        )

    def _request(self, send, url: str) -> Dict[str, Any]:
        for attempt in range(1, self.retry_max + 1):
            try:
                resp = send()
            except requests.RequestException:
                if attempt >= self.retry_max:
                    raise
                self._sleep_backoff(attempt)
                continue

            status = resp.status_code
            if status == 200:
                try:
                    return resp.json()
                except ValueError:
                    logger.error("Non-JSON response from %s", url)
                    raise

            if status in RETRYABLE_STATUSES:
                logger.warning("HTTP %s from %s (attempt %s)", status, url, attempt)
                if attempt >= self.retry_max:
                    resp.raise_for_status()
                if not self._sleep_retry_after(resp):
                    self._sleep_backoff(attempt)
                continue

            logger.error("HTTP %s from %s", status, url)
            resp.raise_for_status()

        raise RuntimeError("Unexpected HTTP retry loop exit")

    def _sleep_backoff(self, attempt: int) -> None:
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        jitter = random.uniform(0, self.backoff_base)
        time.sleep(base + jitter)

    def _sleep_retry_after(self, resp: requests.Response) -> bool:
        retry_after = resp.headers.get("Retry-After")
        if not retry_after:
            return False
        try:
            delay = float(retry_after)
        except ValueError:
            return False
        delay = max(0.0, min(delay, self.backoff_max))
        time.sleep(delay)
        return True
