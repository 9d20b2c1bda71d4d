"""
Service gateway: POST to Gemini generateContent and return the raw JSON body.
The API key is checked before anything touches the network. No retries.
"""
import logging
import time
from typing import Any

import httpx

from fusion.services.image_generation.base import (
    ConfigurationError,
    TransportError,
    build_gemini_error_detail,
)
from fusion.utils.metrics import gemini_call_latency_seconds, gemini_calls_total

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com"


class GeminiGateway:
    """One short-lived httpx.AsyncClient per call; nothing is shared between calls."""

    def __init__(
        self,
        api_key: str | None,
        api_endpoint: str | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        endpoint = (api_endpoint or DEFAULT_ENDPOINT).rstrip("/")
        self.base_url = f"{endpoint}/v1beta/models"
        self.timeout = float(timeout)
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Any, transport: httpx.AsyncBaseTransport | None = None) -> "GeminiGateway":
        return cls(
            api_key=getattr(settings, "gemini_api_key", ""),
            api_endpoint=getattr(settings, "gemini_api_endpoint", DEFAULT_ENDPOINT),
            timeout=getattr(settings, "gemini_timeout", 120.0),
            transport=transport,
        )

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def call(self, payload: dict[str, Any], model: str, *, call: str = "generate") -> dict[str, Any]:
        """
        Send payload to models/{model}:generateContent.

        Raises:
            ConfigurationError: API key not configured (no request is made)
            TransportError: non-2xx status, timeout, connection failure or unreadable body
        """
        if not self.is_available():
            raise ConfigurationError("API_KEY environment variable not set")

        url = f"{self.base_url}/{model}:generateContent"
        params = {"key": self.api_key}
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(url, params=params, json=payload)
                resp.raise_for_status()
                result = resp.json()
        except httpx.HTTPStatusError as e:
            try:
                err_body = e.response.json()
            except ValueError:
                err_body = {}
            if not isinstance(err_body, dict):
                err_body = {}
            detail = build_gemini_error_detail(err_body)
            detail["http_status"] = e.response.status_code
            if e.response.status_code == 429:
                retry_after = e.response.headers.get("Retry-After")
                if retry_after is not None:
                    detail["retry_after"] = retry_after
            error_obj = err_body.get("error")
            msg = error_obj.get("message", str(e)) if isinstance(error_obj, dict) else str(e)
            self._record(call, model, "http_error", started, detail)
            raise TransportError(msg, detail=detail) from e
        except httpx.TimeoutException as e:
            self._record(call, model, "timeout", started, {})
            raise TransportError(f"Gemini request timed out after {self.timeout}s", detail={"timeout": self.timeout}) from e
        except httpx.HTTPError as e:
            self._record(call, model, "network_error", started, {})
            raise TransportError(str(e) or type(e).__name__, detail={}) from e
        except ValueError as e:
            self._record(call, model, "invalid_body", started, {})
            raise TransportError("Gemini response is not valid JSON", detail={}) from e

        if not isinstance(result, dict):
            self._record(call, model, "invalid_body", started, {})
            raise TransportError("Gemini response is not a JSON object", detail={})

        self._record(call, model, "ok", started, {})
        return result

    @staticmethod
    def _record(call: str, model: str, outcome: str, started: float, detail: dict[str, Any]) -> None:
        elapsed = time.monotonic() - started
        gemini_calls_total.labels(call=call, outcome=outcome).inc()
        gemini_call_latency_seconds.labels(call=call).observe(elapsed)
        extra = {"call": call, "model": model, "latency_ms": round(elapsed * 1000)}
        if outcome == "ok":
            logger.info("gemini_call_ok", extra=extra)
            return
        if detail.get("http_status") is not None:
            extra["http_status"] = detail["http_status"]
        extra["error"] = outcome
        logger.warning("gemini_call_failed", extra=extra)
