"""Outbound translation proxy (LibreTranslate-compatible)."""

import logging
from typing import Any, Optional

import httpx

from berrymx.core.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class TranslationClient:
    """转发文本到翻译服务"""

    def __init__(self, url: str, api_key: str = "", timeout: float = 15.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @staticmethod
    def _extract_text(data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        if isinstance(data.get("translatedText"), str):
            return data["translatedText"]
        translations = data.get("translations")
        if isinstance(translations, list) and translations:
            entry = translations[0]
            if isinstance(entry, dict) and isinstance(entry.get("translatedText"), str):
                return entry["translatedText"]
        return None

    async def translate(self, text: str, source: str = "tr", target: str = "en") -> str:
        if not self.url:
            raise UpstreamError("Translate URL not configured")

        payload = {"q": text, "source": source, "target": target, "format": "text"}
        if self.api_key:
            payload["api_key"] = self.api_key

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)
        except httpx.InvalidURL as e:
            logger.error(f"Invalid translate URL {self.url}: {str(e)}")
            raise UpstreamError("Invalid translate URL")
        except httpx.HTTPError as e:
            logger.error(f"Translate request failed: {str(e)}")
            raise UpstreamError("Translate failed")

        if not response.is_success:
            logger.warning(f"Translate upstream returned {response.status_code}")
            raise UpstreamError(f"Translate failed ({response.status_code})")

        try:
            data = response.json()
        except ValueError:
            raise UpstreamError("Translate response invalid")

        translated = self._extract_text(data)
        if translated is None:
            raise UpstreamError("Translate response missing text")
        return translated
