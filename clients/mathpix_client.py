# Mathpix Math Recognition Client
"""
Mathpix v3/text adapter for the specialized math recognizer.

Sends one cropped image per request and returns the styled LaTeX with the
provider's confidence. Provider-side errors come back as an explicit
`error` on the result; transport and HTTP status errors are raised.
"""

import base64
import logging
from typing import Optional

import httpx

from clients.base import MathRecognition
from config import CONFIG, MATHPIX_API_KEY, MATHPIX_APP_ID

logger = logging.getLogger(__name__)


class MathpixClient:
    """Async Mathpix client implementing MathRecognitionClient"""

    def __init__(
        self,
        app_id: Optional[str] = None,
        app_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._app_id = app_id if app_id is not None else MATHPIX_APP_ID
        self._app_key = app_key if app_key is not None else MATHPIX_API_KEY
        self._api_url = api_url or CONFIG["mathpix_api_url"]
        self._timeout_seconds = timeout_seconds or CONFIG["mathpix_timeout_s"]
        self._transport = transport

    def is_available(self) -> bool:
        return bool(self._app_id and self._app_key)

    def _client(self) -> httpx.AsyncClient:
        if not self.is_available():
            raise RuntimeError("Mathpix credentials are not configured")
        return httpx.AsyncClient(timeout=self._timeout_seconds, transport=self._transport)

    @staticmethod
    def _to_data_url(image_bytes: bytes) -> str:
        return "data:image/png;base64," + base64.b64encode(image_bytes).decode("ascii")

    async def recognize(self, image_bytes: bytes) -> MathRecognition:
        body = {
            "src": self._to_data_url(image_bytes),
            "formats": ["text", "latex_styled"],
        }
        headers = {"app_id": self._app_id, "app_key": self._app_key}
        async with self._client() as client:
            resp = await client.post(self._api_url, json=body, headers=headers)
            resp.raise_for_status()
            data = resp.json()

        if data.get("error"):
            logger.debug(f"Mathpix returned error payload: {data.get('error')}")
            return MathRecognition(error=str(data.get("error")))

        text = data.get("latex_styled") or data.get("text")
        confidence = data.get("confidence", data.get("confidence_rate"))
        return MathRecognition(
            text=text,
            confidence=float(confidence) if confidence is not None else None,
        )
