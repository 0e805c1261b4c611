from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping

import requests

from ..errors import RemoteGenerationFailed, TransportFailure
from .interfaces import GenerationRequest, GenerationResult

logger = logging.getLogger(__name__)


def _parse_body(data: Any) -> GenerationResult:
    if not isinstance(data, Mapping):
        raise TransportFailure("Generation endpoint returned a non-object JSON body")
    if data.get("success") is not True:
        reason = data.get("error")
        reason = str(reason) if reason is not None else None
        raise RemoteGenerationFailed(
            f"Generation failed: {reason or 'no reason given'}",
            reason=reason,
        )
    image_url = data.get("image_url")
    if not isinstance(image_url, str) or not image_url.strip():
        raise RemoteGenerationFailed("Generation succeeded without an image_url")
    metadata: Dict[str, Any] = {
        str(key): value
        for key, value in data.items()
        if key not in {"success", "image_url", "error"}
    }
    return GenerationResult(remote_image_ref=image_url.strip(), metadata=metadata)


@dataclass
class HttpGenerationClient:
    """Thin wrapper around the JSON generation endpoint."""

    url: str
    timeout: float = 120.0

    def __post_init__(self) -> None:
        self.url = self.url.strip()

    def _post(self, payload: Mapping[str, object]) -> requests.Response:
        try:
            return requests.post(self.url, json=dict(payload), timeout=self.timeout)
        except requests.Timeout as exc:
            raise TransportFailure("Timed out waiting for the generation endpoint") from exc
        except requests.RequestException as exc:
            raise TransportFailure("Failed to reach the generation endpoint") from exc

    def generate_sync(self, request: GenerationRequest) -> GenerationResult:
        response = self._post(request.to_payload())
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            message = response.text.strip() or f"HTTP {response.status_code}"
            raise TransportFailure(f"Generation endpoint error: {message}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise TransportFailure("Invalid JSON payload from the generation endpoint") from exc

        result = _parse_body(data)
        logger.debug("generation endpoint returned %s", result.remote_image_ref)
        return result

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        return await asyncio.to_thread(self.generate_sync, request)


__all__ = ["HttpGenerationClient"]
