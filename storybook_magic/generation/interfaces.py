from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Protocol

from .config import IMAGE_INPUT_KEY, GenerationConfig


@dataclass(frozen=True)
class GenerationRequest:
    config: GenerationConfig
    image_data_uri: str

    def to_payload(self) -> Dict[str, Any]:
        payload = self.config.as_dict()
        payload[IMAGE_INPUT_KEY] = self.image_data_uri
        return payload


@dataclass(frozen=True)
class GenerationResult:
    remote_image_ref: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


class GenerationClientProtocol(Protocol):
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Submit the request and return the remote result reference."""
