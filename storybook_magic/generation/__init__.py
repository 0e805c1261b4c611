"""Generation parameters, request contract and the HTTP endpoint client."""

from .adapter import HttpGenerationClient
from .config import IMAGE_INPUT_KEY, GenerationConfig, coerce
from .interfaces import GenerationClientProtocol, GenerationRequest, GenerationResult

__all__ = [
    "GenerationConfig",
    "GenerationClientProtocol",
    "GenerationRequest",
    "GenerationResult",
    "HttpGenerationClient",
    "IMAGE_INPUT_KEY",
    "coerce",
]
