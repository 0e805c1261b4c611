"""Storybook Magic: turn a photo into a personalized storybook illustration."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - type checking helper
    from .export import ExportedArtifact, ResultExporter
    from .flow import FlowState, PersonalizationOrchestrator
    from .generation import GenerationConfig, HttpGenerationClient
    from .ingest import ImageIngestor, ImageSelection, RawImage
    from .settings import FlowSettings, load_settings

__all__ = [
    "ExportedArtifact",
    "FlowSettings",
    "FlowState",
    "GenerationConfig",
    "HttpGenerationClient",
    "ImageIngestor",
    "ImageSelection",
    "PersonalizationOrchestrator",
    "RawImage",
    "ResultExporter",
    "load_settings",
]

_MODULES = {
    "ExportedArtifact": ".export",
    "ResultExporter": ".export",
    "FlowState": ".flow",
    "PersonalizationOrchestrator": ".flow",
    "GenerationConfig": ".generation",
    "HttpGenerationClient": ".generation",
    "ImageIngestor": ".ingest",
    "ImageSelection": ".ingest",
    "RawImage": ".ingest",
    "FlowSettings": ".settings",
    "load_settings": ".settings",
}


def __getattr__(name: str) -> Any:  # pragma: no cover - dispatch helper
    module_name = _MODULES.get(name)
    if module_name is None:
        raise AttributeError(name)
    value = getattr(import_module(module_name, __name__), name)
    globals()[name] = value
    return value
