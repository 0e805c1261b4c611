"""Closed-schema parameter record sent to the generation endpoint."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Mapping, Tuple

from ..errors import InvalidParameterType, UnknownParameter

IMAGE_INPUT_KEY = "image"

# Field name -> declared kind ("string", "number" or "boolean").
PARAMETER_KINDS: Dict[str, str] = {
    "prompt": "string",
    "negative_prompt": "string",
    "style_name": "string",
    "identity_strength": "number",
    "adapter_strength": "number",
    "guidance_scale": "number",
    "num_steps": "number",
    "seed": "number",
    "randomize_seed": "boolean",
    "enhance_face_region": "boolean",
    "enable_lcm": "boolean",
}

_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


def _matches_kind(kind: str, value: Any) -> bool:
    if kind == "boolean":
        return isinstance(value, bool)
    if kind == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return isinstance(value, str)


@dataclass(frozen=True)
class GenerationConfig:
    prompt: str = (
        "a whimsical storybook illustration of a child, watercolor, "
        "soft pastel palette, highly detailed"
    )
    negative_prompt: str = "photograph, photorealistic, blurry, lowres, deformed, text, watermark"
    style_name: str = "Watercolor"
    identity_strength: float = 0.8
    adapter_strength: float = 0.8
    guidance_scale: float = 5.0
    num_steps: int = 30
    seed: int = 42
    randomize_seed: bool = True
    enhance_face_region: bool = True
    enable_lcm: bool = False

    @classmethod
    def default(cls) -> "GenerationConfig":
        return cls()

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "GenerationConfig":
        return cls.default().with_overrides(raw or {})

    @staticmethod
    def parameter_names() -> Tuple[str, ...]:
        return tuple(field.name for field in fields(GenerationConfig))

    def override(self, key: str, value: Any) -> "GenerationConfig":
        """Return a copy with exactly one parameter changed.

        Ranges are not checked: the downstream service accepts strengths
        outside 0..1 and so does this record.
        """

        kind = PARAMETER_KINDS.get(key)
        if kind is None:
            raise UnknownParameter(f"Unknown generation parameter: {key!r}")
        if not _matches_kind(kind, value):
            raise InvalidParameterType(
                f"Parameter {key!r} expects a {kind}, got {type(value).__name__}"
            )
        return replace(self, **{key: value})

    def with_overrides(self, overrides: Mapping[str, Any]) -> "GenerationConfig":
        updated = self
        for key, value in overrides.items():
            updated = updated.override(str(key), value)
        return updated

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def coerce(key: str, text: str) -> Any:
    """Parse a ``key=value`` command-line string into the field's type."""

    kind = PARAMETER_KINDS.get(key)
    if kind is None:
        raise UnknownParameter(f"Unknown generation parameter: {key!r}")
    if kind == "string":
        return text
    if kind == "boolean":
        lowered = text.strip().lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise InvalidParameterType(f"Parameter {key!r} expects a boolean, got {text!r}")
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError as exc:
        raise InvalidParameterType(f"Parameter {key!r} expects a number, got {text!r}") from exc


__all__ = ["GenerationConfig", "IMAGE_INPUT_KEY", "PARAMETER_KINDS", "coerce"]
