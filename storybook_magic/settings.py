from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .errors import InvalidParameterType, SettingsError, UnknownParameter
from .generation.config import GenerationConfig

DEFAULT_ENDPOINT_URL = "http://localhost:8000/api/personalize"

ENV_ENDPOINT_URL = "STORYBOOK_ENDPOINT_URL"
ENV_DOWNLOAD_DIR = "STORYBOOK_DOWNLOAD_DIR"

_JSON_SUFFIXES = {".json", ".jsonc"}
# String literals are matched first so comment markers inside them survive.
_JSONC_TOKEN = re.compile(r'"(?:\\.|[^"\\])*"|//[^\n]*|/\*.*?\*/', re.DOTALL)
_TRUE_WORDS = {"1", "true", "yes", "on"}
_FALSE_WORDS = {"0", "false", "no", "off"}


@dataclass
class EndpointSettings:
    url: str = DEFAULT_ENDPOINT_URL
    timeout: float = 120.0


@dataclass
class ProgressSettings:
    tick_interval: float = 0.05
    tick_step: int = 2
    cap: int = 95
    grace_delay: float = 0.5

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "ProgressSettings":
        if not raw:
            return cls()
        return cls(
            tick_interval=float(raw.get("tick_interval", 0.05)),
            tick_step=int(raw.get("tick_step", 2)),
            cap=int(raw.get("cap", 95)),
            grace_delay=float(raw.get("grace_delay", 0.5)),
        )


@dataclass
class ExportSettings:
    download_dir: Path = Path("downloads")
    fetch_timeout: float = 30.0


@dataclass
class LoggingSettings:
    level: str = "INFO"
    to_file: bool = False
    log_file: Path = Path("storybook.log")


@dataclass
class FlowSettings:
    endpoint: EndpointSettings = field(default_factory=EndpointSettings)
    progress: ProgressSettings = field(default_factory=ProgressSettings)
    export: ExportSettings = field(default_factory=ExportSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    generation: GenerationConfig = field(default_factory=GenerationConfig.default)
    path: Optional[Path] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "FlowSettings":
        endpoint_data = _section(raw, "endpoint")
        export_data = _section(raw, "export")
        logging_data = _section(raw, "logging")

        try:
            endpoint = EndpointSettings(
                url=str(endpoint_data.get("url", DEFAULT_ENDPOINT_URL)),
                timeout=float(endpoint_data.get("timeout", 120.0)),
            )
            progress = ProgressSettings.from_mapping(_section(raw, "progress"))
            export = ExportSettings(
                download_dir=Path(str(export_data.get("download_dir", "downloads"))),
                fetch_timeout=float(export_data.get("fetch_timeout", 30.0)),
            )
            logging_cfg = LoggingSettings(
                level=str(logging_data.get("level", "INFO")).upper(),
                to_file=_flag(logging_data.get("to_file", False), "logging.to_file"),
                log_file=Path(str(logging_data.get("log_file", "storybook.log"))),
            )
        except (TypeError, ValueError) as exc:
            raise SettingsError(f"Invalid settings value: {exc}") from exc

        try:
            generation = GenerationConfig.from_mapping(_section(raw, "generation"))
        except (UnknownParameter, InvalidParameterType) as exc:
            raise SettingsError(f"Invalid generation block: {exc}") from exc

        return cls(
            endpoint=endpoint,
            progress=progress,
            export=export,
            logging=logging_cfg,
            generation=generation,
        )

    def resolve_paths(self) -> None:
        if self.path is None:
            return
        base = self.path.parent
        if not self.export.download_dir.is_absolute():
            self.export.download_dir = (base / self.export.download_dir).resolve()
        if not self.logging.log_file.is_absolute():
            self.logging.log_file = (base / self.logging.log_file).resolve()

    def apply_environment(self, dotenv_path: Optional[Path] = None) -> None:
        load_dotenv(dotenv_path)
        url = os.getenv(ENV_ENDPOINT_URL)
        if url:
            self.endpoint.url = url.strip()
        download_dir = os.getenv(ENV_DOWNLOAD_DIR)
        if download_dir:
            self.export.download_dir = Path(download_dir)

    def apply_overrides(
        self,
        endpoint_url: Optional[str] = None,
        download_dir: Optional[Path] = None,
        log_level: Optional[str] = None,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if endpoint_url:
            self.endpoint.url = endpoint_url
        if download_dir is not None:
            self.export.download_dir = download_dir.resolve()
        if log_level:
            self.logging.level = log_level.upper()
        if parameters:
            self.generation = self.generation.with_overrides(parameters)


def _section(raw: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, Mapping):
        raise SettingsError(f"Section '{key}' must be a mapping")
    return dict(value)


def _flag(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise SettingsError(f"'{name}' must be a boolean, got {value!r}")


def _strip_comments(text: str) -> str:
    return _JSONC_TOKEN.sub(lambda m: m.group(0) if m.group(0).startswith('"') else "", text)


def load_settings(path: Path) -> FlowSettings:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    try:
        if suffix in _JSON_SUFFIXES:
            data = json.loads(_strip_comments(text))
        else:
            data = yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise SettingsError(f"Cannot parse {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise SettingsError("Settings file must contain a mapping at the top level")
    settings = FlowSettings.from_dict(data)
    settings.path = path.resolve()
    settings.resolve_paths()
    return settings


__all__ = [
    "EndpointSettings",
    "ExportSettings",
    "FlowSettings",
    "LoggingSettings",
    "ProgressSettings",
    "load_settings",
]
