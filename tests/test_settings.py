from __future__ import annotations

import json
from pathlib import Path

import pytest

from storybook_magic.errors import SettingsError
from storybook_magic.settings import (
    DEFAULT_ENDPOINT_URL,
    ENV_DOWNLOAD_DIR,
    ENV_ENDPOINT_URL,
    FlowSettings,
    load_settings,
)


def test_defaults_match_flow_timing() -> None:
    settings = FlowSettings()

    assert settings.endpoint.url == DEFAULT_ENDPOINT_URL
    assert settings.progress.tick_interval == pytest.approx(0.05)
    assert settings.progress.tick_step == 2
    assert settings.progress.cap == 95
    assert settings.progress.grace_delay == pytest.approx(0.5)
    assert settings.generation.style_name == "Watercolor"


def test_load_yaml_resolves_paths_relative_to_file(tmp_path: Path) -> None:
    config_path = tmp_path / "conf" / "storybook.yaml"
    config_path.parent.mkdir()
    config_path.write_text(
        """
endpoint:
  url: http://service/api/personalize
  timeout: 15
progress:
  tick_interval: 0.01
  grace_delay: 0
export:
  download_dir: pages
generation:
  style_name: Crayon
  identity_strength: 1.4
""",
        encoding="utf-8",
    )

    settings = load_settings(config_path)

    assert settings.endpoint.url == "http://service/api/personalize"
    assert settings.endpoint.timeout == pytest.approx(15.0)
    assert settings.progress.tick_interval == pytest.approx(0.01)
    assert settings.progress.tick_step == 2
    assert settings.progress.grace_delay == 0
    assert settings.export.download_dir == (tmp_path / "conf" / "pages").resolve()
    assert settings.generation.style_name == "Crayon"
    assert settings.generation.identity_strength == pytest.approx(1.4)


def test_load_json(tmp_path: Path) -> None:
    config_path = tmp_path / "storybook.json"
    config_path.write_text(json.dumps({"generation": {"enable_lcm": True}}), encoding="utf-8")

    settings = load_settings(config_path)

    assert settings.generation.enable_lcm is True


def test_load_jsonc_strips_comments(tmp_path: Path) -> None:
    config_path = tmp_path / "storybook.jsonc"
    config_path.write_text(
        '// endpoint\n'
        '{\n'
        '  "endpoint": {"url": "http://x/api"}, /* service */\n'
        '  "generation": {"style_name": "Ink // wash"}\n'
        '}\n',
        encoding="utf-8",
    )

    settings = load_settings(config_path)

    assert settings.endpoint.url == "http://x/api"
    assert settings.generation.style_name == "Ink // wash"


@pytest.mark.parametrize(("raw", "expected"), [('"false"', False), ("'no'", False), ("true", True), ("'on'", True)])
def test_logging_to_file_accepts_quoted_flags(tmp_path: Path, raw: str, expected: bool) -> None:
    config_path = tmp_path / "storybook.yaml"
    config_path.write_text(f"logging:\n  to_file: {raw}\n", encoding="utf-8")

    assert load_settings(config_path).logging.to_file is expected


@pytest.mark.parametrize(
    "content",
    [
        "- just\n- a list\n",
        "generation:\n  bogus_knob: 1\n",
        "generation:\n  num_steps: many\n",
        "progress: 3\n",
        "endpoint:\n  timeout: soon\n",
        "endpoint: [unclosed\n",
        "logging:\n  to_file: sometimes\n",
    ],
)
def test_invalid_files_raise_settings_error(tmp_path: Path, content: str) -> None:
    config_path = tmp_path / "storybook.yaml"
    config_path.write_text(content, encoding="utf-8")

    with pytest.raises(SettingsError):
        load_settings(config_path)


def test_empty_file_yields_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "storybook.yaml"
    config_path.write_text("", encoding="utf-8")

    assert load_settings(config_path).generation == FlowSettings().generation


def test_environment_overrides_file_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(ENV_ENDPOINT_URL, " http://env/api ")
    monkeypatch.setenv(ENV_DOWNLOAD_DIR, str(tmp_path / "env-downloads"))
    settings = FlowSettings()

    settings.apply_environment(tmp_path / "missing.env")

    assert settings.endpoint.url == "http://env/api"
    assert settings.export.download_dir == tmp_path / "env-downloads"


def test_dotenv_file_is_read(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # set-then-delete so teardown also removes what load_dotenv writes
    monkeypatch.setenv(ENV_ENDPOINT_URL, "placeholder")
    monkeypatch.delenv(ENV_ENDPOINT_URL)
    monkeypatch.delenv(ENV_DOWNLOAD_DIR, raising=False)
    dotenv_path = tmp_path / ".env"
    dotenv_path.write_text(f"{ENV_ENDPOINT_URL}=http://dotenv/api\n", encoding="utf-8")
    settings = FlowSettings()

    settings.apply_environment(dotenv_path)

    assert settings.endpoint.url == "http://dotenv/api"


def test_cli_overrides_apply_generation_parameters(tmp_path: Path) -> None:
    settings = FlowSettings()

    settings.apply_overrides(
        endpoint_url="http://cli/api",
        download_dir=tmp_path,
        log_level="debug",
        parameters={"num_steps": 12},
    )

    assert settings.endpoint.url == "http://cli/api"
    assert settings.export.download_dir == tmp_path.resolve()
    assert settings.logging.level == "DEBUG"
    assert settings.generation.num_steps == 12
