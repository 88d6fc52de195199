from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from codebase_digest import settings as settings_module
from codebase_digest.exceptions import ConfigFileError
from codebase_digest.settings import Settings, build_settings, default_config_path, load_config_file

if TYPE_CHECKING:
    from pathlib import Path


@pytest.mark.unit
def test_settings_defaults() -> None:
    settings = Settings()

    assert settings.output_format == "text"
    assert settings.output_file is None
    assert settings.include_patterns == ["**/*"]
    assert settings.exclude_patterns == []
    assert "node_modules" in settings.ignore_patterns
    assert settings.respect_gitignore is True
    assert settings.max_file_size == 1024 * 1024
    assert settings.max_depth is None
    assert settings.binary_files_action == "skip"
    assert settings.timeout == 3_600_000
    assert settings.retry_count == 3
    assert settings.retry_delay == 1000
    assert settings.continue_on_error is True
    assert settings.max_parallel_processes >= 1


@pytest.mark.unit
def test_with_overrides_accepts_camel_case_and_ignores_unknown_keys() -> None:
    base = Settings()

    updated = base.with_overrides({"outputFormat": "json", "respect_gitignore": False, "colorOutput": False})

    assert updated.output_format == "json"
    assert updated.respect_gitignore is False
    assert base.output_format == "text"
    assert base.respect_gitignore is True


@pytest.mark.unit
def test_settings_are_frozen() -> None:
    settings = Settings()

    with pytest.raises(ValueError, match="frozen"):
        settings.output_format = "json"  # type: ignore[misc]


@pytest.mark.unit
def test_infinite_max_depth_means_unbounded() -> None:
    settings = Settings().with_overrides({"maxDepth": float("inf")})

    assert settings.max_depth is None


@pytest.mark.unit
def test_extension_lists_are_normalized() -> None:
    settings = Settings(binary_file_extensions=[".PNG", "Bin"])

    assert settings.binary_file_extensions == ["png", "bin"]


@pytest.mark.unit
def test_load_config_file_reads_json_with_infinity(tmp_path: Path) -> None:
    cfg = tmp_path / "digest.json"
    cfg.write_text('{"outputFormat": "markdown", "maxDepth": Infinity}', encoding="utf-8")

    data = load_config_file(cfg)

    assert data["outputFormat"] == "markdown"
    assert Settings().with_overrides(data).max_depth is None


@pytest.mark.unit
def test_load_config_file_reads_yaml(tmp_path: Path) -> None:
    cfg = tmp_path / "digest.yaml"
    cfg.write_text("outputFormat: xml\nexcludePatterns:\n  - '**/*.md'\n", encoding="utf-8")

    data = load_config_file(cfg)

    assert data == {"outputFormat": "xml", "excludePatterns": ["**/*.md"]}


@pytest.mark.unit
def test_load_config_file_missing_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigFileError, match="Config file not found"):
        load_config_file(tmp_path / "nope.json")


@pytest.mark.unit
def test_load_config_file_rejects_non_object(tmp_path: Path) -> None:
    cfg = tmp_path / "digest.json"
    cfg.write_text(json.dumps(["text"]), encoding="utf-8")

    with pytest.raises(ConfigFileError, match="must contain an object"):
        load_config_file(cfg)


@pytest.mark.unit
def test_load_config_file_rejects_invalid_json(tmp_path: Path) -> None:
    cfg = tmp_path / "digest.json"
    cfg.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigFileError, match="Error parsing config file"):
        load_config_file(cfg)


@pytest.mark.unit
def test_build_settings_cli_overrides_win_over_config_file(tmp_path: Path) -> None:
    cfg = tmp_path / "digest.json"
    cfg.write_text(json.dumps({"outputFormat": "json", "retryCount": 7}), encoding="utf-8")

    settings = build_settings({"output_format": "csv"}, config_file=cfg)

    assert settings.output_format == "csv"
    assert settings.retry_count == 7


@pytest.mark.unit
def test_build_settings_wraps_validation_errors() -> None:
    with pytest.raises(ConfigFileError, match="Invalid configuration"):
        build_settings({"max_file_size": -1})


@pytest.mark.unit
def test_default_config_path_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CODEBASE_DIGEST_CONFIG", "/etc/digest.json")

    assert default_config_path() == "/etc/digest.json"


@pytest.mark.unit
def test_default_config_path_falls_back_to_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("CODEBASE_DIGEST_CONFIG=from-dotenv.yaml\n", encoding="utf-8")
    monkeypatch.delenv("CODEBASE_DIGEST_CONFIG", raising=False)
    monkeypatch.setattr(settings_module, "ENV_FILE", str(env_file))

    assert default_config_path() == "from-dotenv.yaml"


@pytest.mark.unit
def test_default_config_path_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CODEBASE_DIGEST_CONFIG", raising=False)
    monkeypatch.setattr(settings_module, "ENV_FILE", "")

    assert default_config_path() is None
