from __future__ import annotations

import gzip
import json
from typing import TYPE_CHECKING

import pytest

from codebase_digest import __version__, cli
from codebase_digest.output_construction import OUTPUT_TRUNCATED_MARKER
from codebase_digest.settings import Settings

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_mock import MockerFixture


@pytest.fixture(autouse=True)
def no_default_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CODEBASE_DIGEST_CONFIG", raising=False)
    monkeypatch.setattr("codebase_digest.settings.ENV_FILE", "")


@pytest.mark.unit
def test_parse_args_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--version"])

    assert exc_info.value.code == 0
    captured = capsys.readouterr()
    assert __version__ in captured.out


@pytest.mark.unit
def test_cli_overrides_keep_only_explicit_flags() -> None:
    args = cli.parse_args(
        [
            ".",
            "--no-parallel",
            "-f",
            "json",
            "--include",
            "src/**, *.md,",
            "--no-gitignore",
            "--byte-size",
            "--max-depth",
            "2",
        ],
    )

    assert cli.cli_overrides(args) == {
        "parallel": False,
        "output_format": "json",
        "include_patterns": ["src/**", "*.md"],
        "respect_gitignore": False,
        "include_byte_size": True,
        "max_depth": 2,
    }


@pytest.mark.unit
def test_cli_overrides_empty_without_flags() -> None:
    args = cli.parse_args(["some/dir"])

    assert args.directory == "some/dir"
    assert cli.cli_overrides(args) == {}


@pytest.mark.unit
def test_split_patterns() -> None:
    assert cli.split_patterns(" a/**, ,b.py ") == ["a/**", "b.py"]


@pytest.mark.unit
def test_write_output_truncates_text(tmp_path: Path) -> None:
    out = tmp_path / "digest.txt"
    settings = Settings(output_file=str(out), max_output_size=5)

    cli.write_output("0123456789", settings)

    assert out.read_text(encoding="utf-8") == "01234" + OUTPUT_TRUNCATED_MARKER


@pytest.mark.unit
def test_write_output_caps_bytes_not_characters(tmp_path: Path) -> None:
    out = tmp_path / "digest.txt"
    settings = Settings(output_file=str(out), max_output_size=4)

    cli.write_output("ééé", settings)

    assert out.read_text(encoding="utf-8") == "éé" + OUTPUT_TRUNCATED_MARKER


@pytest.mark.unit
def test_write_output_uses_output_encoding(tmp_path: Path) -> None:
    out = tmp_path / "digest.txt"

    cli.write_output("café", Settings(output_file=str(out), output_encoding="latin1"))

    assert out.read_bytes() == "café".encode("latin-1")


@pytest.mark.unit
def test_write_output_to_stdout(capsys: pytest.CaptureFixture[str]) -> None:
    cli.write_output("digest body", Settings())

    assert capsys.readouterr().out == "digest body"


@pytest.mark.unit
def test_main_writes_output_file(tmp_path: Path) -> None:
    project = tmp_path / "project"
    (project / "src").mkdir(parents=True)
    (project / "src" / "a.js").write_text("console.log(1);", encoding="utf-8")
    output = tmp_path / "digest.json"

    exit_code = cli.main([str(project), "-f", "json", "-o", str(output)])

    assert exit_code == 0
    assert json.loads(output.read_text(encoding="utf-8")) == [{"path": "src/a.js", "content": "console.log(1);"}]


@pytest.mark.unit
def test_main_rejects_missing_directory(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main([str(tmp_path / "missing")])

    assert exit_code == 1
    assert "Error: Directory not found" in capsys.readouterr().err


@pytest.mark.unit
def test_main_rejects_unknown_format_before_processing(
    tmp_path: Path,
    mocker: MockerFixture,
    capsys: pytest.CaptureFixture[str],
) -> None:
    run = mocker.patch.object(cli, "process_with_retry")

    exit_code = cli.main([str(tmp_path), "--format", "pdf"])

    assert exit_code == 1
    assert "Error: Invalid output format: pdf" in capsys.readouterr().err
    run.assert_not_called()


@pytest.mark.unit
def test_main_reports_failure_after_retries(
    tmp_path: Path,
    mocker: MockerFixture,
    capsys: pytest.CaptureFixture[str],
) -> None:
    mocker.patch.object(cli, "process_with_retry", side_effect=RuntimeError("disk on fire"))

    exit_code = cli.main([str(tmp_path), "--retry-count", "0"])

    assert exit_code == 1
    assert "Error: disk on fire" in capsys.readouterr().err


@pytest.mark.unit
def test_main_config_file_then_flags(tmp_path: Path, mocker: MockerFixture) -> None:
    cfg = tmp_path / "digest.json"
    cfg.write_text(json.dumps({"outputFormat": "json", "retryCount": 9, "parallel": False}), encoding="utf-8")
    run = mocker.patch.object(cli, "process_with_retry", return_value="")
    mocker.patch.object(cli, "write_output")

    exit_code = cli.main([str(tmp_path), "--config", str(cfg), "--format", "markdown"])

    assert exit_code == 0
    settings = run.call_args.args[1]
    assert settings.output_format == "markdown"
    assert settings.retry_count == 9
    assert settings.parallel is False


@pytest.mark.unit
def test_main_reads_config_named_by_environment(
    tmp_path: Path,
    mocker: MockerFixture,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    cfg = tmp_path / "digest.yaml"
    cfg.write_text("outputFormat: tree\n", encoding="utf-8")
    monkeypatch.setenv("CODEBASE_DIGEST_CONFIG", str(cfg))
    run = mocker.patch.object(cli, "process_with_retry", return_value="")
    mocker.patch.object(cli, "write_output")

    assert cli.main([str(tmp_path)]) == 0
    assert run.call_args.args[1].output_format == "tree"


@pytest.mark.unit
def test_main_broken_config_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cfg = tmp_path / "digest.json"
    cfg.write_text("{oops", encoding="utf-8")

    exit_code = cli.main([str(tmp_path), "--config", str(cfg)])

    assert exit_code == 1
    assert "Error: Error parsing config file" in capsys.readouterr().err


@pytest.mark.unit
def test_main_compressed_output(tmp_path: Path) -> None:
    project = tmp_path / "project"
    project.mkdir()
    (project / "notes.txt").write_text("compressed digest", encoding="utf-8")
    output = tmp_path / "digest.txt.gz"

    assert cli.main([str(project), "--compress", "-o", str(output)]) == 0
    assert "compressed digest" in gzip.decompress(output.read_bytes()).decode("utf-8")
