"""Config loading tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from procchain.lib.config.settings import ProcchainConfig, load_config
from procchain.lib.exec.pipeline import PipelineOptions


def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


def test_missing_default_file_returns_defaults(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.chdir(tmp_path)

    assert load_config(env={}) == ProcchainConfig()


def test_default_file_in_working_directory_is_read(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    _write(tmp_path / "procchain.toml", "[timeouts]\nseconds = 12\nkill_grace_seconds = 0.5\n")
    monkeypatch.chdir(tmp_path)

    assert load_config(env={}) == ProcchainConfig(timeout_seconds=12.0, kill_grace_seconds=0.5)


def test_top_level_keys_are_accepted(tmp_path: Path) -> None:
    path = _write(tmp_path / "custom.toml", "timeout_seconds = 3.5\n")

    assert load_config(path, env={}).timeout_seconds == 3.5


def test_env_overrides_file_values(tmp_path: Path) -> None:
    path = _write(tmp_path / "custom.toml", "[timeouts]\nseconds = 12\n")

    loaded = load_config(
        path,
        env={"PROCCHAIN_TIMEOUT_SECONDS": "1.5", "PROCCHAIN_KILL_GRACE_SECONDS": " "},
    )

    assert loaded == ProcchainConfig(timeout_seconds=1.5, kill_grace_seconds=2.0)


def test_invalid_file_value_raises(tmp_path: Path) -> None:
    path = _write(tmp_path / "custom.toml", '[timeouts]\nseconds = "soon"\n')

    with pytest.raises(ValueError, match="timeouts.seconds"):
        load_config(path, env={})


def test_negative_value_raises(tmp_path: Path) -> None:
    path = _write(tmp_path / "custom.toml", "kill_grace_seconds = -1\n")

    with pytest.raises(ValueError, match=">= 0"):
        load_config(path, env={})


def test_invalid_env_value_raises(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValueError, match="PROCCHAIN_TIMEOUT_SECONDS"):
        load_config(env={"PROCCHAIN_TIMEOUT_SECONDS": "x"})


def test_explicit_missing_path_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.toml", env={})


def test_unknown_keys_are_ignored_with_warning(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    path = _write(tmp_path / "custom.toml", "retries = 3\n[timeouts]\nwall = 4\n")

    with caplog.at_level(logging.WARNING):
        loaded = load_config(path, env={})

    assert loaded == ProcchainConfig()
    assert "retries" in caplog.text
    assert "timeouts.wall" in caplog.text


def test_pipeline_options_from_config() -> None:
    config = ProcchainConfig(timeout_seconds=4.0, kill_grace_seconds=0.25)

    options = PipelineOptions.from_config(config)

    assert options.timeout_seconds == 4.0
    assert options.kill_grace_seconds == 0.25
    assert options.stop_event is None
