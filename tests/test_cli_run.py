"""End-to-end checks for `procchain run`."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from procchain import __version__
from procchain.cli.main import EXIT_CONFIG_ERROR, EXIT_SPAWN_ERROR, _extract_verbosity, parse_stage
from procchain.lib.exec import INTERRUPT_EXIT_CODE, PipelineConfigError


def test_parse_stage_splits_like_a_shell() -> None:
    parsed = parse_stage("grep -e 'two words' file.txt")

    assert parsed.program == "grep"
    assert parsed.args == ("-e", "two words", "file.txt")


def test_parse_stage_rejects_blank_stage() -> None:
    with pytest.raises(PipelineConfigError, match="empty stage"):
        parse_stage("   ")


@pytest.mark.parametrize(
    "argv,expected_args,expected_verbosity",
    [
        pytest.param(["run", "ls"], ["run", "ls"], 0, id="quiet"),
        pytest.param(["-v", "run", "ls"], ["run", "ls"], 1, id="single"),
        pytest.param(["run", "-vv", "ls", "--verbose"], ["run", "ls"], 3, id="stacked"),
    ],
)
def test_extract_verbosity(
    argv: list[str], expected_args: list[str], expected_verbosity: int
) -> None:
    assert _extract_verbosity(argv) == (expected_args, expected_verbosity)


def test_version_flag(run_procchain) -> None:
    result = run_procchain(["--version"])

    assert result.returncode == 0
    assert __version__ in result.stdout


def test_run_pipes_stages_together(run_procchain) -> None:
    result = run_procchain(
        ["run", "printf 'alpha\\nbeta\\ngamma\\ndelta\\n'", "grep -v l", "sort -r"]
    )

    assert result.returncode == 0
    assert result.stdout == "gamma\nbeta\n"


def test_run_exits_with_failing_stage_code(run_procchain) -> None:
    result = run_procchain(["run", "printf x", "sh -c 'cat >/dev/null; exit 4'"])

    assert result.returncode == 4


def test_run_reports_missing_program(run_procchain) -> None:
    result = run_procchain(["run", "echo hi", "procchain-no-such-program-7f3a"])

    assert result.returncode == EXIT_SPAWN_ERROR
    assert "procchain-no-such-program-7f3a" in result.stderr


def test_run_rejects_empty_stage(run_procchain) -> None:
    result = run_procchain(["run", "echo hi", ""])

    assert result.returncode == EXIT_CONFIG_ERROR
    assert "empty stage" in result.stderr


def test_run_without_stages_is_a_config_error(run_procchain) -> None:
    result = run_procchain(["run"])

    assert result.returncode == EXIT_CONFIG_ERROR
    assert "at least one command" in result.stderr


def test_run_json_summary(run_procchain) -> None:
    result = run_procchain(["run", "--json", "echo hello", "tr a-z A-Z"])

    assert result.returncode == 0
    payload = json.loads(result.stdout)
    assert payload["exit_code"] == 0
    assert payload["exit_status"] == "exited"
    assert payload["stage_index"] == 1
    assert payload["stdout"] == "HELLO\n"
    assert payload["error"] is None


def test_run_timeout_kills_pipeline(run_procchain) -> None:
    result = run_procchain(["run", "--timeout", "1", "--json", "sleep 100", "cat"])

    assert result.returncode == INTERRUPT_EXIT_CODE
    payload = json.loads(result.stdout)
    assert payload["timed_out"] is True
    assert payload["killed"] is True


def test_run_reads_timeout_from_config_file(run_procchain, tmp_path: Path) -> None:
    (tmp_path / "procchain.toml").write_text("[timeouts]\nseconds = 1\n", encoding="utf-8")

    result = run_procchain(["run", "sleep 100"])

    assert result.returncode == INTERRUPT_EXIT_CODE


def test_run_rejects_invalid_config_file(run_procchain, tmp_path: Path) -> None:
    (tmp_path / "procchain.toml").write_text('[timeouts]\nseconds = "later"\n', encoding="utf-8")

    result = run_procchain(["run", "echo hi"])

    assert result.returncode == EXIT_CONFIG_ERROR
    assert "timeouts.seconds" in result.stderr


def test_run_stream_relays_output(run_procchain) -> None:
    result = run_procchain(["run", "--stream", "printf 'one\\ntwo\\n'", "cat"])

    assert result.returncode == 0
    assert result.stdout == "one\ntwo\n"
