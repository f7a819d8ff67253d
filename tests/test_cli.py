# tests/test_cli.py
"""
Tests for the command-line interface.

Every test works on files under ``tmp_path``; configuration discovery is
pointed away from the working directory so a stray ``.awaitguard.sexp``
cannot leak in.
"""

import json
import textwrap

import pytest

from awaitguard import __version__
from awaitguard.main import (
    EXIT_ERROR,
    EXIT_INFRA,
    EXIT_OK,
    _with_default_command,
    main,
)

BLOCKING = textwrap.dedent("""\
    import time

    async def handler():
        s = time.sleep(1)
        await refresh()
""")

CLEAN = textwrap.dedent("""\
    import asyncio

    async def handler():
        await asyncio.sleep(1)
""")

REQUESTS = textwrap.dedent("""\
    import requests

    async def handler(url):
        response = requests.get(url)
        await refresh()
""")


@pytest.fixture(autouse=True)
def no_config_discovery(monkeypatch):
    monkeypatch.setattr("awaitguard.main.find_config", lambda: None)


@pytest.fixture
def blocking_file(tmp_path):
    path = tmp_path / "app.py"
    path.write_text(BLOCKING, encoding="utf-8")
    return path


@pytest.fixture
def clean_file(tmp_path):
    path = tmp_path / "clean.py"
    path.write_text(CLEAN, encoding="utf-8")
    return path


class TestDefaultCommand:
    """``check`` is inserted when no command is named."""

    @pytest.mark.parametrize("argv,expected", [
        (["src"], ["check", "src"]),
        (["-v", "src"], ["-v", "check", "src"]),
        (["-vv", "--format", "gcc"], ["-vv", "check", "--format", "gcc"]),
        (["check", "src"], ["check", "src"]),
        (["list-lints"], ["list-lints"]),
        (["--version"], ["--version"]),
        (["-h"], ["-h"]),
        ([], []),
    ])
    def test_insertion(self, argv, expected):
        assert _with_default_command(argv) == expected

    def test_no_arguments_prints_help(self, capsys):
        assert main([]) == EXIT_INFRA
        assert "usage: awaitguard" in capsys.readouterr().err

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as info:
            main(["--version"])
        assert info.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestCheck:
    """Exit codes and output formats of ``check``."""

    def test_finding_exits_one(self, blocking_file, capsys):
        assert main(["check", str(blocking_file), "--no-color"]) == EXIT_ERROR
        captured = capsys.readouterr()
        assert "error[may-block]: this blocking function can slow down" in captured.out
        assert "1 error (1 total)" in captured.err

    def test_clean_exits_zero(self, clean_file, capsys):
        assert main([str(clean_file), "--no-color"]) == EXIT_OK
        assert "no diagnostics emitted" in capsys.readouterr().err

    def test_gcc(self, blocking_file, capsys):
        assert main([str(blocking_file), "--format", "gcc"]) == EXIT_ERROR
        first = capsys.readouterr().out.splitlines()[0]
        assert first.startswith(f"{blocking_file.as_posix()}:4:5: error: ")
        assert first.endswith("[may-block]")

    def test_json(self, blocking_file, capsys):
        main([str(blocking_file), "-f", "json"])
        [record] = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert record["lintId"] == "may-block"
        assert record["line"] == 4

    def test_sarif_to_file(self, blocking_file, tmp_path):
        target = tmp_path / "out" / "report.sarif"
        assert main([str(blocking_file), "-f", "sarif", "-o", str(target)]) == EXIT_ERROR
        doc = json.loads(target.read_text(encoding="utf-8"))
        assert doc["runs"][0]["tool"]["driver"]["version"] == __version__
        assert len(doc["runs"][0]["results"]) == 1

    def test_directory_with_exclude(self, tmp_path, blocking_file, clean_file, capsys):
        assert main([str(tmp_path), "--exclude", "*/app.py", "--no-color"]) == EXIT_OK

    def test_disable(self, blocking_file):
        assert main([str(blocking_file), "--disable", "may-block", "--no-color"]) == EXIT_OK

    def test_suppress(self, blocking_file):
        assert main([str(blocking_file), "--suppress", "may-block", "--no-color"]) == EXIT_OK

    def test_blocking_path(self, tmp_path):
        path = tmp_path / "net.py"
        path.write_text(REQUESTS, encoding="utf-8")
        assert main([str(path), "--no-color"]) == EXIT_OK
        assert main([str(path), "--blocking-path", "requests.get", "--no-color"]) == EXIT_ERROR

    def test_jobs(self, tmp_path, blocking_file, clean_file):
        assert main([str(tmp_path), "-j", "2", "--no-color"]) == EXIT_ERROR

    def test_syntax_error_is_not_an_error(self, tmp_path, capsys):
        path = tmp_path / "broken.py"
        path.write_text("def broken(:\n", encoding="utf-8")
        assert main([str(path), "--no-color"]) == EXIT_OK
        assert "information[syntax-error]" in capsys.readouterr().out


class TestInfrastructureFailures:
    """Failures outside the analysis exit with 2."""

    def test_missing_path(self, tmp_path, capsys):
        assert main([str(tmp_path / "absent")]) == EXIT_INFRA
        assert "no such file or directory" in capsys.readouterr().err

    def test_bad_config(self, tmp_path, blocking_file, capsys):
        config = tmp_path / "bad.sexp"
        config.write_text("(awaitguard (colour red))", encoding="utf-8")
        assert main([str(blocking_file), "-c", str(config)]) == EXIT_INFRA
        assert "unknown configuration key" in capsys.readouterr().err

    def test_missing_config(self, tmp_path, blocking_file):
        assert main([str(blocking_file), "-c", str(tmp_path / "absent.sexp")]) == EXIT_INFRA

    def test_unknown_lint_in_config(self, tmp_path, blocking_file):
        config = tmp_path / "cfg.sexp"
        config.write_text("(awaitguard (disable no-such-lint))", encoding="utf-8")
        assert main([str(blocking_file), "-c", str(config)]) == EXIT_INFRA

    def test_bad_jobs(self, blocking_file):
        assert main([str(blocking_file), "-j", "0"]) == EXIT_INFRA

    def test_bad_blocking_path(self, blocking_file):
        assert main([str(blocking_file), "--blocking-path", "not a path"]) == EXIT_INFRA


class TestConfigFile:
    """A configuration file changes the run."""

    def test_severity_override(self, tmp_path, blocking_file, capsys):
        config = tmp_path / "cfg.sexp"
        config.write_text("(awaitguard (severity may-block warning) (format gcc))",
                          encoding="utf-8")
        assert main([str(blocking_file), "-c", str(config)]) == EXIT_OK
        assert ": warning: " in capsys.readouterr().out

    def test_command_line_wins(self, tmp_path, blocking_file, capsys):
        config = tmp_path / "cfg.sexp"
        config.write_text("(awaitguard (format gcc))", encoding="utf-8")
        main([str(blocking_file), "-c", str(config), "-f", "json"])
        json.loads(capsys.readouterr().out.splitlines()[0])

    def test_discovered(self, tmp_path, blocking_file, monkeypatch):
        config = tmp_path / ".awaitguard.sexp"
        config.write_text("(awaitguard (disable may-block))", encoding="utf-8")
        monkeypatch.setattr("awaitguard.main.find_config", lambda: config)
        assert main([str(blocking_file), "--no-color"]) == EXIT_OK


class TestListLints:
    """``list-lints``."""

    def test_list(self, capsys):
        assert main(["list-lints"]) == EXIT_OK
        out = capsys.readouterr().out
        assert out.splitlines()[0].startswith("  may-block  correctness  error")
        assert "1 lint(s) available." in out

    def test_explain(self, capsys):
        assert main(["list-lints", "--explain", "may-block"]) == EXIT_OK
        out = capsys.readouterr().out
        assert out.splitlines()[0] == "may-block (correctness, default error)"
        assert "Use instead" in out

    def test_explain_unknown(self, capsys):
        assert main(["list-lints", "--explain", "nope"]) == EXIT_ERROR
        assert "unknown lint: nope" in capsys.readouterr().err


class TestDumpInterior:
    """``dump-interior``."""

    def test_dump(self, blocking_file, clean_file, tmp_path, capsys):
        assert main(["dump-interior", str(tmp_path)]) == EXIT_OK
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 2
        assert lines[0].startswith('(body "app:handler" (kind "async fn")')
        assert "blocking" in lines[0]
        assert lines[1].startswith('(body "clean:handler"')
        assert "blocking" not in lines[1]

    def test_unparsable_file(self, tmp_path, blocking_file, capsys):
        (tmp_path / "broken.py").write_text("def broken(:\n", encoding="utf-8")
        assert main(["dump-interior", str(tmp_path)]) == EXIT_INFRA
        captured = capsys.readouterr()
        assert "cannot analyse" in captured.err
        assert captured.out.startswith('(body "app:handler"')

    def test_to_file(self, blocking_file, tmp_path):
        target = tmp_path / "trace.sexp"
        assert main(["dump-interior", str(blocking_file), "-o", str(target)]) == EXIT_OK
        assert target.read_text(encoding="utf-8").count("(body ") == 1

    def test_encoding_cookie(self, tmp_path, capsys):
        path = tmp_path / "legacy.py"
        path.write_bytes(
            b"# -*- coding: latin-1 -*-\n"
            b"import time\n"
            b"\n"
            b"async def handler():\n"
            b"    s = time.sleep(1)  # caf\xe9\n"
            b"    await refresh()\n"
        )
        assert main(["dump-interior", str(path)]) == EXIT_OK
        [line] = capsys.readouterr().out.splitlines()
        assert line.startswith('(body "legacy:handler"')
        assert "blocking" in line
