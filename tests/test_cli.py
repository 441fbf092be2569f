"""Tests for the qlang command line, config loading and diagnostic rendering."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from qlang import __version__
from qlang.cli import main
from qlang.config import CONFIG_NAME, QlangConfig, find_config, load_config, load_config_or_default
from qlang.errors import ConfigError, DiagnosticRenderer
from qlang.linter import lint
from qlang.parser import parse


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestCommands:
    def test_help_lists_commands(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("lint", "lsp", "outline", "tokens", "find"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_lint_clean_file(self, runner, write_q):
        path = write_q("f:{[x] x+1}\nf 2\n")
        result = runner.invoke(main, ["lint", str(path)])
        assert result.exit_code == 0
        assert "linted 1 file(s), 0 finding(s)" in result.output

    def test_lint_warning_does_not_fail(self, runner, write_q):
        path = write_q("f:{a:1; 2}\n")
        result = runner.invoke(main, ["lint", "--no-color", str(path)])
        assert result.exit_code == 0
        assert "warning[UNUSED_VAR]" in result.output
        assert "1 finding(s)" in result.output

    def test_lint_error_fails(self, runner, write_q):
        path = write_q("count:1\n")
        result = runner.invoke(main, ["lint", "--no-color", str(path)])
        assert result.exit_code == 1
        assert "error[ASSIGN_RESERVED_WORD]" in result.output

    def test_lint_directory(self, runner, write_q, tmp_path):
        write_q("a:1\n", "a.q")
        write_q("b:2\n", "sub/b.q")
        result = runner.invoke(main, ["lint", str(tmp_path)])
        assert result.exit_code == 0
        assert "linted 2 file(s)" in result.output

    def test_lint_empty_directory(self, runner, tmp_path):
        result = runner.invoke(main, ["lint", str(tmp_path)])
        assert result.exit_code == 0
        assert "no .q files found" in result.output

    def test_lint_respects_config(self, runner, write_q, tmp_path):
        (tmp_path / CONFIG_NAME).write_text('[lint]\ndisable = ["UNUSED_VAR"]\n')
        path = write_q("f:{a:1; 2}\n")
        result = runner.invoke(main, ["lint", str(path)])
        assert result.exit_code == 0
        assert "0 finding(s)" in result.output

    def test_bad_config_reports_error(self, runner, write_q, tmp_path):
        (tmp_path / CONFIG_NAME).write_text('[lint]\ndisable = ["NOPE"]\n')
        path = write_q("a:1\n")
        result = runner.invoke(main, ["lint", str(path)])
        assert result.exit_code == 1
        assert "unknown lint rule(s): NOPE" in result.output

    def test_malformed_config_section_reports_error(self, runner, write_q, tmp_path):
        (tmp_path / CONFIG_NAME).write_text("server = 1\n")
        path = write_q("a:1\n")
        result = runner.invoke(main, ["lint", str(path)])
        assert result.exit_code == 1
        assert "'server' must be a table" in result.output
        assert "Traceback" not in result.output

    def test_outline(self, runner, write_q):
        path = write_q("f:{[x] y:1; x}\nv:2\nv,:3\n")
        result = runner.invoke(main, ["outline", str(path)])
        assert result.exit_code == 0
        assert result.output.splitlines() == [
            "f function 1:1",
            "  x variable 1:5",
            "  y variable 1:8",
            "v variable 2:1",
            "v variable (amend) 3:1",
        ]

    def test_tokens(self, runner, write_q):
        path = write_q("a:1\n")
        result = runner.invoke(main, ["tokens", str(path)])
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert len(lines) == 3
        assert lines[0].startswith("a@1:1#0 IDENTIFIER")
        assert "F=ASSIGNED" in lines[0]

    def test_find_references(self, runner, write_q):
        path = write_q("b:1\nb\n")
        result = runner.invoke(main, ["find", str(path), "2", "1"])
        assert result.exit_code == 0
        assert result.output.splitlines() == [f"{path}:1:1 b", f"{path}:2:1 b"]

    def test_find_definition(self, runner, write_q):
        path = write_q("f:{[x] y:x+1; y}\n")
        result = runner.invoke(main, ["find", str(path), "1", "15", "--kind", "definition"])
        assert result.output.splitlines() == [f"{path}:1:8 y"]

    def test_find_nothing_at_position(self, runner, write_q):
        path = write_q("a:1\n")
        result = runner.invoke(main, ["find", str(path), "9", "1"])
        assert result.exit_code == 1
        assert "no token at position" in result.output


class TestConfig:
    def test_defaults(self, tmp_path):
        config = load_config_or_default(tmp_path)
        assert config == QlangConfig()
        assert config.server.linting is False
        assert config.lint.disable == []

    def test_load(self, tmp_path):
        path = tmp_path / CONFIG_NAME
        path.write_text(
            "[server]\ndebug = true\nlinting = true\n\n"
            '[lint]\ndisable = ["UNUSED_PARAM", "INVALID_ESCAPE"]\n'
        )
        config = load_config(path)
        assert config.server.debug is True
        assert config.server.linting is True
        assert config.lint.disable == ["UNUSED_PARAM", "INVALID_ESCAPE"]

    def test_find_walks_up(self, tmp_path):
        (tmp_path / CONFIG_NAME).write_text("")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(nested) == (tmp_path / CONFIG_NAME).resolve()

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / CONFIG_NAME
        path.write_text("[server\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_non_bool_value(self, tmp_path):
        path = tmp_path / CONFIG_NAME
        path.write_text('[server]\nlinting = "yes"\n')
        with pytest.raises(ConfigError, match="'linting' must be true or false"):
            load_config(path)


    def test_non_table_sections(self, tmp_path):
        path = tmp_path / CONFIG_NAME
        for text, key in (("server = 1\n", "server"), ('lint = "x"\n', "lint")):
            path.write_text(text)
            with pytest.raises(ConfigError, match=f"'{key}' must be a table"):
                load_config(path)

    def test_disable_must_be_list(self, tmp_path):
        path = tmp_path / CONFIG_NAME
        path.write_text('[lint]\ndisable = "UNUSED_VAR"\n')
        with pytest.raises(ConfigError, match="must be a list"):
            load_config(path)


class TestRenderer:
    def test_plain_render(self, write_q):
        path = write_q("f:{a:1; 2}\n")
        item = lint(parse(path.read_text(), str(path)))[0]
        text = DiagnosticRenderer(color=False).render(item.to_diagnostic())
        lines = text.splitlines()
        assert lines[0] == "warning[UNUSED_VAR]: unused variable 'a'"
        assert lines[1] == f"  --> {path}:1:4"
        assert "f:{a:1; 2}" in lines[3]
        assert lines[4].endswith("   ^")
        assert "\033[" not in text

    def test_label_and_note_render(self, write_q):
        path = write_q("f:{b; b:1}\n")
        item = lint(parse(path.read_text(), str(path)))[0]
        lines = DiagnosticRenderer(color=False).render(item.to_diagnostic()).splitlines()
        assert lines[0] == "warning[DECLARED_AFTER_USE]: 'b' used before it is assigned"
        assert lines[4].endswith("   ^")
        assert lines[5].endswith("   reads the global of the same name")
        assert lines[6] == "  = note: 'b' becomes local at line 1, column 7"

    def test_color_render(self):
        item = lint(parse("count:1", "<mem>"))[0]
        text = DiagnosticRenderer(color=True).render(item.to_diagnostic())
        assert text.startswith("\033[1;31merror[ASSIGN_RESERVED_WORD]")
