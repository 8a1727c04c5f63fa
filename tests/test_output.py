"""Tests for the output formatting system.

Covers:
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet and verbose modes
- print_table / print_record in table, json, yaml and csv formats
- Global instance management
"""

from __future__ import annotations

import json

import pytest
import yaml

from forwardemail import output as output_module
from forwardemail.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


@pytest.fixture(autouse=True)
def _reset_global_output():
    """Ensure the global output instance is reset between tests."""
    reset_output()
    yield
    reset_output()


def _plain(fmt: OutputFormat = OutputFormat.TABLE, **kwargs) -> OutputManager:
    return OutputManager(format=fmt, no_color=True, **kwargs)


class TestColorDisabling:
    def test_no_color_env_disables_color(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term_keeps_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False

    def test_env_overrides_flag(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        assert OutputManager(no_color=False).no_color is True


class TestStdoutStderrDiscipline:
    def test_print_data_goes_to_stdout(self, capfd):
        _plain().print_data("hello world")
        captured = capfd.readouterr()
        assert "hello world" in captured.out
        assert captured.err == ""

    @pytest.mark.parametrize("method", ["info", "success", "warning", "error", "suggest"])
    def test_diagnostics_go_to_stderr(self, capfd, method):
        getattr(_plain(), method)("diagnostic text")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "diagnostic text" in captured.err

    def test_error_prefix(self, capfd):
        _plain().error("something broke")
        assert "Error: something broke" in capfd.readouterr().err


class TestQuietAndVerbose:
    @pytest.mark.parametrize("method", ["info", "success", "suggest"])
    def test_quiet_suppresses(self, capfd, method):
        getattr(_plain(quiet=True), method)("should not appear")
        assert capfd.readouterr().err == ""

    @pytest.mark.parametrize("method", ["warning", "error"])
    def test_quiet_keeps_problems(self, capfd, method):
        getattr(_plain(quiet=True), method)("important")
        assert "important" in capfd.readouterr().err

    def test_debug_only_when_verbose(self, capfd):
        _plain().debug("hidden")
        _plain(verbose=True).debug("shown")
        err = capfd.readouterr().err
        assert "hidden" not in err
        assert "[debug] shown" in err


class TestTables:
    HEADERS = ["Profile", "Source"]
    ROWS = [["dev", "keyring"], ["prod", "env"]]

    def test_plain_table_is_tab_separated(self, capfd):
        _plain().print_table(self.HEADERS, self.ROWS)
        lines = capfd.readouterr().out.splitlines()
        assert lines == ["Profile\tSource", "dev\tkeyring", "prod\tenv"]

    def test_rich_table(self, capfd, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        OutputManager(format=OutputFormat.TABLE).print_table(self.HEADERS, self.ROWS, title="T")
        out = capfd.readouterr().out
        assert "Profile" in out
        assert "keyring" in out

    def test_json_table(self, capfd):
        _plain(OutputFormat.JSON).print_table(self.HEADERS, self.ROWS)
        data = json.loads(capfd.readouterr().out)
        assert data == [
            {"Profile": "dev", "Source": "keyring"},
            {"Profile": "prod", "Source": "env"},
        ]

    def test_yaml_table(self, capfd):
        _plain(OutputFormat.YAML).print_table(self.HEADERS, self.ROWS)
        data = yaml.safe_load(capfd.readouterr().out)
        assert data[1] == {"Profile": "prod", "Source": "env"}

    def test_csv_table(self, capfd):
        _plain(OutputFormat.CSV).print_table(self.HEADERS, [["a,b", "x"]])
        assert capfd.readouterr().out.splitlines() == ["Profile,Source", '"a,b",x']


class TestRecords:
    RECORD = {"profile": "dev", "current": True, "api_key": ""}

    def test_table_record(self, capfd):
        _plain().print_record(self.RECORD)
        lines = capfd.readouterr().out.splitlines()
        assert lines[0] == "Field\tValue"
        assert "current\tyes" in lines

    def test_json_record(self, capfd):
        _plain(OutputFormat.JSON).print_record(self.RECORD)
        assert json.loads(capfd.readouterr().out) == self.RECORD

    def test_csv_record(self, capfd):
        _plain(OutputFormat.CSV).print_record(self.RECORD)
        assert capfd.readouterr().out.splitlines() == ["profile,current,api_key", "dev,yes,"]


class TestGlobalInstance:
    def test_get_output_creates_default(self):
        assert get_output().format is OutputFormat.TABLE

    def test_set_and_reset(self):
        mgr = _plain(OutputFormat.JSON)
        set_output(mgr)
        assert get_output() is mgr
        reset_output()
        assert get_output() is not mgr

    def test_convenience_functions_delegate(self, capfd):
        set_output(_plain(OutputFormat.JSON))
        output_module.print_record({"a": 1})
        output_module.info("note")
        captured = capfd.readouterr()
        assert json.loads(captured.out) == {"a": 1}
        assert "note" in captured.err

    def test_print_table_and_debug_delegate(self, capfd):
        set_output(_plain(OutputFormat.CSV, verbose=True))
        output_module.print_table(["Profile"], [["dev"]])
        output_module.debug("picked")
        captured = capfd.readouterr()
        assert captured.out.splitlines() == ["Profile", "dev"]
        assert "[debug] picked" in captured.err
