"""Tests for CLI commands."""

import json

import pytest
from typer.testing import CliRunner

from clash_rule_tester import __version__
from clash_rule_tester.cli import app
from clash_rule_tester.providers.store import ProviderStore
from clash_rule_tester.rules.engine import RuleEngine
from conftest import FakeFetcher, FakeResolver

runner = CliRunner()

NO_CATCH_ALL_CONFIG = """
rules:
  - DOMAIN-SUFFIX,google.com,PROXY
  - DOMAIN-KEYWORD,ads,REJECT
"""

BROKEN_PROVIDER_CONFIG = """
rule-providers:
  gone:
    type: http
    behavior: domain
    url: https://rules.example.com/gone.yaml
rules:
  - RULE-SET,gone,REJECT
  - MATCH,PROXY
"""


@pytest.fixture
def fake_engine(monkeypatch, sample_provider_bodies):
    """Route the CLI to an engine backed by in-memory providers."""
    fetcher = FakeFetcher(sample_provider_bodies)

    def create_engine(settings):
        return RuleEngine(ProviderStore(fetcher), FakeResolver())

    monkeypatch.setattr("clash_rule_tester.cli._create_engine", create_engine)
    monkeypatch.setenv("CLASH_RULE_TESTER_LOG_LEVEL", "WARNING")
    return fetcher


@pytest.fixture
def write_config(tmp_path):
    """Write a config file and return its path."""

    def _write(text: str, name: str = "config.yaml") -> str:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write


class TestMainApp:
    """Tests for main app commands."""

    def test_version(self):
        """The version command prints the package version."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert f"Clash Rule Tester version {__version__}" in result.stdout

    def test_help(self):
        """--help lists the commands."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "test" in result.stdout
        assert "serve" in result.stdout

    def test_show_config(self):
        """show-config prints the effective settings."""
        result = runner.invoke(app, ["show-config"])
        assert result.exit_code == 0
        assert "resolver" in result.stdout
        assert "api_port" in result.stdout


class TestTestCommand:
    """Tests for the test command."""

    def test_match(self, fake_engine, write_config, sample_config_yaml):
        """A matching domain prints the rule chain and exits 0."""
        config_path = write_config(sample_config_yaml)
        result = runner.invoke(app, ["test", config_path, "ad.doubleclick.net"])
        assert result.exit_code == 0
        assert "RULE-SET,reject,REJECT" in result.stdout
        assert "+.doubleclick.net" in result.stdout
        assert "REJECT" in result.stdout
        assert "93.184.216.34" in result.stdout

    def test_several_domains_share_downloads(self, fake_engine, write_config, sample_config_yaml):
        """Domains are evaluated together and providers are fetched once."""
        result = runner.invoke(
            app,
            ["test", write_config(sample_config_yaml), "a.inline-test.com", "www.google.com"],
        )
        assert result.exit_code == 0
        assert "DOMAIN-SUFFIX,inline-test.com" in result.stdout
        assert "DOMAIN-SUFFIX,google.com,PROXY" in result.stdout
        assert sorted(fake_engine.calls) == [
            "https://rules.example.com/cnip.yaml",
            "https://rules.example.com/reject.txt",
        ]

    def test_no_match_exit_code(self, fake_engine, write_config):
        """An unmatched domain exits with code 2."""
        result = runner.invoke(app, ["test", write_config(NO_CATCH_ALL_CONFIG), "example.org"])
        assert result.exit_code == 2
        assert "No rule matched for domain: example.org" in result.stdout

    def test_provider_error_exit_code(self, fake_engine, write_config):
        """A provider failure exits with code 1."""
        result = runner.invoke(app, ["test", write_config(BROKEN_PROVIDER_CONFIG), "a.com"])
        assert result.exit_code == 1
        assert 'Provider "gone"' in result.output

    def test_error_wins_over_no_match(self, fake_engine, write_config):
        """Errors take precedence over unmatched domains in the exit code."""
        result = runner.invoke(
            app, ["test", write_config(NO_CATCH_ALL_CONFIG), "example.org", "   "]
        )
        assert result.exit_code == 1

    def test_invalid_config(self, fake_engine, write_config):
        """An unparseable config exits with code 1."""
        result = runner.invoke(app, ["test", write_config("rules: [unclosed"), "a.com"])
        assert result.exit_code == 1
        assert "Invalid YAML format" in result.output

    def test_missing_config_file(self, fake_engine, tmp_path):
        """A missing config file is a usage error."""
        result = runner.invoke(app, ["test", str(tmp_path / "absent.yaml"), "a.com"])
        assert result.exit_code != 0

    def test_json_output(self, fake_engine, write_config):
        """--json prints one entry per domain."""
        result = runner.invoke(
            app,
            ["test", write_config(NO_CATCH_ALL_CONFIG), "--json", "www.google.com", "example.org"],
        )
        assert result.exit_code == 2

        report = json.loads(result.stdout)
        assert report[0]["domain"] == "www.google.com"
        assert report[0]["matched"] is True
        assert report[0]["result"]["final_policy"] == "PROXY"
        assert report[0]["result"]["matching_rule"] == "DOMAIN-SUFFIX,google.com,PROXY"
        assert report[1] == {"domain": "example.org", "matched": False, "result": None}

    def test_config_not_utf8(self, fake_engine, tmp_path):
        """A config file that is not UTF-8 text exits with code 1."""
        path = tmp_path / "config.yaml"
        path.write_bytes(b"rules:\n  - \xff\xfe MATCH\n")
        result = runner.invoke(app, ["test", str(path), "a.com"])
        assert result.exit_code == 1
        assert "Cannot read" in result.output

    def test_config_read_error(self, fake_engine, write_config, monkeypatch):
        """OS errors while reading the config exit with code 1."""
        config_path = write_config(NO_CATCH_ALL_CONFIG)

        def fail_read(self, *args, **kwargs):
            raise PermissionError("permission denied")

        monkeypatch.setattr("pathlib.Path.read_text", fail_read)
        result = runner.invoke(app, ["test", config_path, "a.com"])
        assert result.exit_code == 1
        assert "denied" in result.output
