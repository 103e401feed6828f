"""
Tests for the command line.
"""

import json

import pytest

import cli
from scoring.models import DomainAnalysis, DomainStatus


class TestParser:
    """Test argument parsing."""

    def test_analyze_arguments(self):
        args = cli.build_parser().parse_args(["analyze", "--scheme", "archive_dns", "--quick", "a.com", "b.net"])

        assert args.domains == ["a.com", "b.net"]
        assert args.scheme == "archive_dns"
        assert args.quick is True
        assert args.func is cli.cmd_analyze

    def test_unknown_scheme_is_rejected(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["analyze", "--scheme", "magic", "a.com"])

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_serve_defaults(self):
        args = cli.build_parser().parse_args(["serve"])

        assert args.host == "127.0.0.1"
        assert args.port == 8000


class TestCommands:
    """Test command behaviour."""

    def test_analyze_prints_json(self, monkeypatch, capsys):
        seen = {}

        async def fake_analyze(domains, scheme, quick):
            seen.update(domains=domains, scheme=scheme, quick=quick)
            return [DomainAnalysis(domain=d, status=DomainStatus.AVAILABLE, traffic_score=42) for d in domains]

        monkeypatch.setattr(cli, "_analyze", fake_analyze)

        assert cli.main(["analyze", "example.com"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output[0]["domain"] == "example.com"
        assert output[0]["traffic_score"] == 42
        assert output[0]["status"] == "available"
        assert seen == {"domains": ["example.com"], "scheme": None, "quick": False}

    def test_import_missing_file(self, tmp_path):
        assert cli.main(["import", str(tmp_path / "nope.csv")]) == 1
