"""
Tests for the certforge command-line interface.
"""

import json

import pytest

from certforge.cli import main, parse_args


@pytest.fixture
def certificate_file(tmp_path, certificate_payload):
    path = tmp_path / "certificate.json"
    path.write_text(json.dumps(certificate_payload), encoding="utf-8")
    return path


@pytest.fixture
def env_file(tmp_path):
    """Empty .env so the tests never pick up a developer's settings file."""
    path = tmp_path / "test.env"
    path.write_text("", encoding="utf-8")
    return str(path)


class TestParseArgs:
    """Test suite for argument parsing."""

    def test_extract_options(self):
        args = parse_args(["extract", "a.json", "b.json", "--concurrency", "3", "--no-llm"])

        assert args.command == "extract"
        assert [p.name for p in args.inputs] == ["a.json", "b.json"]
        assert args.concurrency == 3
        assert args.no_llm is True
        assert args.fail_on_client_error is False

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["--version"])

        assert exc_info.value.code == 0
        assert "certforge 0.1.0" in capsys.readouterr().out


class TestCommands:
    """Test suite for CLI commands."""

    def test_extract_layout_only(self, certificate_file, env_file, capsys):
        exit_code = main(["--env-file", env_file, "extract", "--no-llm", str(certificate_file)])

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert len(output) == 1
        canonical = output[0]["record"]
        assert canonical["fields"]["avoirVieillesse"] == 85000
        assert canonical["doc_type"] == "pension_certificate"
        assert canonical["caisse_slug"] == "exemple-sa"

    def test_extract_to_file(self, certificate_file, env_file, tmp_path):
        out_path = tmp_path / "out.json"

        exit_code = main(["--env-file", env_file, "extract", "--no-llm", str(certificate_file),
                          "-o", str(out_path)])

        assert exit_code == 0
        assert json.loads(out_path.read_text(encoding="utf-8"))[0]["filename"] == "certificate.json"

    def test_extract_missing_input(self, tmp_path, env_file):
        assert main(["--env-file", env_file, "extract", str(tmp_path / "nope.json")]) == 1

    def test_extract_invalid_json(self, tmp_path, env_file):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        assert main(["--env-file", env_file, "extract", str(path)]) == 1

    def test_extract_invalid_concurrency(self, certificate_file, env_file):
        assert main(["--env-file", env_file, "extract", "--no-llm", "--concurrency", "0",
                     str(certificate_file)]) == 1

    def test_classify(self, certificate_file, env_file, capsys):
        assert main(["--env-file", env_file, "classify", str(certificate_file)]) == 0

        verdict = json.loads(capsys.readouterr().out.strip())
        assert verdict["is_certificate"] is True
        assert verdict["source"] == "later_pages"

    def test_info(self, env_file, capsys):
        assert main(["--env-file", env_file, "info"]) == 0

        info = json.loads(capsys.readouterr().out)
        assert info["version"] == "0.1.0"
        assert info["config"]["layout"]["line_tolerance"] == 6.0

    def test_no_command_prints_usage(self, env_file, capsys):
        assert main(["--env-file", env_file]) == 0
        assert "Usage: certforge" in capsys.readouterr().out
