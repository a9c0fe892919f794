import json
import os
import pytest
from unittest.mock import patch

from click.testing import CliRunner
from doc_renew.cli import cli
from doc_renew.config import RenewConfig
from doc_renew.pipeline import DocumentPipeline
from doc_renew.walker import count_candidates


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    config_dir = tmp_path / ".doc_renew"
    monkeypatch.setattr("doc_renew.cli.CONFIG_DIR", config_dir)
    monkeypatch.setattr("doc_renew.cli.ENV_FILE", config_dir / ".env")
    for name in ("TEXT_LIMIT", "IMAGE_LIMIT", "MODEL", "IMAGE_MODEL", "IMAGE_SIZE", "MAX_WORDS"):
        monkeypatch.delenv(f"RENEW_{name}", raising=False)
    return config_dir


@pytest.fixture
def site(tmp_path):
    site = tmp_path / "site"
    site.mkdir()
    (site / "index.html").write_text('<p>Hello world</p><img src="a.jpg">')
    return site


async def upper(text):
    return text.upper()


def fake_from_config(config, workspace, cancel_event=None):
    return DocumentPipeline(rephraser=upper, image_tags=config.image_tags, cancel_event=cancel_event)


class TestConfigSet:

    def test_set_creates_env_file(self, isolated_config):
        env_file = isolated_config / ".env"

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "set", "OPENAI_API_KEY", "sk-test123"])
        assert result.exit_code == 0
        assert "Saved" in result.output
        assert env_file.exists()
        assert "OPENAI_API_KEY=sk-test123" in env_file.read_text()

    def test_set_updates_existing_key(self, isolated_config):
        isolated_config.mkdir()
        env_file = isolated_config / ".env"
        env_file.write_text("KEY=old\n")

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "set", "KEY", "new"])
        assert result.exit_code == 0
        assert "KEY=new" in env_file.read_text()
        assert "KEY=old" not in env_file.read_text()

    def test_set_preserves_other_keys(self, isolated_config):
        isolated_config.mkdir()
        env_file = isolated_config / ".env"
        env_file.write_text("A=1\nB=2\n")

        runner = CliRunner()
        runner.invoke(cli, ["config", "set", "C", "3"])
        content = env_file.read_text()
        assert "A=1" in content
        assert "B=2" in content
        assert "C=3" in content

    def test_set_drops_comments_and_keeps_order(self, isolated_config):
        isolated_config.mkdir()
        env_file = isolated_config / ".env"
        env_file.write_text("# keys\nA = 1\n\nB=2\n")

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "set", "A", "9"])
        assert result.exit_code == 0
        assert env_file.read_text() == "A=9\nB=2\n"


class TestConfigShow:

    def test_show_no_config(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "No config" in result.output

    def test_show_masks_values(self, isolated_config):
        isolated_config.mkdir()
        (isolated_config / ".env").write_text("API_KEY=sk-very-secret-key\n")

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "API_KEY" in result.output
        assert "sk-very-secret-key" not in result.output
        assert "sk-v****" in result.output

    def test_show_short_value(self, isolated_config):
        isolated_config.mkdir()
        (isolated_config / ".env").write_text("X=ab\n")

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "****" in result.output

    def test_show_lists_every_key_and_skips_comments(self, isolated_config):
        isolated_config.mkdir()
        (isolated_config / ".env").write_text("# secret keys\nFIRST_KEY=abcdefgh\nSECOND_KEY = xyz\n")

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "FIRST_KEY" in result.output
        assert "abcd****" in result.output
        assert "SECOND_KEY" in result.output
        assert "secret keys" not in result.output


class TestScan:

    def test_scan_counts_candidates(self, site):
        runner = CliRunner()
        result = runner.invoke(cli, ["scan", str(site)])
        assert result.exit_code == 0
        assert "index.html" in result.output

    def test_scan_empty_workspace(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(cli, ["scan", str(tmp_path)])
        assert result.exit_code == 0
        assert "No documents" in result.output

    def test_scan_reports_unreadable_document(self, site):
        (site / "broken.html").write_bytes(b"\xff\xfe")
        runner = CliRunner()
        result = runner.invoke(cli, ["scan", str(site)])
        assert result.exit_code == 0
        assert "error" in result.output

    def test_scan_uses_configured_excludes_and_image_tags(self, site):
        (site / "drafts").mkdir()
        (site / "drafts" / "old.html").write_text("<p>Old</p>")
        config = RenewConfig(exclude=["drafts"], image_tags={"video": "poster"})

        with patch("doc_renew.cli.RenewConfig.from_env", return_value=config) as mock_from_env, \
             patch("doc_renew.cli.count_candidates", wraps=count_candidates) as mock_count:
            runner = CliRunner()
            result = runner.invoke(cli, ["scan", str(site), "--include", "**/*.html"])

        assert result.exit_code == 0, result.output
        mock_from_env.assert_called_once_with(include="**/*.html")
        assert "old.html" not in result.output
        assert mock_count.call_count == 1
        assert mock_count.call_args.args[1] == {"video": "poster"}


class TestRedesign:

    def test_requires_api_key(self, site, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        runner = CliRunner()
        result = runner.invoke(cli, ["redesign", str(site)])
        assert result.exit_code != 0
        assert "OPENAI_API_KEY is not set" in result.output
        assert (site / "index.html").read_text() == '<p>Hello world</p><img src="a.jpg">'

    def test_api_key_loaded_from_config_file(self, site, isolated_config, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        isolated_config.mkdir()
        (isolated_config / ".env").write_text("OPENAI_API_KEY=sk-from-file\n")

        with patch("doc_renew.cli.DocumentPipeline.from_config", side_effect=fake_from_config), \
             patch.dict(os.environ):
            runner = CliRunner()
            result = runner.invoke(cli, ["redesign", str(site)])

        assert result.exit_code == 0, result.output

    def test_redesign_rewrites_documents(self, site, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        summary_file = tmp_path / "summary.json"

        with patch("doc_renew.cli.DocumentPipeline.from_config", side_effect=fake_from_config):
            runner = CliRunner()
            result = runner.invoke(cli, [
                "redesign", str(site),
                "--text-limit", "5",
                "--summary-file", str(summary_file),
            ])

        assert result.exit_code == 0, result.output
        assert "redesign is complete" in result.output
        assert (site / "index.html").read_text() == '<p>HELLO WORLD</p><img src="a.jpg">'

        summary = json.loads(summary_file.read_text())
        assert summary["changed"] == 1
        assert summary["budget"]["text"] == {"limit": 5, "used": 1, "exhausted": False}
        assert summary["budget"]["image"]["limit"] == 0

    def test_limits_passed_to_config(self, site, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("RENEW_TEXT_LIMIT", "7")
        seen = {}

        def capture(config, workspace, cancel_event=None):
            seen["config"] = config
            return fake_from_config(config, workspace, cancel_event)

        with patch("doc_renew.cli.DocumentPipeline.from_config", side_effect=capture):
            runner = CliRunner()
            result = runner.invoke(cli, ["redesign", str(site), "--image-limit", "2", "--model", "gpt-4o"])

        assert result.exit_code == 0, result.output
        assert seen["config"].text_limit == 7
        assert seen["config"].image_limit == 2
        assert seen["config"].model == "gpt-4o"

    def test_negative_limit_rejected(self, site, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        runner = CliRunner()
        result = runner.invoke(cli, ["redesign", str(site), "--text-limit", "-1"])
        assert result.exit_code != 0

    def test_failed_document_sets_exit_code(self, site, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        (site / "broken.html").write_bytes(b"\xff\xfe")

        with patch("doc_renew.cli.DocumentPipeline.from_config", side_effect=fake_from_config):
            runner = CliRunner()
            result = runner.invoke(cli, ["redesign", str(site)])

        assert result.exit_code == 1
        assert (site / "index.html").read_text() == '<p>HELLO WORLD</p><img src="a.jpg">'

    def test_no_documents(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        empty = tmp_path / "empty"
        empty.mkdir()

        runner = CliRunner()
        result = runner.invoke(cli, ["redesign", str(empty)])
        assert result.exit_code == 0
        assert "No documents" in result.output
