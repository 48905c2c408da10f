"""Integration tests for CLI module."""

import json
import os
import stat
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from notesorter import __version__
from notesorter.cli import cli


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Config file, store directory and an isolated HOME for the log file."""
    for name in list(os.environ):
        if name.startswith("NOTESORTER_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))

    store_dir = tmp_path / "store"
    config_file = tmp_path / "config.yaml"
    config_file.write_text(f"""
llm:
  endpoint: https://api.openai.com/v1
  api_key: sk-test-key
  model: gpt-4o-mini

store:
  path: {store_dir}
""")
    os.chmod(config_file, stat.S_IRUSR | stat.S_IWUSR)
    monkeypatch.setattr("notesorter.config.loader.DEFAULT_CONFIG_PATH", config_file)
    return store_dir


def read_documents(store_dir):
    return json.loads((store_dir / "documents.json").read_text())


def capture(runner, title, text):
    result = runner.invoke(cli, ["capture", title, text])
    assert result.exit_code == 0, result.output
    return result.output.strip().rsplit(" ", 1)[-1]


class TestCLIBasics:
    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_missing_config_is_reported(self, tmp_path, monkeypatch):
        for name in list(os.environ):
            if name.startswith("NOTESORTER_"):
                monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.setattr("notesorter.config.loader.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")

        result = CliRunner().invoke(cli, ["tree"])

        assert result.exit_code != 0
        assert "Configuration file not found" in result.output

    def test_permissive_config_is_reported(self, workspace, tmp_path):
        os.chmod(tmp_path / "config.yaml", 0o644)

        result = CliRunner().invoke(cli, ["tree"])

        assert result.exit_code != 0
        assert "chmod 600" in result.output


class TestCaptureAndInspect:
    """Integration tests for capture, unorganized and tree."""

    def test_capture_writes_scratch_note(self, workspace):
        runner = CliRunner()

        document_id = capture(runner, "Scratch", "Buy milk")

        documents = read_documents(workspace)
        assert documents[0]["id"] == document_id
        assert documents[0]["organized"] is False
        assert documents[0]["content"]["blocks"][0]["text"] == "Buy milk"

    def test_unorganized_lists_blocks(self, workspace):
        runner = CliRunner()
        document_id = capture(runner, "Scratch", "Buy milk\n\nDraft [Q3] plan")

        result = runner.invoke(cli, ["unorganized", document_id])

        assert result.exit_code == 0
        assert "1. (paragraph) Buy milk" in result.output
        assert "Draft [Q3] plan" in result.output

    def test_unorganized_unknown_document(self, workspace):
        result = CliRunner().invoke(cli, ["unorganized", "missing"])

        assert result.exit_code != 0
        assert "Document not found" in result.output

    def test_tree_without_destinations(self, workspace):
        result = CliRunner().invoke(cli, ["tree"])

        assert result.exit_code == 0
        assert "(no destinations yet)" in result.output


class TestOrganizeHistoryRevert:
    """Integration tests for the organize -> history -> revert flow."""

    REPLY = json.dumps(
        [
            {"targetPath": "/Errands", "content": "Buy milk"},
            {"targetPath": "/Work/Planning", "content": "Draft Q3 plan"},
        ]
    )

    def organize(self, runner, document_id, *options):
        with patch("notesorter.services.llm_client.LLMClient.invoke", new=AsyncMock(return_value=self.REPLY)):
            return runner.invoke(cli, ["organize", *options, document_id])

    def test_organize_files_blocks_and_shows_tree(self, workspace):
        runner = CliRunner()
        document_id = capture(runner, "Scratch", "Buy milk\n\nDraft Q3 plan")

        result = self.organize(runner, document_id)

        assert result.exit_code == 0, result.output
        assert "/Errands" in result.output
        assert "/Work/Planning" in result.output

        tree = runner.invoke(cli, ["tree"])
        assert "[FILE] Errands" in tree.output
        assert "[DIR] Work" in tree.output
        assert "  [FILE] Planning" in tree.output

        remaining = runner.invoke(cli, ["unorganized", document_id])
        assert "All blocks are organized." in remaining.output

    def test_organize_twice_reports_nothing_to_do(self, workspace):
        runner = CliRunner()
        document_id = capture(runner, "Scratch", "Buy milk")
        self.organize(runner, document_id)

        result = self.organize(runner, document_id)

        assert result.exit_code == 0
        assert "Nothing to organize." in result.output

    def test_full_organize_routes_filed_blocks_again(self, workspace):
        runner = CliRunner()
        document_id = capture(runner, "Scratch", "Buy milk\n\nDraft Q3 plan")
        self.organize(runner, document_id)

        result = self.organize(runner, document_id, "--full")

        assert result.exit_code == 0, result.output
        assert "Organized 2 block(s)" in result.output
        assert "Nothing to organize." not in result.output

    def test_history_lists_created_destinations(self, workspace):
        runner = CliRunner()
        document_id = capture(runner, "Scratch", "Buy milk\n\nDraft Q3 plan")
        self.organize(runner, document_id)

        result = runner.invoke(cli, ["history"])

        assert result.exit_code == 0
        assert "created" in result.output
        assert "/Errands" in result.output

    def test_history_empty(self, workspace):
        result = CliRunner().invoke(cli, ["history"])

        assert result.exit_code == 0
        assert "No recorded changes." in result.output

    def test_revert_created_destination_deletes_it(self, workspace):
        runner = CliRunner()
        document_id = capture(runner, "Scratch", "Buy milk\n\nDraft Q3 plan")
        self.organize(runner, document_id)

        result = runner.invoke(cli, ["revert", "1", "--yes"])

        assert result.exit_code == 0, result.output
        assert "Delete File" in result.output
        deleted = [d for d in read_documents(workspace) if d["is_deleted"]]
        assert len(deleted) == 1
        assert deleted[0]["title"] in ("Errands", "Planning")

    def test_revert_aborted_without_confirmation(self, workspace):
        runner = CliRunner()
        document_id = capture(runner, "Scratch", "Buy milk")
        self.organize(runner, document_id)

        result = runner.invoke(cli, ["revert", "1"], input="n\n")

        assert result.exit_code != 0
        assert not any(d["is_deleted"] for d in read_documents(workspace))

    def test_revert_unknown_index(self, workspace):
        result = CliRunner().invoke(cli, ["revert", "3", "--yes"])

        assert result.exit_code != 0
        assert "No history entry 3" in result.output


class TestInit:
    """Integration tests for starter hierarchy seeding."""

    def test_init_creates_starter_destinations(self, workspace):
        runner = CliRunner()

        result = runner.invoke(cli, ["init"])

        assert result.exit_code == 0, result.output
        assert "Created 7 destination(s), 0 already existed." in result.output
        tree = runner.invoke(cli, ["tree"])
        for line in ["[DIR] Projects", "[DIR] Archives", "[FILE] TODOs", "[FILE] README"]:
            assert line in tree.output

    def test_init_is_safe_to_rerun(self, workspace):
        runner = CliRunner()
        runner.invoke(cli, ["init"])

        result = runner.invoke(cli, ["init"])

        assert result.exit_code == 0
        assert "Created 0 destination(s), 7 already existed." in result.output
        assert len(read_documents(workspace)) == 7
