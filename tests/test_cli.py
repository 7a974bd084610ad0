"""Tests for the bsync CLI."""

from __future__ import annotations

from pathlib import Path

import orjson
import pytest
from typer.testing import CliRunner

from beadsync.cli import app
from beadsync.cli._json_state import set_json_flag
from beadsync.config import load_config

runner = CliRunner()


@pytest.fixture(autouse=True)
def _project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every command in a fresh initialized project directory."""
    monkeypatch.chdir(tmp_path)
    set_json_flag(False)
    result = runner.invoke(app, ["init", "--prefix", "t"])
    assert result.exit_code == 0, result.stdout
    return tmp_path


def _create(title: str, *args: str) -> dict[str, object]:
    result = runner.invoke(app, ["create", title, "--json", *args])
    assert result.exit_code == 0, result.stdout
    set_json_flag(False)
    return orjson.loads(result.stdout)


class TestInit:
    """Test bsync init."""

    def test_writes_config(self, tmp_path: Path) -> None:
        """Init writes config.toml with the chosen prefix."""
        config = load_config(tmp_path / ".beadsync")
        assert config["id_prefix"] == "t"
        assert config["backend"] == "local"

    def test_refuses_to_overwrite(self) -> None:
        """A second init needs --force."""
        result = runner.invoke(app, ["init"])
        assert result.exit_code == 1
        assert runner.invoke(app, ["init", "--force"]).exit_code == 0

    def test_github_needs_repo(self) -> None:
        """The github backend requires owner and repo."""
        result = runner.invoke(app, ["init", "--force", "--backend", "github"])
        assert result.exit_code == 1


class TestCreateListShow:
    """Test create, list and show."""

    def test_create_and_list(self) -> None:
        """Created issues are listed with their id."""
        issue = _create("First issue", "--priority", "1", "--type", "bug")
        assert str(issue["id"]).startswith("t-")
        assert issue["priority"] == 1

        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "First issue" in result.stdout
        assert str(issue["id"]) in result.stdout

    def test_list_json(self) -> None:
        """--json lists issues with the storage format."""
        _create("One")
        result = runner.invoke(app, ["--json", "list"])
        body = orjson.loads(result.stdout)
        assert body["format"] == "jsonl"
        assert [i["title"] for i in body["issues"]] == ["One"]

    def test_list_hides_closed_by_default(self) -> None:
        """Closed issues only show with --all."""
        issue = _create("Done", "--status", "closed")
        assert str(issue["id"]) not in runner.invoke(app, ["list"]).stdout
        assert str(issue["id"]) in runner.invoke(app, ["list", "--all"]).stdout

    def test_show_missing(self) -> None:
        """Showing an unknown issue fails with a message."""
        result = runner.invoke(app, ["show", "t-nope"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_priority(self) -> None:
        """Out-of-range priority is reported, nothing is created."""
        result = runner.invoke(app, ["create", "Bad", "--priority", "9"])
        assert result.exit_code == 1
        assert not (Path.cwd() / ".beads" / "issues.jsonl").exists()


class TestUpdate:
    """Test update, bulk, delete and comment."""

    def test_update(self) -> None:
        """Update changes fields."""
        issue = _create("Old title")
        result = runner.invoke(app, ["update", str(issue["id"]), "--title", "New title"])
        assert result.exit_code == 0, result.output
        show = runner.invoke(app, ["show", str(issue["id"]), "--json"])
        assert orjson.loads(show.stdout)["title"] == "New title"

    def test_update_conflict_with_base_file(self, tmp_path: Path) -> None:
        """A stale base snapshot and a clashing edit exit with code 2."""
        issue = _create("Original")
        base_file = tmp_path / "base.json"
        base_file.write_bytes(orjson.dumps(issue))

        assert runner.invoke(app, ["update", str(issue["id"]), "--title", "Theirs"]).exit_code == 0
        result = runner.invoke(
            app,
            ["update", str(issue["id"]), "--title", "Mine", "--base-file", str(base_file)],
        )
        assert result.exit_code == 2
        assert "Merge conflict" in result.output

    def test_update_auto_merge_with_base_file(self, tmp_path: Path) -> None:
        """Edits to different fields merge cleanly."""
        issue = _create("Original")
        base_file = tmp_path / "base.json"
        base_file.write_bytes(orjson.dumps({"issue": issue}))

        runner.invoke(app, ["update", str(issue["id"]), "--title", "Theirs"])
        result = runner.invoke(
            app,
            [
                "update",
                str(issue["id"]),
                "--title",
                "Original",
                "--priority",
                "1",
                "--base-file",
                str(base_file),
            ],
        )
        assert result.exit_code == 0, result.output
        assert "Kept concurrent changes to: title" in result.stdout

    def test_update_requires_fields(self) -> None:
        """An update without options is an error."""
        issue = _create("x")
        assert runner.invoke(app, ["update", str(issue["id"])]).exit_code == 1

    def test_bulk(self) -> None:
        """Bulk sets priority on several issues."""
        a = _create("A")
        b = _create("B")
        result = runner.invoke(app, ["bulk", str(a["id"]), str(b["id"]), "--priority", "5"])
        assert result.exit_code == 0, result.output
        assert "Updated 2 issue(s)" in result.stdout

    def test_delete(self) -> None:
        """Deleted issues disappear from the list; deleting again is a no-op."""
        issue = _create("Gone")
        assert runner.invoke(app, ["delete", str(issue["id"])]).exit_code == 0
        assert str(issue["id"]) not in runner.invoke(app, ["list", "--all"]).stdout
        again = runner.invoke(app, ["delete", str(issue["id"])])
        assert "already deleted" in again.stdout

    def test_comment(self) -> None:
        """Comments get sequential ids."""
        issue = _create("Discuss")
        runner.invoke(app, ["comment", str(issue["id"]), "first", "--by", "ana"])
        result = runner.invoke(app, ["comment", str(issue["id"]), "second", "--by", "ana"])
        assert "Added comment 2" in result.stdout
