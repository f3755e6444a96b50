"""Integration tests for the to-adf, to-md and roundtrip commands"""

import json

from typer.testing import CliRunner

from adfmd.cli.cli import app


runner = CliRunner()


def test_to_adf_writes_documents(tmp_path, monkeypatch):
    """to-adf converts each markdown file to <stem>.json under --out-dir."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "hello.md").write_text("# Hello\n\nWorld {user:alice}\n")

    result = runner.invoke(app, ["to-adf", "hello.md", "--out-dir", str(tmp_path / "dist")])

    assert result.exit_code == 0, result.output
    doc = json.loads((tmp_path / "dist" / "hello.json").read_text())
    assert doc["type"] == "doc"
    assert [n["type"] for n in doc["content"]] == ["heading", "paragraph"]
    assert "Converted 1 document(s)" in result.output


def test_to_md_writes_markdown(tmp_path, monkeypatch):
    """to-md converts ADF JSON back to markdown."""
    monkeypatch.chdir(tmp_path)
    doc = {"version": 1, "type": "doc", "content": [
        {"type": "heading", "attrs": {"level": 1}, "content": [{"type": "text", "text": "Hello"}]},
    ]}
    (tmp_path / "hello.json").write_text(json.dumps(doc))

    result = runner.invoke(app, ["to-md", "hello.json", "--out-dir", "out"])

    assert result.exit_code == 0, result.output
    assert (tmp_path / "out" / "hello.md").read_text() == "# Hello\n"


def test_to_adf_strict_failure_exits_1(tmp_path, monkeypatch):
    """--strict surfaces conversion errors as a failed command."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "bad.md").write_text("---\ntitle: [unclosed\n---\n\nBody\n")

    result = runner.invoke(app, ["to-adf", "bad.md", "--strict"])

    assert result.exit_code == 1
    assert "Failed to convert" in result.output


def test_to_adf_no_files(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "notes.txt").write_text("x")

    result = runner.invoke(app, ["to-adf", "."])

    assert result.exit_code == 1
    assert "No markdown files" in result.output


def test_invalid_config_exits_1(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.yaml").write_text("key: [unclosed\n")
    (tmp_path / "doc.md").write_text("x\n")

    result = runner.invoke(app, ["to-adf", "doc.md"])

    assert result.exit_code == 1
    assert "Invalid config.yaml" in result.output


def test_roundtrip_reports_changes(tmp_path, monkeypatch):
    """roundtrip prints a diff only for documents whose text changed."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "same.md").write_text("# Same\n")
    (tmp_path / "setext.md").write_text("Title\n=====\n")

    result = runner.invoke(app, ["roundtrip", "."])

    assert result.exit_code == 0, result.output
    assert "same.md: unchanged" in result.output
    assert "+# Title" in result.output
    assert "Checked 2 document(s), 1 changed" in result.output
