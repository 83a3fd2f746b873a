"""Tests for the command line interface."""

import json

import pytest

from workflow_engine.cli import main
from workflow_engine.config import reset_config


@pytest.fixture(autouse=True)
def clean_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def graph_file(tmp_path):
    path = tmp_path / "graph.json"
    path.write_text(json.dumps({
        "id": "cli-workflow",
        "nodes": [
            {"id": "items", "type": "loop", "config": {"loop_type": "for", "iterations": 2}},
            {"id": "wrap", "type": "transform", "config": {"transform_type": "map"}},
        ],
        "edges": [{"id": "e1", "source": "items", "target": "wrap"}],
    }))
    return path


class TestCli:

    def test_validate_valid_graph(self, graph_file, capsys):
        assert main(["--env", "testing", "validate", str(graph_file)]) == 0
        assert json.loads(capsys.readouterr().out)["is_valid"] is True

    def test_validate_invalid_graph(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"nodes": [{"id": "db", "type": "database"}], "edges": []}))

        assert main(["--env", "testing", "validate", str(path)]) == 1
        errors = json.loads(capsys.readouterr().out)["errors"]
        assert [error["code"] for error in errors] == ["missing_field", "missing_field"]

    def test_run_graph(self, graph_file, capsys):
        exit_code = main(["--env", "testing", "run", str(graph_file), "--variables", '{"seed": 7}', "--parallel"])

        assert exit_code == 0
        snapshot = json.loads(capsys.readouterr().out)
        assert snapshot["status"] == "completed"
        assert snapshot["results"]["wrap"] == [
            {"transformed": {"index": 0, "input": {"seed": 7}}},
            {"transformed": {"index": 1, "input": {"seed": 7}}},
        ]

    def test_missing_file(self, tmp_path, capsys):
        assert main(["--env", "testing", "validate", str(tmp_path / "nope.json")]) == 1
        assert "Error" in capsys.readouterr().err

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
