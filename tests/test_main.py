"""
Tests for the command line entry point.
"""

import json
import logging

import pytest

from promptline import __version__
from promptline.main import cli_main, main


@pytest.fixture(autouse=True)
def restore_root_logger():
    """main() installs a stderr handler on the root logger; put the old ones back."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def story_files(tmp_path):
    template = tmp_path / "scene.txt"
    template.write_text("Tell a story about {{premise}}", encoding="utf-8")
    defs = tmp_path / "defs.json"
    defs.write_text(json.dumps([{"name": "premise", "type": "string", "required": True}]), encoding="utf-8")
    values = tmp_path / "values.json"
    values.write_text(json.dumps({"premise": "A heist on Mars"}), encoding="utf-8")
    return template, defs, values


def _stdout_json(capsys):
    return json.loads(capsys.readouterr().out)


class TestRun:
    def test_mock_run_prints_result(self, story_files, capsys):
        template, defs, values = story_files

        code = main(
            [
                "run",
                str(template),
                "--model",
                "anthropic/claude-sonnet-4",
                "--vars",
                str(defs),
                "--values",
                str(values),
                "--mock",
            ]
        )

        result = _stdout_json(capsys)
        assert code == 0
        assert result["status"] == "success"
        assert result["provider_used"] == "mock"
        assert result["resolved_prompt"] == "Tell a story about A heist on Mars"
        assert result["output"].startswith("Story Analysis")

    def test_failed_run_exits_non_zero(self, story_files, capsys):
        template, defs, _ = story_files

        code = main(["run", str(template), "--model", "anthropic/claude-sonnet-4", "--vars", str(defs), "--mock"])

        result = _stdout_json(capsys)
        assert code == 1
        assert result["status"] == "error"
        assert result["error_message"] == (
            "Variable interpolation failed: Required variable 'premise' is missing"
        )


class TestValidate:
    def test_clean_template(self, story_files, capsys):
        template, defs, _ = story_files

        assert main(["validate", str(template), "--vars", str(defs)]) == 0
        assert _stdout_json(capsys) == {"valid": True, "errors": []}

    def test_undefined_tokens(self, story_files, capsys):
        template, _, _ = story_files

        assert main(["validate", str(template)]) == 1
        assert _stdout_json(capsys) == {
            "valid": False,
            "errors": ["Variable 'premise' used in template but not defined"],
        }


class TestGroups:
    def test_lists_groups_in_order(self, tmp_path, capsys):
        export = tmp_path / "templates.json"
        export.write_text(
            json.dumps(
                [
                    {"id": "2", "name": "Development", "template": "x", "model": "m", "tags": [{"value": "story-002"}]},
                    {"id": "1", "name": "Setup", "template": "x", "model": "m", "tags": ["story-001"]},
                    {"id": "3", "name": "Intro", "template": "x", "model": "m", "tags": ["character-001"]},
                    {"id": "4", "name": "Loose", "template": "x", "model": "m"},
                ]
            ),
            encoding="utf-8",
        )

        assert main(["groups", str(export)]) == 0
        assert _stdout_json(capsys) == [
            {"name": "character", "count": 1, "templates": [{"id": "3", "name": "Intro"}]},
            {
                "name": "story",
                "count": 2,
                "templates": [{"id": "1", "name": "Setup"}, {"id": "2", "name": "Development"}],
            },
        ]


class TestStatusAndEntry:
    def test_status_in_mock_mode(self, capsys):
        assert main(["status", "--mock"]) == 0

        status = _stdout_json(capsys)
        assert status["mock_mode"] is True
        assert "anthropic/claude-sonnet-4" in status["available_models"]

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.strip() == f"promptline {__version__}"

    def test_missing_file_is_reported(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr("sys.argv", ["promptline", "validate", str(tmp_path / "missing.txt")])

        with pytest.raises(SystemExit) as exc_info:
            cli_main()

        assert exc_info.value.code == 1
        assert capsys.readouterr().err.splitlines()[-1].startswith("Error: ")
