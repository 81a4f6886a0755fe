"""Tests for the command line interface."""

from pathlib import Path

import pytest

from genailib.cli import build_parser, main, parse_assignments

WORKFLOWS = Path(__file__).parent.parent / "workflows"


@pytest.fixture(autouse=True)
def workdir(tmp_path: Path, monkeypatch) -> Path:
    """Run every command from an empty directory so no config file is picked up."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestParsing:
    """Tests for argument parsing."""

    def test_parse_assignments(self) -> None:
        assert parse_assignments(["name=World", "expr=a=b"]) == {"name": "World", "expr": "a=b"}

    @pytest.mark.parametrize("value", ["novalue", "=value"])
    def test_parse_assignments_rejects_malformed(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_assignments([value])

    def test_parse_file_assignments(self, workdir: Path) -> None:
        (workdir / "clip.mp4").write_bytes(b"clip")
        assert parse_assignments(["clip=clip.mp4"], read_files=True) == {"clip": b"clip"}

    def test_run_arguments(self) -> None:
        args = build_parser().parse_args(["run", "wf.yaml", "-i", "a=1", "-i", "b=2", "-o", "out.mp4"])
        assert args.command == "run"
        assert args.input == ["a=1", "b=2"]
        assert args.file == []
        assert args.output == "out.mp4"

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """Tests for main()."""

    def test_run_text_workflow(self, capsys) -> None:
        code = main(["run", str(WORKFLOWS / "hello.yaml"), "-i", "name=World"])
        out = capsys.readouterr().out

        assert code == 0
        assert "Result: Hello World!" in out
        assert "Output: greeting" in out

    def test_run_saves_byte_result(self, workdir: Path, capsys) -> None:
        (workdir / "intro.mp4").write_bytes(b"intro-clip")
        (workdir / "merge.yaml").write_text(
            "name: merge\n"
            "steps:\n"
            "  - id: merged\n"
            "    function_type: videos_to_video\n"
            "    videos: [intro]\n"
        )

        code = main(["run", "merge.yaml", "-f", "intro=intro.mp4", "-o", "out/result.mp4"])

        assert code == 0
        assert (workdir / "out" / "result.mp4").read_bytes() == b"intro-clip"
        assert "Result saved" in capsys.readouterr().out

    def test_run_reports_failing_step(self, workdir: Path, capsys) -> None:
        (workdir / "broken.yaml").write_text(
            "steps:\n"
            "  - id: greet\n"
            "    function_type: texts_to_text\n"
        )
        assert main(["run", "broken.yaml"]) == 1
        assert "Error in step greet: missing prompt in step configuration" in capsys.readouterr().out

    def test_run_missing_file(self, capsys) -> None:
        assert main(["run", "nope.yaml"]) == 1
        assert "Error" in capsys.readouterr().out

    def test_run_bad_input(self, capsys) -> None:
        assert main(["run", str(WORKFLOWS / "hello.yaml"), "-i", "oops"]) == 1
        assert "expected NAME=VALUE" in capsys.readouterr().out

    def test_validate(self, capsys) -> None:
        assert main(["validate", str(WORKFLOWS / "story_video.yaml")]) == 0
        assert "is valid" in capsys.readouterr().out

    def test_validate_unknown_function_type(self, workdir: Path, capsys) -> None:
        (workdir / "bad.yaml").write_text("steps:\n  - id: a\n    function_type: text_to_song\n")
        assert main(["validate", "bad.yaml"]) == 1
        assert "unsupported function type: text_to_song" in capsys.readouterr().out

    def test_validate_unknown_provider(self, workdir: Path, capsys) -> None:
        (workdir / "bad.yaml").write_text(
            "steps:\n"
            "  - id: a\n"
            "    function_type: text_to_image\n"
            "    provider: acme-image\n"
            "    prompt: x\n"
        )
        assert main(["validate", "bad.yaml"]) == 1
        assert "unknown provider(s): acme-image" in capsys.readouterr().out

    def test_providers(self, capsys) -> None:
        assert main(["providers"]) == 0
        out = capsys.readouterr().out
        assert "video:" in out
        assert "  veo-3.0-generate-preview" in out
        assert "  gpt-image-1" in out

    def test_missing_config(self, capsys) -> None:
        assert main(["--config", "missing.yaml", "providers"]) == 1
        assert "Config file not found" in capsys.readouterr().out
