import builtins
import csv
import json
import logging
import shlex
import pytest

from image_scanner import config
from image_scanner.main import main

@pytest.fixture(autouse=True)
def isolated_logging(tmp_path, monkeypatch):
    """main() reconfigures the root logger and writes its log to the cwd."""
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    for h in root.handlers:
        if h not in saved_handlers:
            h.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)

def common_opts(tmp_path):
    return ["--settings", str(tmp_path / "appsettings.json"), "--db", str(tmp_path / "catalog.db")]

def run(tmp_path, *args) -> int:
    return main([*args, *common_opts(tmp_path)])

def test_scan_then_export(tmp_path, make_image, capsys):
    root = tmp_path / "photos"
    make_image(root / "a.png")
    make_image(root / "sub" / "b.jpg", color=(0, 0, 255))

    assert run(tmp_path, "scan", str(root), "--no-progress", "--summary") == 0
    out = capsys.readouterr().out
    assert "Scan Summary" in out
    assert "Completed" in out
    assert (tmp_path / "image_scanner.log").exists()

    assert run(tmp_path, "export", str(tmp_path / "out.csv")) == 0
    with open(tmp_path / "out.csv", "r", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert sorted(r["Name"] for r in rows) == ["a.png", "b.jpg"]

def test_scan_respects_no_subdirs_and_extensions(tmp_path, make_image):
    root = tmp_path / "photos"
    make_image(root / "a.png")
    make_image(root / "c.gif", color=(0, 255, 0))
    make_image(root / "sub" / "b.png", color=(0, 0, 255))

    assert run(tmp_path, "scan", str(root), "--no-progress", "--no-subdirs", "-e", "png") == 0
    assert run(tmp_path, "export", str(tmp_path / "out.csv")) == 0

    with open(tmp_path / "out.csv", "r", encoding="utf-8") as f:
        assert [r["Name"] for r in csv.DictReader(f)] == ["a.png"]

def test_settings_file_is_used(tmp_path, make_image):
    root = tmp_path / "photos"
    make_image(root / "a.png")
    make_image(root / "b.jpg", color=(0, 0, 255))
    (tmp_path / "appsettings.json").write_text(json.dumps({
        config.SETTINGS_SECTION: {"DefaultImageExtensions": [".jpg"], "LogFilePath": "logs/scan.log"},
    }), encoding="utf-8")

    assert run(tmp_path, "scan", str(root), "--no-progress") == 0
    assert run(tmp_path, "export", str(tmp_path / "out.csv")) == 0

    with open(tmp_path / "out.csv", "r", encoding="utf-8") as f:
        assert [r["Name"] for r in csv.DictReader(f)] == ["b.jpg"]
    assert (tmp_path / "logs" / "scan.log").exists()

@pytest.mark.parametrize("extra", [
    ["--batch-size", "0"],
    ["--workers", "0"],
    ["--min-size", "10", "--max-size", "5"],
])
def test_invalid_options_exit_with_config_error(tmp_path, extra):
    (tmp_path / "photos").mkdir()
    assert run(tmp_path, "scan", str(tmp_path / "photos"), "--no-progress", *extra) == 2

def test_missing_folder_is_config_error(tmp_path):
    assert run(tmp_path, "scan", str(tmp_path / "missing"), "--no-progress") == 2

def test_bad_settings_file(tmp_path, capsys):
    (tmp_path / "appsettings.json").write_text("[oops", encoding="utf-8")
    assert run(tmp_path, "scan", str(tmp_path), "--no-progress") == 2
    assert "Error:" in capsys.readouterr().err

def test_export_without_database(tmp_path):
    assert run(tmp_path, "export", str(tmp_path / "out.csv")) == 1
    assert not (tmp_path / "out.csv").exists()

def test_shared_options_may_precede_subcommand_arguments(tmp_path, make_image):
    root = tmp_path / "photos"
    make_image(root / "a.png")

    assert main(["scan", *common_opts(tmp_path), str(root), "--no-progress"]) == 0
    assert (tmp_path / "catalog.db").exists()

def test_interactive_prompt_runs_commands_until_exit(tmp_path, make_image, monkeypatch, capsys):
    root = tmp_path / "photos"
    make_image(root / "a.png")
    opts = " ".join(shlex.quote(o) for o in common_opts(tmp_path))
    lines = iter([
        "",
        f"scan {shlex.quote(str(root))} --no-progress {opts}",
        "help",
        "nonsense",
        f"export {shlex.quote(str(tmp_path / 'out.csv'))} {opts}",
        "exit",
        "scan never-reached",
    ])
    monkeypatch.setattr(builtins, "input", lambda prompt="": next(lines))

    assert main([]) == 0

    out = capsys.readouterr().out
    assert "Welcome to Image Scanner!" in out
    assert "Exiting application..." in out
    with open(tmp_path / "out.csv", "r", encoding="utf-8") as f:
        assert [r["Name"] for r in csv.DictReader(f)] == ["a.png"]
    assert next(lines) == "scan never-reached"

def test_interactive_prompt_ends_on_eof(monkeypatch):
    def eof(prompt=""):
        raise EOFError

    monkeypatch.setattr(builtins, "input", eof)
    assert main([]) == 0

def test_exit_command():
    assert main(["exit"]) == 0
