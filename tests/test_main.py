"""Tests for the command line front end, with the Mermaid parser faked out."""
from __future__ import annotations

import pytest

import engine
import main
from models import Flowchart, MermaidParseError, Vertex
from scene import read_scene_document


async def _fake_parse(definition, config):
    if "BROKEN" in definition:
        raise MermaidParseError("Parse error on line 2")
    return Flowchart(vertices=[Vertex(id="A", text="A", width=50, height=30)])


@pytest.fixture(autouse=True)
def fake_parser(monkeypatch):
    monkeypatch.setattr(engine, "parse_mermaid", _fake_parse)


_NOTES = """# Notes

```mermaid
flowchart LR
  A --> B
```

```mermaid
pie
  "a": 1
```

```mermaid
flowchart TD
  BROKEN -->
```
"""


class TestConvertCommand:
    def test_writes_document(self, tmp_path, capsys):
        src = tmp_path / "diagram.mmd"
        src.write_text("flowchart LR\n  A", encoding="utf-8")
        out = tmp_path / "out"

        assert main.main(["convert", str(src), "--out", str(out), "--format", "json"]) == 0

        (written,) = out.glob("Converted-Mermaid-*.excalidraw.md")
        env = read_scene_document(written.read_text(encoding="utf-8"))
        assert [el["id"] for el in env["elements"]] == ["A", "A_text"]
        assert "Saved:" in capsys.readouterr().out

    def test_grouped(self, tmp_path):
        src = tmp_path / "flow.mmd"
        src.write_text("flowchart LR\n  A", encoding="utf-8")
        assert main.main(["convert", str(src), "--grouped"]) == 0
        assert len(list((tmp_path / "flow").glob("*.excalidraw.md"))) == 1

    def test_parse_error(self, tmp_path, capsys):
        src = tmp_path / "bad.mmd"
        src.write_text("flowchart LR\n  BROKEN -->", encoding="utf-8")
        assert main.main(["convert", str(src)]) == 1
        assert "Parse error on line 2" in capsys.readouterr().out
        assert not list(tmp_path.glob("*.excalidraw.md"))

    def test_missing_input(self, tmp_path, capsys):
        assert main.main(["convert", str(tmp_path / "nope.mmd")]) == 1
        assert "File not found" in capsys.readouterr().out


class TestBulkCommand:
    def test_tally_and_files(self, tmp_path, capsys):
        src = tmp_path / "notes.md"
        src.write_text(_NOTES, encoding="utf-8")

        code = main.main(["bulk", str(src), "--skip", "pie", "--delay", "0"])

        out = capsys.readouterr().out
        assert code == 1
        assert "Done: 1 converted, 1 failed, 1 skipped" in out
        assert "block 2: skipped (pie)" in out
        assert "block 3: failed - Parse error on line 2" in out
        assert (tmp_path / "notes-Diagram-1.excalidraw.md").is_file()

    def test_all_succeed(self, tmp_path):
        src = tmp_path / "notes.md"
        src.write_text(_NOTES.replace("BROKEN", "C"), encoding="utf-8")
        out = tmp_path / "drawings"
        assert main.main(["bulk", str(src), "--skip", "pie", "--delay", "0", "-o", str(out), "--grouped"]) == 0
        assert sorted(p.name for p in (out / "notes").iterdir()) == [
            "notes-Diagram-1.excalidraw.md",
            "notes-Diagram-2.excalidraw.md",
        ]

    def test_no_blocks(self, tmp_path, capsys):
        src = tmp_path / "empty.md"
        src.write_text("# nothing here", encoding="utf-8")
        assert main.main(["bulk", str(src)]) == 1
        assert "No mermaid blocks" in capsys.readouterr().out


class TestArguments:
    def test_format_choices(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args(["convert", "x.mmd", "--format", "lzstring"])

    def test_skip_repeatable(self):
        args = main.build_parser().parse_args(["bulk", "x.md", "--skip", "gantt", "--skip", "pie"])
        assert args.skip == ["gantt", "pie"]
        assert args.grouped is None and args.delay is None
