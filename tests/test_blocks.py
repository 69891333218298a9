"""Tests for mermaid block extraction, classification and preprocessing."""
from __future__ import annotations

import pytest

from mermaid.blocks import (
    UNKNOWN_KIND,
    extract_mermaid_blocks,
    get_diagram_kind,
    is_unsupported_kind,
    preprocess_diagram_code,
)


# ─────────────────────────────────────────────────────────
# Extraction
# ─────────────────────────────────────────────────────────


class TestExtractBlocks:
    def test_two_blocks_in_order(self):
        doc = (
            "# Notes\n\n"
            "```mermaid\nflowchart LR\n  A --> B\n```\n\n"
            "Some prose.\n\n"
            "```mermaid\nsequenceDiagram\n  A->>B: hi\n```\n"
        )
        blocks = extract_mermaid_blocks(doc)
        assert blocks == ["flowchart LR\n  A --> B", "sequenceDiagram\n  A->>B: hi"]

    def test_empty_block_dropped(self):
        doc = "```mermaid\n\n   \n```\n```mermaid\ngraph TD\nA-->B\n```"
        assert extract_mermaid_blocks(doc) == ["graph TD\nA-->B"]

    def test_other_fences_ignored(self):
        doc = "```python\nprint(1)\n```\n```mermaid\npie\n```"
        assert extract_mermaid_blocks(doc) == ["pie"]

    def test_no_blocks(self):
        assert extract_mermaid_blocks("just text") == []


# ─────────────────────────────────────────────────────────
# Classification
# ─────────────────────────────────────────────────────────


class TestDiagramKind:
    @pytest.mark.parametrize("code,kind", [
        ("flowchart LR\nA-->B", "flowchart"),
        ("graph TD\nA-->B", "flowchart"),
        ("sequenceDiagram\nA->>B: x", "sequence"),
        ("classDiagram\nA <|-- B", "class"),
        ("stateDiagram-v2\n[*] --> S", "state"),
        ("erDiagram\nA ||--o{ B : has", "er"),
        ("gantt\ntitle T", "gantt"),
        ("gitGraph\ncommit", "gitgraph"),
        ("pie title Pets", "pie"),
        ("journey\ntitle J", "journey"),
        ("requirementDiagram\n", "requirement"),
        ("timeline\ntitle T", "timeline"),
        ("mindmap\n  root", "mindmap"),
    ])
    def test_known_kinds(self, code, kind):
        assert get_diagram_kind(code) == kind

    def test_leading_blank_lines_skipped(self):
        assert get_diagram_kind("\n\n   \nclassDiagram\n") == "class"

    def test_case_insensitive(self):
        assert get_diagram_kind("SEQUENCEDIAGRAM") == "sequence"

    def test_unknown(self):
        assert get_diagram_kind("quadrantChart\n") == UNKNOWN_KIND
        assert get_diagram_kind("") == UNKNOWN_KIND


class TestUnsupportedKinds:
    def test_listed_kind(self):
        assert is_unsupported_kind("gantt", ["gantt", "pie"])

    def test_case_insensitive(self):
        assert is_unsupported_kind("gantt", ["GANTT"])

    def test_empty_set(self):
        assert not is_unsupported_kind("gantt", [])


# ─────────────────────────────────────────────────────────
# Preprocessing
# ─────────────────────────────────────────────────────────


class TestPreprocess:
    def test_non_class_untouched(self):
        code = "flowchart LR\r\n  A-->B:x"
        assert preprocess_diagram_code(code) == code

    def test_line_endings_normalised(self):
        assert "\r" not in preprocess_diagram_code("classDiagram\r\n  A <|-- B\r\n")

    def test_relation_operators_spaced(self):
        out = preprocess_diagram_code("classDiagram\n  A||--o{B\n  C}o--o{D")
        assert "A ||--o{ B" in out
        assert "C }o--o{ D" in out

    def test_label_colon_spaced(self):
        out = preprocess_diagram_code("classDiagram\n  A <|-- B:inherits")
        assert "B : inherits" in out

    def test_double_colon_kept(self):
        out = preprocess_diagram_code("classDiagram\n  class A:::hot\n  A : +x::y")
        assert "A:::hot" in out
        assert "+x::y" in out

    @pytest.mark.parametrize("code", [
        "classDiagram\n  A||--o{B : has\n  C}o--o{D:owns",
        "classDiagram\r\n  Animal <|-- Duck:is\r\n  Animal : +int age",
        "classDiagram\n  class A:::hot",
    ])
    def test_idempotent(self, code):
        once = preprocess_diagram_code(code)
        assert preprocess_diagram_code(once) == once
