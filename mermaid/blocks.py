"""
mermaid/blocks.py

Find ```` ```mermaid ```` blocks in a markdown document, classify each by
its header keyword and clean up known syntax trouble before rendering.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Tuple

_BLOCK_RE = re.compile(r"```mermaid([\s\S]*?)```")

# Ordered (prefix, kind) table matched against the lower-cased first line
DIAGRAM_KIND_PREFIXES: List[Tuple[str, str]] = [
    ("flowchart", "flowchart"),
    ("graph", "flowchart"),
    ("sequencediagram", "sequence"),
    ("gantt", "gantt"),
    ("classdiagram", "class"),
    ("statediagram", "state"),
    ("erdiagram", "er"),
    ("gitgraph", "gitgraph"),
    ("pie", "pie"),
    ("journey", "journey"),
    ("requirementdiagram", "requirement"),
    ("timeline", "timeline"),
    ("mindmap", "mindmap"),
]

UNKNOWN_KIND = "unknown"

# Class diagram relation operators that need surrounding spaces
_CLASS_RELATION_OPERATORS = ("||--o{", "}o--o{")

# A lone ":" (not part of "::" or ":::")
_LABEL_COLON_RE = re.compile(r"[ \t]*(?<!:):(?!:)[ \t]*")


def extract_mermaid_blocks(content: str) -> List[str]:
    """Return the trimmed body of every non-empty mermaid block, in order.

    Blocks do not nest; the first closing fence ends a block.
    """
    blocks: List[str] = []
    for m in _BLOCK_RE.finditer(content):
        body = m.group(1).strip()
        if body:
            blocks.append(body)
    return blocks


def get_diagram_kind(diagram_code: str) -> str:
    """Classify a diagram by its first non-blank line.

    Returns:
        A kind tag such as ``"flowchart"`` or ``"sequence"``, or
        ``"unknown"``.
    """
    first_line = ""
    for line in diagram_code.splitlines():
        if line.strip():
            first_line = line.strip().lower()
            break
    for prefix, kind in DIAGRAM_KIND_PREFIXES:
        if first_line.startswith(prefix):
            return kind
    return UNKNOWN_KIND


def is_unsupported_kind(kind: str, unsupported_kinds: Iterable[str]) -> bool:
    """True if *kind* is listed in the configured unsupported kinds."""
    return kind.lower() in {k.lower() for k in unsupported_kinds}


def preprocess_diagram_code(diagram_code: str) -> str:
    """Normalise syntax Mermaid is known to misread.

    Class diagrams get LF line endings, single spaces around the
    ``||--o{`` / ``}o--o{`` operators and around label colons.  Running
    this twice gives the same text as running it once.
    """
    if get_diagram_kind(diagram_code) != "class":
        return diagram_code

    code = diagram_code.replace("\r\n", "\n")
    for op in _CLASS_RELATION_OPERATORS:
        code = re.sub(r"[ \t]*" + re.escape(op) + r"[ \t]*", f" {op} ", code)
    return _LABEL_COLON_RE.sub(" : ", code)
