"""
engine.py

Conversion entry points: one definition to a scene, a scene to a
``.excalidraw.md`` document, and bulk conversion of every mermaid block
in a markdown document.

The parser is injected (``parse_mermaid`` by default), so everything here
runs without mmdc when a fake parser coroutine is supplied.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple, Union

from debug_trace import trace, trace_call, trace_exception
from mermaid.blocks import (
    extract_mermaid_blocks,
    get_diagram_kind,
    is_unsupported_kind,
    preprocess_diagram_code,
)
from mermaid.parser import parse_mermaid
from models import ConversionResult, DiagramModel
from scene import ElementFactory, convert, render_scene_document
from scene.serializer import get_codec
from settings import ConversionConfig, get_settings

Parser = Callable[[str, ConversionConfig], Awaitable[DiagramModel]]

SCENE_SUFFIX = ".excalidraw.md"

__all__ = [
    "BulkReport",
    "bulk_convert",
    "bulk_output_name",
    "convert",
    "convert_to_document",
    "output_dir_for",
    "parse_and_convert",
    "single_output_name",
    "write_documents",
]


@dataclass
class BulkReport:
    """Outcome of a bulk run.

    Attributes:
        successful: Blocks converted.
        failed: Blocks whose parse or conversion raised.
        skipped: Blocks of a configured-unsupported kind.
        documents: ``(file name, document text)`` per successful block.
        errors: ``(block index, message)`` per failed block, 1-based.
        skips: ``(block index, kind)`` per skipped block, 1-based.
    """
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    documents: List[Tuple[str, str]] = field(default_factory=list)
    errors: List[Tuple[int, str]] = field(default_factory=list)
    skips: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.successful + self.failed + self.skipped


def _default_config() -> ConversionConfig:
    return ConversionConfig.from_settings(get_settings().settings)


async def parse_and_convert(
    definition: str,
    config: Optional[ConversionConfig] = None,
    parser: Optional[Parser] = None,
    factory: Optional[ElementFactory] = None,
) -> ConversionResult:
    """Parse one Mermaid definition and convert it to scene elements.

    Raises:
        MermaidParseError: The parser rejected the definition.
        UnsupportedDiagramTypeError: The parser returned an unknown model.
    """
    config = config or _default_config()
    parser = parser or parse_mermaid
    graph = await parser(definition, config)
    return convert(graph, config, factory)


def convert_to_document(
    result: ConversionResult,
    codec_name: Optional[str] = None,
    source: Optional[str] = None,
) -> str:
    """Render a conversion result as ``.excalidraw.md`` text.

    Codec and source default to the ``[scene]`` / ``[general]`` settings.
    """
    settings = get_settings().settings
    codec = get_codec(codec_name or settings.scene.codec)
    return render_scene_document(result, codec, source or settings.general.source)


def single_output_name(now_ms: Optional[int] = None) -> str:
    """File name for a one-off conversion."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"Converted-Mermaid-{now_ms}{SCENE_SUFFIX}"


def bulk_output_name(source_stem: str, index: int) -> str:
    """File name for the *index*-th successful block of a bulk run."""
    return f"{source_stem}-Diagram-{index}{SCENE_SUFFIX}"


@trace_call("BULK")
async def bulk_convert(
    document_text: str,
    config: Optional[ConversionConfig] = None,
    parser: Optional[Parser] = None,
    delay: Optional[float] = None,
    unsupported_kinds: Optional[Iterable[str]] = None,
    source_stem: str = "Document",
    codec_name: Optional[str] = None,
    factory: Optional[ElementFactory] = None,
) -> BulkReport:
    """Convert every mermaid block in a markdown document.

    Blocks run one at a time.  Unsupported kinds are skipped without
    calling the parser; a failing block is recorded and the run moves on.
    *delay* seconds are slept between parser calls.

    Args:
        document_text: Markdown containing fenced mermaid blocks.
        config: Per-call options; built from settings if None.
        parser: Async parser, ``parse_mermaid`` if None.
        delay: Pause between parser calls; ``[bulk] delay_seconds`` if None.
        unsupported_kinds: Kinds to skip; ``[bulk] unsupported_kinds`` if None.
        source_stem: Prefix of the generated file names.
        codec_name: Scene codec; ``[scene] codec`` if None.
        factory: Element factory shared by all blocks.

    Returns:
        The run's ``BulkReport``.
    """
    settings = get_settings().settings
    config = config or _default_config()
    delay = settings.bulk.delay_seconds if delay is None else delay
    unsupported = list(settings.bulk.unsupported_kinds if unsupported_kinds is None else unsupported_kinds)

    blocks = extract_mermaid_blocks(document_text)
    trace(f"Bulk run over {len(blocks)} blocks, skipping {unsupported or 'nothing'}", "BULK")

    report = BulkReport()
    parsed_any = False
    for index, code in enumerate(blocks, start=1):
        kind = get_diagram_kind(code)
        if is_unsupported_kind(kind, unsupported):
            report.skipped += 1
            report.skips.append((index, kind))
            trace(f"Block {index}: skipped unsupported kind {kind!r}", "BULK")
            continue

        if parsed_any and delay > 0:
            await asyncio.sleep(delay)
        parsed_any = True

        try:
            result = await parse_and_convert(preprocess_diagram_code(code), config, parser, factory)
            content = convert_to_document(result, codec_name)
        except Exception as e:
            report.failed += 1
            report.errors.append((index, str(e)))
            trace_exception(f"Block {index} ({kind}) failed")
            continue

        report.successful += 1
        report.documents.append((bulk_output_name(source_stem, report.successful), content))
        trace(f"Block {index}: converted {kind} ({len(result.elements)} elements)", "BULK")

    trace(
        f"Bulk done: {report.successful} successful, {report.failed} failed, "
        f"{report.skipped} skipped",
        "BULK",
    )
    return report


def output_dir_for(out_dir: Path, source_stem: str, grouped: bool) -> Path:
    """Directory scene files go to, created on demand."""
    target = Path(out_dir) / source_stem if grouped else Path(out_dir)
    target.mkdir(parents=True, exist_ok=True)
    return target


def write_documents(
    report: Union[BulkReport, Iterable[Tuple[str, str]]],
    out_dir: Path,
    source_stem: str,
    grouped: bool = False,
) -> List[Path]:
    """Write a bulk report's documents (or any ``(name, content)`` pairs).

    Files go in a folder named *source_stem* when *grouped*.

    Returns:
        The written paths, in order.
    """
    documents = report.documents if isinstance(report, BulkReport) else report
    target = output_dir_for(out_dir, source_stem, grouped)
    paths = []
    for name, content in documents:
        path = target / name
        path.write_text(content, encoding="utf-8")
        trace(f"Wrote {path}", "SCENE")
        paths.append(path)
    return paths
