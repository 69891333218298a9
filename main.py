"""
main.py

mermaid2excalidraw - command line front end

Converts Mermaid diagrams into Obsidian Excalidraw scene documents
(``.excalidraw.md``):

- ``convert <file.mmd>``: one Mermaid definition -> one scene document
- ``bulk <doc.md>``: every ```` ```mermaid ```` block in a markdown
  document -> one scene document per block, with a success/failure/skip
  tally

Usage:
    python main.py convert diagram.mmd --out drawings/
    python main.py bulk notes.md --grouped --skip gantt --delay 0

Dependencies:
    npm install -g @mermaid-js/mermaid-cli   (mmdc)

Environment:
    MMDC_PATH=...          explicit mmdc executable
    M2E_DEBUG_TRACE=1      verbose tracing on stderr (same as --trace)
    M2E_TRACE_CATEGORIES   comma-separated stages to trace, e.g. PARSE,MMDC
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from debug_trace import close_log, enable, trace
from engine import (
    bulk_convert,
    convert_to_document,
    output_dir_for,
    parse_and_convert,
    single_output_name,
    write_documents,
)
from models import MermaidParseError, SceneContractError, UnsupportedDiagramTypeError
from scene.serializer import CODECS
from settings import ConversionConfig, get_settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mermaid2excalidraw",
        description="Convert Mermaid diagrams to Excalidraw scene documents",
    )
    parser.add_argument("--trace", action="store_true",
                        help="Trace pipeline stages to stderr")
    parser.add_argument("--trace-file", metavar="PATH",
                        help="Also append trace lines to PATH (implies --trace)")
    sub = parser.add_subparsers(dest="command", required=True)

    def _common(p: argparse.ArgumentParser) -> None:
        p.add_argument("-o", "--out", metavar="DIR",
                       help="Output directory (default: same as input)")
        p.add_argument("--grouped", action="store_true", default=None,
                       help="Write into a folder named after the input file")
        p.add_argument("--format", choices=sorted(CODECS), default=None,
                       help="Scene encoding (default: settings [scene] codec)")

    convert_p = sub.add_parser("convert", help="Convert one Mermaid file")
    convert_p.add_argument("input", help="Mermaid definition (.mmd)")
    _common(convert_p)

    bulk_p = sub.add_parser("bulk", help="Convert every mermaid block of a markdown file")
    bulk_p.add_argument("input", help="Markdown document")
    _common(bulk_p)
    bulk_p.add_argument("--skip", metavar="KIND", action="append", default=None,
                        help="Diagram kind to skip (repeatable; default: settings [bulk])")
    bulk_p.add_argument("--delay", metavar="SECONDS", type=float, default=None,
                        help="Pause between renders (default: settings [bulk])")
    return parser


def _config(args: argparse.Namespace) -> ConversionConfig:
    config = ConversionConfig.from_settings(get_settings().settings)
    if args.grouped is not None:
        config.output_grouped_by_name = args.grouped
    return config


def _out_dir(args: argparse.Namespace, input_path: Path) -> Path:
    return Path(args.out) if args.out else input_path.parent


def run_convert(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.is_file():
        print(f"Error: File not found: {input_path}")
        return 1

    config = _config(args)
    definition = input_path.read_text(encoding="utf-8")
    try:
        result = asyncio.run(parse_and_convert(definition, config))
    except (MermaidParseError, UnsupportedDiagramTypeError, SceneContractError) as e:
        print(f"Error converting {input_path.name}: {e}")
        return 1

    target = output_dir_for(_out_dir(args, input_path), input_path.stem, config.output_grouped_by_name)
    path = target / single_output_name()
    path.write_text(convert_to_document(result, args.format), encoding="utf-8")
    print(f"Saved: {path}")
    return 0


def run_bulk(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    if not input_path.is_file():
        print(f"Error: File not found: {input_path}")
        return 1

    config = _config(args)
    report = asyncio.run(bulk_convert(
        input_path.read_text(encoding="utf-8"),
        config,
        delay=args.delay,
        unsupported_kinds=args.skip,
        source_stem=input_path.stem,
        codec_name=args.format,
    ))

    if report.total == 0:
        print(f"No mermaid blocks found in {input_path}")
        return 1

    for path in write_documents(report, _out_dir(args, input_path), input_path.stem,
                                config.output_grouped_by_name):
        print(f"Saved: {path}")
    for index, kind in report.skips:
        print(f"  block {index}: skipped ({kind})")
    for index, message in report.errors:
        print(f"  block {index}: failed - {message}")

    print(f"\nDone: {report.successful} converted, {report.failed} failed, "
          f"{report.skipped} skipped")
    return 1 if report.failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.trace or args.trace_file:
        enable(args.trace_file)
    trace(f"Command: {args.command} {args.input}", "INFO")
    try:
        if args.command == "convert":
            return run_convert(args)
        return run_bulk(args)
    finally:
        close_log()


if __name__ == "__main__":
    sys.exit(main())
