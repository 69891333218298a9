"""
mermaid/renderer.py

Render Mermaid definitions to SVG with the Mermaid CLI (``mmdc``) and
rasterise SVG to PNG with Qt's SVG renderer.

Every render runs in its own temporary directory, which is removed when
the call returns, so concurrent renders share nothing.

Mermaid outputs ``<foreignObject>`` with embedded XHTML for all text
labels.  Qt's ``QSvgRenderer`` cannot render ``<foreignObject>``, so the
PNG path first replaces each one with a native SVG ``<text>`` element.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import shutil
import tempfile
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from debug_trace import trace, trace_call
from models import MermaidParseError

# Register namespaces so ET.tostring() doesn't mangle them with ns0/ns1 prefixes
ET.register_namespace("", "http://www.w3.org/2000/svg")
ET.register_namespace("xlink", "http://www.w3.org/1999/xlink")

_SVG_NS = "http://www.w3.org/2000/svg"

# Keeps the offscreen QGuiApplication alive between rasterisations
_qt_app = None


def find_mmdc() -> Optional[str]:
    """Find the Mermaid CLI (mmdc) executable.

    Search order:
        1. settings ``[mermaid] mmdc_path``
        2. MMDC_PATH environment variable
        3. mmdc on system PATH

    Returns:
        Path to mmdc executable if found, None otherwise.
    """
    from settings import get_settings

    configured = get_settings().settings.mermaid.mmdc_path
    if configured and os.path.isfile(configured):
        return configured

    env_path = os.environ.get("MMDC_PATH")
    if env_path and os.path.isfile(env_path):
        return env_path

    return shutil.which("mmdc")


@trace_call("MMDC")
async def render_mermaid_svg(
    definition: str,
    mermaid_config: Optional[Dict[str, Any]] = None,
    timeout: float = 60.0,
    mmdc: Optional[str] = None,
) -> str:
    """Render a Mermaid definition to SVG text.

    Args:
        definition: Mermaid source.
        mermaid_config: Mermaid configuration, passed to mmdc with ``-c``.
        timeout: Seconds to wait for mmdc.
        mmdc: Explicit mmdc executable; found with ``find_mmdc`` if None.

    Returns:
        The SVG document text.

    Raises:
        MermaidParseError: If mmdc is missing, fails, times out or writes
            no SVG.
    """
    mmdc = mmdc or find_mmdc()
    if mmdc is None:
        raise MermaidParseError(
            "Mermaid CLI (mmdc) not found.\n\n"
            "Install with:  npm install -g @mermaid-js/mermaid-cli\n\n"
            "Or set the MMDC_PATH environment variable to the mmdc executable."
        )

    tmp_dir = tempfile.mkdtemp(prefix="m2e_mmd_")
    try:
        input_path = Path(tmp_dir) / "diagram.mmd"
        output_path = Path(tmp_dir) / "diagram.svg"
        config_path = Path(tmp_dir) / "config.json"
        input_path.write_text(definition, encoding="utf-8")
        config_path.write_text(json.dumps(mermaid_config or {}), encoding="utf-8")

        cmd = [mmdc, "-i", str(input_path), "-o", str(output_path), "-c", str(config_path)]
        trace(f"mmdc command: {' '.join(cmd)}", "MMDC")

        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise MermaidParseError(f"mmdc timed out after {timeout} seconds") from None

        if proc.returncode != 0:
            raise MermaidParseError(
                f"mmdc rendering failed (exit {proc.returncode}):\n"
                f"{stderr.decode('utf-8', 'replace').strip()}"
            )

        if not output_path.is_file():
            raise MermaidParseError(
                "mmdc ran successfully but produced no SVG output.\n"
                f"Command: {' '.join(cmd)}\n"
                f"stdout: {stdout.decode('utf-8', 'replace').strip()}\n"
                f"stderr: {stderr.decode('utf-8', 'replace').strip()}"
            )

        return output_path.read_text(encoding="utf-8")
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)


# ─────────────────────────────────────────────────────────
# SVG measurement
# ─────────────────────────────────────────────────────────


def _px(value: Optional[str]) -> float:
    """Parse a length like ``"120"`` or ``"120px"``; percentages give 0."""
    m = re.match(r"\s*([\d.]+)\s*(px)?\s*$", value or "")
    return float(m.group(1)) if m else 0.0


def svg_size(root: ET.Element) -> Tuple[float, float]:
    """Rendered size of an ``<svg>`` root, or ``(0, 0)`` if unmeasurable.

    Explicit ``width``/``height`` win, then ``max-width``/``height`` in the
    root style, then the viewBox.
    """
    w = _px(root.get("width"))
    h = _px(root.get("height"))
    if w > 0 and h > 0:
        return w, h

    style_attr = root.get("style", "")
    m_w = re.search(r"(?<![-\w])(?:max-)?width:\s*([\d.]+)px", style_attr)
    m_h = re.search(r"(?<![-\w])(?:max-)?height:\s*([\d.]+)px", style_attr)
    viewbox = root.get("viewBox", "").replace(",", " ").split()
    vb_w = float(viewbox[2]) if len(viewbox) >= 4 else 0.0
    vb_h = float(viewbox[3]) if len(viewbox) >= 4 else 0.0

    w = w or (float(m_w.group(1)) if m_w else 0.0) or vb_w
    if not h:
        if m_h:
            h = float(m_h.group(1))
        elif vb_w and vb_h and w:
            # Height follows the viewBox aspect ratio at the chosen width
            h = w * vb_h / vb_w
    return round(w, 2), round(h, 2)


# ─────────────────────────────────────────────────────────
# SVG -> PNG
# ─────────────────────────────────────────────────────────


def svg_to_png_bytes(svg_text: str, scale: float = 2.0) -> Tuple[bytes, float, float]:
    """Rasterise SVG text to PNG bytes.

    Args:
        svg_text: The SVG document.
        scale: Factor applied to the SVG's intrinsic size.

    Returns:
        ``(png_bytes, width, height)`` where width/height are the unscaled
        display size.

    Raises:
        RuntimeError: If the SVG cannot be loaded or rendered.
    """
    global _qt_app
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

    from PyQt6.QtCore import QBuffer, QByteArray, QIODevice, QSize, Qt
    from PyQt6.QtGui import QGuiApplication, QImage, QPainter
    from PyQt6.QtSvg import QSvgRenderer

    if QGuiApplication.instance() is None:
        _qt_app = QGuiApplication(["mermaid2excalidraw"])

    fixed_svg = _preprocess_svg_for_qt(svg_text)

    renderer = QSvgRenderer(QByteArray(fixed_svg))
    if not renderer.isValid():
        raise RuntimeError("QSvgRenderer could not load SVG")

    default_size = renderer.defaultSize()
    if default_size.isEmpty():
        raise RuntimeError("SVG has no intrinsic size")

    target_w = int(default_size.width() * scale)
    target_h = int(default_size.height() * scale)

    image = QImage(
        QSize(target_w, target_h),
        QImage.Format.Format_ARGB32_Premultiplied,
    )
    image.fill(Qt.GlobalColor.white)

    painter = QPainter(image)
    renderer.render(painter)
    painter.end()

    data = QByteArray()
    buffer = QBuffer(data)
    buffer.open(QIODevice.OpenModeFlag.WriteOnly)
    if not image.save(buffer, "PNG"):
        raise RuntimeError("Failed to encode rendered PNG")
    buffer.close()

    return bytes(data), float(default_size.width()), float(default_size.height())


# ─────────────────────────────────────────────────────────
# SVG pre-processing for Qt
# ─────────────────────────────────────────────────────────

# Labels redrawn as native <text>
LABEL_FONT_SIZE = 14
LABEL_FONT_FAMILY = "trebuchet ms, verdana, arial, sans-serif"


def _label_text(fo: ET.Element) -> str:
    """Visible text of a ``<foreignObject>`` label, whitespace collapsed."""
    parts: List[str] = []
    for el in fo.iter():
        if el.tag.rsplit("}", 1)[-1] != "style" and el.text:
            parts.append(el.text)
        if el is not fo and el.tail:
            parts.append(el.tail)
    return " ".join("".join(parts).split())


def _preprocess_svg_for_qt(svg_text: str) -> bytes:
    """Return a copy of a Mermaid SVG that ``QSvgRenderer`` can draw.

    Each ``<foreignObject>`` label becomes a ``<text>`` centred in its box
    (empty ones are dropped), and a viewBox is added when the root has none.
    """
    root = ET.fromstring(svg_text)
    if not root.get("viewBox"):
        w, h = svg_size(root)
        if w and h:
            root.set("viewBox", f"0 0 {w} {h}")

    parents = {c: p for p in root.iter() for c in p}
    for fo in list(root.iter(f"{{{_SVG_NS}}}foreignObject")):
        parent = parents[fo]
        idx = list(parent).index(fo)
        parent.remove(fo)

        text = _label_text(fo)
        fo_w, fo_h = _px(fo.get("width")), _px(fo.get("height"))
        if not text or fo_w < 1 or fo_h < 1:
            continue

        text_el = ET.Element(f"{{{_SVG_NS}}}text", {
            "x": str(round(fo_w / 2, 2)),
            "y": str(round(fo_h / 2, 2)),
            "text-anchor": "middle",
            "dominant-baseline": "central",
            "font-family": LABEL_FONT_FAMILY,
            "font-size": str(LABEL_FONT_SIZE),
            "fill": "#333",
        })
        text_el.text = text
        parent.insert(idx, text_el)

    return ET.tostring(root, encoding="utf-8", xml_declaration=True)
