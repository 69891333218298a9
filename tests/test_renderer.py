"""
tests/test_renderer.py

Validate mmdc discovery, the subprocess wrapper (with a stand-in shell
script for mmdc), SVG measurement and the Qt pre-processing pass.
"""

from __future__ import annotations

import asyncio
import stat
import sys
import xml.etree.ElementTree as ET

import pytest

import mermaid.renderer as renderer
from mermaid.renderer import (
    _label_text,
    _preprocess_svg_for_qt,
    find_mmdc,
    render_mermaid_svg,
    svg_size,
)
from models import MermaidParseError

_SVG = "http://www.w3.org/2000/svg"

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="stand-in mmdc is a shell script")


def _script(path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


_WRITES_SVG = """\
while [ $# -gt 0 ]; do
  case "$1" in
    -o) out="$2"; shift;;
  esac
  shift
done
printf '<svg xmlns="http://www.w3.org/2000/svg" aria-roledescription="pie"/>' > "$out"
"""


# ─────────────────────────────────────────────────────────
# Locating mmdc
# ─────────────────────────────────────────────────────────


class TestFindMmdc:
    def test_settings_path_wins(self, tmp_path, monkeypatch, isolated_settings):
        exe = tmp_path / "mmdc-configured"
        exe.write_text("", encoding="utf-8")
        isolated_settings.settings.mermaid.mmdc_path = str(exe)
        monkeypatch.setenv("MMDC_PATH", str(tmp_path / "missing"))
        assert find_mmdc() == str(exe)

    def test_env_var(self, tmp_path, monkeypatch):
        exe = tmp_path / "mmdc"
        exe.write_text("", encoding="utf-8")
        monkeypatch.setenv("MMDC_PATH", str(exe))
        assert find_mmdc() == str(exe)

    def test_falls_back_to_path(self, monkeypatch):
        monkeypatch.delenv("MMDC_PATH", raising=False)
        monkeypatch.setattr(renderer.shutil, "which", lambda name: f"/usr/bin/{name}")
        assert find_mmdc() == "/usr/bin/mmdc"

    def test_not_found(self, monkeypatch):
        monkeypatch.delenv("MMDC_PATH", raising=False)
        monkeypatch.setattr(renderer.shutil, "which", lambda name: None)
        assert find_mmdc() is None


# ─────────────────────────────────────────────────────────
# Running mmdc
# ─────────────────────────────────────────────────────────


class TestRenderMermaidSvg:
    def test_missing_mmdc(self, monkeypatch):
        monkeypatch.setattr(renderer, "find_mmdc", lambda: None)
        with pytest.raises(MermaidParseError, match="mmdc"):
            asyncio.run(render_mermaid_svg("graph TD\n  A"))

    @posix_only
    def test_returns_svg(self, tmp_path):
        mmdc = _script(tmp_path / "mmdc", _WRITES_SVG)
        svg = asyncio.run(render_mermaid_svg("pie\n  \"a\": 1", {"theme": "default"}, mmdc=mmdc))
        assert 'aria-roledescription="pie"' in svg

    @posix_only
    def test_nonzero_exit(self, tmp_path):
        mmdc = _script(tmp_path / "mmdc", "echo 'Parse error on line 2' >&2\nexit 1\n")
        with pytest.raises(MermaidParseError, match="Parse error on line 2"):
            asyncio.run(render_mermaid_svg("graph TD\n  A -->", mmdc=mmdc))

    @posix_only
    def test_no_output(self, tmp_path):
        mmdc = _script(tmp_path / "mmdc", "exit 0\n")
        with pytest.raises(MermaidParseError, match="no SVG"):
            asyncio.run(render_mermaid_svg("graph TD", mmdc=mmdc))

    @posix_only
    def test_timeout(self, tmp_path):
        mmdc = _script(tmp_path / "mmdc", "sleep 5\n")
        with pytest.raises(MermaidParseError, match="timed out"):
            asyncio.run(render_mermaid_svg("graph TD", mmdc=mmdc, timeout=0.2))

    @posix_only
    def test_temp_dir_removed(self, tmp_path, monkeypatch):
        made = []
        real_mkdtemp = renderer.tempfile.mkdtemp

        def tracking_mkdtemp(**kwargs):
            path = real_mkdtemp(dir=str(tmp_path), **kwargs)
            made.append(path)
            return path

        monkeypatch.setattr(renderer.tempfile, "mkdtemp", tracking_mkdtemp)
        mmdc = _script(tmp_path / "mmdc", _WRITES_SVG)
        asyncio.run(render_mermaid_svg("graph TD", mmdc=mmdc))
        assert len(made) == 1
        assert not (tmp_path / made[0]).exists()


# ─────────────────────────────────────────────────────────
# Measurement and Qt pre-processing
# ─────────────────────────────────────────────────────────


def _root(attrs: str) -> ET.Element:
    return ET.fromstring(f'<svg xmlns="{_SVG}" {attrs}/>')


class TestSvgSize:
    @pytest.mark.parametrize("attrs,size", [
        ('width="120" height="80px"', (120, 80)),
        ('style="max-width: 300px;" viewBox="0 0 600 200"', (300, 100)),
        ('style="width: 50px; height: 40px"', (50, 40)),
        ('viewBox="-8 -8 416 208"', (416, 208)),
        ('width="100%"', (0, 0)),
    ])
    def test_size(self, attrs, size):
        assert svg_size(_root(attrs)) == size


class TestQtPreprocess:
    def test_foreign_object_becomes_text(self):
        svg = (
            f'<svg xmlns="{_SVG}" width="100" height="50">'
            '<g class="label"><foreignObject width="60" height="20">'
            '<div xmlns="http://www.w3.org/1999/xhtml"><span class="nodeLabel">Start</span></div>'
            '</foreignObject></g></svg>'
        )
        root = ET.fromstring(_preprocess_svg_for_qt(svg))
        assert root.get("viewBox") == "0 0 100.0 50.0"
        assert not list(root.iter(f"{{{_SVG}}}foreignObject"))
        (text,) = root.iter(f"{{{_SVG}}}text")
        assert text.text == "Start"
        assert (text.get("x"), text.get("y"), text.get("font-size")) == ("30.0", "10.0", "14")

    def test_existing_viewbox_kept(self):
        root = ET.fromstring(_preprocess_svg_for_qt(f'<svg xmlns="{_SVG}" viewBox="-8 -8 416 208"/>'))
        assert root.get("viewBox") == "-8 -8 416 208"

    def test_empty_label_dropped(self):
        svg = (
            f'<svg xmlns="{_SVG}" viewBox="0 0 10 10"><g class="edgeLabel">'
            '<foreignObject width="0" height="0"><div xmlns="http://www.w3.org/1999/xhtml"/></foreignObject>'
            '</g></svg>'
        )
        root = ET.fromstring(_preprocess_svg_for_qt(svg))
        assert not list(root.iter(f"{{{_SVG}}}text"))

    def test_label_text_collapses_whitespace(self):
        fo = ET.fromstring(
            f'<foreignObject xmlns="{_SVG}"><div xmlns="http://www.w3.org/1999/xhtml">'
            '<style>p{color:red}</style><span>Car</span>\n   <b>fast</b></div></foreignObject>'
        )
        assert _label_text(fo) == "Car fast"
