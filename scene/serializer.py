"""
scene/serializer.py

Package a ``ConversionResult`` as an Excalidraw scene and persist it in
the Obsidian Excalidraw markdown layout.

The envelope is ``{type, version, source, elements, files, appState}``.
How its JSON text is stored inside the fenced block is decided by a
``SceneCodec``; the default deflates it and encodes it as URL-safe base64.
"""

from __future__ import annotations

import base64
import copy
import json
import re
import zlib
from typing import Any, Dict, Optional

from debug_trace import trace
from models import ConversionResult
from schemas import validate_scene
from settings import APP_NAME

SCENE_TYPE = "excalidraw-scene"
SCENE_VERSION = 2

DEFAULT_APP_STATE: Dict[str, Any] = {
    "viewBackgroundColor": "#ffffff",
    "currentItemStrokeColor": "#1e1e1e",
    "currentItemBackgroundColor": "transparent",
    "currentItemFillStyle": "solid",
    "currentItemStrokeWidth": 2,
    "currentItemStrokeStyle": "solid",
    "currentItemRoughness": 1,
    "currentItemOpacity": 100,
    "currentItemFontFamily": 1,
    "currentItemFontSize": 20,
    "currentItemTextAlign": "left",
    "currentItemStartArrowhead": None,
    "currentItemEndArrowhead": "arrow",
    "scrollX": 0,
    "scrollY": 0,
    "zoom": {"value": 1},
    "currentItemRoundness": "round",
    "gridSize": None,
    "gridColor": {"Bold": "#C9C9C9FF", "Regular": "#EDEDEDFF"},
    "currentStrokeOptions": None,
    "previousGridSize": None,
    "frameRendering": {"enabled": True, "clip": True, "name": True, "outline": True},
}

DOCUMENT_HEADER = """---
excalidraw-plugin: parsed
tags: [excalidraw]
---

==⚠  Switch to EXCALIDRAW VIEW in the MORE OPTIONS menu of this document. ⚠==

## Drawing
"""

_FENCE_RE = re.compile(r"```([\w-]+)\n(.*?)\n```", re.DOTALL)


# ─────────────────────────────────────────────────────────
# Codecs
# ─────────────────────────────────────────────────────────


class SceneCodec:
    """Encoding of the scene JSON inside the fenced block."""

    fence_label = ""

    def encode(self, text: str) -> str:
        raise NotImplementedError

    def decode(self, payload: str) -> str:
        raise NotImplementedError


class CompressedJsonCodec(SceneCodec):
    """zlib deflate of the UTF-8 JSON, URL-safe base64 encoded."""

    fence_label = "compressed-json"

    def encode(self, text: str) -> str:
        return base64.urlsafe_b64encode(zlib.compress(text.encode("utf-8"), 9)).decode("ascii")

    def decode(self, payload: str) -> str:
        raw = base64.urlsafe_b64decode("".join(payload.split()))
        return zlib.decompress(raw).decode("utf-8")


class PlainJsonCodec(SceneCodec):
    """JSON stored as-is."""

    fence_label = "json"

    def encode(self, text: str) -> str:
        return text

    def decode(self, payload: str) -> str:
        return payload


CODECS: Dict[str, SceneCodec] = {
    CompressedJsonCodec.fence_label: CompressedJsonCodec(),
    PlainJsonCodec.fence_label: PlainJsonCodec(),
}


def get_codec(name: str) -> SceneCodec:
    """Look up a codec by fence label.

    Raises:
        ValueError: If *name* is not a known codec.
    """
    try:
        return CODECS[name]
    except KeyError:
        raise ValueError(
            f"Unknown scene codec {name!r}; expected one of {sorted(CODECS)}"
        ) from None


# ─────────────────────────────────────────────────────────
# Envelope
# ─────────────────────────────────────────────────────────


def build_envelope(result: ConversionResult, source: str = APP_NAME) -> Dict[str, Any]:
    """Wrap elements and files in the versioned scene envelope."""
    return {
        "type": SCENE_TYPE,
        "version": SCENE_VERSION,
        "source": source,
        "elements": result.element_dicts(),
        "files": result.file_dicts(),
        "appState": copy.deepcopy(DEFAULT_APP_STATE),
    }


def scene_json(result: ConversionResult, source: str = APP_NAME) -> str:
    """JSON text of the envelope, as stored before encoding."""
    return json.dumps(build_envelope(result, source), indent=2, ensure_ascii=False)


def serialize(
    result: ConversionResult,
    codec: Optional[SceneCodec] = None,
    source: str = APP_NAME,
) -> str:
    """Encoded payload for the fenced block."""
    codec = codec or CODECS["compressed-json"]
    return codec.encode(scene_json(result, source))


def deserialize(payload: str, codec: Optional[SceneCodec] = None) -> Dict[str, Any]:
    """Decode a payload back into the envelope dict."""
    codec = codec or CODECS["compressed-json"]
    return json.loads(codec.decode(payload))


# ─────────────────────────────────────────────────────────
# Document
# ─────────────────────────────────────────────────────────


def render_scene_document(
    result: ConversionResult,
    codec: Optional[SceneCodec] = None,
    source: str = APP_NAME,
) -> str:
    """Full ``.excalidraw.md`` file content for *result*."""
    codec = codec or CODECS["compressed-json"]
    payload = serialize(result, codec, source)
    return f"{DOCUMENT_HEADER}```{codec.fence_label}\n{payload}\n```\n%%"


def read_scene_document(text: str, validate: bool = True) -> Dict[str, Any]:
    """Extract and decode the scene envelope from a ``.excalidraw.md`` file.

    Args:
        text: Document content.
        validate: Check the envelope against the scene schema.

    Returns:
        The envelope dict.

    Raises:
        ValueError: If no scene block is found or the envelope is invalid.
    """
    for m in _FENCE_RE.finditer(text):
        label = m.group(1)
        if label not in CODECS:
            continue
        envelope = deserialize(m.group(2), CODECS[label])
        if validate:
            ok, errors = validate_scene(envelope)
            if not ok:
                trace(f"Scene failed validation: {errors[:5]}", "ERROR")
                raise ValueError("Invalid scene: " + "; ".join(errors[:5]))
        return envelope
    raise ValueError("No scene block found in document")
