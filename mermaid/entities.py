"""
mermaid/entities.py

Protect HTML-style entity codes (``#9829;``, ``#quot;``) from Mermaid's
own escaping and turn them back into characters afterwards.

Mermaid treats ``#name;`` as its entity syntax, which mangles labels such
as ``"A #9829; B"`` on the way through the renderer.  Before rendering,
every ``#token;`` is wrapped in private sentinel markers; after parsing
the SVG, the markers are expanded to standard ``&#N;`` / ``&name;``
references and resolved to literal text.
"""

from __future__ import annotations

import html
import re

# Sentinel markers: numeric codes get a doubled opener so both kinds stay
# distinguishable.  The named form is a prefix of the numeric one.
_OPEN = "ﬂ°"
_OPEN_NUMERIC = _OPEN + "°"
_CLOSE = "¶ß"

_ENTITY_RE = re.compile(r"#([0-9]+|[a-z]+);")
_NUMERIC_SENTINEL_RE = re.compile(re.escape(_OPEN_NUMERIC) + r"(.+?)" + re.escape(_CLOSE))
_NAMED_SENTINEL_RE = re.compile(re.escape(_OPEN) + r"(.+?)" + re.escape(_CLOSE))

# Style/classDef declarations embedding a colour like "#f9f;" would
# otherwise be read as an entity reference.
_STYLE_DECL_RE = re.compile(r"(?:style|classDef).*:\S*#.*;")


def protect_entities(text: str) -> str:
    """Wrap every ``#token;`` in sentinel markers."""

    def _wrap(m: re.Match) -> str:
        token = m.group(1)
        if token.isdigit():
            return f"{_OPEN_NUMERIC}{token}{_CLOSE}"
        return f"{_OPEN}{token}{_CLOSE}"

    return _ENTITY_RE.sub(_wrap, text)


def restore_entities(text: str) -> str:
    """Exact inverse of ``protect_entities``: sentinels back to ``#token;``."""
    text = _NUMERIC_SENTINEL_RE.sub(lambda m: f"#{m.group(1)};", text)
    return _NAMED_SENTINEL_RE.sub(lambda m: f"#{m.group(1)};", text)


def encode_entities(text: str) -> str:
    """Prepare a Mermaid definition for rendering.

    Drops the trailing ``;`` of style/classDef declarations that contain a
    ``#`` colour, then protects entity codes.
    """
    text = _STYLE_DECL_RE.sub(lambda m: m.group(0)[:-1], text)
    return protect_entities(text)


def decode_entities(text: str) -> str:
    """Expand sentinels into ``&#N;`` / ``&name;`` character references.

    The numeric pattern must run first because the named opener is a
    prefix of the numeric one.
    """
    text = _NUMERIC_SENTINEL_RE.sub(lambda m: f"&#{m.group(1)};", text)
    return _NAMED_SENTINEL_RE.sub(lambda m: f"&{m.group(1)};", text)


def entity_codes_to_text(text: str) -> str:
    """Resolve protected and bare Mermaid entity codes to literal characters.

    ``"A ﬂ°°9829¶ß B"`` and ``"A #9829; B"`` both become ``"A ♥ B"``.
    Unknown names are left as written.
    """
    text = decode_entities(text)
    text = _ENTITY_RE.sub(
        lambda m: f"&#{m.group(1)};" if m.group(1).isdigit() else f"&{m.group(1)};",
        text,
    )
    return html.unescape(text)
