"""
mermaid/parser.py

Parse Mermaid-rendered SVG into the typed diagram model.

``parse_mermaid`` is the async entry point: it protects entity codes,
renders the definition with ``mmdc`` and hands the SVG to
``parse_svg_to_model``.  The SVG root's ``aria-roledescription`` picks the
parser; diagram kinds without one are embedded whole as a ``GraphImage``.

All coordinates are absolute: every ancestor ``translate()`` is applied
and the viewBox origin is subtracted.
"""

from __future__ import annotations

import base64
import re
import xml.etree.ElementTree as ET
from typing import Dict, Iterable, List, Optional, Sequence as Seq, Set, Tuple

from debug_trace import trace, trace_call
from mermaid.entities import encode_entities, entity_codes_to_text
from mermaid.renderer import render_mermaid_svg, svg_size, svg_to_png_bytes
from models import (
    Actor,
    ClassDiagram,
    ClassNode,
    DiagramModel,
    Edge,
    Flowchart,
    GraphImage,
    Message,
    Note,
    Position,
    Relation,
    Sequence,
    SubGraph,
    Vertex,
)
from scene.geometry import extract_translation
from settings import ConversionConfig, get_settings

_SVG_NS = "http://www.w3.org/2000/svg"
_XLINK_NS = "http://www.w3.org/1999/xlink"

# aria-roledescription -> diagram model tag
_ROLE_TYPES: Dict[str, str] = {
    "flowchart-v2": "flowchart",
    "flowchart": "flowchart",
    "sequence": "sequence",
    "class": "class",
    "classDiagram": "class",
}

_SHAPE_TAGS = ("rect", "polygon", "circle", "ellipse", "path")

_DIRECTION_RE = re.compile(r"^\s*(?:flowchart|graph)\s+(TB|TD|BT|RL|LR)\b", re.IGNORECASE | re.MULTILINE)

_PATH_TOKEN_RE = re.compile(r"[MmLlHhVvCcSsQqTtAaZz]|[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")

# Number of arguments per path command
_PATH_ARITY = {"M": 2, "L": 2, "T": 2, "H": 1, "V": 1, "C": 6, "S": 4, "Q": 4, "A": 7}

_RELATION_MARKER_RE = re.compile(r"(extension|composition|aggregation|dependency|lollipop)(?:Start|End)")


# ─────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────


async def parse_mermaid(
    definition: str,
    config: Optional[ConversionConfig] = None,
) -> DiagramModel:
    """Render a Mermaid definition and parse it into a diagram model.

    Args:
        definition: Mermaid source text.
        config: Per-call options; ``config.mermaid`` is handed to mmdc.

    Returns:
        A ``Flowchart``, ``Sequence``, ``ClassDiagram`` or ``GraphImage``.

    Raises:
        MermaidParseError: If rendering fails.
    """
    config = config or ConversionConfig()
    mermaid_settings = get_settings().settings.mermaid
    svg_text = await render_mermaid_svg(
        encode_entities(definition),
        config.mermaid,
        timeout=mermaid_settings.timeout_seconds,
    )
    return parse_svg_to_model(
        svg_text,
        definition,
        image_format=mermaid_settings.image_format,
        png_scale=mermaid_settings.png_scale,
    )


def detect_diagram_type(root: ET.Element) -> str:
    """Model tag for a rendered SVG root; ``"graphImage"`` when unknown."""
    return _ROLE_TYPES.get(root.get("aria-roledescription", ""), "graphImage")


@trace_call("PARSE")
def parse_svg_to_model(
    svg_text: str,
    definition: str = "",
    image_format: str = "svg",
    png_scale: float = 2.0,
) -> DiagramModel:
    """Parse Mermaid SVG output into a diagram model.

    Args:
        svg_text: SVG produced by mmdc.
        definition: The Mermaid source, used for details the SVG drops
            (flowchart direction).
        image_format: ``"svg"`` or ``"png"`` for the image fallback.
        png_scale: Raster scale when ``image_format`` is ``"png"``.

    Returns:
        The diagram model.  Malformed SVG yields an empty ``GraphImage``, and
        a recognised diagram with no shapes falls back to ``GraphImage``.
    """
    try:
        root = ET.fromstring(svg_text)
    except ET.ParseError as e:
        trace(f"Rendered SVG could not be parsed ({e}); using an empty surface", "ERROR")
        root = ET.Element(f"{{{_SVG_NS}}}svg")

    kind = detect_diagram_type(root)
    trace(f"Parsing {kind} (role={root.get('aria-roledescription', '')!r})", "PARSE")

    if kind == "flowchart":
        chart = _parse_flowchart(_SvgTree(root), definition)
        if chart.vertices:
            return chart
    elif kind == "sequence":
        seq = _parse_sequence(_SvgTree(root))
        if seq.actors:
            return seq
    elif kind == "class":
        diagram = _parse_class(_SvgTree(root))
        if diagram.classes:
            return diagram
    if kind != "graphImage":
        trace(f"No {kind} shapes found; embedding the rendered SVG", "PARSE")
    return _graph_image(root, image_format, png_scale)


# ─────────────────────────────────────────────────────────
# Shared helpers
# ─────────────────────────────────────────────────────────


class _SvgTree:
    """An SVG root with parent links and its viewBox origin."""

    def __init__(self, root: ET.Element):
        self.root = root
        self.parents = {c: p for p in root.iter() for c in p}
        viewbox = root.get("viewBox", "").replace(",", " ").split()
        if len(viewbox) >= 4:
            self.origin = Position(float(viewbox[0]), float(viewbox[1]))
        else:
            self.origin = Position()

    def offset(self, el: ET.Element) -> Position:
        """Sum of ``translate()`` on *el* and its ancestors, minus the viewBox origin."""
        x = y = 0.0
        node: Optional[ET.Element] = el
        while node is not None:
            t = extract_translation(node.get("transform"))
            x += t.x
            y += t.y
            node = self.parents.get(node)
        return Position(x - self.origin.x, y - self.origin.y)

    def groups(self, class_name: str) -> List[ET.Element]:
        """All ``<g>`` elements with *class_name* among their classes."""
        return [g for g in self.root.iter(f"{{{_SVG_NS}}}g") if class_name in _classes(g)]

    def absolute(self, el: ET.Element, points: Iterable[Position]) -> List[Position]:
        off = self.offset(el)
        return [Position(round(p.x + off.x, 2), round(p.y + off.y, 2)) for p in points]


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _classes(el: ET.Element) -> List[str]:
    return el.get("class", "").split()


def _num(el: ET.Element, attr: str, default: float = 0.0) -> float:
    try:
        return float(el.get(attr, "") or default)
    except ValueError:
        return default


def _parse_style(style: Optional[str]) -> Dict[str, str]:
    """``"fill:#f9f;stroke:#333"`` -> ``{"fill": "#f9f", "stroke": "#333"}``."""
    result: Dict[str, str] = {}
    for decl in (style or "").split(";"):
        if ":" in decl:
            key, value = decl.split(":", 1)
            value = value.replace("!important", "").strip()
            if key.strip() and value:
                result[key.strip()] = value
    return result


def _path_points(d: str, include_controls: bool = False) -> List[Position]:
    """Walk an SVG path and return the end point of every segment.

    Handles absolute and relative commands.  With *include_controls*,
    bezier control points are included too, which is what bounding boxes
    want.
    """
    points: List[Position] = []
    cx = cy = sx = sy = 0.0
    cmd: Optional[str] = None
    tokens = _PATH_TOKEN_RE.findall(d or "")
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.isalpha():
            cmd = tok
            i += 1
            if cmd in "Zz":
                cx, cy = sx, sy
                points.append(Position(cx, cy))
            continue
        if cmd is None or cmd in "Zz":
            i += 1
            continue

        upper = cmd.upper()
        arity = _PATH_ARITY[upper]
        if i + arity > len(tokens) or any(t.isalpha() for t in tokens[i:i + arity]):
            break
        nums = [float(t) for t in tokens[i:i + arity]]
        i += arity
        rel = cmd.islower()

        if upper == "H":
            cx = cx + nums[0] if rel else nums[0]
        elif upper == "V":
            cy = cy + nums[0] if rel else nums[0]
        else:
            if include_controls and upper in "CSQ":
                for j in range(0, arity - 2, 2):
                    points.append(Position(
                        nums[j] + (cx if rel else 0.0),
                        nums[j + 1] + (cy if rel else 0.0),
                    ))
            if rel:
                cx, cy = cx + nums[-2], cy + nums[-1]
            else:
                cx, cy = nums[-2], nums[-1]

        if upper == "M":
            sx, sy = cx, cy
            # Extra pairs after a moveto are implicit linetos
            cmd = "l" if rel else "L"
        points.append(Position(cx, cy))

    deduped: List[Position] = []
    for p in points:
        if not deduped or (deduped[-1].x, deduped[-1].y) != (p.x, p.y):
            deduped.append(p)
    return deduped


def _parse_polygon_points(points_str: str) -> List[Position]:
    """Parse a ``points`` attribute into positions."""
    pairs = re.findall(r"([-+]?\d*\.?\d+)[,\s]+([-+]?\d*\.?\d+)", points_str or "")
    return [Position(float(x), float(y)) for x, y in pairs]


def _outline_points(el: ET.Element) -> List[Position]:
    """Corner/extreme points of a shape in its own coordinate space."""
    name = _local_name(el.tag)
    if name == "rect":
        x, y = _num(el, "x"), _num(el, "y")
        w, h = _num(el, "width"), _num(el, "height")
        return [Position(x, y), Position(x + w, y + h)]
    if name == "circle":
        cx, cy, r = _num(el, "cx"), _num(el, "cy"), _num(el, "r")
        return [Position(cx - r, cy - r), Position(cx + r, cy + r)]
    if name == "ellipse":
        cx, cy = _num(el, "cx"), _num(el, "cy")
        rx, ry = _num(el, "rx"), _num(el, "ry")
        return [Position(cx - rx, cy - ry), Position(cx + rx, cy + ry)]
    if name == "line":
        return [Position(_num(el, "x1"), _num(el, "y1")), Position(_num(el, "x2"), _num(el, "y2"))]
    if name == "polygon":
        return _parse_polygon_points(el.get("points", ""))
    if name == "path":
        return _path_points(el.get("d", ""), include_controls=True)
    return []


def _box(points: Seq[Position]) -> Tuple[float, float, float, float]:
    if not points:
        return 0.0, 0.0, 0.0, 0.0
    xs = [p.x for p in points]
    ys = [p.y for p in points]
    return (round(min(xs), 2), round(min(ys), 2),
            round(max(xs) - min(xs), 2), round(max(ys) - min(ys), 2))


def _shape_box(tree: _SvgTree, el: ET.Element) -> Tuple[float, float, float, float]:
    """Absolute ``(x, y, w, h)`` of a shape element."""
    return _box(tree.absolute(el, _outline_points(el)))


def _first_shape(g_el: ET.Element) -> Optional[ET.Element]:
    """The first shape in a node group, skipping its label subtree."""
    for child in g_el:
        name = _local_name(child.tag)
        if name in _SHAPE_TAGS:
            return child
        if name == "g" and "label" not in _classes(child):
            found = _first_shape(child)
            if found is not None:
                return found
    return None


def _extract_text(g_el: ET.Element) -> str:
    """Extract text from a Mermaid SVG group (foreignObject or <text>).

    Handles both HTML-label mode (foreignObject with XHTML spans)
    and plain SVG text mode.  Entity codes are resolved.
    """
    for fo in g_el.iter(f"{{{_SVG_NS}}}foreignObject"):
        texts: List[str] = []
        for el in fo.iter():
            if el.text and el.text.strip():
                texts.append(el.text.strip())
            if el is not fo and el.tail and el.tail.strip():
                texts.append(el.tail.strip())
        if texts:
            return entity_codes_to_text(" ".join(texts))

    for t_el in g_el.iter(f"{{{_SVG_NS}}}text"):
        joined = _text_from_el(t_el)
        if joined:
            return joined

    return ""


def _text_from_el(t_el: ET.Element) -> str:
    """Get joined text from a single ``<text>`` element."""
    parts = list(t_el.itertext())
    return entity_codes_to_text(" ".join(p.strip() for p in parts if p.strip()))


def _center(x: float, y: float, w: float, h: float) -> Position:
    return Position(x + w / 2, y + h / 2)


def _nearest(point: Position, centers: Dict[str, Position]) -> str:
    return min(
        centers,
        key=lambda k: (centers[k].x - point.x) ** 2 + (centers[k].y - point.y) ** 2,
    )


def _split_link_id(raw_id: str, known: Set[str], prefixes: Seq[str]) -> Optional[Tuple[str, str]]:
    """Split ids like ``L_A_B_0`` into ``("A", "B")`` using the known node ids."""
    for prefix in prefixes:
        if not raw_id.startswith(prefix):
            continue
        sep = prefix[-1]
        body = re.sub(re.escape(sep) + r"\d+$", "", raw_id[len(prefix):])
        for i, ch in enumerate(body):
            if ch == sep and body[:i] in known and body[i + 1:] in known:
                return body[:i], body[i + 1:]
    return None


def _link_endpoints(
    path_el: ET.Element,
    points: List[Position],
    centers: Dict[str, Position],
    id_prefixes: Seq[str],
) -> Tuple[str, str]:
    """Resolve the node ids an edge path connects.

    ``LS-``/``LE-`` classes win, then the element id, then the nodes
    nearest to the path's end points.
    """
    known = set(centers)
    start = end = None
    for token in _classes(path_el):
        if token.startswith("LS-") and token[3:] in known:
            start = token[3:]
        elif token.startswith("LE-") and token[3:] in known:
            end = token[3:]
    if start is not None and end is not None:
        return start, end

    split = _split_link_id(path_el.get("id", ""), known, id_prefixes)
    if split is not None:
        return split

    if not centers or not points:
        return start or "", end or ""
    return start or _nearest(points[0], centers), end or _nearest(points[-1], centers)


def _edge_labels(tree: _SvgTree) -> Tuple[Dict[str, str], List[str]]:
    """Edge label text keyed by ``data-id`` and in document order."""
    by_id: Dict[str, str] = {}
    ordered: List[str] = []
    for labels_g in tree.groups("edgeLabels"):
        for label_g in labels_g:
            if _local_name(label_g.tag) != "g":
                continue
            text = _extract_text(label_g)
            ordered.append(text)
            for el in label_g.iter():
                if el.get("data-id"):
                    by_id[el.get("data-id")] = text
                    break
    return by_id, ordered


def _edge_paths(tree: _SvgTree) -> List[ET.Element]:
    paths: List[ET.Element] = []
    for paths_g in tree.groups("edgePaths"):
        paths.extend(p for p in paths_g.iter(f"{{{_SVG_NS}}}path") if p.get("d"))
    return paths


def _node_id(node_g: ET.Element, prefix_re: str) -> str:
    """Extract the Mermaid node ID from a node group's ``id`` attribute."""
    raw_id = node_g.get("id", "")
    m = re.match(prefix_re, raw_id)
    if m:
        return m.group(1)
    return raw_id


# ─────────────────────────────────────────────────────────
# Flowchart
# ─────────────────────────────────────────────────────────


def _vertex_type(node_g: ET.Element, shape: ET.Element) -> str:
    """Infer the Mermaid vertex shape from the drawn element."""
    name = _local_name(shape.tag)
    if name == "circle":
        circles = list(node_g.iter(f"{{{_SVG_NS}}}circle"))
        return "doublecircle" if len(circles) >= 2 else "circle"
    if name == "ellipse":
        return "circle"
    if name == "polygon":
        corners = len(_parse_polygon_points(shape.get("points", "")))
        if corners == 4:
            return "diamond"
        if corners == 6:
            return "hexagon"
        return "rect"
    if name == "rect":
        rx = _num(shape, "rx")
        if rx > 0:
            return "stadium" if rx >= _num(shape, "height") / 2 - 0.5 else "round"
    return "rect"


def _edge_type(path_el: ET.Element) -> str:
    marker_start = path_el.get("marker-start", "")
    marker_end = path_el.get("marker-end", "")
    if not marker_end:
        return "arrow_open"
    if "circle" in marker_end.lower():
        base = "arrow_circle"
    elif "cross" in marker_end.lower():
        base = "arrow_cross"
    else:
        base = "arrow_point"
    return f"double_{base}" if marker_start else base


def _edge_stroke(path_el: ET.Element) -> str:
    classes = _classes(path_el)
    if "edge-thickness-thick" in classes:
        return "thick"
    if "edge-pattern-dotted" in classes:
        return "dotted"
    return "normal"


def _node_link(tree: _SvgTree, node_g: ET.Element) -> Optional[str]:
    parent = tree.parents.get(node_g)
    if parent is None or _local_name(parent.tag) != "a":
        return None
    return parent.get(f"{{{_XLINK_NS}}}href") or parent.get("href")


def _parse_vertex(tree: _SvgTree, node_g: ET.Element) -> Optional[Vertex]:
    """Parse a single ``<g class="node ...">`` into a vertex."""
    shape = _first_shape(node_g)
    if shape is None:
        trace(f"Node {node_g.get('id', '')!r} has no shape; skipped", "PARSE")
        return None

    x, y, w, h = _shape_box(tree, shape)
    label_style: Dict[str, str] = {}
    for el in node_g.iter():
        if _local_name(el.tag) == "span" and el.get("style"):
            label_style = _parse_style(el.get("style"))
            break

    return Vertex(
        id=_node_id(node_g, r"flowchart-(.+)-\d+$"),
        type=_vertex_type(node_g, shape),
        text=_extract_text(node_g),
        x=x,
        y=y,
        width=w,
        height=h,
        link=_node_link(tree, node_g),
        container_style=_parse_style(shape.get("style")),
        label_style=label_style,
    )


def _parse_subgraph(
    tree: _SvgTree, cluster_g: ET.Element, centers: Dict[str, Position], index: int = 0
) -> Optional[SubGraph]:
    """Parse a ``<g class="cluster">``; members are the vertices it encloses."""
    shape = _first_shape(cluster_g)
    if shape is None:
        return None
    x, y, w, h = _shape_box(tree, shape)
    members = [
        vid for vid, c in centers.items()
        if x <= c.x <= x + w and y <= c.y <= y + h
    ]
    return SubGraph(
        id=cluster_g.get("id", "") or f"subGraph{index}",
        text=_extract_text(cluster_g),
        node_ids=members,
        x=x,
        y=y,
        width=w,
        height=h,
    )


def _parse_flowchart(tree: _SvgTree, definition: str) -> Flowchart:
    """Parse a Mermaid flowchart SVG."""
    chart = Flowchart()
    m = _DIRECTION_RE.search(definition or "")
    if m:
        direction = m.group(1).upper()
        chart.direction = "TB" if direction == "TD" else direction

    for node_g in tree.groups("node"):
        vertex = _parse_vertex(tree, node_g)
        if vertex is not None:
            chart.vertices.append(vertex)

    centers = {v.id: _center(v.x, v.y, v.width, v.height) for v in chart.vertices}

    for index, cluster_g in enumerate(tree.groups("cluster")):
        subgraph = _parse_subgraph(tree, cluster_g, centers, index)
        if subgraph is not None:
            chart.subgraphs.append(subgraph)

    labels_by_id, ordered_labels = _edge_labels(tree)
    for idx, path_el in enumerate(_edge_paths(tree)):
        points = tree.absolute(path_el, _path_points(path_el.get("d", "")))
        if len(points) < 2:
            continue
        start, end = _link_endpoints(path_el, points, centers, ("L_", "L-"))
        raw_id = path_el.get("id") or f"L_{start}_{end}_{idx}"
        text = labels_by_id.get(raw_id)
        if text is None:
            text = ordered_labels[idx] if idx < len(ordered_labels) else ""
        chart.edges.append(Edge(
            id=raw_id,
            start=start,
            end=end,
            type=_edge_type(path_el),
            text=text,
            stroke=_edge_stroke(path_el),
            points=points,
        ))

    trace(
        f"Flowchart: {len(chart.vertices)} vertices, {len(chart.edges)} edges, "
        f"{len(chart.subgraphs)} subgraphs, direction {chart.direction}",
        "PARSE",
    )
    return chart


# ─────────────────────────────────────────────────────────
# Sequence
# ─────────────────────────────────────────────────────────


def _actor_from_rect(tree: _SvgTree, rect: ET.Element) -> Actor:
    x, y, w, h = _shape_box(tree, rect)
    name = rect.get("name", "")
    parent = tree.parents.get(rect)
    text = _extract_text(parent) if parent is not None else ""
    return Actor(id=name or text, text=text or name, kind="participant", x=x, y=y, width=w, height=h)


def _actor_from_figure(tree: _SvgTree, figure_g: ET.Element) -> Actor:
    """Stick-figure actors are drawn as a circle and lines; use their union."""
    points: List[Position] = []
    for el in figure_g.iter():
        if _local_name(el.tag) in ("circle", "line", "path", "ellipse"):
            points.extend(tree.absolute(el, _outline_points(el)))
    x, y, w, h = _box(points)
    name = figure_g.get("name", "")
    text = _extract_text(figure_g)
    return Actor(id=name or text, text=text or name, kind="actor", x=x, y=y, width=w, height=h)


def _parse_sequence(tree: _SvgTree) -> Sequence:
    """Parse a Mermaid sequence diagram SVG.

    Elements are flat (no class-based grouping). Actors are ``<rect>`` with
    class ``actor`` (or stick figures ``<g class="actor-man">``), lifelines
    are ``<line class="actor-line">``, messages are
    ``<line class="messageLine*">`` (paths for self messages) and notes
    are ``<rect class="note">``.  Only the top actor row is kept.
    """
    seq = Sequence()
    actors: Dict[str, Actor] = {}
    lifelines: List[ET.Element] = []
    message_els: List[ET.Element] = []
    note_rects: List[ET.Element] = []

    for el in tree.root.iter():
        tag = _local_name(el.tag)
        classes = _classes(el)
        if "actor-bottom" in classes:
            continue
        if tag == "rect" and "actor" in classes:
            actor = _actor_from_rect(tree, el)
            actors.setdefault(actor.id, actor)
        elif tag == "g" and "actor-man" in classes:
            actor = _actor_from_figure(tree, el)
            actors.setdefault(actor.id, actor)
        elif tag == "line" and "actor-line" in classes:
            lifelines.append(el)
        elif tag in ("line", "path") and any(c.startswith("messageLine") for c in classes):
            message_els.append(el)
        elif tag == "rect" and "note" in classes:
            note_rects.append(el)

    seq.actors = list(actors.values())
    centers = {a.id: _center(a.x, a.y, a.width, a.height) for a in seq.actors}
    # Messages attach by horizontal distance to the lifeline
    columns = {aid: Position(c.x, 0.0) for aid, c in centers.items()}

    for line in lifelines:
        start, end = tree.absolute(line, _outline_points(line))
        name = line.get("name", "")
        actor = actors.get(name)
        if actor is None and columns:
            actor = actors[_nearest(Position(start.x, 0.0), columns)]
        if actor is not None and actor.lifeline_start is None:
            actor.lifeline_start = start
            actor.lifeline_end = end

    message_texts = [_text_from_el(t) for t in tree.root.iter(f"{{{_SVG_NS}}}text") if "messageText" in _classes(t)]
    for idx, el in enumerate(message_els):
        if _local_name(el.tag) == "line":
            points = tree.absolute(el, _outline_points(el))
        else:
            points = tree.absolute(el, _path_points(el.get("d", "")))
        if len(points) < 2:
            continue
        classes = _classes(el)
        seq.messages.append(Message(
            id=f"message_{idx}",
            start=_nearest(Position(points[0].x, 0.0), columns) if columns else "",
            end=_nearest(Position(points[-1].x, 0.0), columns) if columns else "",
            text=message_texts[idx] if idx < len(message_texts) else "",
            dashed="messageLine1" in classes or "stroke-dasharray" in el.get("style", ""),
            has_arrowhead=bool(el.get("marker-end")),
            points=points,
        ))

    note_texts = [_text_from_el(t) for t in tree.root.iter(f"{{{_SVG_NS}}}text") if "noteText" in _classes(t)]
    for idx, rect in enumerate(note_rects):
        x, y, w, h = _shape_box(tree, rect)
        seq.notes.append(Note(
            id=f"note_{idx}",
            text=note_texts[idx] if idx < len(note_texts) else "",
            x=x,
            y=y,
            width=w,
            height=h,
        ))

    trace(
        f"Sequence: {len(seq.actors)} actors, {len(seq.messages)} messages, {len(seq.notes)} notes",
        "PARSE",
    )
    return seq


# ─────────────────────────────────────────────────────────
# Class diagram
# ─────────────────────────────────────────────────────────


def _group_lines(group: ET.Element) -> List[str]:
    lines = []
    for child in group:
        if _local_name(child.tag) == "g":
            text = _extract_text(child)
            if text:
                lines.append(text)
    return lines


def _class_sections(tree: _SvgTree, node_g: ET.Element) -> Tuple[str, List[str], List[str]]:
    """Name, members and methods of a class box.

    Newer Mermaid wraps each section in ``label-group``/``members-group``/
    ``methods-group``; older output lists every line in one ``label`` group
    and separates the sections with ``divider`` lines.
    """
    sections = {}
    for g in node_g.iter(f"{{{_SVG_NS}}}g"):
        for name in ("label-group", "members-group", "methods-group"):
            if name in _classes(g):
                sections[name] = g
    if "label-group" in sections:
        return (
            _extract_text(sections["label-group"]),
            _group_lines(sections["members-group"]) if "members-group" in sections else [],
            _group_lines(sections["methods-group"]) if "methods-group" in sections else [],
        )

    dividers = sorted(
        tree.offset(line).y + _num(line, "y1")
        for line in node_g.iter(f"{{{_SVG_NS}}}line")
        if "divider" in _classes(line)
    )
    rows: List[Tuple[float, str]] = []
    label_g = next((g for g in node_g if _local_name(g.tag) == "g" and "label" in _classes(g)), None)
    if label_g is not None:
        for child in label_g:
            text = _extract_text(child)
            if text:
                rows.append((tree.offset(child).y, text))
    if not rows:
        return _extract_text(node_g), [], []

    title, members, methods = [], [], []
    for y, text in rows:
        if not dividers or y < dividers[0]:
            title.append(text)
        elif len(dividers) < 2 or y < dividers[1]:
            members.append(text)
        else:
            methods.append(text)
    return " ".join(title), members, methods


def _relation_kind(marker: str) -> Optional[str]:
    m = _RELATION_MARKER_RE.search(marker or "")
    return m.group(1) if m else None


def _parse_class(tree: _SvgTree) -> ClassDiagram:
    """Parse a Mermaid class diagram SVG."""
    diagram = ClassDiagram()
    for node_g in tree.groups("node"):
        shape = _first_shape(node_g)
        if shape is None:
            continue
        x, y, w, h = _shape_box(tree, shape)
        class_id = _node_id(node_g, r"classId-(.+)-\d+$")
        name, members, methods = _class_sections(tree, node_g)
        diagram.classes.append(ClassNode(
            id=class_id,
            text=name or class_id,
            members=members,
            methods=methods,
            x=x,
            y=y,
            width=w,
            height=h,
        ))

    centers = {c.id: _center(c.x, c.y, c.width, c.height) for c in diagram.classes}
    labels_by_id, ordered_labels = _edge_labels(tree)
    for idx, path_el in enumerate(_edge_paths(tree)):
        points = tree.absolute(path_el, _path_points(path_el.get("d", "")))
        if len(points) < 2:
            continue
        start, end = _link_endpoints(path_el, points, centers, ("id_", "id-"))
        raw_id = path_el.get("id") or f"id_{start}_{end}_{idx}"
        text = labels_by_id.get(raw_id)
        if text is None:
            text = ordered_labels[idx] if idx < len(ordered_labels) else ""
        diagram.relations.append(Relation(
            id=raw_id,
            start=start,
            end=end,
            text=text,
            start_kind=_relation_kind(path_el.get("marker-start", "")),
            end_kind=_relation_kind(path_el.get("marker-end", "")),
            points=points,
        ))

    trace(f"Class diagram: {len(diagram.classes)} classes, {len(diagram.relations)} relations", "PARSE")
    return diagram


# ─────────────────────────────────────────────────────────
# Image fallback
# ─────────────────────────────────────────────────────────


def _graph_image(root: ET.Element, image_format: str, png_scale: float) -> GraphImage:
    """Embed the whole rendered SVG (or a PNG of it) as one image."""
    width, height = svg_size(root)
    if width and height:
        root.set("width", str(width))
        root.set("height", str(height))

    # Style sheets hold colours like "#333;" that must stay as written
    for el in root.iter():
        if _local_name(el.tag) == "style":
            continue
        if el.text:
            el.text = entity_codes_to_text(el.text)
        if el.tail:
            el.tail = entity_codes_to_text(el.tail)

    svg_bytes = ET.tostring(root, encoding="utf-8")

    png = None
    if image_format == "png" and width and height:
        try:
            png, png_width, png_height = svg_to_png_bytes(svg_bytes.decode("utf-8"), png_scale)
        except (RuntimeError, ImportError) as e:
            trace(f"PNG rasterisation failed ({e}); embedding SVG instead", "ERROR")

    if png is not None:
        width, height = png_width, png_height
        data_url = "data:image/png;base64," + base64.b64encode(png).decode("ascii")
        mime_type = "image/png"
    else:
        data_url = "data:image/svg+xml;base64," + base64.b64encode(svg_bytes).decode("ascii")
        mime_type = "image/svg+xml"

    trace(f"Graph image {mime_type} {width}x{height}", "PARSE")
    return GraphImage(mime_type=mime_type, data_url=data_url, width=width, height=height)
