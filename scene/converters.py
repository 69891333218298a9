"""
scene/converters.py

Turn a parsed diagram model into Excalidraw scene elements.

``convert`` dispatches on the model's ``type`` discriminant through
``_CONVERTERS``; each converter describes its output as ``ElementSpec``
records and lets ``ElementFactory`` build them.
"""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple

from debug_trace import trace, trace_call
from models import (
    ROUNDED_VERTEX_TYPES,
    ArrowElement,
    ClassDiagram,
    ClassNode,
    ConversionResult,
    DiagramModel,
    Flowchart,
    GraphImage,
    Position,
    SceneContractError,
    SceneElement,
    SceneFile,
    Sequence,
    UnsupportedDiagramTypeError,
    resolve_element_type,
)
from scene.factory import (
    BuildResult,
    ElementFactory,
    ElementSpec,
    LabelSpec,
    estimate_text_size,
    resolve_file_references,
)
from scene.geometry import bounding_box, curvature_point
from settings import ConversionConfig

# File-table key used for the single image of a graph-image conversion
GRAPH_IMAGE_FILE_ID = "mermaid-diagram"

# Curvature step between successive parallel edges
PARALLEL_EDGE_CURVATURE = 0.2

# Padding inside class boxes
CLASS_BOX_PADDING = 8

# Text drawn when a diagram decomposes into nothing
EMPTY_DIAGRAM_TEXT = "Empty {kind} diagram"

# Mermaid edge type -> (start arrowhead, end arrowhead)
EDGE_ARROWHEADS: Dict[str, Tuple[Optional[str], Optional[str]]] = {
    "arrow_point":         (None, "arrow"),
    "arrow_open":          (None, None),
    "double_arrow_point":  ("arrow", "arrow"),
    "arrow_circle":        (None, "dot"),
    "double_arrow_circle": ("dot", "dot"),
    "arrow_cross":         (None, "bar"),
    "double_arrow_cross":  ("bar", "bar"),
}

# Mermaid class relation marker -> Excalidraw arrowhead
RELATION_ARROWHEADS: Dict[str, str] = {
    "extension":   "triangle_outline",
    "composition": "diamond",
    "aggregation": "diamond_outline",
    "dependency":  "arrow",
    "lollipop":    "circle_outline",
}

# Mermaid edge stroke -> Excalidraw stroke width
EDGE_STROKE_WIDTHS: Dict[str, float] = {
    "normal": 2,
    "thick": 4,
}


# ─────────────────────────────────────────────────────────
# Shared helpers
# ─────────────────────────────────────────────────────────


def _relative_path(points: List[Position]) -> Tuple[float, float, List[Position]]:
    """Split an absolute path into an origin and points relative to it."""
    origin = points[0]
    return origin.x, origin.y, [Position(p.x - origin.x, p.y - origin.y) for p in points]


def _center(x: float, y: float, w: float, h: float) -> Position:
    return Position(x + w / 2, y + h / 2)


def _bind_arrows(elements: List[SceneElement]) -> None:
    """Mirror each arrow binding onto the bound shape's ``boundElements``."""
    by_id = {el.id: el for el in elements}
    for el in elements:
        if not isinstance(el, ArrowElement):
            continue
        for binding in (el.start_binding, el.end_binding):
            if binding is None:
                continue
            target = by_id.get(binding.element_id)
            if target is not None:
                target.bind(el.id, "arrow")


def _check_unique_ids(elements: List[SceneElement]) -> None:
    seen = set()
    for el in elements:
        if el.id in seen:
            raise SceneContractError(f"duplicate element id {el.id!r}")
        seen.add(el.id)


def _placeholder(kind: str, font_size: float) -> ElementSpec:
    """A text element standing in for a diagram with nothing to draw."""
    text = EMPTY_DIAGRAM_TEXT.format(kind=kind)
    width, height = estimate_text_size(text, font_size)
    trace(f"Empty {kind} diagram; emitting placeholder text", "CONVERT")
    return ElementSpec(
        type="text",
        x=-width / 2,
        y=-height / 2,
        width=width,
        height=height,
        text=text,
        font_size=font_size,
    )


def _finish(build: BuildResult, files: Optional[Dict[str, SceneFile]] = None) -> ConversionResult:
    _bind_arrows(build.elements)
    _check_unique_ids(build.elements)
    return ConversionResult(
        elements=build.elements,
        files=resolve_file_references(build.file_refs, files or {}),
    )


# ─────────────────────────────────────────────────────────
# Graph image
# ─────────────────────────────────────────────────────────


def convert_graph_image(
    image: GraphImage, config: ConversionConfig, factory: ElementFactory
) -> ConversionResult:
    """One image element sized to the rendered diagram, plus its file."""
    files = {
        GRAPH_IMAGE_FILE_ID: SceneFile(
            id=GRAPH_IMAGE_FILE_ID,
            mime_type=image.mime_type,
            data_url=image.data_url,
            created_at=int(time.time() * 1000),
        )
    }
    spec = ElementSpec(
        type="image",
        x=0.0,
        y=0.0,
        width=image.width,
        height=image.height,
        file_id=GRAPH_IMAGE_FILE_ID,
    )
    return _finish(factory.build(spec), files)


# ─────────────────────────────────────────────────────────
# Flowchart
# ─────────────────────────────────────────────────────────


def _innermost_frames(chart: Flowchart, frame_ids: Dict[str, str]) -> Dict[str, str]:
    """Map each vertex id to the frame of the smallest subgraph holding it."""
    result: Dict[str, str] = {}
    area: Dict[str, float] = {}
    for sg in chart.subgraphs:
        sg_area = sg.width * sg.height
        for node_id in sg.node_ids:
            if node_id not in area or sg_area < area[node_id]:
                area[node_id] = sg_area
                result[node_id] = frame_ids[sg.id]
    return result


def _edge_path(edge, centers: Dict[str, Position]) -> List[Position]:
    if len(edge.points) >= 2:
        return [Position(p.x, p.y) for p in edge.points]
    start = centers.get(edge.start, Position())
    end = centers.get(edge.end, Position())
    return [start, end]


def convert_flowchart(
    chart: Flowchart, config: ConversionConfig, factory: ElementFactory
) -> ConversionResult:
    """Vertices become shapes, edges arrows, subgraphs frames.

    When several edges join the same pair of vertices, every edge after the
    first is bent through a curvature control point, alternating sides, so
    they stay distinguishable.
    """
    font_size = config.font_size
    frame_ids = {sg.id: f"{sg.id}_frame" for sg in chart.subgraphs}
    node_frames = _innermost_frames(chart, frame_ids)

    specs: List[ElementSpec] = []
    centers: Dict[str, Position] = {}
    vertex_ids = set()

    for v in chart.vertices:
        vertex_ids.add(v.id)
        centers[v.id] = _center(v.x, v.y, v.width, v.height)
        specs.append(ElementSpec(
            type=resolve_element_type(v.type),
            id=v.id,
            x=v.x,
            y=v.y,
            width=v.width,
            height=v.height,
            roundness={"type": 3} if v.type in ROUNDED_VERTEX_TYPES else None,
            label=LabelSpec(v.text, font_size) if v.text else None,
            link=v.link,
            frame_id=node_frames.get(v.id),
        ))

    pair_counts: Dict[frozenset, int] = defaultdict(int)
    for edge in chart.edges:
        path = _edge_path(edge, centers)
        pair = frozenset((edge.start, edge.end))
        index = pair_counts[pair]
        pair_counts[pair] += 1
        if index > 0:
            step = (index + 1) // 2
            sign = 1 if index % 2 else -1
            control = curvature_point(path[0], path[-1], PARALLEL_EDGE_CURVATURE * step * sign)
            path = [path[0], control, path[-1]]
            trace(f"Curved parallel edge {edge.id} ({edge.start}->{edge.end})", "CONVERT")

        x, y, points = _relative_path(path)
        box = bounding_box(points)
        start_head, end_head = EDGE_ARROWHEADS.get(edge.type, EDGE_ARROWHEADS["arrow_point"])
        specs.append(ElementSpec(
            type="arrow",
            id=edge.id,
            x=x,
            y=y,
            width=box[2],
            height=box[3],
            points=points,
            start_id=edge.start if edge.start in vertex_ids else None,
            end_id=edge.end if edge.end in vertex_ids else None,
            start_arrowhead=start_head,
            end_arrowhead=end_head,
            stroke_width=EDGE_STROKE_WIDTHS.get(edge.stroke),
            label=LabelSpec(edge.text, font_size) if edge.text else None,
        ))

    for sg in chart.subgraphs:
        specs.append(ElementSpec(
            type="frame",
            id=frame_ids[sg.id],
            x=sg.x,
            y=sg.y,
            width=sg.width,
            height=sg.height,
            name=sg.text,
            children=[n for n in sg.node_ids if node_frames.get(n) == frame_ids[sg.id]],
        ))

    if not specs:
        specs.append(_placeholder("flowchart", font_size))
    return _finish(factory.build_all(specs))


# ─────────────────────────────────────────────────────────
# Sequence
# ─────────────────────────────────────────────────────────


def convert_sequence(
    seq: Sequence, config: ConversionConfig, factory: ElementFactory
) -> ConversionResult:
    """Actors become boxes with lifelines, messages become arrows."""
    font_size = config.font_size
    specs: List[ElementSpec] = []

    for actor in seq.actors:
        specs.append(ElementSpec(
            type="ellipse" if actor.kind == "actor" else "rectangle",
            id=actor.id,
            x=actor.x,
            y=actor.y,
            width=actor.width,
            height=actor.height,
            label=LabelSpec(actor.text, font_size) if actor.text else None,
        ))
        if actor.lifeline_start is not None and actor.lifeline_end is not None:
            x, y, points = _relative_path([actor.lifeline_start, actor.lifeline_end])
            specs.append(ElementSpec(
                type="line",
                id=f"{actor.id}_lifeline",
                x=x,
                y=y,
                width=abs(points[1].x),
                height=abs(points[1].y),
                points=points,
                stroke_width=1,
            ))

    for note in seq.notes:
        specs.append(ElementSpec(
            type="rectangle",
            id=note.id,
            x=note.x,
            y=note.y,
            width=note.width,
            height=note.height,
            label=LabelSpec(note.text, font_size) if note.text else None,
        ))

    for msg in seq.messages:
        if len(msg.points) < 2:
            trace(f"Message {msg.id} has no path; using a zero-length arrow", "CONVERT")
            x, y, points = 0.0, 0.0, None
        else:
            x, y, points = _relative_path(msg.points)
        box = bounding_box(points or [])
        specs.append(ElementSpec(
            type="arrow",
            id=msg.id,
            x=x,
            y=y,
            width=box[2],
            height=box[3],
            points=points,
            start_arrowhead=None,
            end_arrowhead="arrow" if msg.has_arrowhead else None,
            label=LabelSpec(msg.text, font_size) if msg.text else None,
        ))

    if not specs:
        specs.append(_placeholder("sequence", font_size))
    return _finish(factory.build_all(specs))


# ─────────────────────────────────────────────────────────
# Class diagram
# ─────────────────────────────────────────────────────────


def _class_specs(node: ClassNode, font_size: float, group_id: str) -> List[ElementSpec]:
    pad = CLASS_BOX_PADDING
    specs = [ElementSpec(
        type="rectangle",
        id=node.id,
        x=node.x,
        y=node.y,
        width=node.width,
        height=node.height,
        group_ids=[group_id],
    )]

    name_w, name_h = estimate_text_size(node.text, font_size)
    specs.append(ElementSpec(
        type="text",
        x=node.x + (node.width - name_w) / 2,
        y=node.y + pad,
        width=name_w,
        height=name_h,
        text=node.text,
        font_size=font_size,
        group_ids=[group_id],
    ))
    if not node.members and not node.methods:
        return specs

    cursor = node.y + name_h + 2 * pad
    for lines in (node.members, node.methods):
        specs.append(ElementSpec(
            type="line",
            x=node.x,
            y=cursor,
            width=node.width,
            points=[Position(0.0, 0.0), Position(node.width, 0.0)],
            stroke_width=1,
            group_ids=[group_id],
        ))
        if lines:
            text = "\n".join(lines)
            text_w, text_h = estimate_text_size(text, font_size)
            specs.append(ElementSpec(
                type="text",
                x=node.x + pad,
                y=cursor + pad,
                width=text_w,
                height=text_h,
                text=text,
                font_size=font_size,
                text_align="left",
                vertical_align="top",
                group_ids=[group_id],
            ))
            cursor += text_h + 2 * pad
        else:
            cursor += 2 * pad
    return specs


def convert_class(
    diagram: ClassDiagram, config: ConversionConfig, factory: ElementFactory
) -> ConversionResult:
    """Classes become grouped boxes, relations arrows bound to them."""
    font_size = config.font_size
    specs: List[ElementSpec] = []
    class_ids = set()
    centers: Dict[str, Position] = {}

    for node in diagram.classes:
        class_ids.add(node.id)
        centers[node.id] = _center(node.x, node.y, node.width, node.height)
        specs.extend(_class_specs(node, font_size, factory.new_id()))

    for rel in diagram.relations:
        path = _edge_path(rel, centers)
        x, y, points = _relative_path(path)
        box = bounding_box(points)
        specs.append(ElementSpec(
            type="arrow",
            id=rel.id,
            x=x,
            y=y,
            width=box[2],
            height=box[3],
            points=points,
            start_id=rel.start if rel.start in class_ids else None,
            end_id=rel.end if rel.end in class_ids else None,
            start_arrowhead=RELATION_ARROWHEADS.get(rel.start_kind),
            end_arrowhead=RELATION_ARROWHEADS.get(rel.end_kind),
            label=LabelSpec(rel.text, font_size) if rel.text else None,
        ))

    if not specs:
        specs.append(_placeholder("class", font_size))
    return _finish(factory.build_all(specs))


# ─────────────────────────────────────────────────────────
# Dispatch
# ─────────────────────────────────────────────────────────

_CONVERTERS: Dict[str, Tuple[type, Callable[..., ConversionResult]]] = {
    "graphImage": (GraphImage, convert_graph_image),
    "flowchart": (Flowchart, convert_flowchart),
    "sequence": (Sequence, convert_sequence),
    "class": (ClassDiagram, convert_class),
}


@trace_call("CONVERT")
def convert(
    graph: DiagramModel,
    config: Optional[ConversionConfig] = None,
    factory: Optional[ElementFactory] = None,
) -> ConversionResult:
    """Convert a diagram model into scene elements and files.

    Args:
        graph: A ``Flowchart``, ``Sequence``, ``ClassDiagram`` or ``GraphImage``.
        config: Conversion options; defaults to ``ConversionConfig()``.
        factory: Element factory; pass one with a seeded ``random.Random``
            for reproducible ids and seeds.

    Returns:
        A fresh ``ConversionResult``; *graph* is not modified.

    Raises:
        UnsupportedDiagramTypeError: If ``graph.type`` has no converter.
        SceneContractError: If ``graph.type`` does not match its class.
    """
    graph_type = getattr(graph, "type", None)
    if not isinstance(graph_type, str):
        raise UnsupportedDiagramTypeError(
            "unknown type (input was not a recognized graph object)"
        )

    entry = _CONVERTERS.get(graph_type)
    if entry is None:
        raise UnsupportedDiagramTypeError(graph_type)

    model_cls, converter = entry
    if not isinstance(graph, model_cls):
        raise SceneContractError(
            f"{type(graph).__name__} claims type {graph_type!r}"
        )

    result = converter(graph, config or ConversionConfig(), factory or ElementFactory())
    trace(
        f"{graph_type}: {len(result.elements)} elements, {len(result.files)} files",
        "CONVERT",
    )
    return result
