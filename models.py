"""
models.py

Data models and constants for the Mermaid-to-Excalidraw converter.

Two families of types live here:

* the **diagram model** produced by ``mermaid.parser`` (one of
  ``Flowchart``, ``Sequence``, ``ClassDiagram`` or ``GraphImage``), and
* the **scene model** produced by ``scene.converters`` (``SceneElement``
  subclasses, ``SceneFile`` and ``ConversionResult``).

Scene elements serialise to Excalidraw's JSON element format through
``to_dict()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Union


# ----------------------------
# Errors
# ----------------------------

class UnsupportedDiagramTypeError(ValueError):
    """Raised when a diagram model has no matching converter."""

    def __init__(self, diagram_type: str):
        self.diagram_type = diagram_type
        super().__init__(
            f'unknown or unsupported diagram type "{diagram_type}". '
            "Supported types are 'flowchart', 'sequence', 'class' and 'graphImage'."
        )


class MermaidParseError(RuntimeError):
    """Raised when Mermaid rejects a definition or produces no SVG."""


class SceneContractError(ValueError):
    """Raised when a scene element or file table breaks its contract."""


# ----------------------------
# Diagram model
# ----------------------------

@dataclass
class Position:
    """A 2D point."""
    x: float = 0.0
    y: float = 0.0


@dataclass
class Vertex:
    """A flowchart node as laid out by Mermaid.

    ``type`` is the Mermaid shape (``rect``, ``round``, ``stadium``,
    ``circle``, ``doublecircle``, ``diamond``, ``hexagon``).
    """
    id: str
    type: str = "rect"
    label_type: str = "text"
    text: str = ""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    link: Optional[str] = None
    container_style: Dict[str, str] = field(default_factory=dict)
    label_style: Dict[str, str] = field(default_factory=dict)


@dataclass
class Edge:
    """A flowchart connector between two vertex ids.

    ``type`` follows Mermaid's edge types (``arrow_point``, ``arrow_open``,
    ``double_arrow_point``, ``arrow_circle``, ``arrow_cross``).
    ``points`` is the routed path in absolute coordinates.
    """
    id: str
    start: str
    end: str
    type: str = "arrow_point"
    text: str = ""
    stroke: str = "normal"
    points: List[Position] = field(default_factory=list)


@dataclass
class SubGraph:
    """A flowchart cluster and the vertex ids it contains."""
    id: str
    text: str = ""
    node_ids: List[str] = field(default_factory=list)
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class Flowchart:
    vertices: List[Vertex] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    subgraphs: List[SubGraph] = field(default_factory=list)
    direction: str = "TB"
    type: str = field(default="flowchart", init=False)


@dataclass
class Actor:
    """A sequence participant box plus its lifeline."""
    id: str
    text: str = ""
    kind: str = "participant"
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    lifeline_start: Optional[Position] = None
    lifeline_end: Optional[Position] = None


@dataclass
class Message:
    """A sequence message between two actor ids."""
    id: str
    start: str
    end: str
    text: str = ""
    dashed: bool = False
    has_arrowhead: bool = True
    points: List[Position] = field(default_factory=list)


@dataclass
class Note:
    id: str
    text: str = ""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class Sequence:
    actors: List[Actor] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)
    type: str = field(default="sequence", init=False)


@dataclass
class ClassNode:
    """A class box: name, attribute lines and method lines."""
    id: str
    text: str = ""
    members: List[str] = field(default_factory=list)
    methods: List[str] = field(default_factory=list)
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class Relation:
    """A class relation.

    ``start_kind``/``end_kind`` are Mermaid relation markers
    (``extension``, ``composition``, ``aggregation``, ``dependency``,
    ``lollipop``) or ``None`` for a plain association end.
    """
    id: str
    start: str
    end: str
    text: str = ""
    start_kind: Optional[str] = None
    end_kind: Optional[str] = None
    points: List[Position] = field(default_factory=list)


@dataclass
class ClassDiagram:
    classes: List[ClassNode] = field(default_factory=list)
    relations: List[Relation] = field(default_factory=list)
    type: str = field(default="class", init=False)


@dataclass
class GraphImage:
    """A diagram Mermaid rendered but we do not decompose."""
    mime_type: str
    data_url: str
    width: float = 0.0
    height: float = 0.0
    type: str = field(default="graphImage", init=False)


DiagramModel = Union[Flowchart, Sequence, ClassDiagram, GraphImage]


# ----------------------------
# Scene model
# ----------------------------

DEFAULT_STROKE_COLOR = "#1e1e1e"
DEFAULT_FONT_FAMILY = 1
DEFAULT_LINE_HEIGHT = 1.25

SHAPE_TYPES = frozenset({"rectangle", "ellipse", "diamond"})

# Mermaid vertex shape -> Excalidraw element type
VERTEX_ELEMENT_TYPE: Dict[str, str] = {
    "rect":         "rectangle",
    "square":       "rectangle",
    "round":        "rectangle",
    "stadium":      "rectangle",
    "hexagon":      "rectangle",
    "circle":       "ellipse",
    "doublecircle": "ellipse",
    "ellipse":      "ellipse",
    "diamond":      "diamond",
}

# Vertex shapes drawn with rounded corners
ROUNDED_VERTEX_TYPES = frozenset({"round", "stadium"})


def resolve_element_type(vertex_type: str, fallback: str = "rectangle") -> str:
    """Resolve a Mermaid vertex shape to an Excalidraw element type."""
    return VERTEX_ELEMENT_TYPE.get(vertex_type, fallback)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _to_json(value: Any) -> Any:
    if isinstance(value, Position):
        return [value.x, value.y]
    if isinstance(value, Binding):
        return value.to_dict()
    if isinstance(value, list):
        return [_to_json(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_json(v) for k, v in value.items()}
    return value


@dataclass
class Binding:
    """Attachment of an arrow end to a shape (weak reference by id)."""
    element_id: str
    focus: float = 0.0
    gap: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"elementId": self.element_id, "focus": self.focus, "gap": self.gap}


@dataclass
class SceneElement:
    """Fields shared by every Excalidraw element.

    Subclasses restrict ``type`` through ``ALLOWED_TYPES``; building an
    element with any other discriminant raises ``SceneContractError``.
    """
    ALLOWED_TYPES: ClassVar[FrozenSet[str]] = frozenset()

    id: str
    type: str
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    angle: float = 0.0
    stroke_color: str = DEFAULT_STROKE_COLOR
    background_color: str = "transparent"
    fill_style: str = "solid"
    stroke_width: float = 2
    stroke_style: str = "solid"
    roughness: int = 1
    opacity: int = 100
    seed: int = 0
    version: int = 1
    version_nonce: int = 0
    is_deleted: bool = False
    group_ids: List[str] = field(default_factory=list)
    frame_id: Optional[str] = None
    roundness: Optional[Dict[str, Any]] = None
    bound_elements: List[Dict[str, str]] = field(default_factory=list)
    updated: int = 1
    link: Optional[str] = None
    locked: bool = False

    def __post_init__(self) -> None:
        if self.type not in self.ALLOWED_TYPES:
            raise SceneContractError(
                f"{type(self).__name__} cannot have type {self.type!r}"
            )

    def bind(self, element_id: str, element_type: str) -> None:
        """Record that *element_id* (text or arrow) is attached to this element."""
        entry = {"id": element_id, "type": element_type}
        if entry not in self.bound_elements:
            self.bound_elements.append(entry)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to an Excalidraw element dict."""
        return {_camel(f.name): _to_json(getattr(self, f.name)) for f in fields(self)}


@dataclass
class ShapeElement(SceneElement):
    ALLOWED_TYPES: ClassVar[FrozenSet[str]] = SHAPE_TYPES


@dataclass
class TextElement(SceneElement):
    ALLOWED_TYPES: ClassVar[FrozenSet[str]] = frozenset({"text"})

    text: str = ""
    font_size: float = 16
    font_family: int = DEFAULT_FONT_FAMILY
    text_align: str = "center"
    vertical_align: str = "middle"
    container_id: Optional[str] = None
    original_text: str = ""
    line_height: float = DEFAULT_LINE_HEIGHT


@dataclass
class LinearElement(SceneElement):
    """Arrow or line: a path of points relative to ``(x, y)``."""
    ALLOWED_TYPES: ClassVar[FrozenSet[str]] = frozenset({"arrow", "line"})

    points: List[Position] = field(
        default_factory=lambda: [Position(0.0, 0.0), Position(0.0, 0.0)]
    )
    last_committed_point: Optional[Position] = None
    start_binding: Optional[Binding] = None
    end_binding: Optional[Binding] = None
    start_arrowhead: Optional[str] = None
    end_arrowhead: Optional[str] = None


@dataclass
class ArrowElement(LinearElement):
    ALLOWED_TYPES: ClassVar[FrozenSet[str]] = frozenset({"arrow"})


@dataclass
class LineElement(LinearElement):
    ALLOWED_TYPES: ClassVar[FrozenSet[str]] = frozenset({"line"})


@dataclass
class FrameElement(SceneElement):
    ALLOWED_TYPES: ClassVar[FrozenSet[str]] = frozenset({"frame"})

    name: str = ""
    children: List[str] = field(default_factory=list)


@dataclass
class ImageElement(SceneElement):
    """Image element; ``file_id`` must resolve in the scene's file table."""
    ALLOWED_TYPES: ClassVar[FrozenSet[str]] = frozenset({"image"})

    file_id: str = ""
    status: str = "saved"
    scale: List[float] = field(default_factory=lambda: [1, 1])


@dataclass
class SceneFile:
    """An embedded binary asset referenced by image elements."""
    id: str
    mime_type: str
    data_url: str
    created_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "mimeType": self.mime_type,
            "dataURL": self.data_url,
            "created": self.created_at,
        }


@dataclass
class ConversionResult:
    """Elements in paint order plus the file table they reference."""
    elements: List[SceneElement] = field(default_factory=list)
    files: Dict[str, SceneFile] = field(default_factory=dict)

    def element_dicts(self) -> List[Dict[str, Any]]:
        return [el.to_dict() for el in self.elements]

    def file_dicts(self) -> Dict[str, Dict[str, Any]]:
        return {fid: f.to_dict() for fid, f in self.files.items()}
